"""twitchauth - Twitch implicit-grant sign-in and session management."""

__version__ = "0.1.0"
