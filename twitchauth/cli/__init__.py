"""Command line interface for twitchauth."""
