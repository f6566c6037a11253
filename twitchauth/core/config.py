"""Application configuration management.

Loads configuration from config.yaml files and environment variables.
Environment variables take precedence over config file settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default config locations
DEFAULT_CONFIG_DIR = Path.home() / ".twitchauth"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

# Environment variable prefix
ENV_PREFIX = "TWITCHAUTH_"

TWITCH_AUTHORIZATION_ENDPOINT = "https://id.twitch.tv/oauth2/authorize"
TWITCH_REVOCATION_ENDPOINT = "https://id.twitch.tv/oauth2/revoke"
TWITCH_API_BASE_URL = "https://api.twitch.tv/helix"

DEFAULT_SCOPES = ["openid", "user:read:email", "user:read:follows"]
DEFAULT_REDIRECT_URI = "http://localhost:3000/callback"


@dataclass
class TwitchSettings:
    """Client registration and provider endpoints."""

    client_id: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    force_verify: bool = True
    authorization_endpoint: str = TWITCH_AUTHORIZATION_ENDPOINT
    revocation_endpoint: str = TWITCH_REVOCATION_ENDPOINT
    api_base_url: str = TWITCH_API_BASE_URL
    timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TwitchSettings:
        """Create TwitchSettings from a dictionary."""
        scopes = data.get("scopes", DEFAULT_SCOPES)
        if isinstance(scopes, str):
            scopes = scopes.split()
        return cls(
            client_id=str(data.get("client_id") or ""),
            redirect_uri=data.get("redirect_uri", DEFAULT_REDIRECT_URI),
            scopes=list(scopes),
            force_verify=data.get("force_verify", True),
            authorization_endpoint=data.get("authorization_endpoint", TWITCH_AUTHORIZATION_ENDPOINT),
            revocation_endpoint=data.get("revocation_endpoint", TWITCH_REVOCATION_ENDPOINT),
            api_base_url=data.get("api_base_url", TWITCH_API_BASE_URL),
            timeout=float(data.get("timeout", 30.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scopes": list(self.scopes),
            "force_verify": self.force_verify,
            "authorization_endpoint": self.authorization_endpoint,
            "revocation_endpoint": self.revocation_endpoint,
            "api_base_url": self.api_base_url,
            "timeout": self.timeout,
        }


@dataclass
class LoggingSettings:
    """Protocol logging settings."""

    level: str = "ERROR"
    trace: bool = False
    file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        """Create LoggingSettings from a dictionary."""
        return cls(
            level=str(data.get("level", "ERROR")).upper(),
            trace=data.get("trace", False),
            file=data.get("file"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "level": self.level,
            "trace": self.trace,
            "file": self.file,
        }


@dataclass
class AppConfig:
    """Main application configuration."""

    twitch: TwitchSettings = field(default_factory=TwitchSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path | None = None) -> AppConfig:
        """Create AppConfig from a dictionary."""
        twitch_data = data.get("twitch") or {}
        logging_data = data.get("logging") or {}
        return cls(
            twitch=TwitchSettings.from_dict(twitch_data),
            logging=LoggingSettings.from_dict(logging_data),
            config_path=config_path,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "twitch": self.twitch.to_dict(),
            "logging": self.logging.to_dict(),
        }

    def save(self, path: Path | None = None) -> Path:
        """Save configuration to a YAML file.

        Args:
            path: Path to save to. Uses config_path or default if not specified.

        Returns:
            The path written.
        """
        save_path = path or self.config_path or DEFAULT_CONFIG_FILE
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        return save_path


def _get_env_bool(key: str, default: bool) -> bool:
    """Get a boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_float(key: str, default: float) -> float:
    """Get a float from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def load_config_file(config_path: Path | None = None) -> AppConfig:
    """Load configuration from the YAML file alone, without environment overrides.

    Use this when the result is written back, so environment values never
    end up persisted in the file.

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        AppConfig from the file, or defaults if it is missing or invalid.
    """
    file_path = config_path or DEFAULT_CONFIG_FILE
    if file_path.exists():
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
            return AppConfig.from_dict(data, config_path=file_path)
        except (OSError, yaml.YAMLError, AttributeError, TypeError, ValueError):
            # If config file is invalid, use defaults
            pass
    return AppConfig()


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration.

    Configuration is loaded in this order (later values override earlier):
    1. Default values
    2. config.yaml file (if exists)
    3. Environment variables

    ``CLIENT_ID`` is read when ``TWITCHAUTH_CLIENT_ID`` is not set, since that
    is the name the host application's environment usually exports.

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        AppConfig with merged settings.
    """
    config = load_config_file(config_path)
    twitch = config.twitch

    client_id = os.environ.get(f"{ENV_PREFIX}CLIENT_ID") or os.environ.get("CLIENT_ID")
    if client_id:
        twitch.client_id = client_id

    if os.environ.get(f"{ENV_PREFIX}REDIRECT_URI"):
        twitch.redirect_uri = os.environ[f"{ENV_PREFIX}REDIRECT_URI"]

    if os.environ.get(f"{ENV_PREFIX}SCOPES"):
        twitch.scopes = os.environ[f"{ENV_PREFIX}SCOPES"].split()

    twitch.force_verify = _get_env_bool(f"{ENV_PREFIX}FORCE_VERIFY", twitch.force_verify)

    if os.environ.get(f"{ENV_PREFIX}API_BASE_URL"):
        twitch.api_base_url = os.environ[f"{ENV_PREFIX}API_BASE_URL"]

    twitch.timeout = _get_env_float(f"{ENV_PREFIX}TIMEOUT", twitch.timeout)

    # Logging settings
    if os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        config.logging.level = os.environ[f"{ENV_PREFIX}LOG_LEVEL"].upper()

    config.logging.trace = _get_env_bool(f"{ENV_PREFIX}LOG_TRACE", config.logging.trace)

    if os.environ.get(f"{ENV_PREFIX}LOG_FILE"):
        config.logging.file = os.environ[f"{ENV_PREFIX}LOG_FILE"]

    return config


def get_default_config_yaml() -> str:
    """Get the default config.yaml content as a string.

    Useful for generating example configuration files.
    """
    return """\
# twitchauth Configuration File
# Environment variables override these settings (prefix: TWITCHAUTH_)
# CLIENT_ID is also honoured when TWITCHAUTH_CLIENT_ID is unset.

twitch:
  # Client ID of the application registered at https://dev.twitch.tv/console
  client_id: ""

  # Must match one of the OAuth Redirect URLs registered for the application.
  # The loopback launcher listens on this host and port.
  redirect_uri: "http://localhost:3000/callback"

  # Scopes requested on every sign-in
  scopes:
    - openid
    - user:read:email
    - user:read:follows

  # Re-prompt for consent even if the user already authorized the app
  force_verify: true

  # Timeout in seconds for API and revocation calls
  timeout: 30

logging:
  # ERROR, INFO, DEBUG or TRACE
  level: ERROR

  # TRACE writes raw access tokens to the log; enable only for debugging
  trace: false

  # Optional log file
  # file: ~/.twitchauth/twitchauth.log
"""
