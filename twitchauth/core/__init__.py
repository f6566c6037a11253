"""Core session, configuration and protocol logging."""

from twitchauth.core.logging import (
    HTTPExchange,
    LoggingClient,
    LogLevel,
    ProtocolLog,
    ProtocolLogger,
    configure_logging,
    get_protocol_logger,
    redact_sensitive,
    set_protocol_logger,
)

__all__ = [
    "HTTPExchange",
    "LoggingClient",
    "LogLevel",
    "ProtocolLog",
    "ProtocolLogger",
    "configure_logging",
    "get_protocol_logger",
    "redact_sensitive",
    "set_protocol_logger",
]
