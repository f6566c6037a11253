"""Protocol logging for the sign-in session.

Records the HTTP traffic the session makes against Twitch (user lookup,
token revocation), grouped per sign-in or sign-out flow, and keeps bearer
tokens out of the logs.

Log levels:
- ERROR: Only log failed exchanges
- INFO: One line per exchange (method, URL, status, timing)
- DEBUG: Add request/response headers
- TRACE: Add bodies and stop redacting tokens (requires explicit enable)
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import httpx

# Custom log level for TRACE (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("twitchauth.protocol")


class LogLevel(IntEnum):
    """Protocol logging levels."""

    ERROR = logging.ERROR
    INFO = logging.INFO
    DEBUG = logging.DEBUG
    TRACE = TRACE


REDACTED = "[REDACTED]"

# Implicit grant puts the token in the redirect fragment, revocation sends it
# as a form field, and every API call carries it in the Authorization header.
SENSITIVE_PATTERNS = [
    (re.compile(r"(^|[?&#])(access_token=)[^&\s]+", re.IGNORECASE), rf"\1\2{REDACTED}"),
    (re.compile(r"(^|[?&#])(token=)[^&\s]+", re.IGNORECASE), rf"\1\2{REDACTED}"),
    (re.compile(r"(^|[?&#])(state=)[^&\s]+", re.IGNORECASE), rf"\1\2{REDACTED}"),
    (re.compile(r"(Authorization:\s*(?:Bearer|OAuth)\s+)[^\s]+", re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r"^((?:Bearer|OAuth)\s+)[^\s]+", re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r'"(access_token|token)"\s*:\s*"[^"]+"', re.IGNORECASE), rf'"\1": "{REDACTED}"'),
]


def redact_sensitive(text: str) -> str:
    """Redact tokens and state values from text.

    Args:
        text: URL, header value or body that may carry credentials.

    Returns:
        Text with credentials replaced by ``[REDACTED]``.
    """
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


@dataclass
class HTTPExchange:
    """A single HTTP request/response made on behalf of the session."""

    id: str
    timestamp: datetime
    method: str
    url: str
    request_headers: dict[str, str]
    request_body: str | None = None
    response_status: int | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response_body: str | None = None
    duration_ms: float | None = None
    error: str | None = None

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to a dictionary, redacting credentials unless asked not to."""

        def scrub(value: str | None) -> str | None:
            if value is None or include_sensitive:
                return value
            return redact_sensitive(value)

        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "url": scrub(self.url),
            "request_headers": {k: scrub(v) for k, v in self.request_headers.items()},
            "request_body": scrub(self.request_body),
            "response_status": self.response_status,
            "response_headers": {k: scrub(v) for k, v in self.response_headers.items()},
            "response_body": scrub(self.response_body),
            "duration_ms": self.duration_ms,
            "error": self.error,
        }

    def format_log(self, level: LogLevel, include_sensitive: bool = False) -> str:
        """Format the exchange for the Python logger.

        Args:
            level: Detail level; lower levels include more.
            include_sensitive: If True, leave tokens in place.

        Returns:
            Multi-line log text.
        """
        data = self.to_dict(include_sensitive=include_sensitive)
        status = self.response_status or "ERROR"
        lines = [f"HTTP {self.method} {data['url']} -> {status}"]

        if self.duration_ms is not None:
            lines.append(f"  Duration: {self.duration_ms:.1f}ms")
        if self.error:
            lines.append(f"  Error: {self.error}")

        if level <= LogLevel.DEBUG:
            lines.append("  Request Headers:")
            lines.extend(f"    {name}: {value}" for name, value in data["request_headers"].items())
            if self.response_headers:
                lines.append("  Response Headers:")
                lines.extend(f"    {name}: {value}" for name, value in data["response_headers"].items())

        if level <= LogLevel.TRACE:
            for label, body in (("Request Body", data["request_body"]), ("Response Body", data["response_body"])):
                if body:
                    lines.append(f"  {label}:")
                    lines.append(f"    {body[:2000]}{'...' if len(body) > 2000 else ''}")

        return "\n".join(lines)


@dataclass
class ProtocolLog:
    """HTTP exchanges collected during one sign-in or sign-out."""

    flow_id: str
    flow_type: str
    exchanges: list[HTTPExchange] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    def add_exchange(self, exchange: HTTPExchange) -> None:
        self.exchanges.append(exchange)

    def complete(self) -> None:
        self.completed_at = datetime.now(UTC)

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "flow_id": self.flow_id,
            "flow_type": self.flow_type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "exchanges": [e.to_dict(include_sensitive) for e in self.exchanges],
            "exchange_count": len(self.exchanges),
        }


class ProtocolLogger:
    """Level-aware collector for session HTTP traffic.

    Open flows are tracked per thread, so a sign-out that runs while a
    sign-in is waiting keeps its exchanges apart from the sign-in's.
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        trace_enabled: bool = False,
    ) -> None:
        """Initialize the protocol logger.

        Args:
            level: Minimum log level.
            trace_enabled: Whether TRACE level is allowed (logs raw tokens).
        """
        self._level = level
        self._trace_enabled = trace_enabled
        self._flows = threading.local()

    @property
    def level(self) -> LogLevel:
        return self._level

    @level.setter
    def level(self, value: LogLevel) -> None:
        self._level = value

    @property
    def trace_enabled(self) -> bool:
        return self._trace_enabled

    @trace_enabled.setter
    def trace_enabled(self, value: bool) -> None:
        self._trace_enabled = value

    @property
    def effective_level(self) -> LogLevel:
        """Get effective log level (TRACE only if explicitly enabled)."""
        if self._level == LogLevel.TRACE and not self._trace_enabled:
            return LogLevel.DEBUG
        return self._level

    @property
    def current_log(self) -> ProtocolLog | None:
        """Innermost open flow of the calling thread."""
        stack = self._flow_stack()
        return stack[-1] if stack else None

    def _flow_stack(self) -> list[ProtocolLog]:
        stack = getattr(self._flows, "stack", None)
        if stack is None:
            stack = self._flows.stack = []
        return stack

    def start_flow(self, flow_id: str, flow_type: str) -> ProtocolLog:
        """Start collecting exchanges for a new flow.

        Flows nest per thread: exchanges go to the innermost open flow of the
        thread that sends them, and ending it makes the enclosing flow
        current again.

        Args:
            flow_id: Unique identifier for the flow.
            flow_type: Kind of flow ("sign_in", "sign_out").

        Returns:
            ProtocolLog for the flow; pass it back to ``end_flow``.
        """
        log = ProtocolLog(flow_id=flow_id, flow_type=flow_type)
        self._flow_stack().append(log)
        logger.info(f"Started protocol logging for {flow_type} flow: {flow_id}")
        return log

    def end_flow(self, log: ProtocolLog | None = None) -> ProtocolLog | None:
        """End a flow and return its log.

        Args:
            log: The log returned by ``start_flow``. Defaults to the current one.

        Returns:
            The completed log, or None if no such flow was open.
        """
        stack = self._flow_stack()
        if log is None:
            if not stack:
                return None
            log = stack[-1]
        index = next((i for i, entry in enumerate(stack) if entry is log), None)
        if index is None:
            return None
        del stack[index]
        log.complete()
        logger.info(
            f"Completed protocol logging for {log.flow_type} flow: {log.flow_id} "
            f"({len(log.exchanges)} exchanges)"
        )
        return log

    def log_exchange(self, exchange: HTTPExchange) -> None:
        """Record an exchange on the current flow and emit it to the logger."""
        current = self.current_log
        if current is not None:
            current.add_exchange(exchange)

        effective = self.effective_level
        include_sensitive = self._trace_enabled and self._level <= LogLevel.TRACE

        if effective <= LogLevel.DEBUG:
            logger.debug(exchange.format_log(effective, include_sensitive))
        elif effective <= LogLevel.INFO:
            logger.info(exchange.format_log(effective, include_sensitive))

        if exchange.error:
            url = exchange.url if include_sensitive else redact_sensitive(exchange.url)
            logger.error(f"HTTP error: {exchange.method} {url}: {exchange.error}")


class LoggingClient(httpx.Client):
    """HTTPX client that reports every exchange to a ProtocolLogger."""

    def __init__(
        self,
        protocol_logger: ProtocolLogger | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the logging client.

        Args:
            protocol_logger: ProtocolLogger to report to. Uses the global one if not provided.
            **kwargs: Additional arguments passed to httpx.Client.
        """
        self._protocol_logger = protocol_logger or get_protocol_logger()
        super().__init__(**kwargs)

    @property
    def protocol_logger(self) -> ProtocolLogger:
        return self._protocol_logger

    def _exchange_for(self, request: httpx.Request, start_time: float) -> HTTPExchange:
        request_body = None
        if request.content:
            try:
                request_body = request.content.decode("utf-8")
            except UnicodeDecodeError:
                request_body = "<binary content>"

        return HTTPExchange(
            id=f"http_{id(request):08x}",
            timestamp=datetime.now(UTC),
            method=request.method,
            url=str(request.url),
            request_headers=dict(request.headers),
            request_body=request_body,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )

    def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        """Send a request and log the exchange, including transport failures."""
        start_time = time.perf_counter()
        try:
            response = super().send(request, **kwargs)
        except httpx.HTTPError as e:
            exchange = self._exchange_for(request, start_time)
            exchange.error = str(e) or type(e).__name__
            self._protocol_logger.log_exchange(exchange)
            raise

        exchange = self._exchange_for(request, start_time)
        exchange.response_status = response.status_code
        exchange.response_headers = dict(response.headers)
        try:
            response.read()
            exchange.response_body = response.text
        except httpx.HTTPError:
            exchange.response_body = "<error reading body>"
        self._protocol_logger.log_exchange(exchange)
        return response


# Global protocol logger instance
_global_logger: ProtocolLogger | None = None


def get_protocol_logger() -> ProtocolLogger:
    """Get the global protocol logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = ProtocolLogger()
    return _global_logger


def set_protocol_logger(logger_instance: ProtocolLogger) -> None:
    """Set the global protocol logger instance."""
    global _global_logger
    _global_logger = logger_instance


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    trace_enabled: bool = False,
    log_file: str | None = None,
) -> ProtocolLogger:
    """Configure the ``twitchauth`` loggers and the global protocol logger.

    Args:
        level: Log level (ERROR, INFO, DEBUG, TRACE) or string name.
        trace_enabled: Whether to enable TRACE level (logs raw tokens).
        log_file: Optional file path to write logs to.

    Returns:
        Configured ProtocolLogger.
    """
    if isinstance(level, str):
        level = LogLevel.__members__.get(level.upper(), LogLevel.INFO)

    root = logging.getLogger("twitchauth")
    root.setLevel(level)
    root.handlers.clear()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(os.path.expanduser(log_file))
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    protocol_logger = ProtocolLogger(level=level, trace_enabled=trace_enabled)
    set_protocol_logger(protocol_logger)

    if trace_enabled:
        root.warning("TRACE logging enabled - access tokens will be written to the log!")

    return protocol_logger
