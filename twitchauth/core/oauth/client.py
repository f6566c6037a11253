"""Twitch identity and API clients.

``TwitchIdentityClient`` talks to ``id.twitch.tv``: it builds the implicit
grant authorization URL and revokes tokens. ``TwitchAPIClient`` wraps the
shared Helix client whose default headers carry the session's credentials.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from twitchauth.core.config import TwitchSettings
from twitchauth.core.logging import LoggingClient, ProtocolLogger, get_protocol_logger
from twitchauth.core.oauth.transport import HttpxHeaderTransport

RESPONSE_TYPE = "token"


def generate_state(nbytes: int = 32) -> str:
    """Generate an unpredictable ``state`` value for one authorization attempt.

    Args:
        nbytes: Random bytes to draw; at least 16 (128 bits) are always used.

    Returns:
        URL-safe random string (43 characters for the default 32 bytes).
    """
    return secrets.token_urlsafe(max(16, nbytes))


@dataclass
class AuthorizationRequest:
    """An implicit grant authorization request for one sign-in attempt."""

    authorization_url: str
    state: str
    client_id: str
    redirect_uri: str
    scopes: list[str] = field(default_factory=list)
    force_verify: bool = True


@dataclass
class RevocationResponse:
    """Result of a token revocation call."""

    status_code: int | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None


@dataclass
class UsersResponse:
    """Result of a Helix ``GET /users`` call."""

    users: list[dict[str, Any]] = field(default_factory=list)
    status_code: int | None = None

    # Error information
    error: str | None = None
    error_description: str | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None


def _error_fields(response: httpx.Response, default_error: str) -> tuple[str, str]:
    """Pull (error, description) out of a Twitch error body.

    Twitch answers with ``{"status": 400, "message": "..."}`` on id.twitch.tv
    and ``{"error": "...", "status": 401, "message": "..."}`` on Helix.
    """
    fallback = f"Request failed with status {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return default_error, fallback
    if not isinstance(body, dict):
        return default_error, fallback
    return str(body.get("error") or default_error), str(body.get("message") or fallback)


class TwitchIdentityClient:
    """Client for the Twitch OAuth endpoints (authorize, revoke)."""

    def __init__(
        self,
        config: TwitchSettings,
        protocol_logger: ProtocolLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the identity client.

        Args:
            config: Client registration and endpoints.
            protocol_logger: Optional protocol logger for HTTP traffic capture.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        """
        self.config = config
        self._protocol_logger = protocol_logger or get_protocol_logger()
        self._transport = transport
        self._http_client: LoggingClient | None = None

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def http_client(self) -> LoggingClient:
        """Get or create HTTP client with logging."""
        if self._http_client is None:
            self._http_client = LoggingClient(
                protocol_logger=self._protocol_logger,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._http_client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def create_authorization_request(self, state: str | None = None) -> AuthorizationRequest:
        """Build the authorization URL for one sign-in attempt.

        Args:
            state: Anti-forgery value to embed (generated if not provided).

        Returns:
            AuthorizationRequest with the URL and the state it carries.
        """
        state = state or generate_state()
        params: dict[str, str] = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": RESPONSE_TYPE,
            "scope": " ".join(self.config.scopes),
            "force_verify": "true" if self.config.force_verify else "false",
            "state": state,
        }
        # quote (not quote_plus) so scope separators go out as %20
        authorization_url = f"{self.config.authorization_endpoint}?{urlencode(params, quote_via=quote)}"

        return AuthorizationRequest(
            authorization_url=authorization_url,
            state=state,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            scopes=list(self.config.scopes),
            force_verify=self.config.force_verify,
        )

    def revoke_token(self, token: str) -> RevocationResponse:
        """Revoke an access token.

        Args:
            token: Access token to revoke.

        Returns:
            RevocationResponse; failures are reported, never raised.
        """
        try:
            response = self.http_client.post(
                self.config.revocation_endpoint,
                data={"client_id": self.config.client_id, "token": token},
            )
        except httpx.HTTPError as e:
            return RevocationResponse(
                error="http_error",
                error_description=f"HTTP error during token revocation: {type(e).__name__}",
            )

        if response.status_code != 200:
            error, description = _error_fields(response, "revocation_error")
            return RevocationResponse(
                status_code=response.status_code,
                error=error,
                error_description=description,
            )

        return RevocationResponse(status_code=response.status_code)


class TwitchAPIClient:
    """The shared Helix API client.

    Default headers set here (``Client-Id``, ``Authorization``) go out on
    every API call made through ``http_client``.
    """

    def __init__(
        self,
        config: TwitchSettings,
        protocol_logger: ProtocolLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the API client.

        Args:
            config: Client registration and API base URL.
            protocol_logger: Optional protocol logger for HTTP traffic capture.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        """
        self.config = config
        self.http_client = LoggingClient(
            protocol_logger=protocol_logger or get_protocol_logger(),
            base_url=config.api_base_url,
            timeout=config.timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._headers = HttpxHeaderTransport(self.http_client)

    def __enter__(self) -> TwitchAPIClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.http_client.close()

    @property
    def headers(self) -> dict[str, str]:
        """A copy of the current default headers (names lowercased by httpx)."""
        return dict(self.http_client.headers)

    def set_header(self, name: str, value: str) -> None:
        self._headers.set_header(name, value)

    def clear_header(self, name: str) -> None:
        self._headers.clear_header(name)

    def get_header(self, name: str) -> str | None:
        return self._headers.get_header(name)

    def get_users(self, **params: str) -> UsersResponse:
        """Fetch user records; with no parameters, the token's own user.

        Args:
            **params: Optional Helix filters (``id``, ``login``).

        Returns:
            UsersResponse with the ``data`` list.
        """
        try:
            response = self.http_client.get("/users", params=params or None)
        except httpx.HTTPError as e:
            return UsersResponse(
                error="http_error",
                error_description=f"HTTP error fetching users: {type(e).__name__}",
            )

        if response.status_code != 200:
            error, description = _error_fields(response, "users_error")
            return UsersResponse(
                status_code=response.status_code,
                error=error,
                error_description=description,
            )

        try:
            body = response.json()
        except ValueError:
            return UsersResponse(
                status_code=response.status_code,
                error="invalid_response",
                error_description="Users response is not valid JSON",
            )

        users = body.get("data") if isinstance(body, dict) else None
        if not isinstance(users, list):
            return UsersResponse(
                status_code=response.status_code,
                error="invalid_response",
                error_description="Users response has no data list",
            )

        return UsersResponse(users=users, status_code=response.status_code)
