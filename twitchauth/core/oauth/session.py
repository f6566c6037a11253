"""Sign-in session state machine.

The session moves through::

    anonymous -> authenticating -> authenticated | anonymous
    authenticated | anonymous -> revoking -> anonymous

``SessionManager.sign_in`` runs one implicit grant round trip: build the
authorization URL with a fresh ``state``, hand it to the launcher, check the
returned ``state``, put the token on the shared API client and look up the
user. ``sign_out`` revokes the token and always ends anonymous.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

from twitchauth.core.logging import ProtocolLogger, get_protocol_logger
from twitchauth.core.oauth.client import (
    AuthorizationRequest,
    RevocationResponse,
    TwitchAPIClient,
    TwitchIdentityClient,
    UsersResponse,
    generate_state,
)
from twitchauth.core.oauth.errors import (
    AuthenticationFailedError,
    InvalidStateError,
    InvalidTransitionError,
    SignInInProgressError,
    UserCancelledError,
)
from twitchauth.core.oauth.launcher import ACCESS_DENIED, AuthResultType

if TYPE_CHECKING:
    import httpx

    from twitchauth.core.config import TwitchSettings
    from twitchauth.core.oauth.launcher import AuthorizationLauncher
    from twitchauth.core.oauth.transport import HeaderTransport

logger = logging.getLogger("twitchauth.session")

AUTHORIZATION_HEADER = "Authorization"
CLIENT_ID_HEADER = "Client-Id"


class SessionStatus(StrEnum):
    """Status of the sign-in session."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REVOKING = "revoking"


class SignInOutcome(StrEnum):
    """How a sign-in call settled when it did not raise."""

    AUTHENTICATED = "authenticated"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class User:
    """The signed-in Twitch user."""

    id: str
    display_name: str
    email: str = ""
    avatar_url: str = ""

    @classmethod
    def from_profile(cls, record: dict[str, Any]) -> User:
        """Map a Helix user record.

        Raises:
            KeyError: If ``id`` or ``display_name`` is missing.
        """
        return cls(
            id=str(record["id"]),
            display_name=str(record["display_name"]),
            email=record.get("email") or "",
            avatar_url=record.get("profile_image_url") or "",
        )

    def to_dict(self) -> dict[str, str]:
        return dataclasses.asdict(self)


@dataclass
class Session:
    """Process-lifetime session record.

    ``user`` and ``access_token`` are set together and only while
    authenticated; ``pending_state`` only while authenticating.
    """

    status: SessionStatus = SessionStatus.ANONYMOUS
    user: User | None = None
    access_token: str | None = None
    pending_state: str | None = None

    def clear(self) -> None:
        self.status = SessionStatus.ANONYMOUS
        self.user = None
        self.access_token = None
        self.pending_state = None


class IdentityProvider(Protocol):
    """Authorization URL construction and token revocation."""

    @property
    def client_id(self) -> str: ...

    def create_authorization_request(self, state: str | None = None) -> AuthorizationRequest: ...

    def revoke_token(self, token: str) -> RevocationResponse: ...


class ProfileSource(Protocol):
    """The API call that returns the token owner's profile."""

    def get_users(self) -> UsersResponse: ...


class SessionManager:
    """Owns the session and drives sign-in and sign-out.

    Create one per application and pass it to whatever needs the session.
    All state changes, including default header changes on the shared API
    client, happen under a single lock; the lock is released while waiting
    on the launcher or the network.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        api: ProfileSource,
        launcher: AuthorizationLauncher,
        headers: HeaderTransport | None = None,
        protocol_logger: ProtocolLogger | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            identity: Builds authorization URLs and revokes tokens.
            api: Shared API client used to look up the user.
            launcher: Shows the authorization URL to the user.
            headers: Default headers of the shared API client. Defaults to
                ``api`` itself, which must then implement HeaderTransport.
            protocol_logger: Optional protocol logger for HTTP traffic capture.
        """
        self._identity = identity
        self._api = api
        self._launcher = launcher
        self._headers: HeaderTransport = headers if headers is not None else api  # type: ignore[assignment]
        self._protocol_logger = protocol_logger or get_protocol_logger()

        self._lock = threading.RLock()
        self._session = Session()
        self._attempt = 0
        self._authorization_owner: int | None = None
        self._is_logging_in = False
        self._is_logging_out = False

        self._headers.set_header(CLIENT_ID_HEADER, identity.client_id)

    @classmethod
    def from_config(
        cls,
        config: TwitchSettings,
        launcher: AuthorizationLauncher,
        protocol_logger: ProtocolLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> SessionManager:
        """Build a manager with Twitch clients for the given settings.

        Args:
            config: Client registration and endpoints.
            launcher: Shows the authorization URL to the user.
            protocol_logger: Optional protocol logger for HTTP traffic capture.
            transport: Optional httpx transport shared by both clients.

        Returns:
            SessionManager whose ``api`` is a new TwitchAPIClient.
        """
        identity = TwitchIdentityClient(config, protocol_logger=protocol_logger, transport=transport)
        api = TwitchAPIClient(config, protocol_logger=protocol_logger, transport=transport)
        return cls(identity, api, launcher, protocol_logger=protocol_logger)

    def close(self) -> None:
        """Close the HTTP clients of collaborators that hold one."""
        for collaborator in (self._identity, self._api):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()

    @property
    def api(self) -> ProfileSource:
        return self._api

    @property
    def identity(self) -> IdentityProvider:
        return self._identity

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._session.status

    @property
    def user(self) -> User | None:
        with self._lock:
            return self._session.user

    @property
    def access_token(self) -> str | None:
        with self._lock:
            return self._session.access_token

    @property
    def session(self) -> Session:
        """A copy of the current session record."""
        with self._lock:
            return dataclasses.replace(self._session)

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED

    @property
    def is_logging_in(self) -> bool:
        with self._lock:
            return self._is_logging_in

    @property
    def is_logging_out(self) -> bool:
        with self._lock:
            return self._is_logging_out

    def sign_in(self, raise_on_cancel: bool = False) -> SignInOutcome:
        """Run the authorization round trip and load the user.

        Args:
            raise_on_cancel: Raise UserCancelledError instead of returning
                ``SignInOutcome.CANCELLED`` when the user backs out.

        Returns:
            ``AUTHENTICATED`` on success, ``CANCELLED`` if the user dismissed
            or denied the prompt, or a concurrent ``sign_out`` superseded
            this attempt.

        Raises:
            SignInInProgressError: Another sign-in is waiting on the launcher.
            InvalidTransitionError: Already signed in, or signing out.
            InvalidStateError: The returned ``state`` is not the one issued.
            AuthenticationFailedError: Anything else went wrong after the
                launcher was started. The cause is logged, not attached.
            UserCancelledError: Only with ``raise_on_cancel``.
        """
        request, attempt = self._begin_sign_in()
        flow = self._protocol_logger.start_flow(f"sign_in_{secrets.token_hex(8)}", "sign_in")
        try:
            return self._complete_sign_in(request, attempt, raise_on_cancel)
        finally:
            with self._lock:
                if attempt == self._attempt:
                    if self._session.status == SessionStatus.AUTHENTICATING:
                        self._reset_locked(attempt)
                    self._session.pending_state = None
                    self._is_logging_in = False
            self._protocol_logger.end_flow(flow)

    def _begin_sign_in(self) -> tuple[AuthorizationRequest, int]:
        with self._lock:
            status = self._session.status
            if status == SessionStatus.AUTHENTICATING:
                raise SignInInProgressError()
            if status != SessionStatus.ANONYMOUS:
                raise InvalidTransitionError(f"Cannot sign in while {status}")

            self._attempt += 1
            request = self._identity.create_authorization_request(state=generate_state())
            self._session.status = SessionStatus.AUTHENTICATING
            self._session.pending_state = request.state
            self._is_logging_in = True
            return request, self._attempt

    def _complete_sign_in(
        self,
        request: AuthorizationRequest,
        attempt: int,
        raise_on_cancel: bool,
    ) -> SignInOutcome:
        try:
            result = self._launcher.launch(request)
        except Exception:
            logger.debug("Authorization launcher failed", exc_info=True)
            self._reset(attempt)
            raise AuthenticationFailedError() from None

        if self._superseded(attempt):
            logger.info("Sign-in superseded by sign-out; discarding authorization response")
            token = result.params.get("access_token")
            returned_state = result.params.get("state") or ""
            if (
                result.type == AuthResultType.SUCCESS
                and token
                and secrets.compare_digest(returned_state.encode(), request.state.encode())
            ):
                self._revoke(token)
            return SignInOutcome.CANCELLED

        if result.type != AuthResultType.SUCCESS or result.params.get("error") == ACCESS_DENIED:
            if result.type == AuthResultType.ERROR:
                logger.warning(f"Authorization ended with a provider error: {result.error}")
            else:
                logger.info(f"Sign-in cancelled ({result.params.get('error') or result.type})")
            self._reset(attempt)
            if raise_on_cancel:
                raise UserCancelledError()
            return SignInOutcome.CANCELLED

        returned_state = result.params.get("state") or ""
        if not secrets.compare_digest(returned_state.encode(), request.state.encode()):
            logger.warning("Rejected authorization response: state mismatch")
            self._reset(attempt)
            raise InvalidStateError()

        try:
            return self._load_user(result.params, attempt)
        except Exception:
            logger.debug("Sign-in failed after authorization", exc_info=True)
            self._reset(attempt)
            raise AuthenticationFailedError() from None

    def _load_user(self, params: dict[str, str], attempt: int) -> SignInOutcome:
        if params.get("error"):
            raise AuthenticationFailedError(f"Provider returned error: {params['error']}")
        token = params.get("access_token")
        if not token:
            raise AuthenticationFailedError("No access_token in authorization response")

        with self._lock:
            superseded = self._superseded(attempt)
            if not superseded:
                self._headers.set_header(AUTHORIZATION_HEADER, f"Bearer {token}")
                self._authorization_owner = attempt
        if superseded:
            logger.info("Sign-in superseded by sign-out; discarding access token")
            self._revoke(token)
            return SignInOutcome.CANCELLED

        response = self._api.get_users()
        if not response.is_success:
            raise AuthenticationFailedError(f"User lookup failed: {response.error}: {response.error_description}")
        if not response.users:
            raise AuthenticationFailedError("User lookup returned no records")
        user = User.from_profile(response.users[0])

        with self._lock:
            superseded = self._superseded(attempt)
            if superseded:
                self._release_authorization(attempt)
            else:
                self._session.user = user
                self._session.access_token = token
                self._session.pending_state = None
                self._session.status = SessionStatus.AUTHENTICATED
        if superseded:
            logger.info("Sign-in superseded by sign-out; discarding user")
            self._revoke(token)
            return SignInOutcome.CANCELLED

        logger.info(f"Signed in as {user.display_name} ({user.id})")
        return SignInOutcome.AUTHENTICATED

    def sign_out(self) -> None:
        """Revoke the token and return to anonymous.

        Revocation failures are logged and ignored; when this returns the
        session is anonymous and no Authorization header remains on the
        shared API client. Also cancels a sign-in that is still waiting.
        """
        with self._lock:
            self._attempt += 1
            token = self._session.access_token
            self._session.status = SessionStatus.REVOKING
            self._session.pending_state = None
            self._is_logging_in = False
            self._is_logging_out = True

        flow = self._protocol_logger.start_flow(f"sign_out_{secrets.token_hex(8)}", "sign_out")
        try:
            if token:
                self._revoke(token)
            else:
                logger.debug("No access token held; skipping revocation")
        finally:
            with self._lock:
                self._session.clear()
                self._headers.clear_header(AUTHORIZATION_HEADER)
                self._authorization_owner = None
                self._is_logging_out = False
            self._protocol_logger.end_flow(flow)
            logger.info("Signed out")

    def _revoke(self, token: str) -> None:
        try:
            response = self._identity.revoke_token(token)
        except Exception:
            logger.warning("Token revocation raised; signing out locally", exc_info=True)
            return

        if response.is_success:
            logger.info("Access token revoked")
        else:
            logger.warning(f"Token revocation failed ({response.error}): {response.error_description}")

    def _superseded(self, attempt: int) -> bool:
        with self._lock:
            return attempt != self._attempt

    def _release_authorization(self, attempt: int) -> None:
        if self._authorization_owner == attempt:
            self._headers.clear_header(AUTHORIZATION_HEADER)
            self._authorization_owner = None

    def _reset(self, attempt: int) -> None:
        with self._lock:
            self._reset_locked(attempt)

    def _reset_locked(self, attempt: int) -> None:
        self._release_authorization(attempt)
        if attempt == self._attempt:
            self._session.clear()
