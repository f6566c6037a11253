"""Twitch implicit grant sign-in."""

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
    AuthError,
    InvalidStateError,
    InvalidTransitionError,
    SignInInProgressError,
    UserCancelledError,
)
from twitchauth.core.oauth.launcher import (
    AuthorizationLauncher,
    AuthResultType,
    AuthSessionResult,
    LoopbackLauncher,
    PromptLauncher,
    parse_redirect_response,
)
from twitchauth.core.oauth.session import (
    Session,
    SessionManager,
    SessionStatus,
    SignInOutcome,
    User,
)
from twitchauth.core.oauth.transport import (
    HeaderTransport,
    HttpxHeaderTransport,
    InMemoryHeaderTransport,
)

__all__ = [
    # Client
    "AuthorizationRequest",
    "RevocationResponse",
    "TwitchAPIClient",
    "TwitchIdentityClient",
    "UsersResponse",
    "generate_state",
    # Errors
    "AuthError",
    "AuthenticationFailedError",
    "InvalidStateError",
    "InvalidTransitionError",
    "SignInInProgressError",
    "UserCancelledError",
    # Launchers
    "AuthorizationLauncher",
    "AuthResultType",
    "AuthSessionResult",
    "LoopbackLauncher",
    "PromptLauncher",
    "parse_redirect_response",
    # Session
    "Session",
    "SessionManager",
    "SessionStatus",
    "SignInOutcome",
    "User",
    # Transport
    "HeaderTransport",
    "HttpxHeaderTransport",
    "InMemoryHeaderTransport",
]
