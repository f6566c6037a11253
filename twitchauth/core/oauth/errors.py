"""Exceptions raised by the sign-in session."""

from __future__ import annotations


class AuthError(Exception):
    """Base class for session errors.

    ``code`` is a stable machine-readable identifier; the message is meant for
    display and never includes provider responses or tokens.
    """

    code = "auth_error"
    default_message = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class UserCancelledError(AuthError):
    """The user dismissed or denied the authorization prompt."""

    code = "user_cancelled"
    default_message = "Sign-in was cancelled"


class AuthenticationFailedError(AuthError):
    """Sign-in failed after the provider redirected back."""

    code = "authentication_failed"
    default_message = "Authentication failed"


class InvalidStateError(AuthenticationFailedError):
    """The returned ``state`` does not match the one issued for this attempt."""

    code = "invalid_state"
    default_message = "Invalid state value"


class InvalidTransitionError(AuthError):
    """The operation is not allowed from the current session status."""

    code = "invalid_transition"
    default_message = "Operation not allowed in the current session state"


class SignInInProgressError(InvalidTransitionError):
    """A sign-in is already waiting on the provider."""

    code = "already_in_progress"
    default_message = "A sign-in is already in progress"
