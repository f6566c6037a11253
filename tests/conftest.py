"""Pytest configuration and fixtures."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Generator
from typing import Any

import httpx
import pytest

from twitchauth.core.config import TwitchSettings
from twitchauth.core.logging import ProtocolLogger, get_protocol_logger, set_protocol_logger
from twitchauth.core.oauth import (
    AuthorizationRequest,
    AuthResultType,
    AuthSessionResult,
    SessionManager,
)

PROFILE = {
    "id": "141981764",
    "login": "twitchdev",
    "display_name": "TwitchDev",
    "email": "dev@example.com",
    "profile_image_url": "https://static-cdn.jtvnw.net/jtv_user_pictures/twitchdev.png",
}


class ScriptedLauncher:
    """Launcher double that answers each request with ``respond(request)``."""

    def __init__(self, respond: Callable[[AuthorizationRequest], AuthSessionResult]) -> None:
        self.respond = respond
        self.requests: list[AuthorizationRequest] = []

    def launch(self, request: AuthorizationRequest) -> AuthSessionResult:
        self.requests.append(request)
        return self.respond(request)


def approve(token: str = "tok1", **extra: str) -> Callable[[AuthorizationRequest], AuthSessionResult]:
    """Respond like a user who accepted: token plus the state we sent."""

    def respond(request: AuthorizationRequest) -> AuthSessionResult:
        params = {"access_token": token, "state": request.state, "token_type": "bearer", **extra}
        return AuthSessionResult(type=AuthResultType.SUCCESS, params=params)

    return respond


class FakeTwitch:
    """httpx.MockTransport handler standing in for id.twitch.tv and Helix."""

    def __init__(self) -> None:
        self.users: list[dict[str, Any]] = [dict(PROFILE)]
        self.users_status = 200
        self.users_error: Exception | None = None
        self.revoke_status = 200
        self.revoke_error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == "/helix/users":
            if self.users_error is not None:
                raise self.users_error
            if self.users_status != 200:
                return httpx.Response(
                    self.users_status,
                    json={"error": "Unauthorized", "status": self.users_status, "message": "Invalid OAuth token"},
                )
            return httpx.Response(200, json={"data": self.users})

        if request.url.path == "/oauth2/revoke":
            if self.revoke_error is not None:
                raise self.revoke_error
            if self.revoke_status != 200:
                return httpx.Response(self.revoke_status, json={"status": self.revoke_status, "message": "Invalid token"})
            return httpx.Response(200)

        return httpx.Response(404, json={"status": 404, "message": "Not Found"})


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of config loading."""
    for key in list(os.environ):
        if key.startswith("TWITCHAUTH_") or key == "CLIENT_ID":
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Undo configure_logging side effects (the CLI calls it on every command)."""
    root = logging.getLogger("twitchauth")
    handlers, level = list(root.handlers), root.level
    previous = get_protocol_logger()
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    set_protocol_logger(previous)


@pytest.fixture
def settings() -> TwitchSettings:
    """Settings for a registered client."""
    return TwitchSettings(client_id="abc123", redirect_uri="http://localhost:3000/callback")


@pytest.fixture
def fake_twitch() -> FakeTwitch:
    return FakeTwitch()


@pytest.fixture
def transport(fake_twitch: FakeTwitch) -> httpx.MockTransport:
    return httpx.MockTransport(fake_twitch)


@pytest.fixture
def protocol_logger() -> ProtocolLogger:
    return ProtocolLogger()


@pytest.fixture
def launcher() -> ScriptedLauncher:
    """Launcher that approves with token ``tok1``."""
    return ScriptedLauncher(approve())


@pytest.fixture
def manager(
    settings: TwitchSettings,
    launcher: ScriptedLauncher,
    transport: httpx.MockTransport,
    protocol_logger: ProtocolLogger,
) -> Generator[SessionManager, None, None]:
    """Session manager wired to the fake Twitch endpoints."""
    session_manager = SessionManager.from_config(
        settings,
        launcher,
        protocol_logger=protocol_logger,
        transport=transport,
    )
    yield session_manager
    session_manager.close()
