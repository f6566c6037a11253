"""Authorization launchers.

A launcher shows the authorization URL to the user and waits for the
provider to redirect back. With the implicit grant the token arrives in the
redirect URL fragment, so every launcher ends by turning that redirect into
an ``AuthSessionResult``.
"""

from __future__ import annotations

import logging
import queue
import threading
import webbrowser
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol
from urllib.parse import parse_qsl, urlsplit

import click

if TYPE_CHECKING:
    from twitchauth.core.oauth.client import AuthorizationRequest

logger = logging.getLogger("twitchauth.launcher")

ACCESS_DENIED = "access_denied"


class AuthResultType(StrEnum):
    """How an authorization attempt ended."""

    SUCCESS = "success"
    CANCEL = "cancel"
    DISMISS = "dismiss"
    ERROR = "error"
    LOCKED = "locked"


@dataclass
class AuthSessionResult:
    """Outcome of showing the authorization URL to the user."""

    type: AuthResultType
    params: dict[str, str] = field(default_factory=dict)
    url: str | None = None
    error: str | None = None

    @classmethod
    def cancelled(cls, result_type: AuthResultType = AuthResultType.CANCEL) -> AuthSessionResult:
        return cls(type=result_type)


def result_from_params(params: dict[str, str], url: str | None = None) -> AuthSessionResult:
    """Classify redirect parameters.

    A provider ``error`` makes the outcome ``error``, except ``access_denied``
    (the user pressed Cancel on the consent screen), which stays a
    ``success`` carrying the error so the session can treat it as a
    cancellation after seeing the state.
    """
    error = params.get("error")
    if error and error != ACCESS_DENIED:
        return AuthSessionResult(
            type=AuthResultType.ERROR,
            params=params,
            url=url,
            error=params.get("error_description") or error,
        )
    return AuthSessionResult(type=AuthResultType.SUCCESS, params=params, url=url)


def parse_redirect_response(url: str) -> AuthSessionResult:
    """Parse the URL the provider redirected to.

    Parameters are read from the query string and the fragment; fragment
    values win, since that is where the implicit grant returns the token.

    Args:
        url: Full redirect URL (or just ``#access_token=...`` fragment).

    Returns:
        AuthSessionResult of type success or error.
    """
    parts = urlsplit(url.strip())
    params = dict(parse_qsl(parts.query))
    params.update(parse_qsl(parts.fragment))
    return result_from_params(params, url=url)


class AuthorizationLauncher(Protocol):
    """Shows the authorization URL and waits for the redirect."""

    def launch(self, request: AuthorizationRequest) -> AuthSessionResult: ...


class PromptLauncher:
    """Open the browser and ask the user to paste the redirected URL.

    Works with any registered redirect URI, including ones nothing listens on:
    the browser shows an error page but the address bar still holds the token.
    """

    def __init__(self, open_browser: bool = True) -> None:
        self.open_browser = open_browser

    def launch(self, request: AuthorizationRequest) -> AuthSessionResult:
        click.echo("Sign in with Twitch by visiting:", err=True)
        click.echo(f"  {request.authorization_url}", err=True)
        if self.open_browser:
            webbrowser.open(request.authorization_url)

        try:
            answer = click.prompt(
                "Paste the URL you were redirected to (leave empty to cancel)",
                default="",
                show_default=False,
                err=True,
            )
        except click.Abort:
            return AuthSessionResult.cancelled()

        if not answer.strip():
            return AuthSessionResult.cancelled()
        return parse_redirect_response(answer)


class LoopbackLauncher:
    """Serve the redirect URI locally and capture the fragment from the browser.

    The redirect URI must point at this machine (``http://localhost:<port>/...``)
    and be registered for the application. Without a timeout the launcher
    waits until the browser comes back; Ctrl-C cancels.
    """

    def __init__(self, timeout: float | None = None, open_browser: bool = True) -> None:
        self.timeout = timeout
        self.open_browser = open_browser

    def launch(self, request: AuthorizationRequest) -> AuthSessionResult:
        from werkzeug.serving import make_server

        from twitchauth.web.callback import create_callback_app

        redirect = urlsplit(request.redirect_uri)
        host = redirect.hostname or "localhost"
        port = redirect.port if redirect.port is not None else 80

        # first delivered result wins; later callbacks are ignored
        results: queue.Queue[AuthSessionResult] = queue.Queue()
        app = create_callback_app(callback_path=redirect.path or "/", on_result=results.put)
        server = make_server(host, port, app, threaded=True)
        thread = threading.Thread(target=server.serve_forever, name="twitchauth-loopback", daemon=True)
        thread.start()
        logger.info(f"Listening for the authorization redirect on {request.redirect_uri}")

        try:
            click.echo("Sign in with Twitch by visiting:", err=True)
            click.echo(f"  {request.authorization_url}", err=True)
            if self.open_browser:
                webbrowser.open(request.authorization_url)
            try:
                return results.get(timeout=self.timeout)
            except queue.Empty:
                logger.info("Timed out waiting for the authorization redirect")
                return AuthSessionResult(type=AuthResultType.DISMISS, error="timeout")
            except KeyboardInterrupt:
                return AuthSessionResult.cancelled()
        finally:
            server.shutdown()
            thread.join()
