"""CLI entry point for twitchauth."""

from __future__ import annotations

from pathlib import Path

import click

from twitchauth import __version__
from twitchauth.cli import config as config_commands
from twitchauth.cli.config import config_path_from, error_result, json_option, output_result
from twitchauth.core.config import AppConfig, load_config
from twitchauth.core.logging import configure_logging
from twitchauth.core.oauth import (
    AuthError,
    InvalidStateError,
    LoopbackLauncher,
    PromptLauncher,
    SessionManager,
    SignInOutcome,
    TwitchIdentityClient,
)


@click.group()
@click.version_option(version=__version__, prog_name="twitchauth")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file to use instead of ~/.twitchauth/config.yaml.",
)
@click.option(
    "--log-level",
    type=click.Choice(["ERROR", "INFO", "DEBUG", "TRACE"], case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """twitchauth - Sign in with Twitch from the command line."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level


def _load_app_config(ctx: click.Context, output_json: bool) -> AppConfig:
    """Load config, set up logging, and require a client ID."""
    app_config = load_config(config_path_from(ctx))
    log_level = ctx.find_root().obj.get("log_level") or app_config.logging.level
    configure_logging(
        level=log_level,
        trace_enabled=app_config.logging.trace,
        log_file=app_config.logging.file,
    )
    if not app_config.twitch.client_id:
        error_result(
            "No client ID configured. Set CLIENT_ID or run 'twitchauth config set-client-id <id>'.",
            output_json,
        )
    return app_config


@cli.command()
@click.option(
    "--launcher",
    "launcher_name",
    type=click.Choice(["prompt", "loopback"]),
    default="prompt",
    show_default=True,
    help="How to receive the redirect: paste it, or listen on the redirect URI.",
)
@click.option("--no-browser", is_flag=True, help="Print the authorization URL without opening a browser.")
@click.option("--timeout", type=float, default=None, help="Seconds the loopback launcher waits (default: forever).")
@click.option("--keep-token", is_flag=True, help="Print the access token instead of revoking it.")
@json_option
@click.pass_context
def login(
    ctx: click.Context,
    launcher_name: str,
    no_browser: bool,
    timeout: float | None,
    keep_token: bool,
    output_json: bool,
) -> None:
    """Sign in with Twitch and show the signed-in user.

    The token is revoked again before exiting unless --keep-token is given.

    Examples:

        # Paste the redirected URL back into the terminal
        twitchauth login

        # Listen on the registered http://localhost redirect URI
        twitchauth login --launcher loopback
    """
    app_config = _load_app_config(ctx, output_json)

    if launcher_name == "loopback":
        launcher = LoopbackLauncher(timeout=timeout, open_browser=not no_browser)
    else:
        launcher = PromptLauncher(open_browser=not no_browser)

    manager = SessionManager.from_config(app_config.twitch, launcher)
    try:
        try:
            outcome = manager.sign_in()
        except InvalidStateError:
            error_result("Sign-in rejected: the response did not carry the state we sent.", output_json)
        except AuthError as e:
            error_result(f"Sign-in failed: {e}", output_json)

        if outcome == SignInOutcome.CANCELLED:
            if output_json:
                output_result({"status": "cancelled"}, as_json=True)
            else:
                click.echo("Sign-in cancelled.")
            return

        user = manager.user
        data: dict[str, object] = {
            "status": manager.status.value,
            "user": user.to_dict() if user else None,
        }
        if keep_token:
            data["access_token"] = manager.access_token
        else:
            manager.sign_out()
            data["revoked"] = True

        output_result(data, as_json=output_json)
    finally:
        manager.close()


@cli.command("authorize-url")
@json_option
@click.pass_context
def authorize_url(ctx: click.Context, output_json: bool) -> None:
    """Print a fresh authorization URL and the state it carries."""
    app_config = _load_app_config(ctx, output_json)
    request = TwitchIdentityClient(app_config.twitch).create_authorization_request()
    if output_json:
        output_result({"authorization_url": request.authorization_url, "state": request.state}, as_json=True)
        return
    click.echo(request.authorization_url)
    click.echo(f"state: {request.state}", err=True)


@cli.command()
@click.argument("token")
@json_option
@click.pass_context
def revoke(ctx: click.Context, token: str, output_json: bool) -> None:
    """Revoke an access token issued to the configured client."""
    app_config = _load_app_config(ctx, output_json)
    identity = TwitchIdentityClient(app_config.twitch)
    try:
        response = identity.revoke_token(token)
    finally:
        identity.close()

    if not response.is_success:
        error_result(f"Revocation failed ({response.error}): {response.error_description}", output_json)
    if output_json:
        output_result({"status": "revoked"}, as_json=True)
    else:
        click.echo("Token revoked.")


cli.add_command(config_commands.config)


def main() -> None:
    cli(obj={})
