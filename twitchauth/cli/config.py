"""Configuration management CLI commands."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from twitchauth.core.config import DEFAULT_CONFIG_FILE, get_default_config_yaml, load_config, load_config_file

# Common option for JSON output
json_option = click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON for scripting",
)


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result as JSON or as indented key/value text.

    Args:
        data: Data to output
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return
    for key, value in data.items():
        if isinstance(value, dict):
            click.echo(f"{key}:")
            for sub_key, sub_value in value.items():
                click.echo(f"  {sub_key}: {sub_value}")
        else:
            click.echo(f"{key}: {value}")


def error_result(message: str, as_json: bool = False) -> NoReturn:
    """Output error message and exit.

    This function never returns - it either raises ClickException or calls sys.exit.

    Args:
        message: Error message
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2), err=True)
        sys.exit(1)
    raise click.ClickException(message)


def config_path_from(ctx: click.Context) -> Path | None:
    """Config file path given to the top-level ``--config`` option, if any."""
    obj = ctx.find_root().obj or {}
    return obj.get("config_path")


@click.group()
def config() -> None:
    """Manage twitchauth configuration."""
    pass


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
@json_option
@click.pass_context
def config_init(ctx: click.Context, force: bool, output_json: bool) -> None:
    """Write a default config.yaml.

    Examples:

        # Create ~/.twitchauth/config.yaml
        twitchauth config init

        # Overwrite an existing file
        twitchauth config init --force
    """
    path = config_path_from(ctx) or DEFAULT_CONFIG_FILE

    if path.exists() and not force:
        if output_json:
            output_result({"status": "exists", "path": str(path)}, as_json=True)
            return
        click.echo(f"Config file already exists: {path}")
        click.echo("Use --force to overwrite it.")
        return

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(get_default_config_yaml())
    except OSError as e:
        error_result(f"Could not write config file: {e}", output_json)

    if output_json:
        output_result({"status": "created", "path": str(path)}, as_json=True)
        return
    click.echo(f"Config file written to: {path}")
    click.echo("Set twitch.client_id (or CLIENT_ID) before running 'twitchauth login'.")


@config.command("set-client-id")
@click.argument("client_id")
@json_option
@click.pass_context
def config_set_client_id(ctx: click.Context, client_id: str, output_json: bool) -> None:
    """Store the application's Twitch client ID in the config file."""
    app_config = load_config_file(config_path_from(ctx))
    app_config.twitch.client_id = client_id
    try:
        path = app_config.save(config_path_from(ctx))
    except OSError as e:
        error_result(f"Could not write config file: {e}", output_json)

    if output_json:
        output_result({"status": "saved", "path": str(path), "client_id": client_id}, as_json=True)
        return
    click.echo(f"Client ID saved to: {path}")


@config.command("show")
@json_option
@click.pass_context
def config_show(ctx: click.Context, output_json: bool) -> None:
    """Show the effective configuration (file plus environment)."""
    app_config = load_config(config_path_from(ctx))
    data = app_config.to_dict()
    data["config_path"] = str(app_config.config_path) if app_config.config_path else None
    output_result(data, as_json=output_json)
