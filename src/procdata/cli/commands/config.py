"""Configuration inspection commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from procdata.cli.commands._shared import get_app_config, get_resolved_config
from procdata.core.config import DEFAULT_CONFIG_PATH

if TYPE_CHECKING:
    from pathlib import Path

config_app = typer.Typer(help="Configuration inspection commands")


@config_app.callback(invoke_without_command=True)
def config_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _mask_password(value: str | None) -> str:
    return "not set" if value is None else "***"


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Display resolved connection settings and where each came from."""
    resolved = get_resolved_config(ctx)
    config_path: Path | None = ctx.obj.get("config_file")
    sources = resolved.sources

    typer.echo("Connection Settings (resolved):")
    connection_fields = [
        ("host", "host", resolved.host),
        ("port", "port", str(resolved.port)),
        ("database", "dbname", resolved.dbname),
        ("user", "user", resolved.user or "not set"),
        ("password", "password", _mask_password(resolved.password)),
        ("sslmode", "sslmode", resolved.sslmode),
    ]
    for label, source_key, value in connection_fields:
        typer.echo(f"  {label}: {value} ({sources.get(source_key, 'default')})")

    typer.echo("")
    typer.echo("General:")
    timeout_source = sources.get("default_timeout", "default")
    typer.echo(f"  timeout: {resolved.default_timeout}s ({timeout_source})")

    deltas = get_app_config(ctx).deltas
    if deltas.changeset or deltas.path:
        typer.echo("")
        typer.echo("Deltas:")
        typer.echo(f"  changeset: {deltas.changeset or 'not set'}")
        typer.echo(f"  path: {deltas.path or 'not set'}")

    typer.echo("")
    typer.echo(f"Active Profile: {resolved.active_profile or 'none'}")
    typer.echo(f"Config File: {config_path or DEFAULT_CONFIG_PATH}")


@config_app.command("profiles")
def config_profiles(ctx: typer.Context) -> None:
    """List named connection profiles."""
    config_path: Path | None = ctx.obj.get("config_file")
    app_config = get_app_config(ctx)
    active_profile = ctx.obj.get("profile") or app_config.default_profile

    if not app_config.profiles:
        typer.echo("No profiles configured.")
        typer.echo(f"Add profiles to: {config_path or DEFAULT_CONFIG_PATH}")
        return

    typer.echo("Available Profiles:")
    typer.echo("")
    for name, profile in sorted(app_config.profiles.items()):
        is_active = name == active_profile
        marker = "* " if is_active else "  "
        label = " (active)" if is_active else ""
        typer.echo(f"{marker}{name}{label}")

        display_fields = [
            ("host", profile.host),
            ("port", str(profile.port)),
            ("database", profile.dbname),
        ]
        if profile.user:
            display_fields.append(("user", profile.user))
        if profile.sslmode != "prefer":
            display_fields.append(("sslmode", profile.sslmode))

        for field_name, value in display_fields:
            typer.echo(f"      {field_name}: {value}")
        typer.echo("")
