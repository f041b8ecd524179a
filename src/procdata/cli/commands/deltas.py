"""Delta script commands: apply and status."""

from __future__ import annotations

from pathlib import Path  # noqa: TC003
from typing import Annotated

import typer

from procdata.cli.commands._shared import (
    get_app_config,
    get_resolved_config,
    output_result,
)
from procdata.core.client import PgClient
from procdata.core.deltas import DeltaApplicator, delta_status, ensure_database
from procdata.core.exceptions import InputError
from procdata.core.exit_codes import ExitCode

deltas_app = typer.Typer(help="Apply and inspect numbered SQL delta scripts")


@deltas_app.callback(invoke_without_command=True)
def deltas_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _changeset(ctx: typer.Context, changeset: str | None) -> str:
    effective = changeset or get_app_config(ctx).deltas.changeset
    if not effective:
        msg = "No changeset given. Use --changeset or set [deltas] changeset in the config file"
        raise InputError(msg)
    return effective


@deltas_app.command("apply")
def deltas_apply(
    ctx: typer.Context,
    path: Annotated[
        Path | None,
        typer.Argument(help="Directory holding '<number> <description>.sql' files"),
    ] = None,
    changeset: Annotated[
        str | None,
        typer.Option("--changeset", "-c", help="Changeset name the deltas belong to"),
    ] = None,
    create_database: Annotated[
        bool,
        typer.Option(
            "--create-database/--no-create-database",
            help="Create the target database if it does not exist",
        ),
    ] = True,
) -> None:
    """Apply pending deltas in order, stopping at the first failure."""
    changeset_name = _changeset(ctx, changeset)
    delta_path = path or get_app_config(ctx).deltas.path
    if delta_path is None:
        msg = "No delta directory given. Pass PATH or set [deltas] path in the config file"
        raise InputError(msg)

    config = get_resolved_config(ctx)
    if create_database and ensure_database(config):
        typer.echo(f"Created database {config.dbname}", err=True)

    with PgClient(config) as client:
        results = DeltaApplicator(client, changeset_name, delta_path).apply()

    typer.echo(results.summary())
    if not results.is_success:
        if results.skipped:
            skipped = ", ".join(str(n) for n in results.skipped)
            typer.echo(f"Skipped deltas: {skipped}", err=True)
        raise typer.Exit(ExitCode.DELTA_ERROR)


@deltas_app.command("status")
def deltas_status(
    ctx: typer.Context,
    changeset: Annotated[
        str | None,
        typer.Option("--changeset", "-c", help="Changeset name to report on"),
    ] = None,
) -> None:
    """List the deltas recorded for a changeset."""
    changeset_name = _changeset(ctx, changeset)
    with PgClient(get_resolved_config(ctx)) as client:
        result = delta_status(client, changeset_name)
    output_result(ctx, result)
