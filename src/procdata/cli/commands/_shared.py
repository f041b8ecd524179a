"""Shared CLI plumbing for command modules.

Config resolution, client creation, output helpers and loading of
procedure declarations by dotted path.
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

from procdata.cli.output import get_renderer, write_output
from procdata.core.client import PgClient
from procdata.core.config import load_config, resolve_config
from procdata.core.exceptions import InputError

if TYPE_CHECKING:
    import typer

    from procdata.core.config import AppConfig, ResolvedConfig
    from procdata.core.models import QueryResult


def get_app_config(ctx: typer.Context) -> AppConfig:
    obj = ctx.ensure_object(dict)
    return load_config(obj.get("config_file"))


def get_resolved_config(ctx: typer.Context) -> ResolvedConfig:
    obj = ctx.ensure_object(dict)
    cli_overrides: dict[str, Any] = {}
    for key in ("host", "port", "database", "user", "password", "timeout"):
        val = obj.get(key)
        if val is not None:
            cli_overrides[key] = val

    return resolve_config(
        get_app_config(ctx),
        profile_name=obj.get("profile"),
        dsn=obj.get("dsn"),
        **cli_overrides,
    )


def get_client(ctx: typer.Context) -> PgClient:
    return PgClient(get_resolved_config(ctx))


def output_result(ctx: typer.Context, result: QueryResult) -> None:
    obj = ctx.ensure_object(dict)
    renderer = get_renderer(
        obj.get("format"),
        compact=obj.get("compact", False),
        width=obj.get("width", 40),
        no_header=obj.get("no_header", False),
    )
    write_output(renderer, result)


def load_object(path: str) -> Any:
    """Import 'package.module:Name' (or 'package.module.Name')."""
    if ":" in path:
        module_name, _, attr = path.partition(":")
    else:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        msg = f"Expected 'module:Name', got '{path}'"
        raise InputError(msg)

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        msg = f"Cannot import module '{module_name}': {e}"
        raise InputError(msg) from e

    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            msg = f"Module '{module_name}' has no attribute '{attr}'"
            raise InputError(msg) from None
    return target
