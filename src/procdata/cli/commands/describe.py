"""Describe a procedure declaration without touching the database."""

from __future__ import annotations

from typing import Annotated

import typer

from procdata.cli.commands._shared import load_object, output_result
from procdata.core.exceptions import InputError
from procdata.core.models import ColumnMeta, ParameterBinding, QueryResult
from procdata.core.parameters import lower_first, resolve_store_type
from procdata.core.registry import registry
from procdata.core.repository import call_statement


def _constructor_label(constructor: object) -> str:
    if constructor is None:
        return "(none)"
    if isinstance(constructor, type):
        return "__init__"
    return getattr(constructor, "__name__", repr(constructor))


def _type_label(value_type: object) -> str:
    return getattr(value_type, "__name__", None) or str(value_type)


def describe_command(
    ctx: typer.Context,
    target: Annotated[
        str,
        typer.Argument(help="Procedure declaration as 'package.module:ClassName'"),
    ],
    rows: Annotated[
        bool,
        typer.Option("--rows", help="List result row types instead of parameters"),
    ] = False,
) -> None:
    """Show the wire parameters or result rows of a procedure declaration."""
    procedure_type = load_object(target)
    if not isinstance(procedure_type, type):
        msg = f"'{target}' is not a class"
        raise InputError(msg)

    descriptor = registry.resolve(procedure_type)
    typer.echo(f"Procedure: {descriptor.name}", err=True)
    if descriptor.timeout is not None:
        typer.echo(f"Timeout: {descriptor.timeout}s", err=True)

    if rows:
        result = QueryResult(
            columns=[
                ColumnMeta(name="index", type_oid=23, type_name="int4"),
                ColumnMeta(name="row_type"),
                ColumnMeta(name="constructor"),
                ColumnMeta(name="columns"),
            ],
            rows=[
                (
                    i,
                    row.row_type.__qualname__,
                    _constructor_label(row.constructor),
                    "*"
                    if row.parameter_types is None
                    else len(row.parameter_types),
                )
                for i, row in enumerate(descriptor.result_rows)
            ],
            row_count=descriptor.result_set_count,
        )
        output_result(ctx, result)
        return

    bindings = [
        ParameterBinding(
            name=lower_first(p.name),
            direction=p.direction,
            store_type=resolve_store_type(p),
            type_name=p.type_name,
            precision=p.precision,
            scale=p.scale,
        )
        for p in descriptor.parameters
    ]
    typer.echo(f"Statement: {call_statement(descriptor, bindings).as_string(None)}", err=True)

    result = QueryResult(
        columns=[
            ColumnMeta(name="property"),
            ColumnMeta(name="wire_name"),
            ColumnMeta(name="direction"),
            ColumnMeta(name="host_type"),
            ColumnMeta(name="store_type"),
        ],
        rows=[
            (
                p.name,
                b.name,
                b.direction.name,
                _type_label(p.value_type),
                b.type_name if b.type_name else str(b.store_type),
            )
            for p, b in zip(descriptor.parameters, bindings, strict=True)
        ],
        row_count=len(bindings),
    )
    output_result(ctx, result)
