"""Output format selection and rendering of QueryResult tables.

Table output uses rich; JSON and CSV are plain text suitable for piping.
Every renderer yields lines so output can be streamed.
"""

from __future__ import annotations

import csv
import json
import shutil
import sys
from enum import StrEnum
from io import StringIO
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from procdata.core.models import QueryResult

_NO_RESULTS = "No results"


class OutputFormat(StrEnum):
    TABLE = "table"
    JSON = "json"
    CSV = "csv"


def resolve_format(format_flag: str | None) -> OutputFormat:
    """Explicit --format wins; otherwise table for a TTY, csv for pipes."""
    if format_flag is not None:
        return OutputFormat(format_flag)
    return OutputFormat.TABLE if sys.stdout.isatty() else OutputFormat.CSV


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def _truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    return value[: width - 1] + "…"


def render_table(result: QueryResult, *, width: int = 40) -> Iterator[str]:
    if not result.rows:
        yield _NO_RESULTS
        return

    table = Table(show_edge=True, pad_edge=True)
    for col in result.columns:
        table.add_column(col.name, no_wrap=True)
    for row in result.rows:
        table.add_row(*(_truncate(_cell(v), width) for v in row))

    buf = StringIO()
    term_width = shutil.get_terminal_size((120, 24)).columns
    Console(file=buf, force_terminal=True, width=term_width).print(table)
    yield buf.getvalue().rstrip("\n")


def _json_value(value: Any) -> Any:
    if isinstance(value, (int, float, str, bool, type(None))):
        return value
    return str(value)


def render_json(result: QueryResult, *, compact: bool = False) -> Iterator[str]:
    records = [
        {col.name: _json_value(v) for col, v in zip(result.columns, row, strict=True)}
        for row in result.rows
    ]
    yield json.dumps(records, indent=None if compact else 2, default=str)


def render_csv(result: QueryResult, *, no_header: bool = False) -> Iterator[str]:
    def line(values: list[str]) -> str:
        buf = StringIO()
        csv.writer(buf).writerow(values)
        return buf.getvalue().rstrip("\r\n")

    if not no_header:
        yield line([col.name for col in result.columns])
    for row in result.rows:
        yield line([_cell(v) for v in row])


def get_renderer(
    format_flag: str | None = None,
    *,
    compact: bool = False,
    width: int = 40,
    no_header: bool = False,
) -> Callable[[QueryResult], Iterator[str]]:
    """Renderer for the resolved output format, with its options bound."""
    fmt = resolve_format(format_flag)
    if fmt is OutputFormat.JSON:
        return lambda result: render_json(result, compact=compact)
    if fmt is OutputFormat.CSV:
        return lambda result: render_csv(result, no_header=no_header)
    return lambda result: render_table(result, width=width)


def write_output(renderer: Callable[[QueryResult], Iterator[str]], result: QueryResult) -> None:
    """Write rendered output to stdout."""
    for line in renderer(result):
        sys.stdout.write(line + "\n")
