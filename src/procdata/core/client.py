"""PostgreSQL connection client for procdata.

Wraps a psycopg v3 synchronous connection: lazy connect, plain SQL
execution with statement timeout, and mapping of psycopg errors onto the
ProcDataError hierarchy. ProcedureRepository and the delta applicator both
sit on top of it.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import psycopg
import psycopg.errors
import sentry_sdk
import structlog

from procdata.core.exceptions import ConnectivityError, ExecutionError, TimeoutError
from procdata.core.models import ColumnMeta, QueryResult

if TYPE_CHECKING:
    from procdata.core.config import ResolvedConfig

# psycopg type OIDs for the columns procdata reports on.
_TYPE_NAMES: dict[int, str] = {
    16: "bool",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    700: "float4",
    701: "float8",
    1043: "varchar",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1184: "timestamptz",
    1186: "interval",
    1700: "numeric",
    1790: "refcursor",
    2950: "uuid",
    3802: "jsonb",
}

REFCURSOR_OID = 1790


def type_name(type_oid: int) -> str:
    return _TYPE_NAMES.get(type_oid, "unknown")


def timeout_ms(seconds: float | None) -> int:
    """statement_timeout value; 0 disables the timeout."""
    return int(seconds * 1000) if seconds else 0


class PgClient:
    """Synchronous PostgreSQL client using psycopg v3 (autocommit)."""

    def __init__(self, config: ResolvedConfig) -> None:
        self.config = config
        self._connection: psycopg.Connection[Any] | None = None

    def __enter__(self) -> PgClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def connection(self) -> psycopg.Connection[Any]:
        """The open connection, connecting on first use."""
        return self._connect()

    def _connect(self) -> psycopg.Connection[Any]:
        if self._connection is not None and not self._connection.closed:
            return self._connection

        log = structlog.get_logger()
        log.debug(
            "connecting",
            host=self.config.host,
            port=self.config.port,
            dbname=self.config.dbname,
        )
        try:
            self._connection = psycopg.connect(
                **self.config.connect_kwargs(), autocommit=True
            )
        except psycopg.OperationalError as e:
            msg = (
                f"Connection failed to {self.config.host}:{self.config.port} "
                f"database '{self.config.dbname}': {e}"
            )
            raise ConnectivityError(msg) from e

        return self._connection

    def execute_query(
        self,
        sql: str,
        params: dict[str, Any] | tuple[Any, ...] | None = None,
        *,
        timeout: float | None = None,
    ) -> QueryResult:
        """Execute SQL and return a QueryResult.

        timeout defaults to the configured default_timeout; 0 disables it.
        """
        log = structlog.get_logger()
        conn = self._connect()
        seconds = self.config.default_timeout if timeout is None else timeout

        sql_normalized = " ".join(sql.split())
        log.debug("executing query", sql=sql_normalized[:200])
        with sentry_sdk.start_span(op="db.query", description=sql_normalized[:100]) as span:
            start_time = time.monotonic()
            try:
                with conn.cursor() as cur:
                    cur.execute(f"SET statement_timeout = {timeout_ms(seconds)}")
                    cur.execute(sql, params)

                    columns: list[ColumnMeta] = []
                    rows: list[tuple[Any, ...]] = []
                    if cur.description:
                        columns = [
                            ColumnMeta(
                                name=desc.name,
                                type_oid=desc.type_code,
                                type_name=type_name(desc.type_code),
                            )
                            for desc in cur.description
                        ]
                        rows = cur.fetchall()

                    duration_ms = (time.monotonic() - start_time) * 1000
                    span.set_data("row_count", len(rows))
                    span.set_data("duration_ms", duration_ms)
                    log.debug(
                        "query complete",
                        duration_ms=f"{duration_ms:.1f}",
                        row_count=len(rows),
                    )
                    return QueryResult(
                        columns=columns,
                        rows=rows,
                        row_count=len(rows),
                        status_message=cur.statusmessage or "",
                    )

            except psycopg.errors.QueryCanceled as e:
                span.set_status("deadline_exceeded")
                log.error("query timeout", sql=sql_normalized[:200])
                msg = f"Query timed out after {seconds}s: {e}"
                raise TimeoutError(msg) from e
            except psycopg.OperationalError as e:
                span.set_status("unavailable")
                log.error("database error", sql=sql_normalized[:200], error=str(e))
                raise ConnectivityError(f"Database error: {e}") from e
            except psycopg.Error as e:
                span.set_status("invalid_argument")
                log.error("query failed", sql=sql_normalized[:200], error=str(e))
                raise ExecutionError(f"SQL error: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
