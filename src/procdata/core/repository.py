"""Executing stored procedures against PostgreSQL.

A procedure call is sent as ``CALL schema.name(%s::type, ...)`` with
positional parameters in declared order; output-only parameters travel as
typed NULLs. PostgreSQL returns OUT/INOUT values as the single row of the
CALL. Columns of that row typed refcursor are the procedure's result sets,
in declaration order; everything else is matched onto output bindings by
case-insensitive name.

Every execution runs inside its own ``connection.transaction()`` block (a
savepoint when the repository already has a transaction open) so the
returned refcursors stay open until the command is released.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

import psycopg
import psycopg.errors
import sentry_sdk
from psycopg import sql
from psycopg.types.composite import CompositeInfo, register_composite

from procdata.core.client import REFCURSOR_OID, PgClient, timeout_ms
from procdata.core.exceptions import (
    ConfigurationError,
    ConnectivityError,
    ExecutionError,
    TimeoutError,
    TransactionError,
)
from procdata.core.logging import get_logger
from procdata.core.parameters import apply_output_parameters, build_parameters
from procdata.core.reader import ProcedureReader
from procdata.core.registry import registry as default_registry
from procdata.core.type_map import DB_NULL, StoreType, TableValue, to_store

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from procdata.core.config import ResolvedConfig
    from procdata.core.models import ParameterBinding, ProcedureDescriptor
    from procdata.core.registry import MetadataRegistry


def qualified_identifier(name: str) -> sql.Identifier:
    """schema.name -> "schema"."name"."""
    return sql.Identifier(*name.split("."))


def _cast(binding: ParameterBinding) -> sql.Composable:
    if binding.store_type is StoreType.STRUCTURED:
        return sql.SQL("{}[]").format(qualified_identifier(str(binding.type_name)))
    if binding.type_name:
        return qualified_identifier(binding.type_name)
    if binding.store_type is StoreType.NUMERIC and binding.precision is not None:
        return sql.SQL("numeric({}, {})").format(
            sql.Literal(binding.precision), sql.Literal(binding.scale or 0)
        )
    return sql.SQL(str(binding.store_type))


def call_statement(
    descriptor: ProcedureDescriptor, bindings: list[ParameterBinding]
) -> sql.Composed:
    """CALL statement with one typed placeholder per binding."""
    arguments = sql.SQL(", ").join(
        sql.SQL("{}::{}").format(sql.Placeholder(), _cast(b)) for b in bindings
    )
    return sql.SQL("CALL {}({})").format(qualified_identifier(descriptor.name), arguments)


def _structured_rows(
    connection: psycopg.Connection[Any], binding: ParameterBinding, table: TableValue
) -> list[Any]:
    info = CompositeInfo.fetch(connection, str(binding.type_name))
    if info is None:
        msg = f"Composite type '{binding.type_name}' for parameter '{binding.name}' does not exist"
        raise ConfigurationError(msg, value_type=TableValue)
    register_composite(info, connection)
    return [info.python_type(*row) for row in table.rows]


def wire_value(connection: psycopg.Connection[Any], binding: ParameterBinding) -> Any:
    """Adapt a binding value to what psycopg sends."""
    value = binding.value
    if value is DB_NULL:
        return None
    if isinstance(value, TableValue):
        return _structured_rows(connection, binding, value)
    if isinstance(value, Enum):
        return value.value
    return value


@contextmanager
def database_errors(
    name: str,
    timeout: float | None = None,
    *,
    span: Any = None,
    on_error: Callable[[BaseException], None] | None = None,
) -> Iterator[None]:
    """Raise psycopg errors as ProcDataError.

    on_error receives the original exception before it is translated.
    """
    log = get_logger(__name__, procedure=name)
    try:
        yield
    except psycopg.errors.QueryCanceled as e:
        if span is not None:
            span.set_status("deadline_exceeded")
        if on_error is not None:
            on_error(e)
        log.error("procedure timeout", timeout=timeout)
        msg = f"{name} timed out after {timeout}s: {e}"
        raise TimeoutError(msg) from e
    except psycopg.OperationalError as e:
        if span is not None:
            span.set_status("unavailable")
        if on_error is not None:
            on_error(e)
        log.error("database error", error=str(e))
        raise ConnectivityError(f"Database error: {e}") from e
    except psycopg.Error as e:
        if span is not None:
            span.set_status("invalid_argument")
        if on_error is not None:
            on_error(e)
        log.error("procedure failed", error=str(e))
        raise ExecutionError(f"{name} failed: {e}") from e
    except BaseException as e:
        if on_error is not None:
            on_error(e)
        raise


class RefcursorResultSet:
    """DB-API style cursor over a sequence of named refcursors.

    A failed FETCH closes the cursor and hands the error to on_error.
    """

    def __init__(
        self,
        connection: psycopg.Connection[Any],
        portal_names: list[str],
        *,
        procedure: str = "procedure",
        timeout: float | None = None,
        on_error: Callable[[BaseException], None] | None = None,
    ) -> None:
        self._names = portal_names
        self._position = 0
        self._procedure = procedure
        self._timeout = timeout
        self._on_error = on_error
        self._cursor: psycopg.Cursor[Any] | None = connection.cursor()
        self._fetch()

    @property
    def portal_names(self) -> list[str]:
        return list(self._names)

    def _failed(self, error: BaseException) -> None:
        self.close()
        if self._on_error is not None:
            self._on_error(error)

    def _fetch(self) -> None:
        if self._cursor is not None and self._position < len(self._names):
            statement = sql.SQL("FETCH ALL FROM {}").format(
                sql.Identifier(self._names[self._position])
            )
            with database_errors(self._procedure, self._timeout, on_error=self._failed):
                self._cursor.execute(statement)

    def fetchone(self) -> tuple[Any, ...] | None:
        if self._cursor is None or self._position >= len(self._names):
            return None
        with database_errors(self._procedure, self._timeout, on_error=self._failed):
            return self._cursor.fetchone()

    def nextset(self) -> bool:
        self._position += 1
        if self._position >= len(self._names):
            return False
        self._fetch()
        return True

    def close(self) -> None:
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            cursor.close()


class PgProcedureCommand:
    """One CALL of one procedure and the resources it holds open."""

    def __init__(
        self,
        connection: psycopg.Connection[Any],
        descriptor: ProcedureDescriptor,
        parameters: list[ParameterBinding],
        *,
        timeout: float | None = None,
    ) -> None:
        self.connection = connection
        self.descriptor = descriptor
        self.parameters = parameters
        self.timeout = descriptor.timeout if descriptor.timeout is not None else timeout
        self.portal_names: list[str] = []
        self._transaction: psycopg.Transaction | None = None

    def execute(self) -> RefcursorResultSet:
        """Run the CALL, fill output bindings, and return the result sets."""
        log = get_logger(__name__, procedure=self.descriptor.name)
        statement = call_statement(self.descriptor, self.parameters)
        with sentry_sdk.start_span(op="db.procedure", description=self.descriptor.name) as span:
            start_time = time.monotonic()
            self._transaction = self.connection.transaction()
            self._transaction.__enter__()
            with database_errors(
                self.descriptor.name, self.timeout, span=span, on_error=self.close
            ):
                with self.connection.cursor() as cur:
                    cur.execute(
                        sql.SQL("SET LOCAL statement_timeout = {}").format(
                            sql.Literal(timeout_ms(self.timeout))
                        )
                    )
                    values = [wire_value(self.connection, b) for b in self.parameters]
                    cur.execute(statement, values)
                    if cur.description:
                        self._read_call_row(cur)
                result_sets = RefcursorResultSet(
                    self.connection,
                    self.portal_names,
                    procedure=self.descriptor.name,
                    timeout=self.timeout,
                    on_error=self.close,
                )

            duration_ms = (time.monotonic() - start_time) * 1000
            span.set_data("result_sets", len(self.portal_names))
            span.set_data("duration_ms", duration_ms)
            log.debug(
                "procedure executed",
                duration_ms=f"{duration_ms:.1f}",
                result_sets=len(self.portal_names),
            )
        return result_sets

    def _read_call_row(self, cur: psycopg.Cursor[Any]) -> None:
        row = cur.fetchone()
        if row is None:
            return
        outputs = {b.name.lower(): b for b in self.parameters if b.is_output}
        for column, value in zip(cur.description or (), row, strict=False):
            if column.type_code == REFCURSOR_OID:
                if value is not None:
                    self.portal_names.append(value)
                continue
            binding = outputs.get(column.name.lower())
            if binding is not None:
                binding.value = to_store(value)

    def close(self, error: BaseException | None = None) -> None:
        """Leave the command's transaction block: commit, or roll back on error."""
        transaction, self._transaction = self._transaction, None
        if transaction is None or self.connection.closed:
            return
        if error is None:
            transaction.__exit__(None, None, None)
        else:
            transaction.__exit__(type(error), error, error.__traceback__)


class ProcedureRepository:
    """Runs StoredProcedure instances over one connection.

    Holds an optional explicit transaction; commands opened while it is in
    progress run inside it.
    """

    def __init__(
        self,
        config: ResolvedConfig | None = None,
        *,
        client: PgClient | None = None,
        registry: MetadataRegistry | None = None,
    ) -> None:
        if client is None:
            if config is None:
                msg = "ProcedureRepository needs a config or a client"
                raise ValueError(msg)
            client = PgClient(config)
        self.client = client
        self.registry = registry or default_registry
        self._transaction: psycopg.Transaction | None = None

    def __enter__(self) -> ProcedureRepository:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def begin(self) -> None:
        if self._transaction is not None:
            raise TransactionError("There is an existing transaction already in progress")
        transaction = self.client.connection.transaction()
        transaction.__enter__()
        self._transaction = transaction

    def commit(self) -> None:
        transaction = self._take_transaction()
        transaction.__exit__(None, None, None)

    def rollback(self) -> None:
        transaction = self._take_transaction()
        rollback = psycopg.Rollback(transaction)
        transaction.__exit__(psycopg.Rollback, rollback, None)

    def _take_transaction(self) -> psycopg.Transaction:
        if self._transaction is None:
            raise TransactionError("No transaction is in progress on this connection")
        transaction, self._transaction = self._transaction, None
        return transaction

    def _create_command(self, procedure: object) -> PgProcedureCommand:
        descriptor = self.registry.resolve(type(procedure))
        parameters = build_parameters(procedure, descriptor)
        return PgProcedureCommand(
            self.client.connection,
            descriptor,
            parameters,
            timeout=self.client.config.default_timeout,
        )

    def execute_non_query(self, procedure: object) -> None:
        """Execute a procedure that returns no result sets."""
        command = self._create_command(procedure)
        result_sets = command.execute()
        try:
            result_sets.close()
            apply_output_parameters(procedure, command.descriptor, command.parameters)
        except BaseException as e:
            command.close(e)
            raise
        command.close()

    def execute_scalar(self, procedure: object) -> Any:
        """First column of the first row of the first result set, or None."""
        command = self._create_command(procedure)
        result_sets = command.execute()
        try:
            row = result_sets.fetchone()
            result_sets.close()
            apply_output_parameters(procedure, command.descriptor, command.parameters)
        except BaseException as e:
            result_sets.close()
            command.close(e)
            raise
        command.close()
        return None if not row else row[0]

    def execute_reader(self, procedure: object) -> ProcedureReader:
        """Execute and hand the result sets to a ProcedureReader.

        The reader owns the cursor and the command from here on; use it as a
        context manager so both are released on every path.
        """
        command = self._create_command(procedure)
        result_sets = command.execute()
        try:
            return ProcedureReader(procedure, command.descriptor, result_sets, command)
        except BaseException as e:
            result_sets.close()
            command.close(e)
            raise

    def close(self) -> None:
        """Roll back any open transaction and close the connection."""
        log = get_logger(__name__)
        if self._transaction is not None:
            try:
                self.rollback()
            except psycopg.Error as e:
                log.warning("rollback on close failed", error=str(e))
        self.client.close()
