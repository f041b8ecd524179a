"""Sequential reader over the result sets of one procedure execution.

A ProcedureReader owns the result cursor and the executed command. Result
sets are read strictly in order, one read_list()/read_single() call per set;
output parameters are processed once, after which no more sets can be read.

States::

    Active(0) -> Active(1) -> ... -> Exhausted
    OutputState: PENDING -> PROCESSED
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from procdata.core.exceptions import (
    NoMoreDataSetsError,
    OutputParametersAlreadyProcessedError,
)
from procdata.core.logging import get_logger
from procdata.core.materializer import RowMaterializer
from procdata.core.models import OutputState, ReaderState
from procdata.core.parameters import apply_output_parameters

if TYPE_CHECKING:
    from collections.abc import Sequence

    from procdata.core.models import ParameterBinding, ProcedureDescriptor


class ResultCursor(Protocol):
    """The DB-API subset the reader needs from a cursor."""

    def fetchone(self) -> Sequence[Any] | None: ...

    def nextset(self) -> bool | None: ...

    def close(self) -> None: ...


class ExecutedCommand(Protocol):
    """A command after execution, holding its (output-filled) bindings."""

    parameters: list[ParameterBinding]

    def close(self) -> None: ...


class ProcedureReader:
    """Reads result sets and output parameters of one execution, in order."""

    def __init__(
        self,
        procedure: object,
        descriptor: ProcedureDescriptor,
        cursor: ResultCursor,
        command: ExecutedCommand,
    ) -> None:
        self._procedure = procedure
        self._descriptor = descriptor
        self._cursor: ResultCursor | None = cursor
        self._command: ExecutedCommand | None = command
        self._parameters = command.parameters
        self._materializer = RowMaterializer(descriptor)
        self._index: int | None = 0
        self._output_state = OutputState.PENDING

    def __enter__(self) -> ProcedureReader:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()

    @property
    def state(self) -> ReaderState:
        return ReaderState(index=self._index)

    @property
    def output_state(self) -> OutputState:
        return self._output_state

    def _active(self) -> tuple[int, ResultCursor]:
        if self._index is None or self._cursor is None:
            raise NoMoreDataSetsError()
        return self._index, self._cursor

    def _advance(self, cursor: ResultCursor) -> None:
        if cursor.nextset():
            self._index = (self._index or 0) + 1
        else:
            self._index = None

    def read_list(self) -> list[Any]:
        """Materialize every row of the current result set and move on."""
        index, cursor = self._active()

        rows: list[Any] = []
        while (values := cursor.fetchone()) is not None:
            rows.append(self._materializer.materialize(values, index))
        self._advance(cursor)

        log = get_logger(__name__)
        log.debug(
            "processed data set",
            procedure=self._descriptor.name,
            data_set=index,
            row_count=len(rows),
            state=str(self.state),
        )
        return rows

    def read_single(self) -> Any | None:
        """Materialize the first row of the current result set, if any.

        Remaining rows of that set are skipped when the cursor advances.
        """
        index, cursor = self._active()

        values = cursor.fetchone()
        row = None if values is None else self._materializer.materialize(values, index)
        self._advance(cursor)

        log = get_logger(__name__)
        log.debug(
            "processed data set",
            procedure=self._descriptor.name,
            data_set=index,
            found_row=row is not None,
            state=str(self.state),
        )
        return row

    def finalize_outputs(self) -> list[str]:
        """Release the cursor and copy output parameters onto the procedure.

        Allowed once, from any state. The command is always released.
        Returns the names of the properties written.
        """
        if self._output_state is OutputState.PROCESSED:
            raise OutputParametersAlreadyProcessedError()
        self._output_state = OutputState.PROCESSED
        self._index = None
        try:
            self._release_cursor()
            return apply_output_parameters(
                self._procedure, self._descriptor, self._parameters
            )
        finally:
            self._release_command()

    def dispose(self) -> None:
        """Release cursor and command. Safe to call any number of times."""
        self._index = None
        try:
            self._release_cursor()
        finally:
            self._release_command()

    def _release_cursor(self) -> None:
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            cursor.close()

    def _release_command(self) -> None:
        command, self._command = self._command, None
        if command is not None:
            command.close()
