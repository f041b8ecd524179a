"""Data models for procdata.

Immutable procedure metadata (descriptors), the mutable parameter bindings
sent to and filled in by an execution, reader states, and the tabular
QueryResult returned by plain SQL queries.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Flag, StrEnum, auto
from typing import Any

from pydantic import BaseModel, ConfigDict

from procdata.core.type_map import DB_NULL, StoreType, is_structured


class Direction(Flag):
    """Parameter direction. INOUT carries both flags."""

    IN = auto()
    OUT = auto()
    INOUT = IN | OUT


class ParameterDescriptor(BaseModel):
    """One declared procedure parameter."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    direction: Direction = Direction.IN
    value_type: Any = None
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    type_name: str | None = None

    @property
    def is_input(self) -> bool:
        return Direction.IN in self.direction

    @property
    def is_output(self) -> bool:
        return Direction.OUT in self.direction

    @property
    def is_structured(self) -> bool:
        return is_structured(self.value_type)


class ResultRowDescriptor(BaseModel):
    """Row shape of one result set and the constructor that builds it.

    constructor is None when the row type designates no constructor;
    parameter_types is None when the constructor accepts *args.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    row_type: type
    constructor: Callable[..., Any] | None = None
    parameter_types: tuple[Any, ...] | None = None


class ProcedureDescriptor(BaseModel):
    """Everything needed to call one procedure type, resolved once."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    procedure_type: type
    name: str
    timeout: float | None = None
    parameters: tuple[ParameterDescriptor, ...] = ()
    result_rows: tuple[ResultRowDescriptor, ...] = ()

    @property
    def result_set_count(self) -> int:
        return len(self.result_rows)

    @property
    def output_parameters(self) -> tuple[ParameterDescriptor, ...]:
        return tuple(p for p in self.parameters if p.is_output)


class ParameterBinding(BaseModel):
    """A wire parameter. Execution writes output values back into value."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    direction: Direction
    store_type: StoreType
    value: Any = DB_NULL
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    type_name: str | None = None

    @property
    def is_output(self) -> bool:
        return Direction.OUT in self.direction


class ReaderState(BaseModel):
    """Active(index) while result sets remain, Exhausted once index is None."""

    model_config = ConfigDict(frozen=True)

    index: int | None = 0

    @property
    def exhausted(self) -> bool:
        return self.index is None

    def __str__(self) -> str:
        return "Exhausted" if self.index is None else f"Active({self.index})"


class OutputState(StrEnum):
    PENDING = "pending"
    PROCESSED = "processed"


class ColumnMeta(BaseModel):
    """Metadata for a single result column."""

    name: str
    type_oid: int = 25
    type_name: str = "text"


class QueryResult(BaseModel):
    """Result of a SQL query execution."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    columns: list[ColumnMeta]
    rows: list[tuple[Any, ...]]
    row_count: int
    status_message: str = ""
