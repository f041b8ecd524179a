"""Host value type to PostgreSQL type mapping.

Also defines the store null sentinel (DB_NULL) used in parameter bindings
and the TableValue carrier for structured (table-valued) parameters.
"""

from __future__ import annotations

import datetime
import types
import uuid
from decimal import Decimal
from enum import Enum, StrEnum
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict

from procdata.core.exceptions import ConfigurationError


class StoreType(StrEnum):
    """PostgreSQL types a parameter can be bound as.

    Values are valid SQL type names and are used verbatim in casts.
    """

    TEXT = "text"
    BYTEA = "bytea"
    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    REAL = "real"
    DOUBLE = "double precision"
    TIMESTAMPTZ = "timestamptz"
    DATE = "date"
    TIME = "time"
    INTERVAL = "interval"
    UUID = "uuid"
    STRUCTURED = "structured"


# Exact host types first; subclasses are resolved by walking the MRO.
_HOST_TO_STORE: dict[type, StoreType] = {
    str: StoreType.TEXT,
    bytes: StoreType.BYTEA,
    bytearray: StoreType.BYTEA,
    bool: StoreType.BOOLEAN,
    int: StoreType.BIGINT,
    Decimal: StoreType.NUMERIC,
    float: StoreType.DOUBLE,
    datetime.datetime: StoreType.TIMESTAMPTZ,
    datetime.date: StoreType.DATE,
    datetime.time: StoreType.TIME,
    datetime.timedelta: StoreType.INTERVAL,
    uuid.UUID: StoreType.UUID,
}


class _DbNullType:
    """Singleton standing for SQL NULL inside parameter bindings."""

    _instance: _DbNullType | None = None

    def __new__(cls) -> _DbNullType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DB_NULL"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> tuple[type, tuple[()]]:
        return (_DbNullType, ())


DB_NULL = _DbNullType()


def to_store(value: Any) -> Any:
    """Translate a host value for a binding: None becomes DB_NULL."""
    return DB_NULL if value is None else value


def from_store(value: Any) -> Any:
    """Translate a store value for the host: DB_NULL (or None) becomes None."""
    return None if value is None or value is DB_NULL else value


class TableValue(BaseModel):
    """Rows of a structured parameter, sent as an array of a composite type."""

    model_config = ConfigDict(frozen=True)

    rows: tuple[tuple[Any, ...], ...] = ()


def unwrap_optional(value_type: Any) -> Any:
    """Return T for Optional[T] / T | None; other types pass through."""
    origin = get_origin(value_type)
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(value_type) if arg is not type(None)]
        if len(members) == 1:
            return members[0]
    return value_type


def is_structured(value_type: Any) -> bool:
    value_type = unwrap_optional(value_type)
    return isinstance(value_type, type) and issubclass(value_type, TableValue)


def _enum_value_type(enum_type: type[Enum]) -> type | None:
    value_types = {type(member.value) for member in enum_type}
    if len(value_types) == 1:
        return value_types.pop()
    return None


def lookup_store_type(value_type: Any) -> StoreType:
    """Map a declared host value type to its StoreType.

    Raises ConfigurationError naming the type when no mapping exists.
    """
    host_type = unwrap_optional(value_type)
    if not isinstance(host_type, type):
        raise ConfigurationError.unsupported_type(value_type)

    store_type = _HOST_TO_STORE.get(host_type)
    if store_type is not None:
        return store_type

    for base in host_type.__mro__[1:]:
        if base in _HOST_TO_STORE:
            return _HOST_TO_STORE[base]

    if issubclass(host_type, Enum):
        underlying = _enum_value_type(host_type)
        if underlying is not None and underlying in _HOST_TO_STORE:
            return _HOST_TO_STORE[underlying]

    raise ConfigurationError.unsupported_type(value_type)
