"""Process-wide cache of procedure metadata.

Building a ProcedureDescriptor walks type hints and constructor signatures,
so it is done once per procedure type. Population is serialized by a single
lock; published descriptors are immutable and read without locking.
"""

from __future__ import annotations

import inspect
import threading
from collections.abc import Iterator
from typing import Annotated, Any, get_args, get_origin, get_type_hints

from procdata.core.declarations import (
    ROW_CONSTRUCTOR_ATTR,
    Param,
    is_row_constructor,
)
from procdata.core.logging import get_logger
from procdata.core.models import (
    ParameterDescriptor,
    ProcedureDescriptor,
    ResultRowDescriptor,
)

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def _annotated_fields(procedure_type: type) -> Iterator[tuple[str, Any, list[Any]]]:
    # pydantic keeps unknown Annotated metadata on FieldInfo; both sources
    # list base class fields first.
    model_fields = getattr(procedure_type, "model_fields", None)
    if isinstance(model_fields, dict):
        for name, info in model_fields.items():
            yield name, info.annotation, list(info.metadata)
        return

    for name, hint in get_type_hints(procedure_type, include_extras=True).items():
        if get_origin(hint) is Annotated:
            value_type, *metadata = get_args(hint)
            yield name, value_type, metadata


def _describe_parameters(procedure_type: type) -> tuple[ParameterDescriptor, ...]:
    parameters: list[ParameterDescriptor] = []
    for name, value_type, metadata in _annotated_fields(procedure_type):
        marker = next((m for m in metadata if isinstance(m, Param)), None)
        if marker is None:
            continue
        parameters.append(
            ParameterDescriptor(
                name=name,
                direction=marker.direction,
                value_type=value_type,
                size=marker.size,
                precision=marker.precision,
                scale=marker.scale,
                type_name=marker.type_name,
            )
        )
    return tuple(parameters)


def _find_row_constructor(row_type: type) -> Any:
    if getattr(row_type, ROW_CONSTRUCTOR_ATTR, None) is row_type:
        return row_type

    designated = [
        name for name, member in vars(row_type).items() if is_row_constructor(member)
    ]
    if not designated:
        return None
    if len(designated) > 1:
        log = get_logger(__name__)
        log.warning(
            "multiple row constructors designated, using the first",
            row_type=row_type.__qualname__,
            constructors=designated,
        )
    return getattr(row_type, designated[0])


def _constructor_signature(constructor: Any) -> tuple[Any, ...] | None:
    try:
        signature = inspect.signature(constructor)
    except (TypeError, ValueError):
        return None
    target = constructor.__init__ if isinstance(constructor, type) else constructor
    try:
        hints = get_type_hints(target)
    except (NameError, TypeError):
        hints = {}

    types: list[Any] = []
    for parameter in signature.parameters.values():
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return None
        if parameter.kind in _POSITIONAL:
            types.append(hints.get(parameter.name, Any))
    return tuple(types)


def describe_row(row_type: type) -> ResultRowDescriptor:
    """Bind a row type to its designated constructor, if it has one."""
    constructor = _find_row_constructor(row_type)
    if constructor is None:
        return ResultRowDescriptor(row_type=row_type)
    return ResultRowDescriptor(
        row_type=row_type,
        constructor=constructor,
        parameter_types=_constructor_signature(constructor),
    )


def describe_procedure(procedure_type: type) -> ProcedureDescriptor:
    """Build a descriptor for a procedure declaration by introspection."""
    name = getattr(procedure_type, "procedure_name", None) or procedure_type.__name__
    return ProcedureDescriptor(
        procedure_type=procedure_type,
        name=name,
        timeout=getattr(procedure_type, "timeout", None),
        parameters=_describe_parameters(procedure_type),
        result_rows=tuple(
            describe_row(row_type)
            for row_type in getattr(procedure_type, "result_rows", ())
        ),
    )


class MetadataRegistry:
    """Build-once cache of ProcedureDescriptor keyed by procedure type."""

    def __init__(self) -> None:
        self._descriptors: dict[type, ProcedureDescriptor] = {}
        self._lock = threading.Lock()

    def resolve(self, procedure_type: type) -> ProcedureDescriptor:
        """Return the cached descriptor, building it on first use."""
        descriptor = self._descriptors.get(procedure_type)
        if descriptor is not None:
            return descriptor

        with self._lock:
            descriptor = self._descriptors.get(procedure_type)
            if descriptor is None:
                descriptor = describe_procedure(procedure_type)
                self._descriptors[procedure_type] = descriptor
                log = get_logger(__name__)
                log.debug(
                    "procedure metadata cached",
                    procedure=descriptor.name,
                    parameters=len(descriptor.parameters),
                    result_sets=descriptor.result_set_count,
                )
        return descriptor

    def register(self, descriptor: ProcedureDescriptor) -> ProcedureDescriptor:
        """Publish an explicitly built descriptor.

        The first descriptor published for a type wins; the one actually
        cached is returned.
        """
        with self._lock:
            return self._descriptors.setdefault(descriptor.procedure_type, descriptor)

    def clear(self) -> None:
        """Drop every cached descriptor. Meant for tests."""
        with self._lock:
            self._descriptors.clear()

    def __contains__(self, procedure_type: object) -> bool:
        return procedure_type in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)


# Global registry used by ProcedureRepository unless another is supplied.
registry = MetadataRegistry()
