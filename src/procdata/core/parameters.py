"""Turning procedure instances into wire parameters and back.

Wire names are derived from property names by lower-casing the first
character (StringInput -> stringInput); output values are written back by
reversing that rule.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from procdata.core.exceptions import ConfigurationError
from procdata.core.logging import get_logger
from procdata.core.models import Direction, ParameterBinding
from procdata.core.type_map import (
    DB_NULL,
    StoreType,
    from_store,
    lookup_store_type,
    to_store,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from procdata.core.models import ParameterDescriptor, ProcedureDescriptor


def lower_first(name: str) -> str:
    return name[:1].lower() + name[1:]


def upper_first(name: str) -> str:
    return name[:1].upper() + name[1:]


def _binding_direction(parameter: ParameterDescriptor) -> Direction:
    if parameter.is_input and parameter.is_output:
        return Direction.INOUT
    return Direction.IN if parameter.is_input else Direction.OUT


def resolve_store_type(parameter: ParameterDescriptor) -> StoreType:
    if parameter.is_structured:
        if not parameter.type_name:
            msg = (
                f"Structured parameter '{parameter.name}' must declare "
                "type_name (the composite type of its rows)"
            )
            raise ConfigurationError(msg, value_type=parameter.value_type)
        return StoreType.STRUCTURED
    return lookup_store_type(parameter.value_type)


def build_parameters(
    instance: object, descriptor: ProcedureDescriptor
) -> list[ParameterBinding]:
    """Build one binding per declared parameter, in declared order.

    Input values are read from the instance as they are now; output-only
    parameters are sent as DB_NULL placeholders.
    """
    log = get_logger(__name__, procedure=descriptor.name)
    bindings: list[ParameterBinding] = []
    for parameter in descriptor.parameters:
        if parameter.is_input:
            value = to_store(getattr(instance, parameter.name, None))
        else:
            value = DB_NULL
        binding = ParameterBinding(
            name=lower_first(parameter.name),
            direction=_binding_direction(parameter),
            store_type=resolve_store_type(parameter),
            value=value,
            size=parameter.size,
            precision=parameter.precision,
            scale=parameter.scale,
            type_name=parameter.type_name,
        )
        log.debug(
            "parameter built",
            name=binding.name,
            direction=binding.direction.name,
            store_type=str(binding.store_type),
            value=binding.value,
        )
        bindings.append(binding)
    return bindings


def apply_output_parameters(
    instance: object,
    descriptor: ProcedureDescriptor,
    bindings: Iterable[ParameterBinding],
) -> list[str]:
    """Copy output values from executed bindings onto the instance.

    Bindings without a matching output property are ignored. Returns the
    names of the properties that were set.
    """
    log = get_logger(__name__, procedure=descriptor.name)
    outputs = {p.name: p for p in descriptor.output_parameters}
    written: list[str] = []
    for binding in bindings:
        # Properties that already start in lower case keep their own name.
        property_name = upper_first(binding.name)
        if property_name not in outputs:
            property_name = binding.name
        if property_name not in outputs:
            continue
        value: Any = from_store(binding.value)
        setattr(instance, property_name, value)
        log.debug("output parameter set", property=property_name, value=value)
        written.append(property_name)
    return written
