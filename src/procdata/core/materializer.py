"""Row objects from positional column values."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from procdata.core.exceptions import ConfigurationError, DataSetIndexError, MissingMapping
from procdata.core.logging import get_logger
from procdata.core.type_map import from_store, unwrap_optional

if TYPE_CHECKING:
    from collections.abc import Sequence

    from procdata.core.models import ProcedureDescriptor, ResultRowDescriptor


def _coerce(value: Any, declared: Any) -> Any:
    value = from_store(value)
    target = unwrap_optional(declared)
    if value is None or not isinstance(target, type) or not issubclass(target, Enum):
        return value
    if isinstance(value, target):
        return value
    try:
        return target(value)
    except ValueError as e:
        msg = f"{value!r} is not a valid {target.__qualname__}"
        raise ConfigurationError(msg, value_type=target) from e


class RowMaterializer:
    """Builds row objects for the result sets of one procedure."""

    def __init__(self, descriptor: ProcedureDescriptor) -> None:
        self._procedure = descriptor.name
        self._rows = descriptor.result_rows

    def _row(self, index: int) -> ResultRowDescriptor:
        if not 0 <= index < len(self._rows):
            raise DataSetIndexError(index, len(self._rows))
        return self._rows[index]

    def materialize(self, values: Sequence[Any], index: int) -> Any:
        """Construct the row object for result set `index`.

        Raises DataSetIndexError for an undeclared result set and
        MissingMapping when the row type has no designated constructor.
        """
        row = self._row(index)
        if row.constructor is None:
            log = get_logger(__name__)
            log.error(
                "no row constructor designated",
                procedure=self._procedure,
                row_type=row.row_type.__qualname__,
            )
            raise MissingMapping(row.row_type)

        if row.parameter_types is None:
            args = [from_store(v) for v in values]
        else:
            if len(values) != len(row.parameter_types):
                msg = (
                    f"{row.row_type.__qualname__} row constructor takes "
                    f"{len(row.parameter_types)} columns, result set {index} of "
                    f"{self._procedure} returned {len(values)}"
                )
                raise ConfigurationError(msg, value_type=row.row_type)
            args = [
                _coerce(v, declared)
                for v, declared in zip(values, row.parameter_types, strict=True)
            ]

        return row.constructor(*args)
