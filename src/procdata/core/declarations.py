"""Declaring stored procedures and result rows.

A procedure is a StoredProcedure subclass whose parameters are annotated
fields::

    class GetOrders(StoredProcedure):
        procedure_name: ClassVar[str] = "sales.get_orders"
        result_rows: ClassVar[tuple[type, ...]] = (OrderRow, OrderLineRow)

        customer_id: Annotated[int, Param()]
        order_count: Annotated[int | None, Param(Direction.OUT)] = None

A row type designates the constructor used to build it from positional
column values with @row_constructor, either on the class itself (its
__init__ takes the columns in order) or on one classmethod.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel

from procdata.core.models import Direction

_T = TypeVar("_T")

ROW_CONSTRUCTOR_ATTR = "__procdata_row_constructor__"


@dataclass(frozen=True)
class Param:
    """Annotated marker declaring a field as a procedure parameter.

    type_name names the composite row type of a structured parameter; on a
    scalar parameter it replaces the cast derived from the host type (for
    example "refcursor").
    """

    direction: Direction = Direction.IN
    size: int | None = None
    precision: int | None = None
    scale: int | None = None
    type_name: str | None = None


def row_constructor(target: _T) -> _T:
    """Designate the constructor that builds a row from column values.

    Accepts a class, a function, or a classmethod/staticmethod object, so it
    may sit on either side of @classmethod.
    """
    if isinstance(target, type):
        setattr(target, ROW_CONSTRUCTOR_ATTR, target)
        return target
    func = getattr(target, "__func__", target)
    setattr(func, ROW_CONSTRUCTOR_ATTR, True)
    return target


def is_row_constructor(member: Any) -> bool:
    func = getattr(member, "__func__", member)
    return getattr(func, ROW_CONSTRUCTOR_ATTR, False) is True


class StoredProcedure(BaseModel):
    """Base class for procedure declarations.

    Instances carry the input values for one call; output parameters are
    written back onto the instance once the call has completed.
    """

    procedure_name: ClassVar[str | None] = None
    timeout: ClassVar[float | None] = None
    result_rows: ClassVar[tuple[type, ...]] = ()
