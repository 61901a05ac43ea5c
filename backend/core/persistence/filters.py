"""
Core Service — Filter Conditions & Pagination Types
=====================================================

What:  Turns a caller-supplied Condition Set into typed predicates, and defines
       the page request / page result types shared by every repository call.
How:   Each condition becomes a Predicate tagged EQ, GTE or LTE. Fields listed in
       a RangeFieldRegistry accept a trailing "+" (>=) or "-" (<=) and parse
       their numeric prefix as the registered NumericKind.

Condition syntax (registered range fields only):
    {"price": "100-"}          → price <= 100        (integer field)
    {"price": "100+"}          → price >= 100
    {"pct_remaining": "0.5+"}  → pct_remaining >= 0.5 (float field)
    {"price": "100"}           → price == 100
    {"brand": "Dior"}          → brand == 'Dior'     (any other field: equality)

Failure modes:
    ValueTypeError  range field received a non-string value
    ParseError      numeric prefix is empty or not valid for the field's kind
"""

import enum
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterator, List, Mapping, Optional, Tuple, TypeVar

from core.exceptions import ParseError, ValidationError, ValueTypeError

T = TypeVar("T")

RANGE_AT_LEAST = "+"
RANGE_AT_MOST = "-"

# ASCII decimal syntax, which int() and float() do not enforce on their own
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")
_FLOAT_PATTERN = re.compile(r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?")


class Operator(str, enum.Enum):
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"


class NumericKind(str, enum.Enum):
    """How the prefix of a range condition is parsed."""

    INTEGER = "integer"
    FLOAT = "float"

    def parse(self, raw: str) -> int | float:
        if self is NumericKind.INTEGER:
            if not _INTEGER_PATTERN.fullmatch(raw):
                raise ValueError(f"not a decimal integer: {raw!r}")
            return int(raw)
        if not _FLOAT_PATTERN.fullmatch(raw):
            raise ValueError(f"not a decimal number: {raw!r}")
        value = float(raw)
        if math.isinf(value):
            raise ValueError(f"non-finite value {raw!r}")
        return value


@dataclass(frozen=True)
class Predicate:
    field: str
    op: Operator
    value: Any


class RangeFieldRegistry:
    """
    Field name → NumericKind for fields that accept range syntax.

    New range-capable fields are added with register(); everything not
    registered is compared by equality.
    """

    def __init__(self, fields: Optional[Mapping[str, NumericKind]] = None):
        self._fields: Dict[str, NumericKind] = dict(fields or {})

    def register(self, name: str, kind: NumericKind) -> "RangeFieldRegistry":
        self._fields[name] = kind
        return self

    def kind_of(self, name: str) -> Optional[NumericKind]:
        return self._fields.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def copy(self) -> "RangeFieldRegistry":
        return RangeFieldRegistry(self._fields)


def default_range_fields() -> RangeFieldRegistry:
    return RangeFieldRegistry(
        {
            "price": NumericKind.INTEGER,
            "pct_remaining": NumericKind.FLOAT,
        }
    )


def _parse_range(name: str, value: Any, kind: NumericKind) -> Predicate:
    if not isinstance(value, str):
        raise ValueTypeError(
            f"value ({name}) is not a string",
            field=name,
            context={"value_type": type(value).__name__},
        )

    op = Operator.EQ
    raw = value
    if value.endswith(RANGE_AT_MOST):
        op, raw = Operator.LTE, value[:-1]
    elif value.endswith(RANGE_AT_LEAST):
        op, raw = Operator.GTE, value[:-1]

    try:
        number = kind.parse(raw)
    except ValueError as e:
        raise ParseError(
            f"invalid {name} value: {value!r} is not a valid {kind.value}",
            field=name,
            context={"reason": str(e)},
        ) from e
    return Predicate(name, op, number)


def parse_conditions(
    conditions: Mapping[str, Any],
    range_fields: Optional[RangeFieldRegistry] = None,
) -> List[Predicate]:
    """
    What:    Converts a Condition Set into predicates, preserving mapping order.
    Returns: One Predicate per condition; all are combined with AND by the caller.
    """
    registry = range_fields if range_fields is not None else RangeFieldRegistry()
    predicates = []
    for name, value in conditions.items():
        kind = registry.kind_of(name)
        if kind is None:
            predicates.append(Predicate(name, Operator.EQ, value))
        else:
            predicates.append(_parse_range(name, value, kind))
    return predicates


# ── Ordering ──────────────────────────────────────────────────────────────

def parse_order(order_by: Optional[str]) -> Optional[Tuple[str, bool]]:
    """
    Parses "field", "field asc" or "field desc" into (field, descending).

    Returns None for an empty specification (database natural order).
    """
    if order_by is None or not order_by.strip():
        return None
    parts = order_by.split()
    if len(parts) > 2:
        raise ValidationError(f"invalid order specification: {order_by!r}", field="order_by")
    direction = parts[1].lower() if len(parts) == 2 else "asc"
    if direction not in ("asc", "desc"):
        raise ValidationError(
            f"invalid order direction {parts[1]!r}; use 'asc' or 'desc'",
            field="order_by",
        )
    return parts[0], direction == "desc"


# ── Pagination ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PageRequest:
    """
    A 1-based page number and a page size.

    Raises ValidationError on construction if either value is below 1.
    """

    page: int = 1
    page_size: int = 20

    def __post_init__(self):
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
            raise ValidationError("page must be an integer >= 1", field="page")
        if (
            isinstance(self.page_size, bool)
            or not isinstance(self.page_size, int)
            or self.page_size < 1
        ):
            raise ValidationError("page_size must be an integer >= 1", field="page_size")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size


def total_pages(total_records: int, page_size: int) -> int:
    """ceil(total_records / page_size) in integer arithmetic."""
    if total_records <= 0:
        return 0
    return (total_records + page_size - 1) // page_size


@dataclass
class Page(Generic[T]):
    records: List[T] = field(default_factory=list)
    total_pages: int = 0
    total_records: int = 0
