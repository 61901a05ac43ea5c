"""
Core Service — Persistence Layer
==================================

Generic repository operations over mapped tables and the filter/pagination
types they share. Domain tables are defined by the services that use them.
"""

from core.persistence.filters import (
    NumericKind,
    Operator,
    Page,
    PageRequest,
    Predicate,
    RangeFieldRegistry,
    default_range_fields,
    parse_conditions,
    total_pages,
)
from core.persistence.repository import Repository

__all__ = [
    "NumericKind",
    "Operator",
    "Page",
    "PageRequest",
    "Predicate",
    "RangeFieldRegistry",
    "Repository",
    "default_range_fields",
    "parse_conditions",
    "total_pages",
]
