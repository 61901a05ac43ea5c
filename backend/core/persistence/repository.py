"""
Core Service — Generic Repository
===================================

What:  Uniform CRUD, lookup and filtered pagination operations for any mapped table.
How:   A Repository is built with an ORM model; the model's __table__ is the
       schema descriptor (table name + column list). Field names coming from
       callers are resolved against that column list, never via getattr.
Who:   Route handlers and services that own domain tables.

Query shape for filter():
    SELECT count(*) FROM <table> WHERE <p1> AND <p2> ...       (once per call)
    SELECT * FROM <table> WHERE <p1> AND <p2> ...
        [ORDER BY <field> ASC|DESC] LIMIT :page_size OFFSET :offset

Error Handling:
    Any SQLAlchemyError is wrapped in StorageError with the storage message
    verbatim. get_by_id raises NotFoundError when no row matches; get_by_field
    returns None instead. Nothing is cached or retried.
"""

import logging
from typing import Any, Generic, Iterable, List, Mapping, Optional, Sequence, Type, TypeVar

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from core.exceptions import NotFoundError, StorageError, ValidationError
from core.persistence.filters import (
    Operator,
    Page,
    PageRequest,
    Predicate,
    RangeFieldRegistry,
    default_range_fields,
    parse_conditions,
    parse_order,
    total_pages,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def storage_error(operation: str, table: str, exc: SQLAlchemyError) -> StorageError:
    # First line only: SQLAlchemy appends the statement and a docs link
    message = str(exc.orig if getattr(exc, "orig", None) is not None else exc).splitlines()[0]
    logger.error("Storage error during %s on %s: %s", operation, table, message)
    return StorageError(
        message=message,
        context={"operation": operation, "table": table, "error_type": type(exc).__name__},
    )


class Repository(Generic[T]):
    """
    Generic persistence operations parameterized by a mapped record type.

    Args:
        model:         Declarative model class; its __table__ defines the fields.
        range_fields:  Registry of fields accepting "+"/"-" range syntax.
                       Defaults to price (integer) and pct_remaining (float).
        id_field:      Primary key column used by the *_by_id operations.
    """

    def __init__(
        self,
        model: Type[T],
        range_fields: Optional[RangeFieldRegistry] = None,
        id_field: str = "id",
    ):
        self.model = model
        self.table = model.__table__
        self.range_fields = range_fields if range_fields is not None else default_range_fields()
        self.id_field = id_field
        self._column(id_field)

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def fields(self) -> List[str]:
        return [c.key for c in self.table.columns]

    def _column(self, name: str):
        try:
            return self.table.columns[name]
        except KeyError:
            raise ValidationError(
                f"unknown field '{name}' for {self.table_name}",
                field=name,
                context={"table": self.table_name},
            ) from None

    def _clause(self, predicate: Predicate) -> ColumnElement[bool]:
        column = self._column(predicate.field)
        if predicate.op is Operator.GTE:
            return column >= predicate.value
        if predicate.op is Operator.LTE:
            return column <= predicate.value
        return column == predicate.value

    def build_clauses(self, conditions: Mapping[str, Any]) -> List[ColumnElement[bool]]:
        """Condition Set → WHERE clauses (range syntax honored for registered fields)."""
        return [self._clause(p) for p in parse_conditions(conditions, self.range_fields)]

    def _equality_clauses(self, conditions: Mapping[str, Any]) -> List[ColumnElement[bool]]:
        return [self._column(name) == value for name, value in conditions.items()]

    def _ordered(self, query: Select, order_by: Optional[str]) -> Select:
        order = parse_order(order_by)
        if order is None:
            return query
        name, descending = order
        column = self._column(name)
        return query.order_by(column.desc() if descending else column.asc())

    async def _paginate(
        self,
        session: AsyncSession,
        clauses: Sequence[ColumnElement[bool]],
        page: PageRequest,
        order_by: Optional[str],
        operation: str,
    ) -> Page[T]:
        count_query = select(func.count()).select_from(self.table).where(*clauses)
        query = self._ordered(select(self.model).where(*clauses), order_by)
        query = query.offset(page.offset).limit(page.limit)
        try:
            total = (await session.execute(count_query)).scalar_one()
            records = list((await session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            raise storage_error(operation, self.table_name, e) from e
        return Page(
            records=records,
            total_pages=total_pages(total, page.page_size),
            total_records=total,
        )

    # ── Writes ────────────────────────────────────────────────────────────

    async def insert(self, session: AsyncSession, record: T) -> T:
        """Adds one record and flushes so generated keys are populated."""
        try:
            session.add(record)
            await session.flush()
        except SQLAlchemyError as e:
            raise storage_error("insert", self.table_name, e) from e
        return record

    async def batch_insert(
        self, session: AsyncSession, records: Iterable[T], batch_size: int
    ) -> int:
        """
        Inserts records in chunks of batch_size, flushing after each chunk.

        Returns the number of records inserted.
        """
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise ValidationError("batch_size must be an integer >= 1", field="batch_size")
        items = list(records)
        try:
            for start in range(0, len(items), batch_size):
                session.add_all(items[start:start + batch_size])
                await session.flush()
        except SQLAlchemyError as e:
            raise storage_error("batch_insert", self.table_name, e) from e
        logger.debug(
            "Inserted %d %s records in batches of %d", len(items), self.table_name, batch_size
        )
        return len(items)

    async def update_by_id(
        self, session: AsyncSession, record_id: Any, updates: Mapping[str, Any]
    ) -> int:
        """
        Merges the given fields into the row with record_id.

        Fields absent from updates keep their stored values. Returns rows affected.
        """
        values = {self._column(name).key: value for name, value in updates.items()}
        if not values:
            return 0
        statement = (
            update(self.table)
            .where(self._column(self.id_field) == record_id)
            .values(**values)
        )
        try:
            result = await session.execute(statement)
        except SQLAlchemyError as e:
            raise storage_error("update_by_id", self.table_name, e) from e
        return result.rowcount

    async def delete_by_id(self, session: AsyncSession, record_id: Any) -> int:
        statement = delete(self.table).where(self._column(self.id_field) == record_id)
        try:
            result = await session.execute(statement)
        except SQLAlchemyError as e:
            raise storage_error("delete_by_id", self.table_name, e) from e
        return result.rowcount

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_by_id(self, session: AsyncSession, record_id: Any) -> T:
        """
        Returns the row with record_id.

        Raises NotFoundError when no row matches (the "no rows" outcome).
        """
        query = select(self.model).where(self._column(self.id_field) == record_id).limit(1)
        try:
            return (await session.execute(query)).scalars().one()
        except NoResultFound:
            raise NotFoundError(resource=self.table_name, resource_id=str(record_id)) from None
        except SQLAlchemyError as e:
            raise storage_error("get_by_id", self.table_name, e) from e

    async def get_by_field(self, session: AsyncSession, field: str, value: Any) -> Optional[T]:
        """First row where field == value, or None when nothing matches."""
        query = select(self.model).where(self._column(field) == value).limit(1)
        try:
            return (await session.execute(query)).scalars().first()
        except SQLAlchemyError as e:
            raise storage_error("get_by_field", self.table_name, e) from e

    async def get_by_fields(
        self, session: AsyncSession, conditions: Mapping[str, Any]
    ) -> List[T]:
        """All rows matching every field == value pair."""
        query = select(self.model).where(*self._equality_clauses(conditions))
        try:
            return list((await session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            raise storage_error("get_by_fields", self.table_name, e) from e

    async def get_all(self, session: AsyncSession, page: PageRequest) -> Page[T]:
        return await self._paginate(session, [], page, None, "get_all")

    async def get_by_field_paginated(
        self,
        session: AsyncSession,
        field: str,
        value: Any,
        page: PageRequest,
        order_by: Optional[str] = None,
    ) -> Page[T]:
        clauses = self._equality_clauses({field: value})
        return await self._paginate(session, clauses, page, order_by, "get_by_field_paginated")

    async def filter(
        self,
        session: AsyncSession,
        conditions: Mapping[str, Any],
        page: PageRequest,
        order_by: Optional[str] = None,
    ) -> Page[T]:
        """
        Filtered, counted and paginated read.

        What:    AND of all conditions; range syntax for registered fields.
        How:     Conditions are validated before any query is issued, so a
                 ParseError or ValueTypeError never reaches the database.
                 The count covers the full filtered set, not the page window.
        """
        clauses = self.build_clauses(conditions)
        return await self._paginate(session, clauses, page, order_by, "filter")
