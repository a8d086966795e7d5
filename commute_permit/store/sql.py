"""SQLAlchemy-backed record store.

Each logical table maps onto rows of `store_records` with a JSON `fields`
column. Predicates become WHERE clauses on JSON element access, so filtering
and limits happen in the database.
"""

from collections.abc import Sequence
from typing import Any
from uuid import uuid4
import logging
import operator

from sqlalchemy import ColumnElement, false, func, not_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..core.database import create_session_factory, init_db, session_scope
from ..models import StoreRecord
from .base import Op, Predicate, Record, RecordNotFoundError, RecordStore, RecordStoreError, normalize_value

logger = logging.getLogger(__name__)

_COMPARATORS = {
    Op.EQ: operator.eq,
    Op.NE: operator.ne,
    Op.GT: operator.gt,
    Op.GTE: operator.ge,
    Op.LT: operator.lt,
    Op.LTE: operator.le,
}


def _to_record(row: StoreRecord) -> Record:
    return Record(id=row.id, fields=dict(row.fields or {}))


def to_where_clause(predicate: Predicate) -> ColumnElement[bool]:
    """Render a predicate against the JSON `fields` column.

    Matches the in-memory store: booleans compare by truthiness (a missing
    field is false), `!=` includes missing fields and ordering comparisons
    never match a missing field.
    """
    element = StoreRecord.fields[predicate.field]
    value = normalize_value(predicate.value)

    if value is None:
        if predicate.op is Op.EQ:
            return element.as_string().is_(None)
        if predicate.op is Op.NE:
            return element.as_string().is_not(None)
        return false()

    if isinstance(value, bool):
        truthy = func.coalesce(element.as_boolean(), false())
        if predicate.op is Op.EQ:
            return truthy if value else not_(truthy)
        if predicate.op is Op.NE:
            return not_(truthy) if value else truthy
        extracted = element.as_boolean()
    elif isinstance(value, (int, float)):
        # Epoch millis overflow a 32-bit INTEGER cast
        extracted = element.as_float()
    else:
        extracted = element.as_string()
        value = str(value)

    clause = _COMPARATORS[predicate.op](extracted, value)
    if predicate.op is Op.NE:
        return or_(extracted.is_(None), clause)
    return clause


class SqlRecordStore(RecordStore):
    """Record store over an async SQLAlchemy engine."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._session_factory: async_sessionmaker[AsyncSession] = create_session_factory(engine)

    async def create_tables(self) -> None:
        await init_db(self._engine)

    async def list(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        *,
        limit: int | None = None,
    ) -> list[Record]:
        query = (
            select(StoreRecord)
            .where(StoreRecord.table_name == table, *(to_where_clause(p) for p in filters))
            .order_by(StoreRecord.seq, StoreRecord.id)
        )
        if limit is not None:
            query = query.limit(limit)
        try:
            async with session_scope(self._session_factory) as session:
                rows = (await session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to list {table}: {e}") from e

        return [_to_record(row) for row in rows]

    async def get(self, table: str, record_id: str) -> Record | None:
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(StoreRecord, record_id)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to read {table}/{record_id}: {e}") from e
        if row is None or row.table_name != table:
            return None
        return _to_record(row)

    async def create(self, table: str, fields: dict[str, Any]) -> Record:
        try:
            async with session_scope(self._session_factory) as session:
                next_seq = await session.scalar(
                    select(func.coalesce(func.max(StoreRecord.seq), 0) + 1)
                    .where(StoreRecord.table_name == table)
                )
                row = StoreRecord(
                    id=f"rec{uuid4().hex[:14]}",
                    table_name=table,
                    seq=next_seq,
                    fields=dict(fields),
                )
                session.add(row)
                await session.flush()
                return _to_record(row)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to create record in {table}: {e}") from e

    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(StoreRecord, record_id)
                if row is None or row.table_name != table:
                    raise RecordNotFoundError(table, record_id)
                # Reassign so the JSON column is flagged as modified
                row.fields = {**(row.fields or {}), **fields}
                await session.flush()
                return _to_record(row)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to update {table}/{record_id}: {e}") from e

    async def delete(self, table: str, record_id: str) -> None:
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(StoreRecord, record_id)
                if row is None or row.table_name != table:
                    raise RecordNotFoundError(table, record_id)
                await session.delete(row)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to delete {table}/{record_id}: {e}") from e

    async def close(self) -> None:
        await self._engine.dispose()
