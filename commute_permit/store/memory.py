"""In-process record store used for tests and local development."""

from collections.abc import Sequence
from copy import deepcopy
from typing import Any
from uuid import uuid4

from .base import Predicate, Record, RecordNotFoundError, RecordStore, matches_all


class MemoryRecordStore(RecordStore):
    """Keeps tables as dicts of id -> fields. Insertion order is preserved."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    async def list(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        *,
        limit: int | None = None,
    ) -> list[Record]:
        rows = [
            Record(id=record_id, fields=deepcopy(fields))
            for record_id, fields in self._table(table).items()
            if matches_all(filters, fields)
        ]
        return rows[:limit] if limit is not None else rows

    async def get(self, table: str, record_id: str) -> Record | None:
        fields = self._table(table).get(record_id)
        if fields is None:
            return None
        return Record(id=record_id, fields=deepcopy(fields))

    async def create(self, table: str, fields: dict[str, Any]) -> Record:
        record_id = f"rec{uuid4().hex[:14]}"
        self._table(table)[record_id] = deepcopy(fields)
        return Record(id=record_id, fields=deepcopy(fields))

    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        rows = self._table(table)
        if record_id not in rows:
            raise RecordNotFoundError(table, record_id)
        rows[record_id].update(deepcopy(fields))
        return Record(id=record_id, fields=deepcopy(rows[record_id]))

    async def delete(self, table: str, record_id: str) -> None:
        if self._table(table).pop(record_id, None) is None:
            raise RecordNotFoundError(table, record_id)
