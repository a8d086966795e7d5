"""Lark Base record store adapter.

Predicates are translated into Lark's filter formula syntax, e.g.
`AND(CurrentValue.[employee_id]="E001",CurrentValue.[deleted_flag]=false)`.
"""

from collections.abc import Sequence
from typing import Any
import logging

from ..integrations.lark import LarkAPIError, LarkClient
from .base import Predicate, Record, RecordNotFoundError, RecordStore, RecordStoreError, normalize_value

logger = logging.getLogger(__name__)

# Lark error code for a record id that does not exist
RECORD_NOT_FOUND_CODE = 1254043


def _formula_literal(value: Any) -> str:
    value = normalize_value(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if value is None:
        return '""'
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def to_filter_formula(filters: Sequence[Predicate]) -> str | None:
    """Render predicates as a Lark filter formula (None when unfiltered)."""
    clauses = [
        f"CurrentValue.[{p.field}]{p.op.value}{_formula_literal(p.value)}"
        for p in filters
    ]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return f"AND({','.join(clauses)})"


def _to_record(item: dict[str, Any]) -> Record:
    return Record(id=item.get("record_id", ""), fields=dict(item.get("fields") or {}))


class LarkRecordStore(RecordStore):
    """Record store backed by a Lark Base app."""

    def __init__(self, client: LarkClient, app_token: str, table_ids: dict[str, str]):
        self._client = client
        self._app_token = app_token
        self._table_ids = table_ids

    def _table_id(self, table: str) -> str:
        table_id = self._table_ids.get(table)
        if not table_id:
            raise RecordStoreError(f"No Lark table id configured for '{table}'")
        return table_id

    async def list(
        self,
        table: str,
        filters: Sequence[Predicate] = (),
        *,
        limit: int | None = None,
    ) -> list[Record]:
        formula = to_filter_formula(filters)
        try:
            items = await self._client.list_records(
                self._app_token,
                self._table_id(table),
                filter_formula=formula,
                max_records=limit,
            )
        except LarkAPIError as e:
            raise RecordStoreError(f"Failed to list {table}: {e}") from e
        return [_to_record(item) for item in items]

    async def get(self, table: str, record_id: str) -> Record | None:
        try:
            item = await self._client.get_record(self._app_token, self._table_id(table), record_id)
        except LarkAPIError as e:
            if e.code == RECORD_NOT_FOUND_CODE:
                return None
            raise RecordStoreError(f"Failed to read {table}/{record_id}: {e}") from e
        return _to_record(item) if item else None

    async def create(self, table: str, fields: dict[str, Any]) -> Record:
        try:
            item = await self._client.create_record(self._app_token, self._table_id(table), fields)
        except LarkAPIError as e:
            raise RecordStoreError(f"Failed to create record in {table}: {e}") from e
        return _to_record(item)

    async def update(self, table: str, record_id: str, fields: dict[str, Any]) -> Record:
        try:
            item = await self._client.update_record(
                self._app_token, self._table_id(table), record_id, fields
            )
        except LarkAPIError as e:
            if e.code == RECORD_NOT_FOUND_CODE:
                raise RecordNotFoundError(table, record_id) from e
            raise RecordStoreError(f"Failed to update {table}/{record_id}: {e}") from e
        return _to_record(item)

    async def delete(self, table: str, record_id: str) -> None:
        try:
            await self._client.delete_record(self._app_token, self._table_id(table), record_id)
        except LarkAPIError as e:
            if e.code == RECORD_NOT_FOUND_CODE:
                raise RecordNotFoundError(table, record_id) from e
            raise RecordStoreError(f"Failed to delete {table}/{record_id}: {e}") from e

    async def close(self) -> None:
        await self._client.close()
