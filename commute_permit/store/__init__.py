"""Record store port and adapters."""

import logging
from typing import TYPE_CHECKING

from .base import (
    Op,
    Predicate,
    Record,
    RecordNotFoundError,
    RecordStore,
    RecordStoreError,
    Tables,
    eq,
    gt,
    lt,
    ne,
)
from .memory import MemoryRecordStore

if TYPE_CHECKING:
    from ..core.config import Settings

logger = logging.getLogger(__name__)


def create_record_store(settings: "Settings") -> RecordStore:
    """Build the adapter selected by `record_store_backend`."""
    backend = settings.record_store_backend

    if backend == "lark":
        from ..integrations.lark import LarkClient
        from .lark import LarkRecordStore

        if not settings.lark_enabled or not settings.lark_base_token:
            raise RecordStoreError("Lark backend selected but LARK_APP_ID/LARK_APP_SECRET/LARK_BASE_TOKEN are not set")
        client = LarkClient(
            settings.lark_app_id,
            settings.lark_app_secret,
            domain=settings.lark_domain,
            timeout=settings.lark_request_timeout_seconds,
        )
        logger.info("Using Lark Base record store")
        return LarkRecordStore(client, settings.lark_base_token, settings.lark_table_ids)

    if backend == "sql":
        from ..core.database import create_engine_from_settings
        from .sql import SqlRecordStore

        logger.info("Using SQL record store")
        return SqlRecordStore(create_engine_from_settings(settings))

    logger.warning("Using in-memory record store; data is lost on restart")
    return MemoryRecordStore()


__all__ = [
    # Port
    "RecordStore",
    "Record",
    "Predicate",
    "Op",
    "Tables",
    "eq",
    "ne",
    "gt",
    "lt",
    # Errors
    "RecordStoreError",
    "RecordNotFoundError",
    # Adapters
    "MemoryRecordStore",
    "create_record_store",
]
