"""Notification history: the audit log of send attempts and the dedup source."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

from ..schemas import (
    DocumentType,
    NotificationHistoryEntry,
    NotificationStats,
    NotificationStatus,
    NotificationType,
)
from ..store import Record, RecordStore, Tables, eq, gt
from ..store.fields import extract_text, from_millis, to_millis

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW_HOURS = 24


@dataclass
class NotificationAttempt:
    """What the monitoring job sent (or tried to send) to one recipient."""

    recipient_id: str
    notification_type: NotificationType
    document_type: DocumentType
    document_id: str
    title: str
    message: str
    status: NotificationStatus


def _to_entry(record: Record) -> NotificationHistoryEntry:
    fields = record.fields
    try:
        document_type = DocumentType(fields.get("document_type"))
    except ValueError:
        document_type = None
    return NotificationHistoryEntry(
        id=record.id,
        recipient_id=str(fields.get("recipient_id") or ""),
        notification_type=fields.get("notification_type") or NotificationType.EXPIRATION_WARNING.value,
        document_type=document_type,
        document_id=str(fields.get("document_id") or ""),
        title=extract_text(fields.get("title")),
        message=extract_text(fields.get("message")),
        sent_at=from_millis(fields.get("sent_at")),
        status=fields.get("status") or NotificationStatus.FAILED.value,
    )


class NotificationHistoryService:
    """Writes and queries the `notification_history` table."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def record(self, attempt: NotificationAttempt, sent_at: datetime | None = None) -> str:
        """Persist one send attempt and return the record id."""
        sent_at = sent_at or datetime.now(timezone.utc)
        record = await self.store.create(
            Tables.NOTIFICATION_HISTORY,
            {
                "recipient_id": attempt.recipient_id,
                "notification_type": NotificationType(attempt.notification_type).value,
                "document_type": DocumentType(attempt.document_type).value,
                "document_id": attempt.document_id,
                "title": attempt.title,
                "message": attempt.message,
                "sent_at": to_millis(sent_at),
                "status": NotificationStatus(attempt.status).value,
                "created_at": to_millis(datetime.now(timezone.utc)),
            },
        )
        return record.id

    async def has_recent_duplicate(
        self,
        recipient_id: str,
        document_id: str,
        notification_type: NotificationType,
        window_hours: int = DEFAULT_DEDUP_WINDOW_HOURS,
        now: datetime | None = None,
    ) -> bool:
        """True if an attempt for this recipient/document/type falls inside the window.

        Failed attempts count too, so a broken channel is not retried every
        run. If the lookup itself fails the answer is False: a duplicate
        message is preferable to a missed one.
        """
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(hours=window_hours)
        try:
            records = await self.store.list(
                Tables.NOTIFICATION_HISTORY,
                [
                    eq("recipient_id", recipient_id),
                    eq("document_id", document_id),
                    eq("notification_type", NotificationType(notification_type).value),
                    gt("sent_at", since),
                ],
                limit=1,
            )
        except Exception as e:
            logger.error(f"Duplicate check failed for {recipient_id}/{document_id}: {e}")
            return False
        return bool(records)

    async def list_history(
        self,
        recipient_id: str | None = None,
        limit: int | None = None,
    ) -> list[NotificationHistoryEntry]:
        """Newest first."""
        filters = [eq("recipient_id", recipient_id)] if recipient_id else []
        entries = [_to_entry(r) for r in await self.store.list(Tables.NOTIFICATION_HISTORY, filters)]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        entries.sort(key=lambda e: e.sent_at or epoch, reverse=True)
        return entries[:limit] if limit is not None else entries

    async def get_stats(self, recipient_id: str | None = None) -> NotificationStats:
        entries = await self.list_history(recipient_id)
        by_type: dict[str, int] = {}
        for entry in entries:
            by_type[entry.notification_type] = by_type.get(entry.notification_type, 0) + 1
        return NotificationStats(
            total=len(entries),
            sent=sum(1 for e in entries if e.status == NotificationStatus.SENT),
            failed=sum(1 for e in entries if e.status == NotificationStatus.FAILED),
            by_type=by_type,
        )
