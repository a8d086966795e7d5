"""
Expiration Engine: scans approved documents and buckets them by due date.

Key responsibilities:
1. Fetch approved, non-deleted documents for all three categories
2. Classify each as expired, expiring soon, or not yet due
3. Produce the read-only summary polled by the admin dashboard

Sending notifications is the monitoring job's business; nothing here has
side effects.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from ..schemas import DocumentBase, DocumentType
from ..store import RecordStore
from .documents import DOCUMENT_SERVICES
from .employees import EmployeeService
from .permit_utils import days_overdue, days_until_expiration
from .system_settings import SystemSettings, SystemSettingsService

logger = logging.getLogger(__name__)


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class ExpirationWarning:
    """A document that is expiring soon or already expired."""

    document_type: DocumentType
    document_id: str
    employee_id: str
    employee_name: str
    document_number: str
    expiration_date: datetime
    # Negative for expired documents (days overdue)
    days_until_expiration: int


@dataclass
class ExpirationScan:
    """Result of one pass over all categories."""

    scanned_at: datetime
    expiring: list[ExpirationWarning] = field(default_factory=list)
    expired: list[ExpirationWarning] = field(default_factory=list)
    failed_categories: list[DocumentType] = field(default_factory=list)


@dataclass
class ExpirationSummary:
    """Counts for the admin dashboard."""

    expiring_count: int
    expired_count: int
    expiring_by_type: dict[str, int]
    expired_by_type: dict[str, int]
    expiring: list[ExpirationWarning]
    expired: list[ExpirationWarning]
    failed_categories: list[DocumentType]
    generated_at: datetime


class ExpirationScanError(Exception):
    """No document category could be read."""


# =============================================================================
# CLASSIFICATION
# =============================================================================


def classify(
    expiration: datetime,
    threshold_days: int,
    now: datetime,
) -> tuple[str | None, int]:
    """Return ("expired" | "expiring" | None, signed days until expiration).

    A document is expired as soon as its instant has passed, so one that
    lapsed an hour ago is reported as 1 day overdue rather than 0 days left.
    """
    if expiration < now:
        return "expired", -days_overdue(expiration, now)
    days = days_until_expiration(expiration, now)
    if days <= threshold_days:
        return "expiring", days
    return None, days


def _count_by_type(warnings: list[ExpirationWarning]) -> dict[str, int]:
    counts = {t.value: 0 for t in DocumentType}
    for warning in warnings:
        counts[DocumentType(warning.document_type).value] += 1
    return counts


# =============================================================================
# ENGINE
# =============================================================================


class ExpirationEngine:
    """Read-only expiration scanning over the record store."""

    def __init__(
        self,
        store: RecordStore,
        settings_service: SystemSettingsService | None = None,
    ):
        self.store = store
        self.settings_service = settings_service or SystemSettingsService(store)
        self.employees = EmployeeService(store)

    async def _fetch_category(self, document_type: DocumentType) -> list[DocumentBase]:
        service = DOCUMENT_SERVICES[document_type](self.store)
        return await service.list_approved()

    async def _employee_names(self) -> dict[str, str]:
        try:
            return await self.employees.name_map()
        except Exception as e:
            logger.error(f"Could not load employee names, falling back to ids: {e}")
            return {}

    async def scan(
        self,
        now: datetime | None = None,
        config: SystemSettings | None = None,
    ) -> ExpirationScan:
        """Classify every approved document. Categories are fetched concurrently.

        A category whose fetch fails is logged and listed in
        `failed_categories`; the others are still classified. Raises
        ExpirationScanError only when every category failed.
        """
        now = now or datetime.now(timezone.utc)
        config = config or await self.settings_service.get_settings()
        categories = list(DocumentType)

        results = await asyncio.gather(
            *(self._fetch_category(t) for t in categories),
            return_exceptions=True,
        )
        names = await self._employee_names()

        scan = ExpirationScan(scanned_at=now)
        for document_type, result in zip(categories, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to fetch {document_type.value} documents: {result}")
                scan.failed_categories.append(document_type)
                continue

            threshold = config.warning_days(document_type)
            for document in result:
                if document.deleted_flag:
                    continue
                expiration = document.expires_at
                if expiration is None:
                    logger.warning(
                        f"{document_type.value} document {document.id} has no expiration date; skipped"
                    )
                    continue

                bucket, days = classify(expiration, threshold, now)
                if bucket is None:
                    continue
                warning = ExpirationWarning(
                    document_type=document_type,
                    document_id=document.id,
                    employee_id=document.employee_id,
                    employee_name=names.get(document.employee_id, document.employee_id),
                    document_number=document.document_number,
                    expiration_date=expiration,
                    days_until_expiration=days,
                )
                (scan.expired if bucket == "expired" else scan.expiring).append(warning)

        if len(scan.failed_categories) == len(categories):
            raise ExpirationScanError("Could not read any document category from the record store")

        scan.expiring.sort(key=lambda w: w.days_until_expiration)
        scan.expired.sort(key=lambda w: w.days_until_expiration)
        return scan

    async def get_expiration_summary(self, now: datetime | None = None) -> ExpirationSummary:
        scan = await self.scan(now=now)
        return ExpirationSummary(
            expiring_count=len(scan.expiring),
            expired_count=len(scan.expired),
            expiring_by_type=_count_by_type(scan.expiring),
            expired_by_type=_count_by_type(scan.expired),
            expiring=scan.expiring,
            expired=scan.expired,
            failed_categories=scan.failed_categories,
            generated_at=scan.scanned_at,
        )
