"""
Document Services: typed CRUD and approval transitions.

One service per category (license, vehicle registration, insurance), all
sharing the same record layout:

- soft-deleted documents never leave these services, except through
  `list_deleted` / `restore`
- approval writes an approval-history entry alongside the status change
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar
import logging

from pydantic import BaseModel

from ..schemas import (
    ApprovalHistoryEntry,
    ApprovalStatus,
    DocumentBase,
    DocumentStatus,
    DocumentType,
    DriversLicense,
    InsurancePolicy,
    VehicleRegistration,
)
from ..store import Record, RecordStore, Tables, eq
from ..store.fields import as_bool, as_int, extract_name, extract_text, from_millis, to_millis

logger = logging.getLogger(__name__)

DocumentT = TypeVar("DocumentT", bound=DocumentBase)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class DocumentError(Exception):
    """Base exception for document operations."""


class DocumentNotFoundError(DocumentError):
    """Raised when a document doesn't exist or has been deleted."""

    def __init__(self, document_type: DocumentType, document_id: str):
        self.document_type = document_type
        self.document_id = document_id
        super().__init__(f"{document_type.value} document {document_id} not found")


class InvalidDocumentTransitionError(DocumentError):
    """Raised for approval transitions that make no sense (e.g. reject without a reason)."""


# =============================================================================
# FIELD MAPPING
# =============================================================================

# Store field name -> model attribute, where they differ
DATE_FIELDS = {
    DocumentType.LICENSE: {"issue_date": "issue_date", "expiration_date": "expiration_date"},
    DocumentType.VEHICLE: {"expiration_date": "inspection_expiration_date"},
    DocumentType.INSURANCE: {
        "coverage_start_date": "coverage_start_date",
        "coverage_end_date": "coverage_end_date",
    },
}

TEXT_FIELDS = {
    DocumentType.LICENSE: ("license_number", "license_type"),
    DocumentType.VEHICLE: ("vehicle_number", "vehicle_type", "manufacturer", "model_name", "owner_name"),
    DocumentType.INSURANCE: ("policy_number", "insurance_company", "policy_type"),
}


def _common_fields(record: Record) -> dict[str, Any]:
    fields = record.fields
    try:
        approval_status = ApprovalStatus(fields.get("approval_status") or ApprovalStatus.PENDING.value)
    except ValueError:
        approval_status = ApprovalStatus.PENDING
    try:
        status = DocumentStatus(fields.get("status") or DocumentStatus.TEMPORARY.value)
    except ValueError:
        status = DocumentStatus.TEMPORARY
    return {
        "id": record.id,
        "employee_id": str(fields.get("employee_id") or ""),
        "status": status,
        "approval_status": approval_status,
        "rejection_reason": fields.get("rejection_reason") or None,
        "approved_at": from_millis(fields.get("approved_at")),
        "image_url": fields.get("image_url") or None,
        "deleted_flag": as_bool(fields.get("deleted_flag")),
        "deleted_at": from_millis(fields.get("deleted_at")),
        "created_at": from_millis(fields.get("created_at")),
        "updated_at": from_millis(fields.get("updated_at")),
    }


def _to_store_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_millis(value)
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# SERVICES
# =============================================================================


class DocumentService(Generic[DocumentT]):
    """CRUD and approval transitions for one document category."""

    table: ClassVar[str]
    model: ClassVar[type[DocumentBase]]
    document_type: ClassVar[DocumentType]

    def __init__(self, store: RecordStore):
        self.store = store

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    def to_model(self, record: Record) -> DocumentT:
        fields = record.fields
        values = _common_fields(record)
        for name in TEXT_FIELDS[self.document_type]:
            values[name] = extract_text(fields.get(name))
        for store_name, attr in DATE_FIELDS[self.document_type].items():
            values[attr] = from_millis(fields.get(store_name))
        values.update(self._extra_fields(fields))
        return self.model(**values)

    def _extra_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        return {}

    def to_store_fields(self, data: dict[str, Any]) -> dict[str, Any]:
        """Model attribute names -> store field names."""
        reverse = {attr: store_name for store_name, attr in DATE_FIELDS[self.document_type].items()}
        return {reverse.get(key, key): _to_store_value(value) for key, value in data.items()}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_documents(self, employee_id: str | None = None) -> list[DocumentT]:
        filters = [eq("deleted_flag", False)]
        if employee_id:
            filters.append(eq("employee_id", employee_id))
        return [self.to_model(r) for r in await self.store.list(self.table, filters)]

    async def list_pending(self) -> list[DocumentT]:
        """Approval queue."""
        records = await self.store.list(
            self.table,
            [eq("deleted_flag", False), eq("approval_status", ApprovalStatus.PENDING)],
        )
        return [self.to_model(r) for r in records]

    async def list_approved(self, employee_id: str | None = None) -> list[DocumentT]:
        """Approved, non-deleted documents; the input to issuance and monitoring."""
        filters = [eq("approval_status", ApprovalStatus.APPROVED), eq("deleted_flag", False)]
        if employee_id:
            filters.append(eq("employee_id", employee_id))
        records = await self.store.list(self.table, filters)
        # Guard against adapters with loose boolean matching
        return [doc for doc in (self.to_model(r) for r in records) if doc.is_approved]

    async def list_deleted(self) -> list[DocumentT]:
        return [self.to_model(r) for r in await self.store.list(self.table, [eq("deleted_flag", True)])]

    async def get_document(self, document_id: str, include_deleted: bool = False) -> DocumentT | None:
        record = await self.store.get(self.table, document_id)
        if record is None:
            return None
        document = self.to_model(record)
        if document.deleted_flag and not include_deleted:
            return None
        return document

    async def _require(self, document_id: str, include_deleted: bool = False) -> DocumentT:
        document = await self.get_document(document_id, include_deleted=include_deleted)
        if document is None:
            raise DocumentNotFoundError(self.document_type, document_id)
        return document

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def create_document(self, employee_id: str, payload: BaseModel) -> DocumentT:
        now = _now()
        fields = self.to_store_fields(payload.model_dump(exclude_none=True))
        fields.update({
            "employee_id": employee_id,
            "status": DocumentStatus.TEMPORARY.value,
            "approval_status": ApprovalStatus.PENDING.value,
            "deleted_flag": False,
            "created_at": to_millis(now),
            "updated_at": to_millis(now),
        })
        record = await self.store.create(self.table, fields)
        logger.info(f"Created {self.document_type.value} document {record.id} for {employee_id}")
        return self.to_model(record)

    async def update_document(self, document_id: str, changes: dict[str, Any]) -> DocumentT:
        """Edit document fields. Any edit sends the document back for review."""
        await self._require(document_id)
        fields = self.to_store_fields(changes)
        fields.update({
            "approval_status": ApprovalStatus.PENDING.value,
            "status": DocumentStatus.TEMPORARY.value,
            "rejection_reason": "",
            "updated_at": to_millis(_now()),
        })
        record = await self.store.update(self.table, document_id, fields)
        return self.to_model(record)

    async def soft_delete(self, document_id: str) -> None:
        await self._require(document_id)
        now = to_millis(_now())
        await self.store.update(
            self.table, document_id, {"deleted_flag": True, "deleted_at": now, "updated_at": now}
        )
        logger.info(f"Soft-deleted {self.document_type.value} document {document_id}")

    async def restore(self, document_id: str) -> DocumentT:
        document = await self._require(document_id, include_deleted=True)
        if not document.deleted_flag:
            return document
        record = await self.store.update(
            self.table,
            document_id,
            {"deleted_flag": False, "deleted_at": None, "updated_at": to_millis(_now())},
        )
        return self.to_model(record)

    async def approve(self, document_id: str, approver_id: str = "", approver_name: str = "") -> DocumentT:
        document = await self._require(document_id)
        now = to_millis(_now())
        record = await self.store.update(
            self.table,
            document_id,
            {
                "approval_status": ApprovalStatus.APPROVED.value,
                "status": DocumentStatus.APPROVED.value,
                "rejection_reason": "",
                "approved_at": now,
                "updated_at": now,
            },
        )
        await self._record_history(document, ApprovalStatus.APPROVED, approver_id, approver_name)
        logger.info(f"Approved {self.document_type.value} document {document_id} by {approver_id or 'system'}")
        return self.to_model(record)

    async def reject(
        self,
        document_id: str,
        reason: str,
        approver_id: str = "",
        approver_name: str = "",
    ) -> DocumentT:
        if not reason or not reason.strip():
            raise InvalidDocumentTransitionError("A rejection reason is required")
        document = await self._require(document_id)
        record = await self.store.update(
            self.table,
            document_id,
            {
                "approval_status": ApprovalStatus.REJECTED.value,
                "status": DocumentStatus.TEMPORARY.value,
                "rejection_reason": reason.strip(),
                "updated_at": to_millis(_now()),
            },
        )
        await self._record_history(document, ApprovalStatus.REJECTED, approver_id, approver_name, reason.strip())
        logger.info(f"Rejected {self.document_type.value} document {document_id}: {reason.strip()}")
        return self.to_model(record)

    async def _record_history(
        self,
        document: DocumentBase,
        action: ApprovalStatus,
        approver_id: str,
        approver_name: str,
        reason: str | None = None,
    ) -> None:
        # History is an audit aid; the status change itself already succeeded
        try:
            await self.store.create(
                Tables.APPROVAL_HISTORY,
                {
                    "application_type": self.document_type.value,
                    "application_id": document.id,
                    "employee_id": document.employee_id,
                    "action": action.value,
                    "approver_id": approver_id,
                    "approver_name": approver_name,
                    "reason": reason or "",
                    "timestamp": to_millis(_now()),
                },
            )
        except Exception as e:
            logger.error(f"Failed to record approval history for {document.id}: {e}")


class DriversLicenseService(DocumentService[DriversLicense]):
    table = Tables.DRIVERS_LICENSES
    model = DriversLicense
    document_type = DocumentType.LICENSE


class VehicleRegistrationService(DocumentService[VehicleRegistration]):
    table = Tables.VEHICLE_REGISTRATIONS
    model = VehicleRegistration
    document_type = DocumentType.VEHICLE


class InsurancePolicyService(DocumentService[InsurancePolicy]):
    table = Tables.INSURANCE_POLICIES
    model = InsurancePolicy
    document_type = DocumentType.INSURANCE

    def _extra_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        insured = fields.get("insured_amount")
        return {
            "insured_amount": as_int(insured) if insured not in (None, "") else None,
            "liability_personal_unlimited": as_bool(fields.get("liability_personal_unlimited")),
            "liability_property_amount": as_int(fields.get("liability_property_amount")),
            "passenger_injury_amount": as_int(fields.get("passenger_injury_amount")),
        }


DOCUMENT_SERVICES: dict[DocumentType, type[DocumentService]] = {
    DocumentType.LICENSE: DriversLicenseService,
    DocumentType.VEHICLE: VehicleRegistrationService,
    DocumentType.INSURANCE: InsurancePolicyService,
}


def get_document_service(document_type: DocumentType, store: RecordStore) -> DocumentService:
    return DOCUMENT_SERVICES[DocumentType(document_type)](store)


async def list_approval_history(store: RecordStore, employee_id: str | None = None) -> list[ApprovalHistoryEntry]:
    """Approval decisions, newest first."""
    filters = [eq("employee_id", employee_id)] if employee_id else []
    entries = []
    for record in await store.list(Tables.APPROVAL_HISTORY, filters):
        fields = record.fields
        entries.append(
            ApprovalHistoryEntry(
                id=record.id,
                application_type=fields.get("application_type") or DocumentType.LICENSE.value,
                application_id=str(fields.get("application_id") or ""),
                employee_id=str(fields.get("employee_id") or ""),
                employee_name=extract_name(fields.get("employee_name")),
                action=fields.get("action") or ApprovalStatus.APPROVED.value,
                approver_id=str(fields.get("approver_id") or ""),
                approver_name=extract_name(fields.get("approver_name")),
                reason=fields.get("reason") or None,
                timestamp=from_millis(fields.get("timestamp")),
            )
        )
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    entries.sort(key=lambda e: e.timestamp or epoch, reverse=True)
    return entries
