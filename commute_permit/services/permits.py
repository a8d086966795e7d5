"""
Permit Lifecycle: issuance, supersession, verification and download.

Invariants:
1. At most one `valid` permit per vehicle. Issuance revokes the previous
   one before creating the new record, under a per-vehicle lock.
2. A permit's expiration is the earliest of its license, inspection and
   insurance dates at issuance time.
3. Stored status only changes on explicit revocation; date expiry is
   evaluated at read time.
4. Issuance preconditions are returned as values, never raised, and
   nothing is written until every precondition holds.
5. Issuing for a whole employee keeps a vehicle's valid permit when its
   expiration is unchanged (within a day); otherwise it is superseded.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import uuid4
import logging

from ..core.config import Settings, get_settings
from ..schemas import (
    DocumentBase,
    Employee,
    InsurancePolicy,
    Permit,
    PermitStatus,
    PermitSummary,
    VehicleRegistration,
)
from ..store import Record, RecordStore, Tables, eq
from ..store.fields import BROKEN_OBJECT_STRING, extract_name, extract_text, from_millis, to_millis
from .documents import DriversLicenseService, InsurancePolicyService, VehicleRegistrationService
from .employees import EmployeeService
from .file_storage import PermitFileStorage
from .pdf_generator import PermitPdfData, render_permit_pdf
from .permit_utils import (
    build_verification_url,
    calculate_expiration,
    format_date,
    get_status_label,
    is_permit_valid,
)
from .system_settings import SystemSettings, SystemSettingsService

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"
FALLBACK_VALIDITY = timedelta(days=365)
DEFAULT_BASE_URL = "http://localhost:8000"
# Expirations closer than this count as unchanged when re-issuing after approval
SAME_EXPIRATION_TOLERANCE = timedelta(days=1)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class PermitError(Exception):
    """Base exception for permit operations."""


class PermitNotFoundError(PermitError):
    """Raised when a permit doesn't exist."""

    def __init__(self, permit_id: str):
        self.permit_id = permit_id
        super().__init__(f"Permit {permit_id} not found")


# =============================================================================
# RESULT TYPES
# =============================================================================


class IssueFailureReason(str, Enum):
    """Why issuance was refused. Each maps to a user-facing message."""

    EMPLOYEE_NOT_FOUND = "employee_not_found"
    NO_APPROVED_LICENSE = "no_approved_license"
    VEHICLE_NOT_FOUND = "vehicle_not_found"
    VEHICLE_NOT_APPROVED = "vehicle_not_approved"
    NO_APPROVED_INSURANCE = "no_approved_insurance"
    INSURANCE_REQUIREMENTS_NOT_MET = "insurance_requirements_not_met"
    MISSING_EXPIRATION_DATE = "missing_expiration_date"


FAILURE_MESSAGES = {
    IssueFailureReason.EMPLOYEE_NOT_FOUND: "Employee not found",
    IssueFailureReason.NO_APPROVED_LICENSE: "No approved driver's license",
    IssueFailureReason.VEHICLE_NOT_FOUND: "Vehicle not found",
    IssueFailureReason.VEHICLE_NOT_APPROVED: "Vehicle registration is not approved",
    IssueFailureReason.NO_APPROVED_INSURANCE: "No approved insurance policy",
    IssueFailureReason.INSURANCE_REQUIREMENTS_NOT_MET: "Insurance does not meet company requirements",
    IssueFailureReason.MISSING_EXPIRATION_DATE: "An approved document has no expiration date",
}


@dataclass
class RequirementFailure:
    """One unmet insurance coverage condition."""

    code: str
    field: str
    message: str


@dataclass
class PermitIssueResult:
    """Outcome for one vehicle. `skipped` means the current permit was kept."""

    permit: Permit | None = None
    reason: IssueFailureReason | None = None
    details: list[RequirementFailure] = field(default_factory=list)
    skipped: bool = False

    @property
    def success(self) -> bool:
        return self.permit is not None

    @property
    def message(self) -> str:
        if self.skipped:
            return "Permit already up to date"
        if self.reason is None:
            return "Permit issued"
        return FAILURE_MESSAGES[self.reason]

    @classmethod
    def failure(
        cls,
        reason: IssueFailureReason,
        details: list[RequirementFailure] | None = None,
    ) -> "PermitIssueResult":
        return cls(reason=reason, details=details or [])


class VerifyMessage:
    NOT_FOUND = "Permit not found"
    REVOKED = "This permit has been revoked"
    EXPIRED = "This permit has expired"
    VALID = "Valid permit"


@dataclass
class VerificationResult:
    valid: bool
    message: str
    permit: PermitSummary | None = None


@dataclass
class PermitDownload:
    filename: str
    content: bytes
    regenerated: bool = False


@dataclass
class _Issuance:
    """What a permit is built from once every precondition holds."""

    employee: Employee
    vehicle: VehicleRegistration
    expiration: datetime


# =============================================================================
# RULES
# =============================================================================


def check_insurance_requirements(
    policy: InsurancePolicy,
    min_property_amount: int = 50_000_000,
    min_passenger_amount: int = 20_000_000,
) -> list[RequirementFailure]:
    """Every coverage condition the policy fails; empty when compliant."""
    failures = []
    if not policy.liability_personal_unlimited:
        failures.append(RequirementFailure(
            code="personal_liability_not_unlimited",
            field="liability_personal_unlimited",
            message="Personal liability coverage must be unlimited",
        ))
    if policy.liability_property_amount < min_property_amount:
        failures.append(RequirementFailure(
            code="property_liability_insufficient",
            field="liability_property_amount",
            message=f"Property liability coverage must be at least {min_property_amount:,}",
        ))
    if policy.passenger_injury_amount < min_passenger_amount:
        failures.append(RequirementFailure(
            code="passenger_injury_insufficient",
            field="passenger_injury_amount",
            message=f"Passenger injury coverage must be at least {min_passenger_amount:,}",
        ))
    return failures


def pick_document(documents: list[DocumentBase]) -> DocumentBase | None:
    """Most recently approved wins; ties fall back to creation time, then id."""
    if not documents:
        return None
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return max(
        documents,
        key=lambda d: (d.approved_at or d.updated_at or epoch, d.created_at or epoch, d.id),
    )


def _is_blank(value: str | None) -> bool:
    return not value or not value.strip() or value == BROKEN_OBJECT_STRING


class VehicleLocks:
    """One asyncio.Lock per vehicle id, held only while someone uses it.

    Narrows the revoke-then-create window. An entry is dropped as soon as
    its last holder or waiter leaves, so the registry stays bounded by the
    number of vehicles being issued concurrently.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def __call__(self, vehicle_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(vehicle_id, asyncio.Lock())
        self._users[vehicle_id] = self._users.get(vehicle_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[vehicle_id] -= 1
            if not self._users[vehicle_id]:
                del self._users[vehicle_id]
                del self._locks[vehicle_id]


_vehicle_locks = VehicleLocks()


# =============================================================================
# SERVICE
# =============================================================================


class PermitService:
    """Permit lifecycle over the record store."""

    def __init__(
        self,
        store: RecordStore,
        storage: PermitFileStorage | None = None,
        renderer: Callable[[PermitPdfData], bytes] = render_permit_pdf,
        settings: Settings | None = None,
        locks: VehicleLocks | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.storage = storage or PermitFileStorage(self.settings.upload_dir)
        self.renderer = renderer
        self.locks = locks if locks is not None else _vehicle_locks

        self.employees = EmployeeService(store)
        self.licenses = DriversLicenseService(store)
        self.vehicles = VehicleRegistrationService(store)
        self.insurance = InsurancePolicyService(store)
        self.system_settings = SystemSettingsService(store, SystemSettings.from_settings(self.settings))

    # -------------------------------------------------------------------------
    # Mapping and read-time repair
    # -------------------------------------------------------------------------

    def _to_permit(self, record: Record) -> Permit:
        fields = record.fields
        try:
            status = PermitStatus(fields.get("status") or PermitStatus.VALID.value)
        except ValueError:
            logger.warning(f"Permit {record.id} has unknown status {fields.get('status')!r}")
            status = PermitStatus.EXPIRED
        return Permit(
            id=record.id,
            employee_id=str(fields.get("employee_id") or ""),
            employee_name=extract_name(fields.get("employee_name")),
            vehicle_id=str(fields.get("vehicle_id") or ""),
            vehicle_number=extract_text(fields.get("vehicle_number")),
            vehicle_model=extract_text(fields.get("vehicle_model")),
            manufacturer=extract_text(fields.get("manufacturer")),
            model_name=extract_text(fields.get("model_name")),
            issue_date=from_millis(fields.get("issue_date")),
            expiration_date=from_millis(fields.get("expiration_date")),
            permit_file_key=extract_text(fields.get("permit_file_key")),
            verification_token=str(fields.get("verification_token") or ""),
            status=status,
            created_at=from_millis(fields.get("created_at")),
            updated_at=from_millis(fields.get("updated_at")),
        )

    async def _heal(self, permit: Permit, names: dict[str, str] | None = None) -> Permit:
        """Fill broken display fields from their source records, else "Unknown"."""
        changes: dict[str, str] = {}

        if _is_blank(permit.employee_name):
            name = (names or {}).get(permit.employee_id, "")
            if not name:
                try:
                    employee = await self.employees.get_employee(permit.employee_id)
                    name = employee.employee_name if employee else ""
                except Exception as e:
                    logger.warning(f"Could not re-fetch employee {permit.employee_id}: {e}")
            changes["employee_name"] = name or UNKNOWN_LABEL

        if _is_blank(permit.vehicle_model) or _is_blank(permit.vehicle_number):
            model = " ".join(p for p in (permit.manufacturer, permit.model_name) if not _is_blank(p))
            number = permit.vehicle_number
            if not model or _is_blank(number):
                try:
                    vehicle = await self.vehicles.get_document(permit.vehicle_id, include_deleted=True)
                except Exception as e:
                    logger.warning(f"Could not re-fetch vehicle {permit.vehicle_id}: {e}")
                    vehicle = None
                if vehicle is not None:
                    model = model or vehicle.display_model
                    number = number if not _is_blank(number) else vehicle.vehicle_number
            if _is_blank(permit.vehicle_model):
                changes["vehicle_model"] = model or UNKNOWN_LABEL
            if _is_blank(permit.vehicle_number):
                changes["vehicle_number"] = number if not _is_blank(number) else UNKNOWN_LABEL

        return permit.model_copy(update=changes) if changes else permit

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_permits(self, employee_id: str | None = None) -> list[Permit]:
        filters = [eq("employee_id", employee_id)] if employee_id else []
        records = await self.store.list(Tables.PERMITS, filters)
        permits = [self._to_permit(r) for r in records]

        names: dict[str, str] = {}
        if any(_is_blank(p.employee_name) for p in permits):
            try:
                names = await self.employees.name_map()
            except Exception as e:
                logger.warning(f"Could not load employee names for permit list: {e}")
        return [await self._heal(p, names) for p in permits]

    async def get_permit(self, permit_id: str) -> Permit | None:
        record = await self.store.get(Tables.PERMITS, permit_id)
        if record is None:
            return None
        return await self._heal(self._to_permit(record))

    async def get_permit_by_token(self, token: str) -> Permit | None:
        if not token:
            return None
        records = await self.store.list(Tables.PERMITS, [eq("verification_token", token)], limit=1)
        if not records:
            return None
        return await self._heal(self._to_permit(records[0]))

    async def get_valid_permits_for_vehicle(self, vehicle_id: str) -> list[Permit]:
        records = await self.store.list(
            Tables.PERMITS,
            [eq("vehicle_id", vehicle_id), eq("status", PermitStatus.VALID)],
        )
        return [self._to_permit(r) for r in records]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def revoke_existing_permit(self, vehicle_id: str) -> int:
        """Revoke every valid permit for the vehicle. Returns how many were revoked."""
        revoked = 0
        for permit in await self.get_valid_permits_for_vehicle(vehicle_id):
            await self.store.update(
                Tables.PERMITS,
                permit.id,
                {"status": PermitStatus.REVOKED.value, "updated_at": to_millis(datetime.now(timezone.utc))},
            )
            logger.info(f"Revoked permit {permit.id} for vehicle {vehicle_id}")
            revoked += 1
        return revoked

    async def issue_permit(
        self,
        employee_id: str,
        vehicle_id: str,
        base_url: str | None = None,
    ) -> PermitIssueResult:
        """Issue a permit for one of the employee's approved vehicles.

        Preconditions are checked in order (employee, license, vehicle,
        insurance, coverage) and the first failure is returned without any
        write. A PDF failure after the record exists is tolerated: the file
        key stays empty and the PDF is rebuilt on download.
        """
        prepared = await self._prepare(employee_id, vehicle_id)
        if isinstance(prepared, PermitIssueResult):
            return prepared
        return await self._create(prepared, base_url)

    async def has_full_approval(self, employee_id: str) -> bool:
        """An approved license, insurance policy and at least one vehicle."""
        if not employee_id:
            return False
        return all([
            await self.licenses.list_approved(employee_id),
            await self.vehicles.list_approved(employee_id),
            await self.insurance.list_approved(employee_id),
        ])

    async def issue_for_employee(
        self,
        employee_id: str,
        base_url: str | None = None,
        force: bool = False,
    ) -> dict[str, PermitIssueResult]:
        """Issue permits for every approved vehicle of the employee, keyed by vehicle id.

        A vehicle whose valid permit already carries the same expiration
        (within a day) keeps it unless `force` is set; otherwise the old
        permit is revoked and a new one issued.
        """
        if not employee_id:
            return {}
        results: dict[str, PermitIssueResult] = {}
        for vehicle in await self.vehicles.list_approved(employee_id):
            prepared = await self._prepare(employee_id, vehicle.id)
            if isinstance(prepared, PermitIssueResult):
                logger.warning(f"Cannot issue permit for vehicle {vehicle.id}: {prepared.message}")
                results[vehicle.id] = prepared
                continue
            results[vehicle.id] = await self._create(prepared, base_url, keep_current=not force)
        return results

    async def _prepare(self, employee_id: str, vehicle_id: str) -> _Issuance | PermitIssueResult:
        """Check every precondition; the first failure is returned as a result."""
        employee = await self.employees.get_employee(employee_id)
        if employee is None:
            return PermitIssueResult.failure(IssueFailureReason.EMPLOYEE_NOT_FOUND)

        license_ = pick_document(await self.licenses.list_approved(employee_id))
        if license_ is None:
            return PermitIssueResult.failure(IssueFailureReason.NO_APPROVED_LICENSE)

        vehicle = await self.vehicles.get_document(vehicle_id)
        if vehicle is None or vehicle.employee_id != employee_id:
            return PermitIssueResult.failure(IssueFailureReason.VEHICLE_NOT_FOUND)
        if not vehicle.is_approved:
            return PermitIssueResult.failure(IssueFailureReason.VEHICLE_NOT_APPROVED)

        insurance = pick_document(await self.insurance.list_approved(employee_id))
        if insurance is None:
            return PermitIssueResult.failure(IssueFailureReason.NO_APPROVED_INSURANCE)

        unmet = check_insurance_requirements(
            insurance,
            self.settings.min_property_liability_amount,
            self.settings.min_passenger_injury_amount,
        )
        if unmet:
            return PermitIssueResult.failure(IssueFailureReason.INSURANCE_REQUIREMENTS_NOT_MET, unmet)

        dates = (license_.expires_at, vehicle.expires_at, insurance.expires_at)
        if any(d is None for d in dates):
            return PermitIssueResult.failure(IssueFailureReason.MISSING_EXPIRATION_DATE)
        return _Issuance(employee=employee, vehicle=vehicle, expiration=calculate_expiration(*dates))

    async def _create(
        self,
        prepared: _Issuance,
        base_url: str | None,
        keep_current: bool = False,
    ) -> PermitIssueResult:
        employee, vehicle, expiration = prepared.employee, prepared.vehicle, prepared.expiration
        vehicle_id = vehicle.id

        now = datetime.now(timezone.utc)
        if expiration <= now:
            logger.warning(
                f"Issuing permit for vehicle {vehicle_id} with an expiration in the past ({expiration.isoformat()})"
            )

        async with self.locks(vehicle_id):
            if keep_current:
                for current in await self.get_valid_permits_for_vehicle(vehicle_id):
                    if (
                        current.expiration_date is not None
                        and abs(current.expiration_date - expiration) < SAME_EXPIRATION_TOLERANCE
                    ):
                        logger.info(f"Permit {current.id} for vehicle {vehicle_id} is current; not re-issuing")
                        return PermitIssueResult(permit=current, skipped=True)

            await self.revoke_existing_permit(vehicle_id)
            record = await self.store.create(
                Tables.PERMITS,
                {
                    "employee_id": vehicle.employee_id,
                    "employee_name": employee.employee_name,
                    "vehicle_id": vehicle_id,
                    "vehicle_number": vehicle.vehicle_number,
                    "vehicle_model": vehicle.display_model or UNKNOWN_LABEL,
                    "manufacturer": vehicle.manufacturer,
                    "model_name": vehicle.model_name,
                    "issue_date": to_millis(now),
                    "expiration_date": to_millis(expiration),
                    "permit_file_key": "",
                    "verification_token": str(uuid4()),
                    "status": PermitStatus.VALID.value,
                    "created_at": to_millis(now),
                    "updated_at": to_millis(now),
                },
            )
        permit = self._to_permit(record)
        logger.info(f"Issued permit {permit.id} for employee {vehicle.employee_id}, vehicle {vehicle_id}")

        try:
            file_key = await self._render_and_store(permit, base_url)
        except Exception as e:
            logger.error(f"PDF generation failed for permit {permit.id}; it will be rebuilt on download: {e}")
            return PermitIssueResult(permit=permit)

        record = await self.store.update(
            Tables.PERMITS,
            permit.id,
            {"permit_file_key": file_key, "updated_at": to_millis(datetime.now(timezone.utc))},
        )
        return PermitIssueResult(permit=self._to_permit(record))

    async def verify(self, token: str, now: datetime | None = None) -> VerificationResult:
        """Public status lookup. Revocation is reported before date expiry."""
        now = now or datetime.now(timezone.utc)
        permit = await self.get_permit_by_token(token)
        if permit is None:
            return VerificationResult(valid=False, message=VerifyMessage.NOT_FOUND)

        summary = self.summarize(permit)
        if permit.status == PermitStatus.REVOKED:
            return VerificationResult(valid=False, message=VerifyMessage.REVOKED, permit=summary)
        if not is_permit_valid(permit, now):
            return VerificationResult(valid=False, message=VerifyMessage.EXPIRED, permit=summary)
        return VerificationResult(valid=True, message=VerifyMessage.VALID, permit=summary)

    def summarize(self, permit: Permit) -> PermitSummary:
        tz = self.settings.display_timezone
        return PermitSummary(
            employee_name=permit.employee_name,
            vehicle_number=permit.vehicle_number,
            vehicle_model=permit.vehicle_model,
            issue_date=format_date(permit.issue_date, tz) if permit.issue_date else "",
            expiration_date=format_date(permit.expiration_date, tz) if permit.expiration_date else "",
            status=permit.status,
            status_label=get_status_label(permit.status),
        )

    async def download_permit(self, permit_id: str, base_url: str | None = None) -> PermitDownload | None:
        """Stored PDF, or a freshly rendered one when the file is gone."""
        permit = await self.get_permit(permit_id)
        if permit is None:
            return None

        filename = f"permit_{permit.employee_name}_{permit.vehicle_number}.pdf"
        content = await self.storage.read(permit.permit_file_key)
        if content is not None:
            return PermitDownload(filename=filename, content=content)

        logger.info(f"Permit file for {permit_id} missing; regenerating")
        data = await self._pdf_data(permit, base_url)
        content = await asyncio.to_thread(self.renderer, data)

        # Persist the rebuilt file so the next download is a plain read
        try:
            file_key = await self.storage.save(content)
            await self.store.update(
                Tables.PERMITS,
                permit.id,
                {"permit_file_key": file_key, "updated_at": to_millis(datetime.now(timezone.utc))},
            )
        except Exception as e:
            logger.warning(f"Could not persist regenerated PDF for {permit_id}: {e}")

        return PermitDownload(filename=filename, content=content, regenerated=True)

    async def regenerate_permit(self, permit_id: str, base_url: str | None = None) -> Permit:
        """Re-render the PDF (e.g. after company details change)."""
        permit = await self.get_permit(permit_id)
        if permit is None:
            raise PermitNotFoundError(permit_id)
        file_key = await self._render_and_store(permit, base_url)
        record = await self.store.update(
            Tables.PERMITS,
            permit.id,
            {"permit_file_key": file_key, "updated_at": to_millis(datetime.now(timezone.utc))},
        )
        logger.info(f"Regenerated PDF for permit {permit_id}")
        return await self._heal(self._to_permit(record))

    # -------------------------------------------------------------------------
    # PDF helpers
    # -------------------------------------------------------------------------

    def _base_url(self, base_url: str | None) -> str:
        resolved = base_url or self.settings.public_base_url
        if not resolved:
            if self.settings.environment == "production":
                logger.warning("PUBLIC_BASE_URL is not set; verification URLs will point at localhost")
            resolved = DEFAULT_BASE_URL
        return resolved

    async def _pdf_data(self, permit: Permit, base_url: str | None) -> PermitPdfData:
        """Printable data, substituting now / now + 1 year for missing dates."""
        now = datetime.now(timezone.utc)
        company = await self.system_settings.get_settings()
        token = permit.verification_token or permit.id
        return PermitPdfData(
            permit_id=permit.id,
            employee_name=permit.employee_name,
            vehicle_number=permit.vehicle_number,
            vehicle_model=permit.vehicle_model,
            issue_date=permit.issue_date or now,
            expiration_date=permit.expiration_date or now + FALLBACK_VALIDITY,
            verification_url=build_verification_url(self._base_url(base_url), token),
            company_name=company.company_name,
            company_postal_code=company.company_postal_code,
            company_address=company.company_address,
            issuing_department=company.issuing_department,
            timezone=self.settings.display_timezone,
        )

    async def _render_and_store(self, permit: Permit, base_url: str | None) -> str:
        data = await self._pdf_data(permit, base_url)
        content = await asyncio.to_thread(self.renderer, data)
        return await self.storage.save(content)
