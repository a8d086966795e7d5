"""Shared fixtures: in-memory store, seeded documents, fake renderer and channel."""

from datetime import datetime, timedelta, timezone

import pytest

from commute_permit.core.config import Settings
from commute_permit.services.file_storage import PermitFileStorage
from commute_permit.services.notification_service import NotificationChannel, NotificationMessage
from commute_permit.services.permits import PermitService, VehicleLocks
from commute_permit.store import MemoryRecordStore, Record, RecordStoreError, Tables
from commute_permit.store.fields import to_millis

FAKE_PDF = b"%PDF-fake"


def days_from_now(days: float, now: datetime | None = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + timedelta(days=days)


# =============================================================================
# FAKES
# =============================================================================


class FakeRenderer:
    """Stands in for reportlab; records what would have been printed."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def __call__(self, data) -> bytes:
        self.calls.append(data)
        if self.fail:
            raise RuntimeError("renderer exploded")
        return FAKE_PDF


class RecordingChannel(NotificationChannel):
    """Collects messages. Recipients in `fail_for` get False, in `raise_for` an exception."""

    def __init__(self, fail_for=(), raise_for=()):
        self.sent: list[tuple[str, NotificationMessage]] = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.closed = False

    async def send(self, recipient_id: str, message: NotificationMessage) -> bool:
        if recipient_id in self.raise_for:
            raise ConnectionError(f"cannot reach {recipient_id}")
        if recipient_id in self.fail_for:
            return False
        self.sent.append((recipient_id, message))
        return True

    async def close(self) -> None:
        self.closed = True

    def recipients(self) -> list[str]:
        return [recipient for recipient, _ in self.sent]


class FailingTableStore(MemoryRecordStore):
    """Memory store whose listed tables raise on read."""

    def __init__(self, failing_tables):
        super().__init__()
        self.failing_tables = set(failing_tables)

    async def list(self, table, filters=(), *, limit=None):
        if table in self.failing_tables:
            raise RecordStoreError(f"{table} is unavailable")
        return await super().list(table, filters, limit=limit)


class Seeder:
    """Writes raw rows the way the system of record stores them."""

    def __init__(self, store: MemoryRecordStore):
        self.store = store

    async def employee(
        self,
        employee_id: str = "E001",
        name: str = "山田 太郎",
        email: str = "taro@example.com",
        lark_user_id: str = "ou_taro",
        retired: bool = False,
    ) -> Record:
        return await self.store.create(
            Tables.EMPLOYEES,
            {
                "employee_id": employee_id,
                "employee_name": name,
                "email": email,
                "lark_user_id": lark_user_id,
                "retired": retired,
            },
        )

    async def admin(self, lark_user_id: str = "ou_admin", name: str = "Admin") -> Record:
        return await self.store.create(
            Tables.USER_PERMISSIONS,
            {"lark_user_id": lark_user_id, "user_name": name, "role": "admin"},
        )

    def _document_fields(
        self,
        employee_id: str,
        approval_status: str,
        approved_at: datetime | None,
        deleted: bool,
    ) -> dict:
        now = datetime.now(timezone.utc)
        fields = {
            "employee_id": employee_id,
            "approval_status": approval_status,
            "status": "approved" if approval_status == "approved" else "temporary",
            "deleted_flag": deleted,
            "created_at": to_millis(now),
            "updated_at": to_millis(now),
        }
        if approved_at is not None:
            fields["approved_at"] = to_millis(approved_at)
        return fields

    async def license(
        self,
        employee_id: str = "E001",
        expires: datetime | None = None,
        approval_status: str = "approved",
        approved_at: datetime | None = None,
        deleted: bool = False,
        number: str = "L-0001",
    ) -> Record:
        fields = self._document_fields(employee_id, approval_status, approved_at, deleted)
        fields["license_number"] = number
        if expires is not None:
            fields["expiration_date"] = to_millis(expires)
        return await self.store.create(Tables.DRIVERS_LICENSES, fields)

    async def vehicle(
        self,
        employee_id: str = "E001",
        expires: datetime | None = None,
        approval_status: str = "approved",
        approved_at: datetime | None = None,
        deleted: bool = False,
        number: str = "品川 300 あ 12-34",
        manufacturer: str = "Toyota",
        model_name: str = "Prius",
    ) -> Record:
        fields = self._document_fields(employee_id, approval_status, approved_at, deleted)
        fields.update({
            "vehicle_number": number,
            "manufacturer": manufacturer,
            "model_name": model_name,
        })
        if expires is not None:
            fields["expiration_date"] = to_millis(expires)
        return await self.store.create(Tables.VEHICLE_REGISTRATIONS, fields)

    async def insurance(
        self,
        employee_id: str = "E001",
        expires: datetime | None = None,
        approval_status: str = "approved",
        approved_at: datetime | None = None,
        deleted: bool = False,
        number: str = "P-0001",
        personal_unlimited: bool = True,
        property_amount: int = 50_000_000,
        passenger_amount: int = 20_000_000,
    ) -> Record:
        fields = self._document_fields(employee_id, approval_status, approved_at, deleted)
        fields.update({
            "policy_number": number,
            "liability_personal_unlimited": personal_unlimited,
            "liability_property_amount": property_amount,
            "passenger_injury_amount": passenger_amount,
        })
        if expires is not None:
            fields["coverage_end_date"] = to_millis(expires)
        return await self.store.create(Tables.INSURANCE_POLICIES, fields)

    async def eligible_employee(
        self,
        employee_id: str = "E001",
        license_days: float = 400,
        vehicle_days: float = 200,
        insurance_days: float = 300,
    ) -> dict[str, Record]:
        """An employee with every document approved and compliant insurance."""
        return {
            "employee": await self.employee(employee_id=employee_id),
            "license": await self.license(employee_id, expires=days_from_now(license_days)),
            "vehicle": await self.vehicle(employee_id, expires=days_from_now(vehicle_days)),
            "insurance": await self.insurance(employee_id, expires=days_from_now(insurance_days)),
        }


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def seed(store: MemoryRecordStore) -> Seeder:
    return Seeder(store)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="https://permits.example.com",
        notification_send_interval_seconds=0,
        company_name="Example Corp",
        issuing_department="General Affairs",
    )


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def storage(settings: Settings) -> PermitFileStorage:
    return PermitFileStorage(settings.upload_dir)


@pytest.fixture
def permit_service(store, storage, renderer, settings) -> PermitService:
    return PermitService(
        store,
        storage=storage,
        renderer=renderer,
        settings=settings,
        locks=VehicleLocks(),
    )


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()
