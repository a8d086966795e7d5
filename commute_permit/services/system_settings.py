"""Runtime-editable settings kept as key/value rows in the record store."""

from dataclasses import asdict, dataclass, fields as dataclass_fields
from datetime import datetime, timezone
import logging

from ..core.config import Settings
from ..schemas import DocumentType
from ..store import RecordStore, Tables
from ..store.fields import as_int, extract_text, to_millis

logger = logging.getLogger(__name__)


@dataclass
class SystemSettings:
    """Thresholds for expiration monitoring plus company details for permits."""

    license_expiry_warning_days: int = 30
    vehicle_expiry_warning_days: int = 30
    insurance_expiry_warning_days: int = 30
    admin_notification_after_days: int = 7
    company_name: str = ""
    company_postal_code: str = ""
    company_address: str = ""
    issuing_department: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "SystemSettings":
        """Defaults come from the environment configuration."""
        return cls(
            license_expiry_warning_days=settings.license_expiry_warning_days,
            vehicle_expiry_warning_days=settings.vehicle_expiry_warning_days,
            insurance_expiry_warning_days=settings.insurance_expiry_warning_days,
            admin_notification_after_days=settings.admin_notification_after_days,
            company_name=settings.company_name,
            company_postal_code=settings.company_postal_code,
            company_address=settings.company_address,
            issuing_department=settings.issuing_department,
        )

    def warning_days(self, document_type: DocumentType) -> int:
        return {
            DocumentType.LICENSE: self.license_expiry_warning_days,
            DocumentType.VEHICLE: self.vehicle_expiry_warning_days,
            DocumentType.INSURANCE: self.insurance_expiry_warning_days,
        }[DocumentType(document_type)]


NUMERIC_KEYS = {
    "license_expiry_warning_days",
    "vehicle_expiry_warning_days",
    "insurance_expiry_warning_days",
    "admin_notification_after_days",
}
KNOWN_KEYS = {f.name for f in dataclass_fields(SystemSettings)}


class SystemSettingsService:
    """Reads and writes the `system_settings` table (one row per key)."""

    def __init__(self, store: RecordStore, defaults: SystemSettings | None = None):
        self.store = store
        self.defaults = defaults or SystemSettings()

    async def get_settings(self) -> SystemSettings:
        """Stored values over defaults. Falls back to defaults if the store fails."""
        try:
            records = await self.store.list(Tables.SYSTEM_SETTINGS)
        except Exception as e:
            logger.error(f"Failed to load system settings, using defaults: {e}")
            return SystemSettings(**asdict(self.defaults))

        values = asdict(self.defaults)
        for record in records:
            key = str(record.get("setting_key") or "")
            if key not in KNOWN_KEYS:
                continue
            raw = record.get("setting_value")
            if key in NUMERIC_KEYS:
                values[key] = as_int(raw, default=values[key])
            else:
                values[key] = extract_text(raw)
        return SystemSettings(**values)

    async def update_settings(self, changes: dict[str, object], updated_by: str = "") -> SystemSettings:
        """Upsert each known key. Unknown keys are ignored."""
        existing = {
            str(r.get("setting_key")): r.id
            for r in await self.store.list(Tables.SYSTEM_SETTINGS)
        }
        now = to_millis(datetime.now(timezone.utc))

        for key, value in changes.items():
            if key not in KNOWN_KEYS or value is None:
                continue
            row = {
                "setting_key": key,
                "setting_value": str(value),
                "updated_by": updated_by,
                "updated_at": now,
            }
            if key in existing:
                await self.store.update(Tables.SYSTEM_SETTINGS, existing[key], row)
            else:
                await self.store.create(Tables.SYSTEM_SETTINGS, row)
            logger.info(f"System setting {key} updated by {updated_by or 'unknown'}")

        return await self.get_settings()

