"""Pure date and status helpers shared by permits and expiration monitoring."""

import math
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from ..schemas import Permit, PermitStatus

ONE_DAY = timedelta(days=1)

STATUS_LABELS = {
    PermitStatus.VALID: "Active",
    PermitStatus.EXPIRED: "Expired",
    PermitStatus.REVOKED: "Revoked",
}
UNKNOWN_STATUS_LABEL = "Unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_expiration(
    license_expiration: datetime,
    vehicle_expiration: datetime,
    insurance_expiration: datetime,
) -> datetime:
    """A permit is only as good as its earliest-expiring document."""
    return min(license_expiration, vehicle_expiration, insurance_expiration)


def days_until_expiration(expiration: datetime, now: datetime | None = None) -> int:
    """Whole days left, rounded up; negative once the date has passed.

    A document expiring in 30 hours has 2 days left, not 1.
    """
    now = now or _utcnow()
    return math.ceil((expiration - now) / ONE_DAY)


def days_overdue(expiration: datetime, now: datetime | None = None) -> int:
    """Whole days since expiry, rounded up (1 for anything under a day)."""
    now = now or _utcnow()
    return math.ceil((now - expiration) / ONE_DAY)


def is_permit_valid(permit: Permit, now: datetime | None = None) -> bool:
    if permit.status != PermitStatus.VALID or permit.expiration_date is None:
        return False
    return permit.expiration_date > (now or _utcnow())


def get_status_label(status: str) -> str:
    try:
        return STATUS_LABELS[PermitStatus(status)]
    except ValueError:
        return UNKNOWN_STATUS_LABEL


def format_date(value: datetime, tz: str | None = None) -> str:
    """`YYYY年MM月DD日`, converted to `tz` first when given."""
    if tz:
        value = value.astimezone(ZoneInfo(tz))
    return f"{value.year:04d}年{value.month:02d}月{value.day:02d}日"


def format_date_slash(value: datetime, tz: str | None = None) -> str:
    """`YYYY/MM/DD`, used in notification messages."""
    if tz:
        value = value.astimezone(ZoneInfo(tz))
    return f"{value.year:04d}/{value.month:02d}/{value.day:02d}"


def build_verification_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/verify/{token}"
