"""Tests for the pure permit date and status helpers."""

from datetime import datetime, timedelta, timezone

from commute_permit.schemas import Permit, PermitStatus
from commute_permit.services.expiration import classify
from commute_permit.services.permit_utils import (
    build_verification_url,
    calculate_expiration,
    days_overdue,
    days_until_expiration,
    format_date,
    format_date_slash,
    get_status_label,
    is_permit_valid,
)

NOW = datetime(2025, 6, 1, 3, 0, tzinfo=timezone.utc)


def make_permit(status: PermitStatus = PermitStatus.VALID, expires: datetime | None = None) -> Permit:
    return Permit(
        id="recpermit",
        employee_id="E001",
        vehicle_id="recvehicle",
        verification_token="token",
        status=status,
        expiration_date=expires,
    )


# =============================================================================
# TEST: EXPIRATION CALCULATION
# =============================================================================


class TestCalculateExpiration:
    def test_earliest_date_wins(self):
        license_exp = datetime(2027, 1, 1, tzinfo=timezone.utc)
        vehicle_exp = datetime(2025, 12, 31, tzinfo=timezone.utc)
        insurance_exp = datetime(2026, 3, 31, tzinfo=timezone.utc)

        assert calculate_expiration(license_exp, vehicle_exp, insurance_exp) == vehicle_exp

    def test_equal_dates(self):
        same = datetime(2026, 4, 1, tzinfo=timezone.utc)
        assert calculate_expiration(same, same, same) == same


class TestDayCounting:
    def test_partial_days_round_up(self):
        """30 hours left counts as 2 days."""
        assert days_until_expiration(NOW + timedelta(hours=30), NOW) == 2

    def test_exact_days(self):
        assert days_until_expiration(NOW + timedelta(days=30), NOW) == 30

    def test_expiring_right_now_is_zero(self):
        assert days_until_expiration(NOW, NOW) == 0

    def test_days_overdue_rounds_up(self):
        assert days_overdue(NOW - timedelta(hours=1), NOW) == 1
        assert days_overdue(NOW - timedelta(days=3), NOW) == 3


class TestClassify:
    def test_within_threshold_is_expiring(self):
        assert classify(NOW + timedelta(days=10), 30, NOW) == ("expiring", 10)

    def test_threshold_boundary_is_inclusive(self):
        assert classify(NOW + timedelta(days=30), 30, NOW) == ("expiring", 30)

    def test_beyond_threshold_is_ignored(self):
        bucket, days = classify(NOW + timedelta(days=31), 30, NOW)
        assert bucket is None
        assert days == 31

    def test_lapsed_an_hour_ago_is_expired(self):
        assert classify(NOW - timedelta(hours=1), 30, NOW) == ("expired", -1)

    def test_expired_days_are_negative(self):
        assert classify(NOW - timedelta(days=5), 30, NOW) == ("expired", -5)


# =============================================================================
# TEST: VALIDITY AND LABELS
# =============================================================================


class TestPermitValidity:
    def test_valid_and_in_date(self):
        assert is_permit_valid(make_permit(expires=NOW + timedelta(days=1)), NOW) is True

    def test_past_date_is_invalid_even_if_status_valid(self):
        assert is_permit_valid(make_permit(expires=NOW - timedelta(seconds=1)), NOW) is False

    def test_revoked_is_invalid(self):
        permit = make_permit(status=PermitStatus.REVOKED, expires=NOW + timedelta(days=100))
        assert is_permit_valid(permit, NOW) is False

    def test_missing_expiration_is_invalid(self):
        assert is_permit_valid(make_permit(expires=None), NOW) is False

    def test_status_labels(self):
        assert get_status_label("valid") == "Active"
        assert get_status_label("expired") == "Expired"
        assert get_status_label("revoked") == "Revoked"
        assert get_status_label("suspended") == "Unknown"


class TestFormatting:
    def test_japanese_date_format(self):
        assert format_date(datetime(2025, 3, 5, tzinfo=timezone.utc)) == "2025年03月05日"

    def test_timezone_conversion_can_change_the_day(self):
        late_utc = datetime(2025, 3, 5, 20, 0, tzinfo=timezone.utc)
        assert format_date(late_utc, "Asia/Tokyo") == "2025年03月06日"
        assert format_date_slash(late_utc, "Asia/Tokyo") == "2025/03/06"

    def test_verification_url_strips_trailing_slash(self):
        assert build_verification_url("https://permits.example.com/", "abc") == "https://permits.example.com/verify/abc"
