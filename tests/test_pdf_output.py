"""Tests for permit PDF rendering and local file storage."""

from datetime import datetime, timezone

from commute_permit.services.file_storage import FILE_KEY_PATTERN, PermitFileStorage
from commute_permit.services.pdf_generator import PermitPdfData, render_permit_pdf


def permit_data(**overrides) -> PermitPdfData:
    values = dict(
        permit_id="recpermit",
        employee_name="山田 太郎",
        vehicle_number="品川 300 あ 12-34",
        vehicle_model="Toyota Prius",
        issue_date=datetime(2025, 1, 1, tzinfo=timezone.utc),
        expiration_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
        verification_url="https://permits.example.com/verify/tok-123",
        company_name="Example Corp",
        issuing_department="General Affairs",
        timezone="Asia/Tokyo",
    )
    values.update(overrides)
    return PermitPdfData(**values)


# =============================================================================
# TEST: RENDERING
# =============================================================================


class TestRenderPermitPdf:
    def test_renders_a_pdf(self):
        content = render_permit_pdf(permit_data())

        assert content.startswith(b"%PDF")
        assert len(content) > 1000

    def test_markup_in_names_is_escaped(self):
        content = render_permit_pdf(permit_data(employee_name="<b>A & B</b>", company_name=""))

        assert content.startswith(b"%PDF")


# =============================================================================
# TEST: STORAGE
# =============================================================================


class TestPermitFileStorage:
    async def test_save_and_read(self, tmp_path):
        storage = PermitFileStorage(tmp_path / "uploads")

        key = await storage.save(b"%PDF-1")

        assert FILE_KEY_PATTERN.match(key)
        assert key.startswith("permit_")
        assert await storage.read(key) == b"%PDF-1"

    async def test_missing_and_invalid_keys(self, tmp_path):
        storage = PermitFileStorage(tmp_path)

        assert await storage.read("") is None
        assert await storage.read("permit_1_deadbeef.pdf") is None
        assert await storage.read("../etc/passwd") is None
