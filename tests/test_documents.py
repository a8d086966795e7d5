"""
Tests for the document services - CRUD, soft delete and approval transitions.

These tests verify:
1. New documents start pending and temporary
2. Approve/reject write an approval-history entry
3. Any edit sends a document back for review
4. Soft-deleted documents only come back through list_deleted/restore
"""

from datetime import datetime, timedelta, timezone

import pytest

from commute_permit.schemas import (
    ApprovalStatus,
    DocumentStatus,
    DocumentType,
    DriversLicenseCreate,
    InsurancePolicyCreate,
    VehicleRegistrationCreate,
)
from commute_permit.services.documents import (
    DocumentNotFoundError,
    DriversLicenseService,
    InsurancePolicyService,
    InvalidDocumentTransitionError,
    VehicleRegistrationService,
    get_document_service,
    list_approval_history,
)
from commute_permit.store import Tables

EXPIRES = datetime(2027, 3, 31, 15, 0, tzinfo=timezone.utc)


async def create_license(store, employee_id: str = "E001"):
    service = DriversLicenseService(store)
    payload = DriversLicenseCreate(license_number="L-0001", license_type="ordinary", expiration_date=EXPIRES)
    return service, await service.create_document(employee_id, payload)


# =============================================================================
# TEST: CREATE AND READ
# =============================================================================


class TestCreateDocument:
    async def test_new_document_is_pending(self, store):
        _, license = await create_license(store)

        assert license.approval_status == ApprovalStatus.PENDING
        assert license.status == DocumentStatus.TEMPORARY
        assert license.deleted_flag is False
        assert license.expires_at == EXPIRES
        assert license.document_number == "L-0001"

    async def test_vehicle_inspection_date_is_stored_as_expiration_date(self, store):
        service = VehicleRegistrationService(store)
        payload = VehicleRegistrationCreate(
            vehicle_number="品川 300 あ 12-34",
            manufacturer="Toyota",
            model_name="Prius",
            inspection_expiration_date=EXPIRES,
        )

        vehicle = await service.create_document("E001", payload)
        raw = await store.get(Tables.VEHICLE_REGISTRATIONS, vehicle.id)

        assert "inspection_expiration_date" not in raw.fields
        assert raw.fields["expiration_date"] == int(EXPIRES.timestamp() * 1000)
        assert vehicle.inspection_expiration_date == EXPIRES

    async def test_insurance_amounts_are_parsed_leniently(self, store):
        record = await store.create(
            Tables.INSURANCE_POLICIES,
            {
                "employee_id": "E001",
                "policy_number": "P-1",
                "liability_personal_unlimited": "true",
                "liability_property_amount": "50000000",
                "passenger_injury_amount": "",
                "approval_status": "approved",
            },
        )

        policy = await InsurancePolicyService(store).get_document(record.id)

        assert policy.liability_personal_unlimited is True
        assert policy.liability_property_amount == 50_000_000
        assert policy.passenger_injury_amount == 0
        assert policy.insured_amount is None

    async def test_list_documents_filters_by_employee(self, store):
        service, _ = await create_license(store, "E001")
        await create_license(store, "E002")

        assert len(await service.list_documents()) == 2
        assert [d.employee_id for d in await service.list_documents("E002")] == ["E002"]

    async def test_unknown_status_values_fall_back_to_pending(self, store):
        record = await store.create(
            Tables.DRIVERS_LICENSES, {"employee_id": "E001", "approval_status": "承認済み"}
        )

        license = await DriversLicenseService(store).get_document(record.id)

        assert license.approval_status == ApprovalStatus.PENDING
        assert license.is_approved is False

    def test_service_lookup_by_type(self, store):
        assert isinstance(get_document_service(DocumentType.INSURANCE, store), InsurancePolicyService)
        assert isinstance(get_document_service("vehicle", store), VehicleRegistrationService)


# =============================================================================
# TEST: APPROVAL TRANSITIONS
# =============================================================================


class TestApproval:
    async def test_approve_sets_status_and_timestamp(self, store):
        service, license = await create_license(store)

        approved = await service.approve(license.id, approver_id="ou_admin", approver_name="Admin")

        assert approved.approval_status == ApprovalStatus.APPROVED
        assert approved.status == DocumentStatus.APPROVED
        assert approved.approved_at is not None
        assert [d.id for d in await service.list_approved()] == [license.id]
        assert await service.list_pending() == []

    async def test_approve_records_history(self, store):
        service, license = await create_license(store)

        await service.approve(license.id, approver_id="ou_admin", approver_name="Admin")
        history = await list_approval_history(store, "E001")

        assert len(history) == 1
        assert history[0].application_type == DocumentType.LICENSE
        assert history[0].application_id == license.id
        assert history[0].action == ApprovalStatus.APPROVED
        assert history[0].approver_name == "Admin"

    async def test_reject_requires_reason(self, store):
        service, license = await create_license(store)

        with pytest.raises(InvalidDocumentTransitionError):
            await service.reject(license.id, "   ")

    async def test_reject_stores_reason(self, store):
        service, license = await create_license(store)

        rejected = await service.reject(license.id, " blurry photo ", approver_id="ou_admin")
        history = await list_approval_history(store)

        assert rejected.approval_status == ApprovalStatus.REJECTED
        assert rejected.rejection_reason == "blurry photo"
        assert history[0].action == ApprovalStatus.REJECTED
        assert history[0].reason == "blurry photo"

    async def test_edit_sends_document_back_for_review(self, store):
        service, license = await create_license(store)
        await service.approve(license.id)

        updated = await service.update_document(
            license.id, {"expiration_date": EXPIRES + timedelta(days=365)}
        )

        assert updated.approval_status == ApprovalStatus.PENDING
        assert updated.status == DocumentStatus.TEMPORARY
        assert updated.expiration_date == EXPIRES + timedelta(days=365)
        assert await service.list_approved() == []

    async def test_missing_document(self, store):
        service = DriversLicenseService(store)

        with pytest.raises(DocumentNotFoundError):
            await service.approve("recmissing")


# =============================================================================
# TEST: SOFT DELETE
# =============================================================================


class TestSoftDelete:
    async def test_deleted_document_is_hidden(self, store):
        service, license = await create_license(store)
        await service.approve(license.id)

        await service.soft_delete(license.id)

        assert await service.get_document(license.id) is None
        assert await service.list_documents() == []
        assert await service.list_approved() == []
        assert [d.id for d in await service.list_deleted()] == [license.id]

    async def test_deleted_document_cannot_be_approved(self, store):
        service, license = await create_license(store)
        await service.soft_delete(license.id)

        with pytest.raises(DocumentNotFoundError):
            await service.approve(license.id)

    async def test_restore(self, store):
        service, license = await create_license(store)
        await service.soft_delete(license.id)

        restored = await service.restore(license.id)

        assert restored.deleted_flag is False
        assert restored.deleted_at is None
        assert await service.list_deleted() == []
        assert len(await service.list_documents()) == 1
