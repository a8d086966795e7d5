"""
Tests for the approval workflow - single and bulk review, issuance on full approval.

These tests verify:
1. Approving the last missing document issues permits for the employee
2. Partial approval issues nothing
3. A failing permit store never fails the approval
4. Bulk review processes items independently and issues once per employee
"""

import pytest

from commute_permit.schemas import ApprovalStatus, BulkReviewItem, DocumentType, ReviewAction
from commute_permit.services.approvals import ApprovalService
from commute_permit.services.documents import InvalidDocumentTransitionError, get_document_service
from commute_permit.services.permits import PermitService, VehicleLocks
from commute_permit.store import Tables

from conftest import FailingTableStore, Seeder, days_from_now


@pytest.fixture
def approvals(store, permit_service) -> ApprovalService:
    return ApprovalService(store, permit_service)


async def seed_awaiting_vehicle(seed):
    """Approved license and insurance; the vehicle is still pending."""
    await seed.employee()
    await seed.license(expires=days_from_now(400))
    await seed.insurance(expires=days_from_now(300))
    return await seed.vehicle(expires=days_from_now(200), approval_status="pending")


# =============================================================================
# TEST: SINGLE APPROVAL
# =============================================================================


class TestApprove:
    async def test_completing_documents_issues_permit(self, seed, store, approvals):
        vehicle = await seed_awaiting_vehicle(seed)

        result = await approvals.approve(DocumentType.VEHICLE, vehicle.id, approver_id="ou_admin")

        assert result.document.approval_status == ApprovalStatus.APPROVED
        assert result.permits[vehicle.id].success is True
        permits = await store.list(Tables.PERMITS)
        assert [p.get("vehicle_id") for p in permits] == [vehicle.id]

    async def test_partial_approval_issues_nothing(self, seed, store, approvals):
        await seed.employee()
        await seed.insurance(expires=days_from_now(300))
        vehicle = await seed.vehicle(expires=days_from_now(200), approval_status="pending")

        result = await approvals.approve(DocumentType.VEHICLE, vehicle.id)

        assert result.document.approval_status == ApprovalStatus.APPROVED
        assert result.permits == {}
        assert await store.list(Tables.PERMITS) == []

    async def test_reapproving_keeps_unchanged_permit(self, seed, store, approvals):
        vehicle = await seed_awaiting_vehicle(seed)
        first = await approvals.approve(DocumentType.VEHICLE, vehicle.id)

        second = await approvals.approve(DocumentType.VEHICLE, vehicle.id)

        assert second.permits[vehicle.id].skipped is True
        assert second.permits[vehicle.id].permit.id == first.permits[vehicle.id].permit.id
        assert len(await store.list(Tables.PERMITS)) == 1

    async def test_permit_store_failure_does_not_fail_approval(self, storage, renderer, settings):
        store = FailingTableStore({Tables.PERMITS})
        vehicle = await seed_awaiting_vehicle(Seeder(store))
        permits = PermitService(store, storage=storage, renderer=renderer, settings=settings, locks=VehicleLocks())

        result = await ApprovalService(store, permits).approve(DocumentType.VEHICLE, vehicle.id)

        assert result.document.approval_status == ApprovalStatus.APPROVED
        assert result.permits == {}
        stored = await store.get(Tables.VEHICLE_REGISTRATIONS, vehicle.id)
        assert stored.fields["approval_status"] == "approved"


# =============================================================================
# TEST: BULK REVIEW
# =============================================================================


class TestBulkReview:
    async def test_bulk_approval_issues_once_per_employee(self, seed, store, approvals):
        await seed.employee()
        license = await seed.license(expires=days_from_now(400), approval_status="pending")
        vehicle = await seed.vehicle(expires=days_from_now(200), approval_status="pending")
        insurance = await seed.insurance(expires=days_from_now(300), approval_status="pending")
        items = [
            BulkReviewItem(document_type=DocumentType.LICENSE, document_id=license.id),
            BulkReviewItem(document_type=DocumentType.VEHICLE, document_id=vehicle.id),
            BulkReviewItem(document_type=DocumentType.INSURANCE, document_id=insurance.id),
        ]

        result = await approvals.bulk_review(items, approver_id="ou_admin", approver_name="Admin")

        assert result.succeeded == 3
        assert result.failed == 0
        assert result.permits_issued == 1
        assert len(await store.list(Tables.PERMITS)) == 1
        assert len(await store.list(Tables.APPROVAL_HISTORY)) == 3

    async def test_items_fail_independently(self, seed, store, approvals):
        license = await seed.license(expires=days_from_now(400), approval_status="pending")
        items = [
            BulkReviewItem(document_type=DocumentType.VEHICLE, document_id="recmissing"),
            BulkReviewItem(document_type=DocumentType.LICENSE, document_id=license.id),
        ]

        result = await approvals.bulk_review(items)

        assert [r.success for r in result.results] == [False, True]
        assert "recmissing" in result.results[0].error
        approved = await get_document_service(DocumentType.LICENSE, store).get_document(license.id)
        assert approved.approval_status == ApprovalStatus.APPROVED

    async def test_bulk_rejection_needs_a_reason(self, seed, approvals):
        license = await seed.license(expires=days_from_now(400), approval_status="pending")
        items = [BulkReviewItem(document_type=DocumentType.LICENSE, document_id=license.id)]

        with pytest.raises(InvalidDocumentTransitionError):
            await approvals.bulk_review(items, action=ReviewAction.REJECT, reason="  ")

    async def test_bulk_rejection(self, seed, store, approvals):
        vehicle = await seed_awaiting_vehicle(seed)
        items = [BulkReviewItem(document_type=DocumentType.VEHICLE, document_id=vehicle.id)]

        result = await approvals.bulk_review(items, action=ReviewAction.REJECT, reason="Blurry photo")

        assert result.succeeded == 1
        assert result.permits == {}
        rejected = await get_document_service(DocumentType.VEHICLE, store).get_document(vehicle.id)
        assert rejected.approval_status == ApprovalStatus.REJECTED
        assert rejected.rejection_reason == "Blurry photo"
