"""
Approval workflow across document categories.

Approving a document can complete an employee's set of approved license,
vehicle registration and insurance. When it does, permits are issued for
every approved vehicle. Issuance never undoes or fails the approval itself.
"""

from dataclasses import dataclass, field
import logging

from ..schemas import (
    BulkReviewItem,
    BulkReviewItemResult,
    DocumentBase,
    DocumentType,
    ReviewAction,
)
from ..store import RecordStore, RecordStoreError
from .documents import DocumentError, InvalidDocumentTransitionError, get_document_service
from .permits import PermitIssueResult, PermitService

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    document: DocumentBase
    permits: dict[str, PermitIssueResult] = field(default_factory=dict)


@dataclass
class BulkReviewResult:
    results: list[BulkReviewItemResult]
    permits: dict[str, PermitIssueResult] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def permits_issued(self) -> int:
        return sum(1 for r in self.permits.values() if r.success and not r.skipped)


class ApprovalService:
    """Approves and rejects documents, issuing permits once an employee is fully approved."""

    def __init__(self, store: RecordStore, permits: PermitService):
        self.store = store
        self.permits = permits

    async def approve(
        self,
        document_type: DocumentType,
        document_id: str,
        approver_id: str = "",
        approver_name: str = "",
        base_url: str | None = None,
    ) -> ApprovalResult:
        service = get_document_service(document_type, self.store)
        document = await service.approve(document_id, approver_id=approver_id, approver_name=approver_name)
        permits = await self.issue_after_approval(document.employee_id, base_url)
        return ApprovalResult(document=document, permits=permits)

    async def bulk_review(
        self,
        items: list[BulkReviewItem],
        action: ReviewAction = ReviewAction.APPROVE,
        reason: str | None = None,
        approver_id: str = "",
        approver_name: str = "",
        base_url: str | None = None,
    ) -> BulkReviewResult:
        """
        Apply one decision to many documents.

        Each item succeeds or fails on its own. After approvals, permits are
        issued once per affected employee.
        """
        rejecting = ReviewAction(action) == ReviewAction.REJECT
        if rejecting and (not reason or not reason.strip()):
            raise InvalidDocumentTransitionError("A rejection reason is required")

        results: list[BulkReviewItemResult] = []
        approved_employees: list[str] = []
        for item in items:
            service = get_document_service(item.document_type, self.store)
            try:
                if rejecting:
                    await service.reject(item.document_id, reason, approver_id, approver_name)
                else:
                    document = await service.approve(item.document_id, approver_id, approver_name)
                    if document.employee_id not in approved_employees:
                        approved_employees.append(document.employee_id)
            except (DocumentError, RecordStoreError) as e:
                logger.warning(f"Bulk {ReviewAction(action).value} failed for {item.document_type} {item.document_id}: {e}")
                results.append(BulkReviewItemResult(
                    document_type=item.document_type,
                    document_id=item.document_id,
                    success=False,
                    error=str(e),
                ))
                continue
            results.append(BulkReviewItemResult(
                document_type=item.document_type,
                document_id=item.document_id,
                success=True,
            ))

        permits: dict[str, PermitIssueResult] = {}
        for employee_id in approved_employees:
            permits.update(await self.issue_after_approval(employee_id, base_url))

        result = BulkReviewResult(results=results, permits=permits)
        logger.info(
            f"Bulk {ReviewAction(action).value}: {result.succeeded} succeeded, {result.failed} failed, "
            f"{result.permits_issued} permits issued"
        )
        return result

    async def issue_after_approval(
        self,
        employee_id: str,
        base_url: str | None = None,
    ) -> dict[str, PermitIssueResult]:
        """Issue permits when license, vehicle and insurance are all approved."""
        try:
            if not await self.permits.has_full_approval(employee_id):
                return {}
            results = await self.permits.issue_for_employee(employee_id, base_url)
        except RecordStoreError as e:
            logger.error(f"Permit issuance after approval failed for employee {employee_id}: {e}")
            return {}

        issued = sum(1 for r in results.values() if r.success and not r.skipped)
        if issued:
            logger.info(f"Issued {issued} permit(s) for employee {employee_id} after approval")
        return results
