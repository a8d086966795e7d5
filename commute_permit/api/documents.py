"""API routes for employee documents and their approval workflow."""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ValidationError

from ..core import AdminDep, CurrentUser, CurrentUserDep, SettingsDep, StaffDep, StoreDep
from ..schemas import (
    ApprovalHistoryEntry,
    BulkReviewRequest,
    BulkReviewResponse,
    DocumentBase,
    DocumentType,
    DriversLicenseCreate,
    InsurancePolicyCreate,
    MessageResponse,
    RejectRequest,
    VehicleRegistrationCreate,
)
from ..services import (
    ApprovalService,
    DocumentNotFoundError,
    DocumentService,
    InvalidDocumentTransitionError,
    get_document_service,
    list_approval_history,
)
from .permits import PermitServiceDep, resolve_base_url

router = APIRouter(prefix="/documents", tags=["documents"])

CREATE_SCHEMAS: dict[DocumentType, type[BaseModel]] = {
    DocumentType.LICENSE: DriversLicenseCreate,
    DocumentType.VEHICLE: VehicleRegistrationCreate,
    DocumentType.INSURANCE: InsurancePolicyCreate,
}


def document_service(document_type: DocumentType, store: StoreDep) -> DocumentService:
    return get_document_service(document_type, store)


DocumentServiceDep = Annotated[DocumentService, Depends(document_service)]


def get_approval_service(store: StoreDep, permits: PermitServiceDep) -> ApprovalService:
    return ApprovalService(store, permits)


ApprovalServiceDep = Annotated[ApprovalService, Depends(get_approval_service)]


# =============================================================================
# HELPERS
# =============================================================================


def _parse_payload(document_type: DocumentType, payload: dict[str, Any]) -> BaseModel:
    try:
        return CREATE_SCHEMAS[document_type].model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )


async def _get_or_404(service: DocumentService, document_id: str) -> DocumentBase:
    document = await service.get_document(document_id)
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {document_id} not found",
        )
    return document


def _ensure_owner_or_admin(document: DocumentBase, current_user: CurrentUser) -> None:
    if current_user.is_admin or document.employee_id == current_user.user_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have access to this document",
    )


# =============================================================================
# APPROVAL HISTORY AND BULK REVIEW
# =============================================================================


@router.get("/approval-history", response_model=list[ApprovalHistoryEntry])
async def get_approval_history(
    current_user: CurrentUserDep,
    store: StoreDep,
    employee_id: Annotated[str | None, Query()] = None,
):
    """Approval decisions, newest first. Applicants only see their own."""
    if not current_user.is_staff:
        employee_id = current_user.user_id
    return await list_approval_history(store, employee_id)


@router.post("/bulk", response_model=BulkReviewResponse)
async def bulk_review_documents(
    data: BulkReviewRequest,
    request: Request,
    current_user: AdminDep,
    approvals: ApprovalServiceDep,
    settings: SettingsDep,
):
    """
    Approve or reject up to 50 documents in one call.

    Items are processed independently; failures are reported per item.
    Approvals that complete an employee's documents issue their permits.
    """
    try:
        result = await approvals.bulk_review(
            data.items,
            action=data.action,
            reason=data.reason,
            approver_id=current_user.user_id,
            approver_name=current_user.name or "",
            base_url=resolve_base_url(request, settings.public_base_url),
        )
    except InvalidDocumentTransitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return BulkReviewResponse(
        success=result.failed == 0,
        succeeded=result.succeeded,
        failed=result.failed,
        permits_issued=result.permits_issued,
        results=result.results,
    )


# =============================================================================
# QUERIES
# =============================================================================


@router.get("/{document_type}")
async def list_documents(
    document_type: DocumentType,
    current_user: CurrentUserDep,
    service: DocumentServiceDep,
    employee_id: Annotated[str | None, Query()] = None,
):
    if not current_user.is_staff:
        employee_id = current_user.user_id
    return await service.list_documents(employee_id)


@router.get("/{document_type}/pending")
async def list_pending_documents(
    document_type: DocumentType,
    current_user: StaffDep,
    service: DocumentServiceDep,
):
    """Approval queue for one category."""
    return await service.list_pending()


@router.get("/{document_type}/deleted")
async def list_deleted_documents(
    document_type: DocumentType,
    current_user: AdminDep,
    service: DocumentServiceDep,
):
    return await service.list_deleted()


@router.get("/{document_type}/{document_id}")
async def get_document(
    document_type: DocumentType,
    document_id: str,
    current_user: CurrentUserDep,
    service: DocumentServiceDep,
):
    document = await _get_or_404(service, document_id)
    if not current_user.is_staff and document.employee_id != current_user.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this document",
        )
    return document


# =============================================================================
# COMMANDS
# =============================================================================


@router.post("/{document_type}", status_code=status.HTTP_201_CREATED)
async def create_document(
    document_type: DocumentType,
    current_user: CurrentUserDep,
    service: DocumentServiceDep,
    payload: Annotated[dict[str, Any], Body()],
    employee_id: Annotated[str | None, Query()] = None,
):
    """
    Submit a document for review.

    Applicants submit for themselves. Admins may submit on behalf of an
    employee with `employee_id`.
    """
    data = _parse_payload(document_type, payload)
    owner = employee_id if current_user.is_admin and employee_id else current_user.user_id
    return await service.create_document(owner, data)


@router.put("/{document_type}/{document_id}")
async def update_document(
    document_type: DocumentType,
    document_id: str,
    current_user: CurrentUserDep,
    service: DocumentServiceDep,
    payload: Annotated[dict[str, Any], Body()],
):
    """Replace a document's details. The document goes back to review."""
    document = await _get_or_404(service, document_id)
    _ensure_owner_or_admin(document, current_user)
    data = _parse_payload(document_type, payload)
    return await service.update_document(document_id, data.model_dump(exclude_none=True))


@router.delete("/{document_type}/{document_id}", response_model=MessageResponse)
async def delete_document(
    document_type: DocumentType,
    document_id: str,
    current_user: CurrentUserDep,
    service: DocumentServiceDep,
):
    document = await _get_or_404(service, document_id)
    _ensure_owner_or_admin(document, current_user)
    await service.soft_delete(document_id)
    return MessageResponse(message="Document deleted")


@router.post("/{document_type}/{document_id}/restore")
async def restore_document(
    document_type: DocumentType,
    document_id: str,
    current_user: AdminDep,
    service: DocumentServiceDep,
):
    try:
        return await service.restore(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{document_type}/{document_id}/approve")
async def approve_document(
    document_type: DocumentType,
    document_id: str,
    request: Request,
    current_user: AdminDep,
    approvals: ApprovalServiceDep,
    settings: SettingsDep,
):
    """Approve a document. Completing an employee's documents issues their permits."""
    try:
        result = await approvals.approve(
            document_type,
            document_id,
            approver_id=current_user.user_id,
            approver_name=current_user.name or "",
            base_url=resolve_base_url(request, settings.public_base_url),
        )
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return result.document


@router.post("/{document_type}/{document_id}/reject")
async def reject_document(
    document_type: DocumentType,
    document_id: str,
    data: RejectRequest,
    current_user: AdminDep,
    service: DocumentServiceDep,
):
    """Reject a document. A reason is required and shown to the employee."""
    try:
        return await service.reject(
            document_id,
            data.reason,
            approver_id=current_user.user_id,
            approver_name=current_user.name or "",
        )
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidDocumentTransitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
