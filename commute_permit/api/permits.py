"""API routes for commute permits: issuance, listing, PDF download."""

from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from ..core import AdminDep, CurrentUser, CurrentUserDep, SettingsDep, StoreDep
from ..schemas import (
    EmployeePermitGenerateRequest,
    EmployeePermitIssueResponse,
    ErrorDetail,
    Permit,
    PermitGenerateRequest,
    PermitIssueFailure,
    PermitIssueResponse,
    VehiclePermitResult,
)
from ..services import PermitIssueResult, PermitNotFoundError, PermitService

router = APIRouter(prefix="/permits", tags=["permits"])


def get_permit_service(store: StoreDep) -> PermitService:
    return PermitService(store)


PermitServiceDep = Annotated[PermitService, Depends(get_permit_service)]


# =============================================================================
# HELPERS
# =============================================================================


def resolve_base_url(request: Request, configured: str | None) -> str:
    """Public base URL for verification links."""
    return configured or str(request.base_url).rstrip("/")


def content_disposition(filename: str) -> str:
    """Attachment header safe for non-ASCII (Japanese) file names."""
    encoded = quote(filename)
    return f"attachment; filename=\"{encoded}\"; filename*=UTF-8''{encoded}"


def _ensure_can_view(permit: Permit, current_user: CurrentUser) -> None:
    if current_user.is_staff or permit.employee_id == current_user.user_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have access to this permit",
    )


def _issue_failure(result: PermitIssueResult) -> PermitIssueFailure:
    return PermitIssueFailure(
        error=result.reason.value,
        message=result.message,
        details=[
            ErrorDetail(field=d.field, message=d.message, code=d.code)
            for d in result.details
        ],
    )


def _first_failure(results: dict[str, PermitIssueResult]) -> PermitIssueFailure:
    for result in results.values():
        if result.reason is not None:
            return _issue_failure(result)
    return PermitIssueFailure(error="no_approved_vehicle", message="No approved vehicle registration")


# =============================================================================
# ROUTES
# =============================================================================


@router.post(
    "/generate",
    response_model=PermitIssueResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": PermitIssueFailure}},
)
async def generate_permit(
    data: PermitGenerateRequest,
    request: Request,
    current_user: AdminDep,
    service: PermitServiceDep,
    settings: SettingsDep,
):
    """
    Issue a permit for an employee's vehicle.

    Any permit already valid for the vehicle is revoked first. Issuance is
    refused with 400 when a required document is missing, unapproved or
    the insurance coverage is below the company minimums.
    """
    result = await service.issue_permit(
        data.employee_id,
        data.vehicle_id,
        base_url=resolve_base_url(request, settings.public_base_url),
    )

    if not result.success:
        failure = _issue_failure(result)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=failure.model_dump(mode="json"),
        )

    return PermitIssueResponse(permit=result.permit, message=result.message)


@router.post(
    "/generate-for-employee",
    response_model=EmployeePermitIssueResponse,
    responses={400: {"model": PermitIssueFailure}},
)
async def generate_permits_for_employee(
    data: EmployeePermitGenerateRequest,
    request: Request,
    current_user: AdminDep,
    service: PermitServiceDep,
    settings: SettingsDep,
):
    """
    Issue permits for every approved vehicle of an employee.

    Vehicles whose valid permit already has the same expiration keep it
    unless `force` is set. Refused with 400 when nothing could be issued.
    """
    results = await service.issue_for_employee(
        data.employee_id,
        base_url=resolve_base_url(request, settings.public_base_url),
        force=data.force,
    )

    if not any(r.success for r in results.values()):
        failure = _first_failure(results)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=failure.model_dump(mode="json"),
        )

    items = [
        VehiclePermitResult(
            vehicle_id=vehicle_id,
            success=r.success,
            skipped=r.skipped,
            permit=r.permit,
            error=r.reason.value if r.reason else None,
            message=r.message,
        )
        for vehicle_id, r in results.items()
    ]
    failed = sum(1 for r in results.values() if not r.success)
    return EmployeePermitIssueResponse(
        success=failed == 0,
        employee_id=data.employee_id,
        issued=sum(1 for r in results.values() if r.success and not r.skipped),
        skipped=sum(1 for r in results.values() if r.skipped),
        failed=failed,
        results=items,
    )


@router.get("", response_model=list[Permit])
async def list_permits(
    current_user: CurrentUserDep,
    service: PermitServiceDep,
    employee_id: Annotated[str | None, Query()] = None,
):
    """All permits for admins and viewers; applicants see their own."""
    if current_user.is_staff:
        return await service.list_permits(employee_id)
    return await service.list_permits(current_user.user_id)


@router.get("/{permit_id}", response_model=Permit)
async def get_permit(
    permit_id: str,
    current_user: CurrentUserDep,
    service: PermitServiceDep,
):
    permit = await service.get_permit(permit_id)
    if permit is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permit not found")
    _ensure_can_view(permit, current_user)
    return permit


@router.get("/{permit_id}/download")
async def download_permit(
    permit_id: str,
    request: Request,
    current_user: CurrentUserDep,
    service: PermitServiceDep,
    settings: SettingsDep,
) -> StreamingResponse:
    """Download the permit PDF, rebuilding it when the stored file is gone."""
    permit = await service.get_permit(permit_id)
    if permit is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permit not found")
    _ensure_can_view(permit, current_user)

    download = await service.download_permit(
        permit_id,
        base_url=resolve_base_url(request, settings.public_base_url),
    )
    if download is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permit not found")

    return StreamingResponse(
        iter([download.content]),
        media_type="application/pdf",
        headers={
            "Content-Disposition": content_disposition(download.filename),
            "Cache-Control": "private, max-age=3600",
        },
    )


@router.post("/{permit_id}/regenerate", response_model=Permit)
async def regenerate_permit(
    permit_id: str,
    request: Request,
    current_user: AdminDep,
    service: PermitServiceDep,
    settings: SettingsDep,
):
    """Re-render a permit PDF, e.g. after the company details changed."""
    try:
        return await service.regenerate_permit(
            permit_id,
            base_url=resolve_base_url(request, settings.public_base_url),
        )
    except PermitNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permit not found")
