"""Permit schemas: stored permit, issuance requests and public verification."""

from datetime import datetime

from pydantic import Field

from .base import ErrorDetail, PermitBaseModel, PermitStatus, TimestampMixin


class Permit(PermitBaseModel, TimestampMixin):
    """An issued commute permit for one vehicle."""

    id: str
    employee_id: str
    employee_name: str = ""
    vehicle_id: str
    vehicle_number: str = ""
    vehicle_model: str = ""
    manufacturer: str = ""
    model_name: str = ""
    issue_date: datetime | None = None
    expiration_date: datetime | None = None
    permit_file_key: str = ""
    verification_token: str
    status: PermitStatus = PermitStatus.VALID


class PermitGenerateRequest(PermitBaseModel):
    employee_id: str = Field(..., min_length=1)
    vehicle_id: str = Field(..., min_length=1)


class PermitIssueResponse(PermitBaseModel):
    success: bool = True
    permit: Permit
    message: str = "Permit issued"


class EmployeePermitGenerateRequest(PermitBaseModel):
    """Issue permits for all of an employee's approved vehicles."""

    employee_id: str = Field(..., min_length=1)
    force: bool = False


class VehiclePermitResult(PermitBaseModel):
    vehicle_id: str
    success: bool
    skipped: bool = False
    permit: Permit | None = None
    error: str | None = None
    message: str


class EmployeePermitIssueResponse(PermitBaseModel):
    success: bool = True
    employee_id: str
    issued: int
    skipped: int
    failed: int
    results: list[VehiclePermitResult]


class PermitIssueFailure(PermitBaseModel):
    """Body returned when issuance is blocked by a document precondition."""

    success: bool = False
    error: str
    message: str
    details: list[ErrorDetail] = []


class PermitSummary(PermitBaseModel):
    """Public view of a permit. Dates are pre-formatted for display."""

    employee_name: str
    vehicle_number: str
    vehicle_model: str
    issue_date: str
    expiration_date: str
    status: PermitStatus
    status_label: str


class VerifyResponse(PermitBaseModel):
    valid: bool
    permit: PermitSummary | None = None
    message: str
