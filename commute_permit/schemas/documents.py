"""Document schemas: driver's license, vehicle registration, insurance policy."""

from datetime import datetime
from typing import ClassVar

from pydantic import Field

from .base import (
    ApprovalStatus,
    DocumentStatus,
    DocumentType,
    PermitBaseModel,
    ReviewAction,
    SoftDeleteMixin,
    TimestampMixin,
)

MAX_BULK_REVIEW_ITEMS = 50


# =============================================================================
# DOCUMENTS
# =============================================================================


class DocumentBase(PermitBaseModel, TimestampMixin, SoftDeleteMixin):
    """Fields shared by the three document categories."""

    document_type: ClassVar[DocumentType]

    id: str
    employee_id: str
    status: DocumentStatus = DocumentStatus.TEMPORARY
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    rejection_reason: str | None = None
    approved_at: datetime | None = None
    image_url: str | None = None

    @property
    def expires_at(self) -> datetime | None:
        """The category-specific expiration instant."""
        raise NotImplementedError

    @property
    def document_number(self) -> str:
        raise NotImplementedError

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED and not self.deleted_flag


class DriversLicense(DocumentBase):
    document_type: ClassVar[DocumentType] = DocumentType.LICENSE

    license_number: str = ""
    license_type: str = ""
    issue_date: datetime | None = None
    expiration_date: datetime | None = None

    @property
    def expires_at(self) -> datetime | None:
        return self.expiration_date

    @property
    def document_number(self) -> str:
        return self.license_number


class VehicleRegistration(DocumentBase):
    document_type: ClassVar[DocumentType] = DocumentType.VEHICLE

    vehicle_number: str = ""
    vehicle_type: str = ""
    manufacturer: str = ""
    model_name: str = ""
    owner_name: str = ""
    inspection_expiration_date: datetime | None = None

    @property
    def expires_at(self) -> datetime | None:
        return self.inspection_expiration_date

    @property
    def document_number(self) -> str:
        return self.vehicle_number

    @property
    def display_model(self) -> str:
        """`manufacturer model_name`, or empty when neither is known."""
        return " ".join(part for part in (self.manufacturer, self.model_name) if part)


class InsurancePolicy(DocumentBase):
    document_type: ClassVar[DocumentType] = DocumentType.INSURANCE

    policy_number: str = ""
    insurance_company: str = ""
    policy_type: str = ""
    coverage_start_date: datetime | None = None
    coverage_end_date: datetime | None = None
    insured_amount: int | None = None
    # Coverage amounts in whole currency units
    liability_personal_unlimited: bool = False
    liability_property_amount: int = 0
    passenger_injury_amount: int = 0

    @property
    def expires_at(self) -> datetime | None:
        return self.coverage_end_date

    @property
    def document_number(self) -> str:
        return self.policy_number


# =============================================================================
# CREATE / UPDATE PAYLOADS
# =============================================================================


class DriversLicenseCreate(PermitBaseModel):
    license_number: str = Field(..., min_length=1, max_length=64)
    license_type: str = ""
    issue_date: datetime | None = None
    expiration_date: datetime
    image_url: str | None = None


class VehicleRegistrationCreate(PermitBaseModel):
    vehicle_number: str = Field(..., min_length=1, max_length=64)
    vehicle_type: str = ""
    manufacturer: str = ""
    model_name: str = ""
    owner_name: str = ""
    inspection_expiration_date: datetime
    image_url: str | None = None


class InsurancePolicyCreate(PermitBaseModel):
    policy_number: str = Field(..., min_length=1, max_length=64)
    insurance_company: str = ""
    policy_type: str = ""
    coverage_start_date: datetime | None = None
    coverage_end_date: datetime
    insured_amount: int | None = Field(default=None, ge=0)
    liability_personal_unlimited: bool = False
    liability_property_amount: int = Field(default=0, ge=0)
    passenger_injury_amount: int = Field(default=0, ge=0)
    image_url: str | None = None


class RejectRequest(PermitBaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class BulkReviewItem(PermitBaseModel):
    document_type: DocumentType
    document_id: str = Field(..., min_length=1)


class BulkReviewRequest(PermitBaseModel):
    """Approve or reject several documents at once. Rejections need a reason."""

    items: list[BulkReviewItem] = Field(..., min_length=1, max_length=MAX_BULK_REVIEW_ITEMS)
    action: ReviewAction = ReviewAction.APPROVE
    reason: str | None = Field(default=None, max_length=1000)


class BulkReviewItemResult(PermitBaseModel):
    document_type: DocumentType
    document_id: str
    success: bool
    error: str | None = None


class BulkReviewResponse(PermitBaseModel):
    success: bool
    succeeded: int
    failed: int
    permits_issued: int = 0
    results: list[BulkReviewItemResult]


# =============================================================================
# APPROVAL HISTORY
# =============================================================================


class ApprovalHistoryEntry(PermitBaseModel):
    id: str
    application_type: DocumentType
    application_id: str
    employee_id: str
    employee_name: str = ""
    action: ApprovalStatus
    approver_id: str = ""
    approver_name: str = ""
    reason: str | None = None
    timestamp: datetime | None = None
