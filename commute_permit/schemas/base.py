"""Base schemas and common types for the Commute Permit API."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


# =============================================================================
# ENUMS
# =============================================================================


class DocumentType(str, Enum):
    """The three approvable document categories."""

    LICENSE = "license"
    VEHICLE = "vehicle"
    INSURANCE = "insurance"


class DocumentStatus(str, Enum):
    """Internal lifecycle flag of a document."""

    TEMPORARY = "temporary"
    APPROVED = "approved"


class ApprovalStatus(str, Enum):
    """Review state of a document."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewAction(str, Enum):
    """Decision applied by a bulk review."""

    APPROVE = "approve"
    REJECT = "reject"


class PermitStatus(str, Enum):
    """Stored status of a permit. Date expiry is evaluated at read time."""

    VALID = "valid"
    EXPIRED = "expired"
    REVOKED = "revoked"


class UserRole(str, Enum):
    """Application roles carried in the access token."""

    ADMIN = "admin"
    VIEWER = "viewer"
    APPLICANT = "applicant"


class NotificationType(str, Enum):
    """Kinds of notifications recorded in the history table."""

    EXPIRATION_WARNING = "expiration_warning"
    EXPIRATION_ALERT = "expiration_alert"
    APPROVAL = "approval"
    REJECTION = "rejection"


class NotificationStatus(str, Enum):
    """Outcome of a send attempt."""

    SENT = "sent"
    FAILED = "failed"


# =============================================================================
# BASE SCHEMAS
# =============================================================================


class PermitBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )


class TimestampMixin(BaseModel):
    """Mixin for created/updated timestamps."""

    created_at: datetime | None = None
    updated_at: datetime | None = None


class SoftDeleteMixin(BaseModel):
    """Mixin for soft-deletable entities."""

    deleted_flag: bool = False
    deleted_at: datetime | None = None


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorDetail(PermitBaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str


class ErrorResponse(PermitBaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: list[ErrorDetail] = []
    request_id: str | None = None


class MessageResponse(PermitBaseModel):
    """Plain acknowledgement."""

    success: bool = True
    message: str
