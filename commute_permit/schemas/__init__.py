"""Commute Permit API Schemas.

Schemas are organized by domain:
- base: Common enums, base model, error responses
- documents: License, vehicle registration, insurance, approval history
- employees: Employees and user permissions
- permits: Permits, issuance, public verification
- monitoring: Expiration summary, notification history, system settings
"""

from .base import (
    # Enums
    ApprovalStatus,
    DocumentStatus,
    DocumentType,
    NotificationStatus,
    NotificationType,
    PermitStatus,
    ReviewAction,
    UserRole,
    # Base classes
    PermitBaseModel,
    SoftDeleteMixin,
    TimestampMixin,
    # Responses
    ErrorDetail,
    ErrorResponse,
    MessageResponse,
)
from .documents import (
    ApprovalHistoryEntry,
    BulkReviewItem,
    BulkReviewItemResult,
    BulkReviewRequest,
    BulkReviewResponse,
    DocumentBase,
    DriversLicense,
    DriversLicenseCreate,
    InsurancePolicy,
    InsurancePolicyCreate,
    RejectRequest,
    VehicleRegistration,
    VehicleRegistrationCreate,
)
from .employees import Employee, UserPermission
from .monitoring import (
    ExpirationSummaryResponse,
    ExpirationWarningResponse,
    MonitoringRunAccepted,
    NotificationHistoryEntry,
    NotificationStats,
    SystemSettingsResponse,
    SystemSettingsUpdate,
)
from .permits import (
    EmployeePermitGenerateRequest,
    EmployeePermitIssueResponse,
    Permit,
    PermitGenerateRequest,
    PermitIssueFailure,
    PermitIssueResponse,
    PermitSummary,
    VehiclePermitResult,
    VerifyResponse,
)

__all__ = [
    # Enums
    "ApprovalStatus",
    "DocumentStatus",
    "DocumentType",
    "NotificationStatus",
    "NotificationType",
    "PermitStatus",
    "ReviewAction",
    "UserRole",
    # Base
    "PermitBaseModel",
    "SoftDeleteMixin",
    "TimestampMixin",
    "ErrorDetail",
    "ErrorResponse",
    "MessageResponse",
    # Documents
    "DocumentBase",
    "DriversLicense",
    "DriversLicenseCreate",
    "VehicleRegistration",
    "VehicleRegistrationCreate",
    "InsurancePolicy",
    "InsurancePolicyCreate",
    "RejectRequest",
    "BulkReviewItem",
    "BulkReviewRequest",
    "BulkReviewItemResult",
    "BulkReviewResponse",
    "ApprovalHistoryEntry",
    # Employees
    "Employee",
    "UserPermission",
    # Permits
    "Permit",
    "PermitGenerateRequest",
    "PermitIssueResponse",
    "PermitIssueFailure",
    "PermitSummary",
    "VerifyResponse",
    "EmployeePermitGenerateRequest",
    "EmployeePermitIssueResponse",
    "VehiclePermitResult",
    # Monitoring
    "ExpirationSummaryResponse",
    "ExpirationWarningResponse",
    "MonitoringRunAccepted",
    "NotificationHistoryEntry",
    "NotificationStats",
    "SystemSettingsResponse",
    "SystemSettingsUpdate",
]
