"""Business logic services for Commute Permit."""

from .approvals import ApprovalResult, ApprovalService, BulkReviewResult
from .documents import (
    DOCUMENT_SERVICES,
    DocumentError,
    DocumentNotFoundError,
    DocumentService,
    DriversLicenseService,
    InsurancePolicyService,
    InvalidDocumentTransitionError,
    VehicleRegistrationService,
    get_document_service,
    list_approval_history,
)
from .employees import EmployeeService, UserPermissionService
from .expiration import (
    ExpirationEngine,
    ExpirationScan,
    ExpirationScanError,
    ExpirationSummary,
    ExpirationWarning,
)
from .file_storage import PermitFileStorage
from .notification_history import NotificationAttempt, NotificationHistoryService
from .notification_service import (
    LarkMessageChannel,
    LoggingChannel,
    NotificationChannel,
    NotificationMessage,
)
from .permits import (
    IssueFailureReason,
    PermitDownload,
    PermitError,
    PermitIssueResult,
    PermitNotFoundError,
    PermitService,
    VehicleLocks,
    VerificationResult,
)
from .system_settings import SystemSettings, SystemSettingsService

__all__ = [
    # Approvals
    "ApprovalService",
    "ApprovalResult",
    "BulkReviewResult",
    # Documents
    "DocumentService",
    "DriversLicenseService",
    "VehicleRegistrationService",
    "InsurancePolicyService",
    "DOCUMENT_SERVICES",
    "get_document_service",
    "list_approval_history",
    "DocumentError",
    "DocumentNotFoundError",
    "InvalidDocumentTransitionError",
    # Employees
    "EmployeeService",
    "UserPermissionService",
    # Expiration
    "ExpirationEngine",
    "ExpirationScan",
    "ExpirationSummary",
    "ExpirationWarning",
    "ExpirationScanError",
    # Notifications
    "NotificationChannel",
    "NotificationMessage",
    "LarkMessageChannel",
    "LoggingChannel",
    "NotificationAttempt",
    "NotificationHistoryService",
    # Permits
    "PermitService",
    "PermitIssueResult",
    "PermitDownload",
    "VerificationResult",
    "IssueFailureReason",
    "VehicleLocks",
    "PermitError",
    "PermitNotFoundError",
    "PermitFileStorage",
    # Settings
    "SystemSettings",
    "SystemSettingsService",
]
