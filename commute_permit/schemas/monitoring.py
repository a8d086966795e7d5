"""Schemas for expiration monitoring, notifications and system settings."""

from datetime import datetime

from pydantic import Field

from .base import DocumentType, NotificationStatus, NotificationType, PermitBaseModel


# =============================================================================
# EXPIRATION MONITORING
# =============================================================================


class ExpirationWarningResponse(PermitBaseModel):
    document_type: DocumentType
    document_id: str
    employee_id: str
    employee_name: str
    document_number: str
    expiration_date: datetime
    days_until_expiration: int


class ExpirationSummaryResponse(PermitBaseModel):
    expiring_count: int
    expired_count: int
    expiring_by_type: dict[str, int]
    expired_by_type: dict[str, int]
    expiring: list[ExpirationWarningResponse] = []
    expired: list[ExpirationWarningResponse] = []
    failed_categories: list[DocumentType] = []
    generated_at: datetime


class MonitoringRunAccepted(PermitBaseModel):
    success: bool = True
    message: str
    started_at: datetime


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class NotificationHistoryEntry(PermitBaseModel):
    id: str
    recipient_id: str
    notification_type: NotificationType
    document_type: DocumentType | None = None
    document_id: str = ""
    title: str = ""
    message: str = ""
    sent_at: datetime | None = None
    status: NotificationStatus


class NotificationStats(PermitBaseModel):
    total: int
    sent: int
    failed: int
    by_type: dict[str, int]


# =============================================================================
# SYSTEM SETTINGS
# =============================================================================


class SystemSettingsResponse(PermitBaseModel):
    license_expiry_warning_days: int
    vehicle_expiry_warning_days: int
    insurance_expiry_warning_days: int
    admin_notification_after_days: int
    company_name: str
    company_postal_code: str
    company_address: str
    issuing_department: str


class SystemSettingsUpdate(PermitBaseModel):
    license_expiry_warning_days: int | None = Field(default=None, ge=0, le=365)
    vehicle_expiry_warning_days: int | None = Field(default=None, ge=0, le=365)
    insurance_expiry_warning_days: int | None = Field(default=None, ge=0, le=365)
    admin_notification_after_days: int | None = Field(default=None, ge=0, le=365)
    company_name: str | None = None
    company_postal_code: str | None = None
    company_address: str | None = None
    issuing_department: str | None = None
