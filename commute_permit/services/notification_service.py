"""
Notification Service: message templates and delivery channels.

Messages are delivered to employees and admins through the Lark IM API as
interactive cards. When Lark is not configured, a logging channel stands in
so the monitoring job still runs end to end.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

from ..integrations.lark import LarkAPIError, LarkClient
from ..schemas import DocumentType
from .permit_utils import format_date_slash

logger = logging.getLogger(__name__)


# =============================================================================
# MESSAGES
# =============================================================================

DOCUMENT_LABELS = {
    DocumentType.LICENSE: "Driver's license",
    DocumentType.VEHICLE: "Vehicle inspection",
    DocumentType.INSURANCE: "Insurance policy",
}

# Lark card header colors
TEMPLATE_COLORS = {
    "warning": "orange",
    "critical": "red",
}


@dataclass
class NotificationMessage:
    """A rendered message, independent of the delivery channel."""

    title: str
    body: str
    severity: str = "warning"  # "warning" or "critical"


def document_label(document_type: DocumentType | str) -> str:
    return DOCUMENT_LABELS.get(DocumentType(document_type), "Document")


def build_expiration_warning_message(warning, tz: str | None = None) -> NotificationMessage:
    """Expiring-soon notice for the document owner."""
    label = document_label(warning.document_type)
    return NotificationMessage(
        title=f"{label} expires in {warning.days_until_expiration} day(s)",
        body=(
            f"Your {label.lower()} is about to expire.\n"
            f"Document number: {warning.document_number or '-'}\n"
            f"Expiration date: {format_date_slash(warning.expiration_date, tz)}\n"
            f"Days remaining: {warning.days_until_expiration}\n"
            "Please renew it and upload the new document."
        ),
        severity="warning",
    )


def build_expired_message(warning, tz: str | None = None) -> NotificationMessage:
    """Expired notice for the document owner."""
    label = document_label(warning.document_type)
    overdue = abs(warning.days_until_expiration)
    return NotificationMessage(
        title=f"{label} has expired",
        body=(
            f"Your {label.lower()} expired {overdue} day(s) ago.\n"
            f"Document number: {warning.document_number or '-'}\n"
            f"Expiration date: {format_date_slash(warning.expiration_date, tz)}\n"
            "Commuting by car is not permitted until a renewed document is approved."
        ),
        severity="critical",
    )


def build_admin_expired_message(warning, tz: str | None = None) -> NotificationMessage:
    """Expired notice for administrators, naming the employee."""
    label = document_label(warning.document_type)
    overdue = abs(warning.days_until_expiration)
    return NotificationMessage(
        title=f"[Admin] {label} expired: {warning.employee_name or warning.employee_id}",
        body=(
            f"Employee: {warning.employee_name or '-'} ({warning.employee_id})\n"
            f"Document: {label} {warning.document_number or '-'}\n"
            f"Expiration date: {format_date_slash(warning.expiration_date, tz)} "
            f"({overdue} day(s) overdue)\n"
            "Please follow up with the employee."
        ),
        severity="critical",
    )


def build_card(message: NotificationMessage) -> dict:
    """Lark interactive card for a message."""
    return {
        "config": {"wide_screen_mode": True},
        "header": {
            "title": {"tag": "plain_text", "content": message.title},
            "template": TEMPLATE_COLORS.get(message.severity, "blue"),
        },
        "elements": [
            {"tag": "div", "text": {"tag": "lark_md", "content": message.body}},
        ],
    }


# =============================================================================
# CHANNELS
# =============================================================================


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    @abstractmethod
    async def send(self, recipient_id: str, message: NotificationMessage) -> bool:
        """Deliver a message. Returns True on success."""

    async def close(self) -> None:
        return None


class LarkMessageChannel(NotificationChannel):
    """Delivers cards through the Lark IM API (recipient is an open id)."""

    def __init__(self, client: LarkClient):
        self._client = client

    async def send(self, recipient_id: str, message: NotificationMessage) -> bool:
        if not recipient_id:
            logger.warning(f"Skipping Lark message without recipient: {message.title}")
            return False
        try:
            await self._client.send_card_message(recipient_id, build_card(message))
        except LarkAPIError as e:
            logger.error(f"Failed to send Lark message to {recipient_id}: {e}")
            return False
        logger.info(f"Sent Lark message to {recipient_id}: {message.title}")
        return True

    async def close(self) -> None:
        await self._client.close()


class LoggingChannel(NotificationChannel):
    """Logs messages instead of delivering them."""

    async def send(self, recipient_id: str, message: NotificationMessage) -> bool:
        logger.info(f"[NOTIFY] To: {recipient_id}, Title: {message.title}, Severity: {message.severity}")
        return True
