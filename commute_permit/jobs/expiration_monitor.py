"""
Expiration Monitor Job: daily scan of document expiry dates.

Runs once a day (cron route, scheduler or CLI) and:
1. Buckets approved documents into expiring-soon / expired
2. Warns owners of expiring-soon documents
3. Alerts owners and every admin about expired documents
4. Records each send attempt in the notification history

Re-running within the dedup window does not resend: every
recipient/document/type combination is checked against the history first.

Typical cron schedule: 0 9 * * * (daily at 9 AM, Asia/Tokyo)
"""

import asyncio
import logging
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from ..core.config import Settings, get_settings
from ..schemas import NotificationStatus, NotificationType
from ..services.employees import EmployeeService, UserPermissionService
from ..services.expiration import ExpirationEngine, ExpirationWarning
from ..services.notification_history import NotificationAttempt, NotificationHistoryService
from ..services.notification_service import (
    LarkMessageChannel,
    LoggingChannel,
    NotificationChannel,
    NotificationMessage,
    build_admin_expired_message,
    build_expiration_warning_message,
    build_expired_message,
)
from ..services.system_settings import SystemSettings, SystemSettingsService
from ..store import RecordStore, create_record_store

logger = logging.getLogger(__name__)


class ExpirationJobError(Exception):
    """The job could not complete."""


# =============================================================================
# ALERTING
# =============================================================================


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
    settings: Settings | None = None,
) -> None:
    """
    Send an alert when the job fails or finishes with send failures.

    Supports multiple channels:
    - Slack webhook
    - Generic webhook (for PagerDuty, Opsgenie, etc.)
    - Logs (always)
    """
    settings = settings or get_settings()

    log_message = f"[JOB ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"

    if severity == "critical":
        logger.critical(log_message)
    elif severity == "warning":
        logger.warning(log_message)
    else:
        logger.error(log_message)

    if settings.slack_alerts_webhook_url:
        try:
            await _send_slack_alert(settings.slack_alerts_webhook_url, title, message, severity, details)
        except Exception as e:
            logger.error(f"Failed to send Slack alert: {e}")

    if settings.alert_webhook_url:
        try:
            await _send_webhook_alert(settings.alert_webhook_url, title, message, severity, details)
        except Exception as e:
            logger.error(f"Failed to send webhook alert: {e}")


async def _send_slack_alert(
    webhook_url: str,
    title: str,
    message: str,
    severity: str,
    details: dict | None,
) -> None:
    color = "#dc2626" if severity == "critical" else "#f59e0b"

    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": title}},
        {"type": "section", "text": {"type": "mrkdwn", "text": message}},
    ]
    if details:
        details_text = "\n".join(f"• *{k}*: {v}" for k, v in details.items())
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": details_text}})

    async with httpx.AsyncClient() as client:
        response = await client.post(
            webhook_url,
            json={"attachments": [{"color": color, "blocks": blocks}]},
            timeout=10,
        )
        response.raise_for_status()


async def _send_webhook_alert(
    webhook_url: str,
    title: str,
    message: str,
    severity: str,
    details: dict | None,
) -> None:
    payload = {
        "title": title,
        "message": message,
        "severity": severity,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": "commute-permit-expiration-monitor",
        "details": details or {},
    }
    async with httpx.AsyncClient() as client:
        response = await client.post(webhook_url, json=payload, timeout=10)
        response.raise_for_status()


# =============================================================================
# MONITOR
# =============================================================================


@dataclass
class MonitorConfig:
    """Behavior knobs for one monitoring run."""

    dedup_window_hours: int = 24
    # Pause between sends to stay under the messaging API rate limit
    send_interval_seconds: float = 0.2
    timezone: str | None = "Asia/Tokyo"

    @classmethod
    def from_settings(cls, settings: Settings) -> "MonitorConfig":
        return cls(
            dedup_window_hours=settings.notification_dedup_window_hours,
            send_interval_seconds=settings.notification_send_interval_seconds,
            timezone=settings.display_timezone,
        )


@dataclass
class NotifyCounts:
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    admin_sent: int = 0


@dataclass
class MonitorResult:
    expiring_count: int = 0
    expired_count: int = 0
    warnings: NotifyCounts = field(default_factory=NotifyCounts)
    alerts: NotifyCounts = field(default_factory=NotifyCounts)
    failed_categories: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.warnings.failed + self.alerts.failed

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ExpirationMonitor:
    """Turns an expiration scan into deduplicated notifications."""

    def __init__(
        self,
        store: RecordStore,
        channel: NotificationChannel,
        config: MonitorConfig | None = None,
        settings_defaults: SystemSettings | None = None,
    ):
        self.config = config or MonitorConfig()
        self.channel = channel
        self.engine = ExpirationEngine(store, SystemSettingsService(store, settings_defaults))
        self.history = NotificationHistoryService(store)
        self.employees = EmployeeService(store)
        self.permissions = UserPermissionService(store)

    async def _recipients(self) -> tuple[dict[str, str], list[str]]:
        """(employee id/email -> open id, admin open ids). Failures degrade to empty."""
        try:
            employee_recipients = await self.employees.recipient_map()
        except Exception as e:
            logger.error(f"Could not load employee recipients, using employee ids: {e}")
            employee_recipients = {}
        try:
            admins = await self.permissions.list_admin_recipients()
        except Exception as e:
            logger.error(f"Could not load admin recipients: {e}")
            admins = []
        return employee_recipients, admins

    async def _notify(
        self,
        recipient_id: str,
        warning: ExpirationWarning,
        notification_type: NotificationType,
        message: NotificationMessage,
        counts: NotifyCounts,
        now: datetime,
        is_admin: bool = False,
    ) -> None:
        """One unit of work: dedup check, send, history write."""
        if await self.history.has_recent_duplicate(
            recipient_id,
            warning.document_id,
            notification_type,
            self.config.dedup_window_hours,
            now=now,
        ):
            counts.skipped += 1
            return

        try:
            ok = await self.channel.send(recipient_id, message)
        except Exception as e:
            logger.error(f"Send to {recipient_id} for document {warning.document_id} raised: {e}")
            ok = False

        try:
            await self.history.record(
                NotificationAttempt(
                    recipient_id=recipient_id,
                    notification_type=notification_type,
                    document_type=warning.document_type,
                    document_id=warning.document_id,
                    title=message.title,
                    message=message.body,
                    status=NotificationStatus.SENT if ok else NotificationStatus.FAILED,
                ),
                sent_at=now,
            )
        except Exception as e:
            # A lost history row only risks one duplicate message next run
            logger.error(f"Failed to record notification for {recipient_id}/{warning.document_id}: {e}")

        if ok:
            counts.sent += 1
            if is_admin:
                counts.admin_sent += 1
        else:
            counts.failed += 1

        if self.config.send_interval_seconds:
            await asyncio.sleep(self.config.send_interval_seconds)

    async def run(self, now: datetime | None = None) -> MonitorResult:
        now = now or datetime.now(timezone.utc)
        tz = self.config.timezone

        scan = await self.engine.scan(now=now)
        employee_recipients, admins = await self._recipients()

        result = MonitorResult(
            expiring_count=len(scan.expiring),
            expired_count=len(scan.expired),
            failed_categories=[t.value for t in scan.failed_categories],
        )
        logger.info(
            f"Expiration scan: {result.expiring_count} expiring, {result.expired_count} expired, "
            f"{len(admins)} admin recipient(s)"
        )

        for warning in scan.expiring:
            result.warnings.processed += 1
            recipient = employee_recipients.get(warning.employee_id, warning.employee_id)
            await self._notify(
                recipient,
                warning,
                NotificationType.EXPIRATION_WARNING,
                build_expiration_warning_message(warning, tz),
                result.warnings,
                now,
            )

        for warning in scan.expired:
            result.alerts.processed += 1
            recipient = employee_recipients.get(warning.employee_id, warning.employee_id)
            await self._notify(
                recipient,
                warning,
                NotificationType.EXPIRATION_ALERT,
                build_expired_message(warning, tz),
                result.alerts,
                now,
            )
            admin_message = build_admin_expired_message(warning, tz)
            for admin in admins:
                if admin == recipient:
                    continue
                await self._notify(
                    admin,
                    warning,
                    NotificationType.EXPIRATION_ALERT,
                    admin_message,
                    result.alerts,
                    now,
                    is_admin=True,
                )

        return result


# =============================================================================
# JOB ENTRY POINT
# =============================================================================


def build_channel(settings: Settings) -> NotificationChannel:
    """Lark delivery when credentials exist, logging otherwise."""
    if settings.lark_enabled:
        from ..integrations.lark import LarkClient

        return LarkMessageChannel(
            LarkClient(
                settings.lark_app_id,
                settings.lark_app_secret,
                domain=settings.lark_domain,
                timeout=settings.lark_request_timeout_seconds,
            )
        )
    logger.warning("Lark is not configured; notifications will only be logged")
    return LoggingChannel()


async def run_expiration_job(
    store: RecordStore | None = None,
    channel: NotificationChannel | None = None,
    settings: Settings | None = None,
    config: MonitorConfig | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Main entry point for the expiration monitoring job.

    Runs the monitor under the configured wall-clock time limit. Aborting
    between notifications is safe; the next run picks up where the history
    left off.

    Returns:
        Job result summary
    """
    settings = settings or get_settings()
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting expiration monitor at {start_time.isoformat()}")

    owns_store = store is None
    owns_channel = channel is None
    store = store or create_record_store(settings)
    channel = channel or build_channel(settings)
    monitor = ExpirationMonitor(
        store,
        channel,
        config=config or MonitorConfig.from_settings(settings),
        settings_defaults=SystemSettings.from_settings(settings),
    )

    results: dict[str, Any] = {
        "started_at": start_time.isoformat(),
        "completed_at": None,
        "errors": [],
    }

    try:
        outcome = await asyncio.wait_for(
            monitor.run(now=now),
            timeout=settings.expiration_job_timeout_seconds,
        )
        results.update(outcome.to_dict())
    except asyncio.TimeoutError:
        error_msg = f"Expiration monitor exceeded {settings.expiration_job_timeout_seconds}s and was aborted"
        results["errors"].append(error_msg)
        await send_alert(
            title="Expiration Monitor Timed Out",
            message=error_msg,
            severity="critical",
            details={"started_at": results["started_at"]},
            settings=settings,
        )
        raise ExpirationJobError(error_msg)
    except Exception as e:
        error_msg = f"Expiration monitor failed: {str(e)}"
        logger.error(error_msg)
        results["errors"].append(error_msg)

        await send_alert(
            title="Expiration Monitor Failed",
            message="The daily expiration monitoring job crashed unexpectedly.",
            severity="critical",
            details={
                "error": str(e),
                "traceback": traceback.format_exc()[-500:],
                "started_at": results["started_at"],
            },
            settings=settings,
        )
        raise
    finally:
        if owns_channel:
            await channel.close()
        if owns_store:
            await store.close()

    end_time = datetime.now(timezone.utc)
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    logger.info(
        f"Expiration monitor completed in {results['duration_seconds']:.2f}s: "
        f"{outcome.warnings.sent} warnings sent, {outcome.alerts.sent} alerts sent "
        f"({outcome.alerts.admin_sent} to admins), "
        f"{outcome.warnings.skipped + outcome.alerts.skipped} duplicates skipped"
    )

    if outcome.failed or outcome.failed_categories:
        await send_alert(
            title="Expiration Monitor Completed with Warnings",
            message=f"{outcome.failed} notification(s) failed to send.",
            severity="warning",
            details={
                "failed_categories": outcome.failed_categories,
                "warnings_failed": outcome.warnings.failed,
                "alerts_failed": outcome.alerts.failed,
            },
            settings=settings,
        )

    return results


async def _dry_run(settings: Settings) -> dict[str, Any]:
    store = create_record_store(settings)
    try:
        engine = ExpirationEngine(store, SystemSettingsService(store, SystemSettings.from_settings(settings)))
        summary = await engine.get_expiration_summary()
    finally:
        await store.close()
    return {
        "expiring_count": summary.expiring_count,
        "expired_count": summary.expired_count,
        "expiring_by_type": summary.expiring_by_type,
        "expired_by_type": summary.expired_by_type,
        "failed_categories": [t.value for t in summary.failed_categories],
    }


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the expiration monitor."""
    import argparse

    parser = argparse.ArgumentParser(description="Run the document expiration monitor")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the expiration summary without sending notifications",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        if args.dry_run:
            results = asyncio.run(_dry_run(settings))
        else:
            results = asyncio.run(run_expiration_job(settings=settings))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
