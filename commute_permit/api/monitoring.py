"""
Expiration Monitoring API: dashboard summary and job triggers.

The daily run is normally started by an external scheduler through the
cron route. Admins can also start a run by hand; it executes in the
background and reports through the notification history.
"""

from datetime import datetime, timezone
import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from ..core import AdminDep, Settings, SettingsDep, StaffDep, StoreDep, verify_cron_secret
from ..jobs import ExpirationJobError, run_expiration_job
from ..schemas import ErrorResponse, ExpirationSummaryResponse, MonitoringRunAccepted
from ..services import ExpirationEngine, ExpirationScanError, NotificationChannel, SystemSettings, SystemSettingsService
from ..store import RecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/monitoring", tags=["monitoring"])
cron_router = APIRouter(prefix="/cron", tags=["cron"])


def get_expiration_engine(store: StoreDep, settings: SettingsDep) -> ExpirationEngine:
    return ExpirationEngine(store, SystemSettingsService(store, SystemSettings.from_settings(settings)))


def get_notification_channel() -> NotificationChannel | None:
    """Channel override hook. None lets the job build and close its own."""
    return None


ExpirationEngineDep = Annotated[ExpirationEngine, Depends(get_expiration_engine)]
ChannelDep = Annotated[NotificationChannel | None, Depends(get_notification_channel)]


async def _run_in_background(
    store: RecordStore,
    channel: NotificationChannel | None,
    settings: Settings,
) -> None:
    try:
        results = await run_expiration_job(store=store, channel=channel, settings=settings)
        logger.info(f"Background expiration run finished: {results}")
    except Exception as e:
        # The job has already sent its crash alert
        logger.error(f"Background expiration run failed: {e}")


# =============================================================================
# DASHBOARD
# =============================================================================


@router.get("/expiration", response_model=ExpirationSummaryResponse)
async def get_expiration_summary(
    current_user: StaffDep,
    engine: ExpirationEngineDep,
):
    """Expiring and expired approved documents across all categories."""
    try:
        summary = await engine.get_expiration_summary()
    except ExpirationScanError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
    return ExpirationSummaryResponse.model_validate(summary)


@router.post(
    "/expiration/run",
    response_model=MonitoringRunAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def run_expiration_monitor(
    background_tasks: BackgroundTasks,
    current_user: AdminDep,
    store: StoreDep,
    settings: SettingsDep,
    channel: ChannelDep,
):
    """Start an expiration monitoring run in the background."""
    started_at = datetime.now(timezone.utc)
    background_tasks.add_task(_run_in_background, store, channel, settings)
    logger.info(f"Expiration run requested by {current_user.user_id}")
    return MonitoringRunAccepted(message="Expiration monitoring started", started_at=started_at)


# =============================================================================
# SCHEDULER ENTRY POINT
# =============================================================================


@cron_router.get("/expiration-check")
async def cron_expiration_check(
    store: StoreDep,
    settings: SettingsDep,
    channel: ChannelDep,
    authorization: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """
    Run the daily expiration check synchronously.

    Authenticated with `Authorization: Bearer <CRON_SECRET>` when a secret
    is configured.
    """
    token = authorization[len("Bearer "):] if authorization and authorization.startswith("Bearer ") else None
    if not verify_cron_secret(token, settings.cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )

    try:
        results = await run_expiration_job(store=store, channel=channel, settings=settings)
    except ExpirationJobError as e:
        return JSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            content=ErrorResponse(error="job_timeout", message=str(e)).model_dump(),
        )
    except Exception as e:
        logger.error(f"Cron expiration check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="job_failed", message="Expiration check failed").model_dump(),
        )

    return {"success": True, **results}
