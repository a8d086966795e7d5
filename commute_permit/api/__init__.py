"""API routes for Commute Permit."""

from fastapi import APIRouter

from .documents import router as documents_router
from .monitoring import cron_router
from .monitoring import router as monitoring_router
from .notifications import router as notifications_router
from .permits import router as permits_router
from .settings import router as settings_router
from .verify import router as verify_router

# Main API router
api_router = APIRouter()

# Public QR-code verification (no auth)
api_router.include_router(verify_router)

# Permits and the documents they are issued from
api_router.include_router(permits_router)
api_router.include_router(documents_router)

# Expiration monitoring, scheduler entry point and notification history
api_router.include_router(monitoring_router)
api_router.include_router(cron_router)
api_router.include_router(notifications_router)

# Admin configuration
api_router.include_router(settings_router)

__all__ = ["api_router"]
