"""API routes for the notification history."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..core import AdminDep, StoreDep
from ..schemas import NotificationHistoryEntry, NotificationStats
from ..services import NotificationHistoryService

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_history_service(store: StoreDep) -> NotificationHistoryService:
    return NotificationHistoryService(store)


HistoryServiceDep = Annotated[NotificationHistoryService, Depends(get_history_service)]


@router.get("/history", response_model=list[NotificationHistoryEntry])
async def list_notification_history(
    current_user: AdminDep,
    service: HistoryServiceDep,
    recipient_id: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
):
    """Notification attempts, newest first."""
    return await service.list_history(recipient_id, limit=limit)


@router.get("/stats", response_model=NotificationStats)
async def get_notification_stats(
    current_user: AdminDep,
    service: HistoryServiceDep,
    recipient_id: Annotated[str | None, Query()] = None,
):
    return await service.get_stats(recipient_id)
