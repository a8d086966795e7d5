"""API routes for system settings (warning thresholds, company details)."""

from typing import Annotated

from fastapi import APIRouter, Depends

from ..core import AdminDep, SettingsDep, StoreDep
from ..schemas import SystemSettingsResponse, SystemSettingsUpdate
from ..services import SystemSettings, SystemSettingsService

router = APIRouter(prefix="/settings", tags=["settings"])


def get_system_settings_service(store: StoreDep, settings: SettingsDep) -> SystemSettingsService:
    return SystemSettingsService(store, SystemSettings.from_settings(settings))


SystemSettingsServiceDep = Annotated[SystemSettingsService, Depends(get_system_settings_service)]


@router.get("", response_model=SystemSettingsResponse)
async def get_system_settings(
    current_user: AdminDep,
    service: SystemSettingsServiceDep,
):
    return SystemSettingsResponse.model_validate(await service.get_settings())


@router.put("", response_model=SystemSettingsResponse)
async def update_system_settings(
    data: SystemSettingsUpdate,
    current_user: AdminDep,
    service: SystemSettingsServiceDep,
):
    """Update only the keys present in the body."""
    updated = await service.update_settings(
        data.model_dump(exclude_none=True),
        updated_by=current_user.user_id,
    )
    return SystemSettingsResponse.model_validate(updated)
