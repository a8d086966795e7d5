"""Core application utilities."""

from .config import Settings, get_settings
from .database import (
    create_engine_from_settings,
    create_engine_from_url,
    create_session_factory,
    init_db,
    session_scope,
)
from .dependencies import (
    AdminDep,
    CurrentUser,
    CurrentUserDep,
    SettingsDep,
    StaffDep,
    StoreDep,
    close_record_store,
    get_current_user,
    get_record_store,
    require_admin,
    require_staff,
)
from .security import (
    TokenPayload,
    create_access_token,
    decode_token,
    verify_cron_secret,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "create_engine_from_url",
    "create_engine_from_settings",
    "create_session_factory",
    "session_scope",
    "init_db",
    # Dependencies
    "CurrentUser",
    "get_current_user",
    "get_record_store",
    "close_record_store",
    "require_admin",
    "require_staff",
    "CurrentUserDep",
    "AdminDep",
    "StaffDep",
    "StoreDep",
    "SettingsDep",
    # Security
    "TokenPayload",
    "create_access_token",
    "decode_token",
    "verify_cron_secret",
]
