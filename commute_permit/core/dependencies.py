"""FastAPI dependencies for authentication, authorization, and services."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..schemas import UserRole
from ..store import RecordStore, create_record_store
from .config import Settings, get_settings
from .security import decode_token

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)

_record_store: RecordStore | None = None


class CurrentUser:
    """Represents the authenticated user context."""

    def __init__(self, user_id: str, role: UserRole = UserRole.APPLICANT, name: str | None = None):
        self.user_id = user_id
        self.role = UserRole(role)
        self.name = name

    @property
    def id(self) -> str:
        return self.user_id

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_viewer(self) -> bool:
        return self.role == UserRole.VIEWER

    @property
    def is_staff(self) -> bool:
        return self.is_admin or self.is_viewer


# =============================================================================
# RECORD STORE
# =============================================================================


async def get_record_store() -> RecordStore:
    """Process-wide record store, created on first use."""
    global _record_store
    if _record_store is None:
        _record_store = create_record_store(get_settings())
        create_tables = getattr(_record_store, "create_tables", None)
        if create_tables is not None:
            await create_tables()
    return _record_store


async def close_record_store() -> None:
    global _record_store
    if _record_store is not None:
        await _record_store.close()
        _record_store = None
        logger.info("Record store closed")


# =============================================================================
# AUTHENTICATION
# =============================================================================


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> CurrentUser:
    """Dependency to get the current authenticated user from a bearer JWT."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    return CurrentUser(user_id=payload.sub, role=payload.role, name=payload.name)


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Require the admin role."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


def require_staff(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Require the admin or viewer role."""
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff privileges required",
        )
    return current_user


# Type aliases for cleaner dependency injection
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
AdminDep = Annotated[CurrentUser, Depends(require_admin)]
StaffDep = Annotated[CurrentUser, Depends(require_staff)]
StoreDep = Annotated[RecordStore, Depends(get_record_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
