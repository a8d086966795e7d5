"""Security utilities: access tokens and the cron shared secret."""

from datetime import datetime, timedelta, timezone
import hmac
import logging

import jwt
from pydantic import BaseModel

from ..schemas import UserRole
from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


# JWT Token handling
class TokenPayload(BaseModel):
    """JWT token payload issued by the sign-in frontend."""

    sub: str  # Employee ID
    role: UserRole = UserRole.APPLICANT
    name: str | None = None
    exp: datetime
    iat: datetime
    type: str = "access"


def create_access_token(
    user_id: str,
    role: UserRole = UserRole.APPLICANT,
    name: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )

    payload = {
        "sub": str(user_id),
        "role": UserRole(role).value,
        "name": name,
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(payload, settings.secret_key, algorithm="HS256")


def decode_token(token: str) -> TokenPayload | None:
    """Decode and validate a JWT token (HS256)."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
        return TokenPayload(**payload)
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    except ValueError as e:
        logger.warning(f"Token payload rejected: {e}")
        return None


def verify_cron_secret(provided: str | None, expected: str | None) -> bool:
    """Constant-time check of the scheduler's bearer token.

    With no secret configured every caller is accepted, matching local
    development where no scheduler is set up.
    """
    if not expected:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
