"""Public permit verification, reached by scanning the QR code on a permit."""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from ..schemas import VerifyResponse
from .permits import PermitServiceDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verify", tags=["verify"])


@router.get("/{token}", response_model=VerifyResponse)
async def verify_permit(token: str, service: PermitServiceDep):
    """
    Look up a permit by its verification token.

    No authentication. Unknown, revoked and expired permits are reported in
    the body with `valid: false`, never as an HTTP error.
    """
    try:
        result = await service.verify(token)
    except Exception as e:
        logger.error(f"Verification failed for token {token}: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=VerifyResponse(valid=False, message="Verification failed").model_dump(mode="json"),
        )

    return VerifyResponse(valid=result.valid, permit=result.permit, message=result.message)
