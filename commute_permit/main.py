"""Commute Permit: Main FastAPI Application.

Issues vehicle-commute permits from approved employee documents, serves
public QR-code verification, and monitors document expiration.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import close_record_store, get_settings
from .schemas import ErrorResponse

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(
        f"Starting {settings.app_name} {settings.app_version} "
        f"(environment={settings.environment}, store={settings.record_store_backend})"
    )
    if not settings.public_base_url:
        logger.warning("PUBLIC_BASE_URL is not set; verification URLs use the request host")
    yield
    # Shutdown
    await close_record_store()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Commute Permit API

    Vehicle-commute permits for employees.

    ### Key Features

    - **Issuance**: A permit is issued only from an approved license, vehicle registration and insurance policy.
    - **Verification**: Each permit PDF carries a QR code pointing at the public `/verify/{token}` endpoint.
    - **Expiration Monitoring**: Daily warnings to employees and alerts to administrators.

    ### Authentication

    All endpoints except verification require a valid JWT token in the `Authorization: Bearer <token>` header.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
    max_age=86400,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")

    message = "An unexpected error occurred"
    if settings.debug:
        message = f"{message}: {str(exc)[:200]}"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message=message,
            details=[],
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "commute_permit.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
