"""
FastAPI application entry point.

This module creates and configures the FastAPI application using an
application factory (create_app) so tests can build fresh instances.

For local development:
    uvicorn ossadapter.main:app --reload

For production:
    gunicorn ossadapter.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.dependencies import reset_dependencies
from .api.routes import files, health, uploads
from .config.settings import get_settings
from .core.errors import InvalidArgument, StorageError

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs startup configuration and reports missing settings. The adapter
    itself is built lazily by the first request that needs it.
    """
    settings = get_settings()

    logger.info(
        "OSS adapter API starting",
        extra={
            "version": settings.api_version,
            "bucket": settings.oss_bucket,
            "mock_mode": settings.oss_mock_mode,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    reset_dependencies()
    logger.info("OSS adapter API shutting down")


def storage_error_status(exc: StorageError) -> int:
    """HTTP status for a storage failure."""
    if isinstance(exc, InvalidArgument):
        return status.HTTP_400_BAD_REQUEST
    if exc.is_not_found:
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_502_BAD_GATEWAY


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Object storage service for Alibaba Cloud OSS.

        ## Features

        - Signed policies for uploading straight from the browser
        - Verified upload callbacks
        - Directory listings and public/signed file URLs

        ## Authentication

        Endpoints require an API key in the `X-API-Key` header, except the
        upload callback, which is authenticated by the OSS signature.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        uploads.router,
        prefix="/api/v1/uploads",
        tags=["Uploads"],
    )

    app.include_router(
        files.router,
        prefix="/api/v1/files",
        tags=["Files"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at the docs."""
        return {
            "message": "OSS Adapter API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(StorageError)
    async def storage_exception_handler(request: Request, exc: StorageError):
        status_code = storage_error_status(exc)
        logger.warning(
            "Storage operation failed",
            extra={
                "path": request.url.path,
                "error": exc.message,
                "code": exc.code,
                "status": status_code,
            }
        )
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "ossadapter.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
