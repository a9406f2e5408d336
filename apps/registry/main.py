"""FastAPI application entry point.

Private Terraform module registry API server with endpoints for:
- Module listing and version listing
- Latest / exact version download resolution (X-Terraform-Get)
- Module upload, upload URL issuing and deletion
- Health checks
"""

import asyncio
import logging
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from apps.registry.config import RegistrySettings
from apps.registry.constants import SERVICE_VERSION
from apps.registry.core import ErrorCategory
from apps.registry.modules.schemas import ErrorResponse
from apps.registry.observability import clear_context, configure_logging, get_logger, set_context
from apps.registry.routers import health, modules
from apps.registry.services import ModuleRegistry
from apps.registry.storage import (
    InMemoryObjectStore,
    MinioObjectStore,
    ObjectStore,
    ObjectStoreError,
    ObjectStoreTimeoutError,
)
from apps.registry.validation import ArchiveValidator

logger = logging.getLogger(__name__)
route_logger = get_logger("apps.registry.access")

REQUEST_ID_HEADER = "X-Request-ID"


def build_store(settings: RegistrySettings) -> ObjectStore:
    """Instantiate the configured object store backend."""
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory object store; modules are lost on restart")
        return InMemoryObjectStore(bucket=settings.minio_bucket)

    if settings.storage_backend != "minio":
        raise ValueError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")

    return MinioObjectStore(
        endpoint=settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
        bucket=settings.minio_bucket,
        region=settings.minio_region,
        timeout_seconds=settings.store_timeout_seconds,
    )


def error_body(message: str, **extra: str) -> dict:
    """Uniform error body, optionally with extra top-level fields."""
    return {**ErrorResponse.from_message(message).model_dump(), **extra}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())[:8]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: RegistrySettings = app.state.settings
    configure_logging(settings.log_level, settings.log_format)

    logger.info("=" * 60)
    logger.info("Terraform Module Registry - API Server Starting")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Storage Backend: {settings.storage_backend} (bucket: {settings.minio_bucket})")
    logger.info(f"CORS Origins: {', '.join(settings.cors_origins)}")

    if not settings.api_key:
        logger.warning("REGISTRY_API_KEY is not set; write endpoints will reject every request")

    try:
        await app.state.store.validate_connectivity()
    except ObjectStoreError as e:
        logger.error(f"Object store is not usable, refusing to start: {e}")
        raise
    logger.info("Object store connectivity validated")

    yield

    logger.info("API Server shutting down...")


def create_app(settings: RegistrySettings | None = None, store: ObjectStore | None = None) -> FastAPI:
    """Build the registry application.

    Args:
        settings: Process settings (default: read from the environment)
        store: Object store override (default: built from ``settings``)
    """
    settings = settings or RegistrySettings.from_env()
    store = store if store is not None else build_store(settings)

    app = FastAPI(
        title="Terraform Module Registry API",
        description="Private registry for versioned Terraform module archives",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.registry = ModuleRegistry(
        store,
        ArchiveValidator(max_archive_bytes=settings.max_upload_bytes),
        download_url_ttl=settings.download_url_ttl,
        listing_url_ttl=settings.listing_url_ttl,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Tag logs with a request id, bound the request duration, log the route."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        set_context(request_id=request_id)
        started = time.monotonic()

        try:
            try:
                response = await asyncio.wait_for(
                    call_next(request),
                    timeout=settings.request_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Request {request.method} {request.url.path} exceeded "
                    f"{settings.request_timeout_seconds}s [request_id={request_id}]"
                )
                response = JSONResponse(
                    status_code=ErrorCategory.OVERLOADED.http_status,
                    content=error_body("Request timed out, retry later"),
                )

            response.headers[REQUEST_ID_HEADER] = request_id
            route_logger.api_route(
                request.method,
                request.url.path,
                response.status_code,
                int((time.monotonic() - started) * 1000),
            )
            return response
        finally:
            clear_context()

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed parameters are client errors (400)."""
        details = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"errors": [{"detail": detail} for detail in details] or [{"detail": "Invalid request"}]},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(ObjectStoreTimeoutError)
    async def store_timeout_handler(request: Request, exc: ObjectStoreTimeoutError) -> JSONResponse:
        logger.warning(f"Object store timed out [request_id={_request_id(request)}]: {exc}")
        return JSONResponse(
            status_code=ErrorCategory.OVERLOADED.http_status,
            content=error_body("Object store timed out, retry later"),
        )

    @app.exception_handler(ObjectStoreError)
    async def store_error_handler(request: Request, exc: ObjectStoreError) -> JSONResponse:
        request_id = _request_id(request)
        logger.error(f"Object store failure [request_id={request_id}]: {exc}", exc_info=exc)
        message = str(exc) if settings.is_development else "Object store failure"
        return JSONResponse(
            status_code=ErrorCategory.INTERNAL.http_status,
            content=error_body(message, request_id=request_id),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler with request correlation."""
        request_id = _request_id(request)

        logger.error(
            f"Unhandled exception [request_id={request_id}]: {exc}",
            exc_info=exc,
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
            },
        )

        if settings.is_development:
            return JSONResponse(
                status_code=ErrorCategory.INTERNAL.http_status,
                content=error_body(str(exc), type=type(exc).__name__, request_id=request_id),
            )

        return JSONResponse(
            status_code=ErrorCategory.INTERNAL.http_status,
            content=error_body("Internal server error", request_id=request_id),
        )

    app.include_router(health.router)
    app.include_router(modules.router)

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    _settings = app.state.settings
    uvicorn.run(
        "apps.registry.main:app",
        host=_settings.api_host,
        port=_settings.api_port,
        reload=_settings.is_development,
    )
