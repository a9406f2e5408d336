"""Modules router.

Terraform registry protocol endpoints: listing, latest/exact download
resolution, version listing, upload, upload URL issuing and deletion.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from apps.registry.auth import require_api_key
from apps.registry.constants import DEFAULT_PAGE_LIMIT, DOWNLOAD_HEADER
from apps.registry.core import Failure
from apps.registry.modules.schemas import (
    ErrorResponse,
    MessageResponse,
    ModuleListResponse,
    UploadResponse,
    UploadUrlResponse,
    VersionsResponse,
)
from apps.registry.services import DownloadLocation, ModuleRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["modules"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


class UploadTooLargeError(Exception):
    """Request body exceeds the configured upload limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Module archive exceeds the maximum upload size of {limit} bytes")
        self.limit = limit


# =============================================================================
# Helpers
# =============================================================================


def get_registry(request: Request) -> ModuleRegistry:
    """Registry service bound to the running application."""
    return request.app.state.registry


def failure_response(failure: Failure) -> JSONResponse:
    """Render an expected failure in the uniform error shape."""
    return JSONResponse(
        status_code=failure.status_code,
        content=ErrorResponse.from_message(failure.message).model_dump(),
    )


def download_response(location: DownloadLocation) -> Response:
    """204 with the pre-signed URL in the download header."""
    return Response(
        status_code=status.HTTP_204_NO_CONTENT,
        headers={DOWNLOAD_HEADER: location.url},
    )


def _check_declared_length(request: Request, limit: int) -> None:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise UploadTooLargeError(limit)


async def _read_raw_body(request: Request, limit: int) -> bytes:
    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise UploadTooLargeError(limit)
        chunks.append(chunk)
    return b"".join(chunks)


async def read_upload(request: Request, limit: int) -> tuple[bytes, str | None, str | None]:
    """Extract (archive, description, source) from a multipart or raw upload.

    Multipart requests carry the archive in the ``file`` part and optional
    ``description`` / ``source`` fields; raw bodies take them from the query.

    Raises:
        UploadTooLargeError: Body larger than ``limit``
    """
    _check_declared_length(request, limit)

    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        archive = await _read_raw_body(request, limit)
        return archive, request.query_params.get("description"), request.query_params.get("source")

    form = await request.form()
    try:
        upload = form.get("file")
        if isinstance(upload, UploadFile):
            archive = await upload.read(limit + 1)
        elif isinstance(upload, str):
            archive = upload.encode()
        else:
            archive = b""
        if len(archive) > limit:
            raise UploadTooLargeError(limit)

        description = form.get("description")
        source = form.get("source")
        return (
            archive,
            description if isinstance(description, str) else None,
            source if isinstance(source, str) else None,
        )
    finally:
        await form.close()


# =============================================================================
# Read endpoints
# =============================================================================


@router.get(
    "/modules/{namespace}",
    response_model=ModuleListResponse,
    responses=_ERROR_RESPONSES,
)
async def list_modules(
    namespace: str,
    limit: int = Query(DEFAULT_PAGE_LIMIT),
    offset: int = Query(0),
    registry: ModuleRegistry = Depends(get_registry),
):
    """List one representative (latest version) per module in a namespace."""
    outcome = await registry.list_modules(namespace, limit=limit, offset=offset)
    if not outcome.ok:
        return failure_response(outcome)
    return outcome.value


@router.get(
    "/module/{namespace}/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERROR_RESPONSES,
)
async def download_latest(
    namespace: str,
    name: str,
    registry: ModuleRegistry = Depends(get_registry),
) -> Response:
    """Resolve the highest version and point the client at its archive."""
    outcome = await registry.get_latest(namespace, name)
    if not outcome.ok:
        return failure_response(outcome)
    return download_response(outcome.value)


@router.get(
    "/module/{namespace}/{name}/{version}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERROR_RESPONSES,
)
async def download_version(
    namespace: str,
    name: str,
    version: str,
    registry: ModuleRegistry = Depends(get_registry),
) -> Response:
    """Point the client at the archive of one exact version."""
    outcome = await registry.get_version(namespace, name, version)
    if not outcome.ok:
        return failure_response(outcome)
    return download_response(outcome.value)


@router.get(
    "/modules/{namespace}/{name}/versions",
    response_model=VersionsResponse,
    responses=_ERROR_RESPONSES,
)
async def list_versions(
    namespace: str,
    name: str,
    registry: ModuleRegistry = Depends(get_registry),
):
    """All published versions of a module, highest first."""
    outcome = await registry.list_module_versions(namespace, name)
    if not outcome.ok:
        return failure_response(outcome)
    return outcome.value


# =============================================================================
# Write endpoints
# =============================================================================


@router.post(
    "/module/{namespace}/{name}/{version}",
    response_model=UploadResponse,
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(require_api_key)],
)
async def upload_module(
    namespace: str,
    name: str,
    version: str,
    request: Request,
    registry: ModuleRegistry = Depends(get_registry),
):
    """Publish a new version from a .tgz archive."""
    limit = request.app.state.settings.max_upload_bytes
    try:
        archive, description, source = await read_upload(request, limit)
    except UploadTooLargeError as e:
        logger.warning(f"Rejected upload of {namespace}/{name} {version}: {e}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse.from_message(str(e)).model_dump(),
        )

    outcome = await registry.upload(
        namespace,
        name,
        version,
        archive,
        description=description,
        source=source,
    )
    if not outcome.ok:
        return failure_response(outcome)
    return outcome.value


@router.post(
    "/module/{namespace}/{name}/{version}/upload-url",
    response_model=UploadUrlResponse,
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(require_api_key)],
)
async def create_upload_url(
    namespace: str,
    name: str,
    version: str,
    registry: ModuleRegistry = Depends(get_registry),
):
    """Issue a write-only URL for uploading the archive directly to storage."""
    outcome = await registry.get_upload_url(namespace, name, version)
    if not outcome.ok:
        return failure_response(outcome)
    return outcome.value


@router.delete(
    "/module/{namespace}/{name}/{version}",
    response_model=MessageResponse,
    responses=_ERROR_RESPONSES,
    dependencies=[Depends(require_api_key)],
)
async def delete_module(
    namespace: str,
    name: str,
    version: str,
    registry: ModuleRegistry = Depends(get_registry),
):
    """Remove one published version."""
    outcome = await registry.delete(namespace, name, version)
    if not outcome.ok:
        return failure_response(outcome)
    return outcome.value
