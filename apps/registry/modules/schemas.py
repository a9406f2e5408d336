"""Registry response schemas.

A closed set of response bodies, one per endpoint, plus the uniform error
body ``{"errors": [{"detail": "..."}]}``.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class ModuleInfo(BaseModel):
    """Representative view of a module, materialised per list request."""

    id: str = Field(..., description="{namespace}/{name}/{version}")
    namespace: str
    name: str
    version: str
    description: str = ""
    source: str = ""
    published_at: datetime | None = None
    download_url: str


class PaginationMeta(BaseModel):
    """Pagination metadata for module listings."""

    limit: int
    current_offset: int
    next_offset: int | None = None
    next_url: str | None = None


class ModuleListResponse(BaseModel):
    """GET /v1/modules/{namespace}"""

    meta: PaginationMeta
    modules: list[ModuleInfo] = Field(default_factory=list)


class VersionEntry(BaseModel):
    version: str


class ModuleVersions(BaseModel):
    source: str = Field(..., description="{namespace}/{name}")
    versions: list[VersionEntry] = Field(default_factory=list)


class VersionsResponse(BaseModel):
    """GET /v1/modules/{namespace}/{name}/versions"""

    modules: list[ModuleVersions] = Field(default_factory=list)


class UploadResponse(BaseModel):
    """POST /v1/module/{namespace}/{name}/{version}"""

    message: str
    url: str = Field(..., description="Registry path resolving the published version")


class UploadUrlResponse(BaseModel):
    """POST /v1/module/{namespace}/{name}/{version}/upload-url"""

    url: str = Field(..., description="Write-only pre-signed URL")


class MessageResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    detail: str


class ErrorResponse(BaseModel):
    """Uniform error body."""

    errors: list[ErrorDetail] = Field(default_factory=list)

    @classmethod
    def from_message(cls, message: str) -> "ErrorResponse":
        return cls(errors=[ErrorDetail(detail=message)])
