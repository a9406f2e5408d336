"""Storage schemas for object listings and metadata."""

from datetime import datetime

from pydantic import BaseModel, Field


class ObjectInfo(BaseModel):
    """Stat result for a single object in the store.

    ``metadata`` holds the user metadata attached at upload time with the
    transport prefix (``x-amz-meta-``) stripped and keys lower-cased.
    """

    key: str = Field(..., description="Object key: {namespace}/{name}/v{version}/module.tgz")
    size_bytes: int = Field(..., ge=0, description="Size of the object in bytes")
    last_modified: datetime | None = Field(
        default=None,
        description="When the object was written",
    )
    metadata: dict[str, str] = Field(
        default_factory=dict,
        description="User metadata attached to the object",
    )
