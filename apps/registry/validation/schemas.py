"""Validation schemas for uploaded module archives."""

from pydantic import BaseModel, Field


class ValidationResult(BaseModel):
    """Outcome of validating one uploaded archive. Never persisted."""

    is_valid: bool = Field(..., description="Whether the archive holds a usable module")
    errors: list[str] = Field(
        default_factory=list,
        description="One human-readable error per failed requirement, in check order",
    )
    found_files: list[str] = Field(
        default_factory=list,
        description="Every extracted file, relative to the archive root",
    )
    module_root: str | None = Field(
        default=None,
        description="Directory chosen as module root ('' for the archive root)",
    )

    def joined_errors(self, separator: str = "; ") -> str:
        return separator.join(self.errors)
