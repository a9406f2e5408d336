# Validation Module
# Structural validation of uploaded module archives

from .archive_validator import ArchiveLimitError, ArchiveValidator
from .base import ArchiveValidatorInterface
from .schemas import ValidationResult

__all__ = [
    "ValidationResult",
    "ArchiveValidatorInterface",
    "ArchiveValidator",
    "ArchiveLimitError",
]
