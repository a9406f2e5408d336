"""Base interface for archive validators."""

from abc import ABC, abstractmethod
from typing import BinaryIO

from .schemas import ValidationResult


class ArchiveValidatorInterface(ABC):
    """Abstract base class for module archive validators.

    Implementations must encode every failure, including unreadable input,
    in the returned ValidationResult instead of raising.
    """

    @abstractmethod
    def validate(self, archive: bytes | BinaryIO) -> ValidationResult:
        """Validate an archive.

        Args:
            archive: Raw bytes or a readable (possibly non-seekable) stream.

        Returns:
            ValidationResult: errors, extracted files and the chosen module root.
        """
        pass
