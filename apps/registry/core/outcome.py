"""Explicit outcomes for registry operations.

Expected branches ("module absent", "version already published", "archive
invalid") are returned as ``Failure`` values instead of raised, so callers
handle them as ordinary control flow. Unexpected store failures still raise.
"""

from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

from .errors import ErrorCategory

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Expected failure with its category and a caller-facing message."""

    category: ErrorCategory
    message: str
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return False

    @property
    def status_code(self) -> int:
        return self.category.http_status


Outcome = Union[Ok[T], Failure]


def not_found(message: str) -> Failure:
    return Failure(ErrorCategory.NOT_FOUND, message)


def conflict(message: str) -> Failure:
    return Failure(ErrorCategory.CONFLICT, message)


def invalid_input(message: str, errors: list[str] | None = None) -> Failure:
    return Failure(ErrorCategory.INVALID_INPUT, message, list(errors or []))
