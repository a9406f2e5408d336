"""Error classification for registry operations.

ErrorCategory determines the protocol-facing status:
- NOT_FOUND: Resolvable entity absent
- CONFLICT: Immutability violated (version already published)
- INVALID_INPUT: Malformed version, missing file, malformed archive
- UNAUTHORIZED: Missing or wrong shared secret (handled by the auth filter)
- OVERLOADED: Operation cancelled or timed out, client may retry
- INTERNAL: Unexpected failure
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Classification of registry failures."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"
    UNAUTHORIZED = "unauthorized"
    OVERLOADED = "overloaded"
    INTERNAL = "internal"

    @property
    def http_status(self) -> int:
        """HTTP status code for this category."""
        return _HTTP_STATUS[self]


_HTTP_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.INVALID_INPUT: 400,
    ErrorCategory.UNAUTHORIZED: 401,
    ErrorCategory.OVERLOADED: 503,
    ErrorCategory.INTERNAL: 500,
}
