"""Core contract module for the module registry.

This module provides:
- ErrorCategory: Protocol-facing error classification
- Outcome types: Ok / Failure results for expected branches
"""

from .errors import ErrorCategory
from .outcome import Failure, Ok, Outcome, conflict, invalid_input, not_found

__all__ = [
    "ErrorCategory",
    "Ok",
    "Failure",
    "Outcome",
    "conflict",
    "invalid_input",
    "not_found",
]
