"""Observability module for the registry.

This module provides:
- Structured logging with request/namespace/module context
- Registry event helpers (validation, upload, download, delete)
"""

from .logger import (
    StructuredFormatter,
    StructuredLogger,
    clear_context,
    configure_logging,
    get_logger,
    set_context,
)

__all__ = [
    "StructuredFormatter",
    "StructuredLogger",
    "clear_context",
    "configure_logging",
    "get_logger",
    "set_context",
]
