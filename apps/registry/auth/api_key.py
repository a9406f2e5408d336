"""Shared-secret filter for write operations.

Write endpoints depend on ``require_api_key``; requests without the
``X-API-Key`` header, or with a different value, never reach the registry
service.
"""

import logging
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from apps.registry.constants import API_KEY_HEADER

from .schemas import AuthFailureLog

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


class AuthError(Exception):
    """Authentication failure."""

    def __init__(self, message: str, reason: str = "unknown"):
        self.message = message
        self.reason = reason
        super().__init__(message)


def verify_api_key(provided: str | None, expected: str) -> None:
    """Compare the presented key with the configured one.

    Raises:
        AuthError: Missing or mismatching key
    """
    if not provided:
        raise AuthError(f"Missing {API_KEY_HEADER} header", reason="missing_api_key")

    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise AuthError("Invalid API key", reason="invalid_api_key")


def log_auth_failure(request: Request, reason: str) -> None:
    """Record an authentication failure."""
    log_entry = AuthFailureLog(
        reason=reason,
        path=request.url.path,
        method=request.method,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    logger.warning(
        f"Auth failure: {reason}",
        extra={"auth_failure": log_entry.model_dump(mode="json")},
    )


async def require_api_key(
    request: Request,
    provided: str | None = Depends(api_key_header),
) -> None:
    """FastAPI dependency guarding write operations."""
    expected = request.app.state.settings.api_key
    if not expected:
        logger.error("REGISTRY_API_KEY is not configured; rejecting write request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server API key is not configured",
        )

    try:
        verify_api_key(provided, expected)
    except AuthError as e:
        log_auth_failure(request, e.reason)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
        ) from e
