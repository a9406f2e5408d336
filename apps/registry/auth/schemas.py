"""Authentication schemas."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


class AuthFailureLog(BaseModel):
    """Authentication failure record."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reason: str
    path: str
    method: str
    ip_address: str | None = None
    user_agent: str | None = None
