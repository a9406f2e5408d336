"""Registry configuration.

Settings are read once from the environment (and a project ``.env`` file) at
startup and passed explicitly to the components that need them.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from apps.registry.constants import (
    DEFAULT_DOWNLOAD_URL_TTL,
    LISTING_DOWNLOAD_URL_TTL,
    MAX_UPLOAD_BYTES,
)

# Load .env from the project root
_project_root = Path(__file__).resolve().parents[2]
load_dotenv(_project_root / ".env")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes")


def _env_list(name: str, default: str) -> list[str]:
    values = [value.strip() for value in os.getenv(name, default).split(",")]
    return [value for value in values if value]


@dataclass(frozen=True)
class RegistrySettings:
    """Process-wide settings for the registry service."""

    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "text"

    # Object store
    storage_backend: str = "minio"
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = "minioadmin"
    minio_secret_key: str = "minioadmin"
    minio_secure: bool = False
    minio_bucket: str = "modules"
    minio_region: str | None = None
    store_timeout_seconds: float = 30.0

    # Shared secret for write operations
    api_key: str | None = None

    # Protocol policy
    download_url_ttl: timedelta = DEFAULT_DOWNLOAD_URL_TTL
    listing_url_ttl: timedelta = LISTING_DOWNLOAD_URL_TTL
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    request_timeout_seconds: float = 120.0

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls) -> "RegistrySettings":
        """Build settings from environment variables."""
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            storage_backend=os.getenv("STORAGE_BACKEND", "minio").lower(),
            minio_endpoint=os.getenv("MINIO_ENDPOINT", "localhost:9000"),
            minio_access_key=os.getenv("MINIO_ACCESS_KEY", "minioadmin"),
            minio_secret_key=os.getenv("MINIO_SECRET_KEY", "minioadmin"),
            minio_secure=_env_bool("MINIO_USE_SSL", False),
            minio_bucket=os.getenv("MINIO_BUCKET", "modules"),
            minio_region=os.getenv("MINIO_REGION") or None,
            store_timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "30")),
            api_key=os.getenv("REGISTRY_API_KEY") or None,
            download_url_ttl=timedelta(seconds=int(os.getenv("DOWNLOAD_URL_TTL_SECONDS", "900"))),
            listing_url_ttl=timedelta(seconds=int(os.getenv("LISTING_URL_TTL_SECONDS", "300"))),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(MAX_UPLOAD_BYTES))),
            request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "120")),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("API_PORT", "8000")),
            cors_origins=_env_list("CORS_ORIGINS", "http://localhost:3000") or ["http://localhost:3000"],
        )
