"""Registry constants

Centralized constants for the registry service to avoid duplication and ensure consistency.
"""

from datetime import timedelta

SERVICE_VERSION = "0.1.0"

# Strict three-component numeric version (no pre-release / build metadata)
VERSION_PATTERN = r"^\d+\.\d+\.\d+$"

# Every module version is stored as a single archive object
MODULE_ARCHIVE_NAME = "module.tgz"

# Header carrying the download location on 204 responses
DOWNLOAD_HEADER = "X-Terraform-Get"

# Shared-secret header required on write operations
API_KEY_HEADER = "X-API-Key"

# Pre-signed URL lifetimes
DEFAULT_DOWNLOAD_URL_TTL = timedelta(minutes=15)
DEFAULT_UPLOAD_URL_TTL = timedelta(minutes=15)
LISTING_DOWNLOAD_URL_TTL = timedelta(minutes=5)

# Pagination for module listings
DEFAULT_PAGE_LIMIT = 15
MAX_PAGE_LIMIT = 100

# Upload and extraction bounds
MAX_UPLOAD_BYTES = 50 * 1024 * 1024
MAX_EXTRACTED_BYTES = 500 * 1024 * 1024
MAX_ARCHIVE_MEMBERS = 10_000

# Object metadata keys attached at upload time
METADATA_KEYS: tuple[str, ...] = ("namespace", "name", "version", "description", "source")
