"""Authentication module for the module registry.

- Shared-secret (X-API-Key) check for write operations
- Authentication failure logging
"""

from .api_key import AuthError, require_api_key, verify_api_key
from .schemas import AuthFailureLog

__all__ = [
    "AuthError",
    "require_api_key",
    "verify_api_key",
    "AuthFailureLog",
]
