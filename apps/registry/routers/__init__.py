"""HTTP routers for the registry API."""

from . import health, modules

__all__ = ["health", "modules"]
