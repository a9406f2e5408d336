"""Registry services."""

from .module_registry import DownloadLocation, ModuleRegistry, clamp_pagination

__all__ = [
    "DownloadLocation",
    "ModuleRegistry",
    "clamp_pagination",
]
