"""Module identity, version resolution and response schemas."""

from .keys import (
    InvalidModuleKeyError,
    ModuleKey,
    module_prefix,
    namespace_prefix,
    parse_storage_key,
)
from .versions import (
    DuplicateVersionError,
    InvalidVersionError,
    NoVersionsError,
    collect_versions,
    extract_version,
    list_versions,
    parse_version,
    resolve_latest,
    sort_versions,
)

__all__ = [
    "ModuleKey",
    "InvalidModuleKeyError",
    "module_prefix",
    "namespace_prefix",
    "parse_storage_key",
    "InvalidVersionError",
    "NoVersionsError",
    "DuplicateVersionError",
    "parse_version",
    "collect_versions",
    "extract_version",
    "list_versions",
    "resolve_latest",
    "sort_versions",
]
