"""Module identity and storage key mapping.

ModuleKey (namespace, name, version) maps bijectively to the storage key
``{namespace}/{name}/v{version}/module.tgz``. The key space of the bucket is
the registry index; nothing else is persisted.
"""

import logging
import re
from dataclasses import dataclass

from apps.registry.constants import MODULE_ARCHIVE_NAME, VERSION_PATTERN

logger = logging.getLogger(__name__)

VERSION_RE = re.compile(VERSION_PATTERN)

PATH_TRAVERSAL_PATTERN = re.compile(r"\.\./|\.\.\\|%2e%2e|%252e", re.IGNORECASE)

SAFE_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")

STORAGE_KEY_RE = re.compile(
    r"^(?P<namespace>[^/]+)/(?P<name>[^/]+)/v(?P<version>\d+\.\d+\.\d+)/"
    + re.escape(MODULE_ARCHIVE_NAME)
    + r"$"
)

INVALID_VERSION_MESSAGE = "Version must be in semantic versioning format (e.g. 1.0.0)"


class InvalidModuleKeyError(ValueError):
    """Namespace, name or version cannot form a storage key."""

    pass


def validate_segment(value: str, field: str) -> None:
    """Validate a namespace or module name as a single key segment.

    Raises:
        InvalidModuleKeyError: Empty, traversal, forbidden characters or too long
    """
    if not value:
        raise InvalidModuleKeyError(f"Empty {field} is not allowed")

    if PATH_TRAVERSAL_PATTERN.search(value) or value in (".", ".."):
        logger.warning(f"Path traversal attempt detected in {field}: {value[:50]}")
        raise InvalidModuleKeyError(f"Invalid {field}: path traversal detected")

    if not SAFE_SEGMENT_PATTERN.match(value):
        raise InvalidModuleKeyError(
            f"Invalid {field}: use 1-64 letters, digits, '-', '_' or '.'"
        )


def is_valid_version(version: str) -> bool:
    return bool(VERSION_RE.match(version))


def validate_version(version: str) -> None:
    if not is_valid_version(version):
        raise InvalidModuleKeyError(INVALID_VERSION_MESSAGE)


def namespace_prefix(namespace: str) -> str:
    """Prefix enumerating every module of a namespace."""
    validate_segment(namespace, "namespace")
    return f"{namespace}/"


def module_prefix(namespace: str, name: str) -> str:
    """Prefix enumerating every version of one module.

    The trailing slash keeps ``vpc`` from matching ``vpc-peering``.
    """
    validate_segment(namespace, "namespace")
    validate_segment(name, "name")
    return f"{namespace}/{name}/"


@dataclass(frozen=True)
class ModuleKey:
    """Logical identity of one published module version."""

    namespace: str
    name: str
    version: str

    @classmethod
    def create(cls, namespace: str, name: str, version: str) -> "ModuleKey":
        """Build a validated key.

        Raises:
            InvalidModuleKeyError: If any component is malformed
        """
        validate_segment(namespace, "namespace")
        validate_segment(name, "name")
        validate_version(version)
        return cls(namespace=namespace, name=name, version=version)

    @property
    def storage_key(self) -> str:
        return f"{self.namespace}/{self.name}/v{self.version}/{MODULE_ARCHIVE_NAME}"

    @property
    def module_id(self) -> str:
        return f"{self.namespace}/{self.name}/{self.version}"

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name} v{self.version}"


def parse_storage_key(key: str) -> ModuleKey | None:
    """Parse a storage key back into a ModuleKey.

    Keys that are not module archives return None.
    """
    match = STORAGE_KEY_RE.match(key)
    if match is None:
        return None
    return ModuleKey(
        namespace=match.group("namespace"),
        name=match.group("name"),
        version=match.group("version"),
    )
