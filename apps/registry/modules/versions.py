"""Version resolution over storage keys.

``VERSION_RE`` is the grammar gate (strict major.minor.patch); ordering and
equality come from ``packaging.version``, so "10.0.0" sorts after "9.0.0" and
"01.0.0" equals "1.0.0".
"""

from collections.abc import Iterable

from packaging.version import Version

from apps.registry.storage import ObjectStore

from .keys import INVALID_VERSION_MESSAGE, VERSION_RE, parse_storage_key


class InvalidVersionError(ValueError):
    """Version string does not match major.minor.patch."""

    pass


class NoVersionsError(LookupError):
    """No versions to resolve."""

    pass


class DuplicateVersionError(ValueError):
    """Two distinct version strings parse to the same version."""

    def __init__(self, message: str, versions: list[str]) -> None:
        super().__init__(message)
        self.versions = versions


def parse_version(text: str) -> Version:
    """Parse a strict major.minor.patch string.

    Raises:
        InvalidVersionError: If ``text`` is outside the registry grammar
    """
    if not VERSION_RE.match(text):
        raise InvalidVersionError(f"{INVALID_VERSION_MESSAGE}: {text!r}")
    return Version(text)


def extract_version(key: str) -> str | None:
    """Return the version of a ``{namespace}/{name}/v<semver>/module.tgz`` key.

    Keys of any other shape (including deeper paths under a module) are
    ignored (None), not errors.
    """
    module_key = parse_storage_key(key)
    return module_key.version if module_key else None


def collect_versions(keys: Iterable[str]) -> set[str]:
    """Deduplicated versions found in ``keys``."""
    versions: set[str] = set()
    for key in keys:
        version = extract_version(key)
        if version is not None:
            versions.add(version)
    return versions


async def list_versions(store: ObjectStore, prefix: str) -> set[str]:
    """All versions stored under ``prefix``."""
    keys = await store.list_keys(prefix)
    return collect_versions(keys)


def find_duplicates(versions: Iterable[str]) -> list[list[str]]:
    """Groups of distinct strings that parse to the same version (e.g. 1.0.0 / 01.0.0)."""
    groups: dict[Version, list[str]] = {}
    for version in versions:
        groups.setdefault(parse_version(version), []).append(version)
    return [sorted(group) for group in groups.values() if len(group) > 1]


def sort_versions(versions: Iterable[str], descending: bool = True) -> list[str]:
    """Order versions numerically."""
    return sorted(versions, key=parse_version, reverse=descending)


def resolve_latest(versions: Iterable[str]) -> str:
    """Return the highest version.

    Raises:
        NoVersionsError: If ``versions`` is empty
        DuplicateVersionError: If two strings denote the same version
    """
    candidates = list(versions)
    if not candidates:
        raise NoVersionsError("No versions available")

    duplicates = find_duplicates(candidates)
    if duplicates:
        flat = [version for group in duplicates for version in group]
        raise DuplicateVersionError(
            f"Ambiguous versions denote the same release: {', '.join(flat)}",
            versions=flat,
        )

    return max(candidates, key=parse_version)
