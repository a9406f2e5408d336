"""Registry endpoint logic.

ModuleRegistry orchestrates the protocol operations on top of the object
store, the version resolver and the archive validator. It keeps no state
between calls: every answer is re-derived from the store's current keys.

Expected branches come back as ``Failure`` outcomes; unexpected store
failures (``ObjectStoreError`` and its timeout subclass) propagate.

Upload immutability: on stores without an atomic create-if-absent (MinIO),
the existence check and the write are separate calls, so two concurrent
uploads of the same version can both pass the check and the later write
wins. Stores with ``supports_conditional_create`` close that race.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta

from apps.registry.constants import (
    DEFAULT_DOWNLOAD_URL_TTL,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_UPLOAD_URL_TTL,
    LISTING_DOWNLOAD_URL_TTL,
    MAX_PAGE_LIMIT,
    METADATA_KEYS,
)
from apps.registry.core import (
    ErrorCategory,
    Failure,
    Ok,
    Outcome,
    conflict,
    invalid_input,
    not_found,
)
from apps.registry.modules import (
    DuplicateVersionError,
    InvalidModuleKeyError,
    ModuleKey,
    list_versions,
    module_prefix,
    namespace_prefix,
    parse_storage_key,
    parse_version,
    resolve_latest,
    sort_versions,
)
from apps.registry.modules.schemas import (
    MessageResponse,
    ModuleInfo,
    ModuleListResponse,
    ModuleVersions,
    PaginationMeta,
    UploadResponse,
    UploadUrlResponse,
    VersionEntry,
    VersionsResponse,
)
from apps.registry.observability import get_logger, set_context
from apps.registry.storage import ObjectNotFoundError, ObjectStore, ObjectStoreError
from apps.registry.validation import ArchiveValidator, ArchiveValidatorInterface

logger = get_logger(__name__)


@dataclass(frozen=True)
class DownloadLocation:
    """Resolved download target for one module version."""

    key: ModuleKey
    url: str


def clamp_pagination(limit: int, offset: int) -> tuple[int, int]:
    """Clamp limit to [1, MAX_PAGE_LIMIT] and offset to >= 0."""
    return max(1, min(limit, MAX_PAGE_LIMIT)), max(0, offset)


def _not_found_message(namespace: str, name: str, version: str | None = None) -> str:
    if version is None:
        return f"Module {namespace}/{name} not found"
    return f"Module {namespace}/{name} version {version} not found"


class ModuleRegistry:
    """Protocol operations for the module registry."""

    def __init__(
        self,
        store: ObjectStore,
        validator: ArchiveValidatorInterface | None = None,
        download_url_ttl: timedelta = DEFAULT_DOWNLOAD_URL_TTL,
        listing_url_ttl: timedelta = LISTING_DOWNLOAD_URL_TTL,
        upload_url_ttl: timedelta = DEFAULT_UPLOAD_URL_TTL,
    ) -> None:
        self.store = store
        self.validator = validator or ArchiveValidator()
        self.download_url_ttl = download_url_ttl
        self.listing_url_ttl = listing_url_ttl
        self.upload_url_ttl = upload_url_ttl

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_modules(
        self,
        namespace: str,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0,
    ) -> Outcome[ModuleListResponse]:
        """One representative (highest version) per module, sorted by name, paginated."""
        try:
            prefix = namespace_prefix(namespace)
        except InvalidModuleKeyError as e:
            return invalid_input(str(e))

        set_context(namespace=namespace)
        limit, offset = clamp_pagination(limit, offset)

        versions_by_name: dict[str, list[str]] = {}
        for key in await self.store.list_keys(prefix):
            module_key = parse_storage_key(key)
            if module_key is None or module_key.namespace != namespace:
                continue
            versions_by_name.setdefault(module_key.name, []).append(module_key.version)

        # Ambiguous modules are dropped before slicing so pages stay full
        latest_by_name: dict[str, str] = {}
        for name, versions in versions_by_name.items():
            try:
                latest_by_name[name] = resolve_latest(versions)
            except DuplicateVersionError as e:
                logger.error(
                    f"Skipping {namespace}/{name} in listing: {e}",
                    extra_data={"namespace": namespace, "name": name, "versions": e.versions},
                )

        names = sorted(latest_by_name)
        total = len(names)

        modules: list[ModuleInfo] = []
        for name in names[offset : offset + limit]:
            info = await self._module_info(ModuleKey(namespace, name, latest_by_name[name]))
            if info is not None:
                modules.append(info)

        next_offset = offset + limit if offset + limit < total else None
        meta = PaginationMeta(
            limit=limit,
            current_offset=offset,
            next_offset=next_offset,
            next_url=(
                f"/v1/modules/{namespace}?limit={limit}&offset={next_offset}"
                if next_offset is not None
                else None
            ),
        )
        return Ok(ModuleListResponse(meta=meta, modules=modules))

    async def _module_info(self, key: ModuleKey) -> ModuleInfo | None:
        """Merge key, object metadata and timestamp; None if the object vanished meanwhile."""
        stat = await self.store.stat(key.storage_key)
        if stat is None:
            logger.debug(f"{key.storage_key} disappeared during listing")
            return None

        try:
            url = await self.store.get_download_url(key.storage_key, ttl=self.listing_url_ttl)
        except ObjectNotFoundError:
            logger.debug(f"{key.storage_key} disappeared during listing")
            return None

        return ModuleInfo(
            id=key.module_id,
            namespace=key.namespace,
            name=key.name,
            version=key.version,
            description=stat.metadata.get("description", ""),
            source=stat.metadata.get("source", ""),
            published_at=stat.last_modified,
            download_url=url,
        )

    async def get_latest(self, namespace: str, name: str) -> Outcome[DownloadLocation]:
        """Download location of the highest published version."""
        try:
            prefix = module_prefix(namespace, name)
        except InvalidModuleKeyError as e:
            return invalid_input(str(e))

        set_context(namespace=namespace, module=name)
        versions = await list_versions(self.store, prefix)
        if not versions:
            return not_found(_not_found_message(namespace, name))

        try:
            latest = resolve_latest(versions)
        except DuplicateVersionError as e:
            logger.error(
                f"Cannot resolve latest version of {namespace}/{name}: {e}",
                extra_data={"namespace": namespace, "name": name, "versions": e.versions},
            )
            return Failure(ErrorCategory.INTERNAL, f"Module {namespace}/{name} has ambiguous versions")

        return await self._download_location(ModuleKey(namespace, name, latest), latest=True)

    async def get_version(self, namespace: str, name: str, version: str) -> Outcome[DownloadLocation]:
        """Download location of one exact version."""
        try:
            key = ModuleKey.create(namespace, name, version)
        except InvalidModuleKeyError as e:
            return invalid_input(str(e))

        set_context(namespace=namespace, module=name)
        return await self._download_location(key)

    async def _download_location(self, key: ModuleKey, latest: bool = False) -> Outcome[DownloadLocation]:
        try:
            url = await self.store.get_download_url(key.storage_key, ttl=self.download_url_ttl)
        except ObjectNotFoundError:
            return not_found(_not_found_message(key.namespace, key.name, key.version))

        logger.module_download(key.namespace, key.name, key.version, latest=latest)
        return Ok(DownloadLocation(key=key, url=url))

    async def list_module_versions(self, namespace: str, name: str) -> Outcome[VersionsResponse]:
        """Every published version, highest first."""
        try:
            prefix = module_prefix(namespace, name)
        except InvalidModuleKeyError as e:
            return invalid_input(str(e))

        set_context(namespace=namespace, module=name)
        versions = await list_versions(self.store, prefix)
        if not versions:
            return not_found(_not_found_message(namespace, name))

        return Ok(
            VersionsResponse(
                modules=[
                    ModuleVersions(
                        source=f"{namespace}/{name}",
                        versions=[VersionEntry(version=v) for v in sort_versions(versions)],
                    )
                ]
            )
        )

    # =========================================================================
    # Writes
    # =========================================================================

    async def _is_published(self, key: ModuleKey, check_exact: bool = True) -> bool:
        """True if ``key`` or a numerically equal version (1.0.0 / 01.0.0) is stored."""
        if check_exact and await self.store.exists(key.storage_key):
            return True

        target = parse_version(key.version)
        versions = await list_versions(self.store, module_prefix(key.namespace, key.name))
        return any(parse_version(version) == target for version in versions)

    @staticmethod
    def _already_exists(key: ModuleKey) -> Failure:
        return conflict(f"Module {key.namespace}/{key.name} version {key.version} already exists")

    async def upload(
        self,
        namespace: str,
        name: str,
        version: str,
        archive: bytes,
        description: str | None = None,
        source: str | None = None,
    ) -> Outcome[UploadResponse]:
        """Validate and publish a new immutable module version.

        Order: version grammar, existence check, archive validation, write.
        """
        try:
            key = ModuleKey.create(namespace, name, version)
        except InvalidModuleKeyError as e:
            return invalid_input(str(e))

        set_context(namespace=namespace, module=name)
        atomic = self.store.supports_conditional_create

        if await self._is_published(key, check_exact=not atomic):
            logger.module_upload(namespace, name, version, success=False, error="already exists")
            return self._already_exists(key)

        result = await asyncio.to_thread(self.validator.validate, archive)
        logger.module_validation(namespace, name, version, result.is_valid, result.errors)
        if not result.is_valid:
            return invalid_input(
                f"Invalid Terraform module structure: {result.joined_errors()}",
                result.errors,
            )

        values = {
            "namespace": namespace,
            "name": name,
            "version": version,
            "description": description,
            "source": source,
        }
        metadata = {k: values[k] for k in METADATA_KEYS if values[k]}

        try:
            if atomic:
                created = await self.store.create_if_absent(
                    key.storage_key, archive, len(archive), metadata
                )
                if not created:
                    logger.module_upload(namespace, name, version, success=False, error="already exists")
                    return self._already_exists(key)
            else:
                await self.store.upload_from_stream(key.storage_key, archive, len(archive), metadata)
        except ObjectStoreError as e:
            logger.module_upload(namespace, name, version, success=False, error=str(e))
            raise

        logger.module_upload(namespace, name, version, success=True, size_bytes=len(archive))
        return Ok(
            UploadResponse(
                message=f"Module {namespace}/{name} version {version} uploaded successfully",
                url=f"/v1/module/{namespace}/{name}/{version}",
            )
        )

    async def get_upload_url(self, namespace: str, name: str, version: str) -> Outcome[UploadUrlResponse]:
        """Write-only URL for direct client upload.

        Archives uploaded this way bypass structural validation.
        """
        try:
            key = ModuleKey.create(namespace, name, version)
        except InvalidModuleKeyError as e:
            return invalid_input(str(e))

        set_context(namespace=namespace, module=name)
        if await self._is_published(key):
            return self._already_exists(key)

        url = await self.store.get_upload_url(key.storage_key, ttl=self.upload_url_ttl)
        logger.info(f"Issued upload URL for {key}", extra_data={"key": key.storage_key})
        return Ok(UploadUrlResponse(url=url))

    async def delete(self, namespace: str, name: str, version: str) -> Outcome[MessageResponse]:
        """Remove one published version."""
        try:
            key = ModuleKey.create(namespace, name, version)
        except InvalidModuleKeyError as e:
            return invalid_input(str(e))

        set_context(namespace=namespace, module=name)
        if not await self.store.exists(key.storage_key):
            return not_found(_not_found_message(namespace, name, version))

        await self.store.delete(key.storage_key)
        logger.module_delete(namespace, name, version)
        return Ok(MessageResponse(message=f"Module {namespace}/{name} version {version} deleted"))
