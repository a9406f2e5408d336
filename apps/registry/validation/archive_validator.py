"""Terraform module archive validator.

Extracts a gzip-compressed tar archive into a private scratch directory and
looks for a directory with a usable module layout:

- one of ``main.tf`` / ``providers.tf``
- one of ``variables.tf`` / ``variable.tf``
- one of ``outputs.tf`` / ``output.tf``

Archives often wrap their content in a single top-level directory, so every
extracted directory is a candidate. The archive root wins when it qualifies;
otherwise the first qualifying directory in walk order (top-down, directory
names sorted) is used.
"""

import logging
import os
import shutil
import tarfile
import tempfile
from typing import BinaryIO

from apps.registry.constants import MAX_ARCHIVE_MEMBERS, MAX_EXTRACTED_BYTES, MAX_UPLOAD_BYTES

from .base import ArchiveValidatorInterface
from .schemas import ValidationResult

logger = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 1024 * 1024

ROOT_DIR = ""


class ArchiveLimitError(Exception):
    """Archive exceeds a size or member-count bound."""

    pass


class ArchiveValidator(ArchiveValidatorInterface):
    """Validates uploaded module archives (.tgz)."""

    REQUIRED_FILES: tuple[str, ...] = ("main.tf", "providers.tf")
    VARIABLE_FILES: tuple[str, ...] = ("variables.tf", "variable.tf")
    OUTPUT_FILES: tuple[str, ...] = ("outputs.tf", "output.tf")

    def __init__(
        self,
        max_archive_bytes: int = MAX_UPLOAD_BYTES,
        max_extracted_bytes: int = MAX_EXTRACTED_BYTES,
        max_members: int = MAX_ARCHIVE_MEMBERS,
        scratch_root: str | None = None,
    ) -> None:
        self.max_archive_bytes = max_archive_bytes
        self.max_extracted_bytes = max_extracted_bytes
        self.max_members = max_members
        self.scratch_root = scratch_root

    def validate(self, archive: bytes | BinaryIO) -> ValidationResult:
        scratch = tempfile.mkdtemp(prefix="module-archive-", dir=self.scratch_root)
        try:
            archive_path = os.path.join(scratch, "upload.tgz")
            extract_dir = os.path.join(scratch, "extracted")
            os.mkdir(extract_dir)

            self._buffer(archive, archive_path)
            self._extract(archive_path, extract_dir)

            files_by_dir = self._group_files(extract_dir)
            found_files = sorted(
                f"{directory}/{filename}" if directory else filename
                for directory, filenames in files_by_dir.items()
                for filename in filenames
            )

            module_root = self._choose_module_root(files_by_dir)
            if module_root is None:
                errors = [self._describe_missing_structure(files_by_dir)]
            else:
                errors = self._check_module_root(module_root, files_by_dir[module_root])

            return ValidationResult(
                is_valid=not errors,
                errors=errors,
                found_files=found_files,
                module_root=module_root,
            )
        except Exception as e:
            logger.warning(f"Error validating module archive: {e}", exc_info=True)
            message = str(e).replace(scratch, "<archive>")
            return ValidationResult(
                is_valid=False,
                errors=[f"Failed to extract module archive: {message}"],
            )
        finally:
            self._cleanup(scratch)

    # =========================================================================
    # Extraction
    # =========================================================================

    def _buffer(self, archive: bytes | BinaryIO, path: str) -> None:
        """Spool the input to disk; the source stream may not be seekable."""
        if isinstance(archive, (bytes, bytearray)):
            if len(archive) > self.max_archive_bytes:
                raise ArchiveLimitError(f"archive exceeds {self.max_archive_bytes} bytes")
            with open(path, "wb") as f:
                f.write(archive)
            return

        written = 0
        with open(path, "wb") as f:
            while chunk := archive.read(_COPY_CHUNK_SIZE):
                written += len(chunk)
                if written > self.max_archive_bytes:
                    raise ArchiveLimitError(f"archive exceeds {self.max_archive_bytes} bytes")
                f.write(chunk)

    def _extract(self, archive_path: str, destination: str) -> None:
        with tarfile.open(archive_path, mode="r:gz") as tar:
            members = tar.getmembers()
            if len(members) > self.max_members:
                raise ArchiveLimitError(f"archive has more than {self.max_members} entries")

            total = sum(member.size for member in members if member.isfile())
            if total > self.max_extracted_bytes:
                raise ArchiveLimitError(
                    f"archive expands to more than {self.max_extracted_bytes} bytes"
                )

            tar.extractall(destination, members=members, filter="data")

    @staticmethod
    def _group_files(root: str) -> dict[str, list[str]]:
        """Map each directory (relative, '/'-separated, '' for root) to its file names."""
        files_by_dir: dict[str, list[str]] = {}
        for dirpath, dirnames, filenames in os.walk(root, topdown=True):
            dirnames.sort()
            relative = os.path.relpath(dirpath, root)
            key = ROOT_DIR if relative == os.curdir else relative.replace(os.sep, "/")
            files_by_dir[key] = sorted(filenames)
        return files_by_dir

    @staticmethod
    def _cleanup(scratch: str) -> None:
        try:
            if os.path.exists(scratch):
                shutil.rmtree(scratch)
        except OSError as e:
            logger.warning(f"Failed to clean up temporary directory {scratch}: {e}")

    # =========================================================================
    # Layout checks
    # =========================================================================

    @staticmethod
    def _has_any(lowered: set[str], candidates: tuple[str, ...]) -> bool:
        return any(candidate in lowered for candidate in candidates)

    def _satisfied_groups(self, filenames: list[str]) -> tuple[bool, bool, bool]:
        lowered = {filename.lower() for filename in filenames}
        return (
            self._has_any(lowered, self.REQUIRED_FILES),
            self._has_any(lowered, self.VARIABLE_FILES),
            self._has_any(lowered, self.OUTPUT_FILES),
        )

    def _qualifies(self, filenames: list[str]) -> bool:
        return all(self._satisfied_groups(filenames))

    def _choose_module_root(self, files_by_dir: dict[str, list[str]]) -> str | None:
        if self._qualifies(files_by_dir.get(ROOT_DIR, [])):
            return ROOT_DIR
        for directory, filenames in files_by_dir.items():
            if self._qualifies(filenames):
                return directory
        return None

    def _variables_error(self) -> str:
        return "No variables file found. Either 'variables.tf' or 'variable.tf' is required"

    def _outputs_error(self) -> str:
        return "No outputs file found. Either 'outputs.tf' or 'output.tf' is required"

    def _check_module_root(self, module_root: str, filenames: list[str]) -> list[str]:
        """Check every requirement independently so all failures are reported at once."""
        lowered = {filename.lower() for filename in filenames}
        location = f"module root '{module_root}'" if module_root else "root directory"
        errors: list[str] = []

        for required in self.REQUIRED_FILES:
            if required not in lowered:
                errors.append(f"Required file '{required}' is missing from the {location}")

        if not self._has_any(lowered, self.VARIABLE_FILES):
            errors.append(self._variables_error())

        if not self._has_any(lowered, self.OUTPUT_FILES):
            errors.append(self._outputs_error())

        return errors

    def _describe_missing_structure(self, files_by_dir: dict[str, list[str]]) -> str:
        """Single error naming what the closest candidate directory lacks."""
        candidates = [(d, f) for d, f in files_by_dir.items() if f]
        if not candidates:
            return "No valid module structure found: archive contains no files"

        # max() keeps the first of equal scores, so the root wins ties
        _, filenames = max(candidates, key=lambda item: sum(self._satisfied_groups(item[1])))
        has_required, has_variables, has_outputs = self._satisfied_groups(filenames)

        missing: list[str] = []
        if not has_required:
            missing.append("No configuration file found. Either 'main.tf' or 'providers.tf' is required")
        if not has_variables:
            missing.append(self._variables_error())
        if not has_outputs:
            missing.append(self._outputs_error())

        return f"No valid module structure found. {'; '.join(missing)}"
