"""Pytest configuration and fixtures for tests."""

import io
import os
import sys
import tarfile
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

TEST_API_KEY = "test-registry-key"

VALID_MODULE_FILES = {
    "main.tf": 'resource "null_resource" "this" {}\n',
    "providers.tf": 'terraform {\n  required_version = ">= 1.0"\n}\n',
    "variables.tf": 'variable "name" {\n  type = string\n}\n',
    "outputs.tf": 'output "id" {\n  value = null_resource.this.id\n}\n',
}


def build_tgz(files: dict[str, str | bytes], prefix: str = "") -> bytes:
    """Build a gzip-compressed tar archive in memory.

    Args:
        files: Mapping of archive path to content
        prefix: Prepended to every member name (e.g. "./" or "my-module/")
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name=f"{prefix}{name}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def make_archive():
    """Factory building .tgz archives: make_archive(files, prefix="")."""
    return build_tgz


@pytest.fixture
def module_files() -> dict[str, str]:
    """Files of a complete module, safe to mutate."""
    return dict(VALID_MODULE_FILES)


@pytest.fixture
def valid_archive() -> bytes:
    """Archive with a complete module at the archive root."""
    return build_tgz(VALID_MODULE_FILES)


@pytest.fixture
def memory_store():
    """In-memory object store with atomic create."""
    from apps.registry.storage import InMemoryObjectStore

    return InMemoryObjectStore(bucket="modules")


@pytest.fixture
def settings():
    """Registry settings for tests (memory backend, known API key)."""
    from apps.registry.config import RegistrySettings

    return RegistrySettings(
        environment="test",
        storage_backend="memory",
        api_key=TEST_API_KEY,
    )


@pytest.fixture
def app(settings, memory_store):
    """Registry application bound to the in-memory store."""
    from apps.registry.main import create_app

    return create_app(settings=settings, store=memory_store)


@pytest.fixture
def client(app):
    """TestClient running the application lifespan."""
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-API-Key": TEST_API_KEY}


def pytest_configure(config):
    """Configure pytest environment."""
    # Register custom markers
    config.addinivalue_line("markers", "slow: mark test as slow (may take > 30s)")
    config.addinivalue_line("markers", "integration: mark test as integration test")

    # Set test environment variables
    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("STORAGE_BACKEND", "memory")
