"""Tests for application wiring."""

import pytest

from apps.registry.config import RegistrySettings
from apps.registry.main import build_store, create_app
from apps.registry.services import ModuleRegistry
from apps.registry.storage import InMemoryObjectStore, MinioObjectStore


class TestBuildStore:
    """Tests for backend selection."""

    def test_memory_backend(self) -> None:
        store = build_store(RegistrySettings(storage_backend="memory", minio_bucket="mods"))
        assert isinstance(store, InMemoryObjectStore)
        assert store.bucket == "mods"

    def test_minio_backend(self) -> None:
        settings = RegistrySettings(
            storage_backend="minio",
            minio_endpoint="minio:9000",
            minio_bucket="modules",
            store_timeout_seconds=5.0,
        )

        store = build_store(settings)

        assert isinstance(store, MinioObjectStore)
        assert store.endpoint == "minio:9000"
        assert store.timeout_seconds == 5.0

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown STORAGE_BACKEND"):
            build_store(RegistrySettings(storage_backend="ftp"))


class TestCreateApp:
    """Tests for create_app."""

    def test_state_wired(self, settings) -> None:
        store = InMemoryObjectStore()
        app = create_app(settings=settings, store=store)

        assert app.state.settings is settings
        assert app.state.store is store
        assert isinstance(app.state.registry, ModuleRegistry)
        assert app.state.registry.store is store
        assert app.state.registry.download_url_ttl == settings.download_url_ttl

    def test_routes_registered(self, settings) -> None:
        app = create_app(settings=settings, store=InMemoryObjectStore())
        paths = {route.path for route in app.routes}

        assert "/v1/modules/{namespace}" in paths
        assert "/v1/module/{namespace}/{name}" in paths
        assert "/v1/module/{namespace}/{name}/{version}" in paths
        assert "/v1/modules/{namespace}/{name}/versions" in paths
        assert "/v1/module/{namespace}/{name}/{version}/upload-url" in paths
        assert "/health" in paths
