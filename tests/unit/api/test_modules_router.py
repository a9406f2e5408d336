"""Tests for the registry HTTP surface."""

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from apps.registry.main import create_app
from apps.registry.storage import (
    InMemoryObjectStore,
    ObjectStoreConnectivityError,
    ObjectStoreError,
    ObjectStoreTimeoutError,
)

MODULE_URL = "/v1/module/acme/vpc"


def _upload(client: TestClient, headers: dict, archive: bytes, version: str = "1.0.0", name: str = "vpc", **form):
    return client.post(
        f"/v1/module/acme/{name}/{version}",
        files={"file": ("module.tgz", archive, "application/gzip")},
        data=form,
        headers=headers,
    )


def _detail(response) -> str:
    return response.json()["errors"][0]["detail"]


class TestUploadAndDownload:
    """Tests for publishing and resolving versions."""

    def test_upload_then_download_exact(
        self, client: TestClient, memory_store: InMemoryObjectStore, auth_headers, valid_archive: bytes
    ) -> None:
        """Test the downloaded bytes are exactly the uploaded bytes."""
        response = _upload(client, auth_headers, valid_archive)

        assert response.status_code == 200
        assert response.json() == {
            "message": "Module acme/vpc version 1.0.0 uploaded successfully",
            "url": "/v1/module/acme/vpc/1.0.0",
        }

        response = client.get(f"{MODULE_URL}/1.0.0")

        assert response.status_code == 204
        assert memory_store.read_url(response.headers["X-Terraform-Get"]) == valid_archive

    def test_raw_body_upload(
        self, client: TestClient, memory_store: InMemoryObjectStore, auth_headers, valid_archive: bytes
    ) -> None:
        response = client.post(
            f"{MODULE_URL}/2.0.0",
            params={"description": "Raw upload"},
            content=valid_archive,
            headers={**auth_headers, "Content-Type": "application/gzip"},
        )

        assert response.status_code == 200
        listing = client.get("/v1/modules/acme").json()
        assert listing["modules"][0]["description"] == "Raw upload"

    def test_form_metadata_listed(self, client: TestClient, auth_headers, valid_archive: bytes) -> None:
        _upload(client, auth_headers, valid_archive, description="Network", source="https://git/vpc")

        module = client.get("/v1/modules/acme").json()["modules"][0]

        assert module["id"] == "acme/vpc/1.0.0"
        assert module["description"] == "Network"
        assert module["source"] == "https://git/vpc"
        assert module["download_url"].startswith("memory://")

    def test_upload_twice_conflicts(self, client: TestClient, auth_headers, valid_archive: bytes) -> None:
        assert _upload(client, auth_headers, valid_archive).status_code == 200

        response = _upload(client, auth_headers, valid_archive)

        assert response.status_code == 409
        assert "already exists" in _detail(response)

    def test_latest_resolves_highest(
        self, client: TestClient, memory_store: InMemoryObjectStore, auth_headers, valid_archive: bytes
    ) -> None:
        for version in ("1.0.0", "1.0.1", "1.1.0"):
            _upload(client, auth_headers, valid_archive, version=version)

        response = client.get(MODULE_URL)

        assert response.status_code == 204
        assert "acme/vpc/v1.1.0/module.tgz" in response.headers["X-Terraform-Get"]

    def test_latest_unknown_module(self, client: TestClient) -> None:
        response = client.get("/v1/module/acme/missing")

        assert response.status_code == 404
        assert response.json() == {"errors": [{"detail": "Module acme/missing not found"}]}

    def test_invalid_archive(self, client: TestClient, auth_headers, make_archive, module_files) -> None:
        del module_files["variables.tf"]

        response = _upload(client, auth_headers, make_archive(module_files))

        assert response.status_code == 400
        assert _detail(response).startswith("Invalid Terraform module structure")

    def test_oversize_upload(self, settings, memory_store, auth_headers, valid_archive: bytes) -> None:
        app = create_app(settings=replace(settings, max_upload_bytes=64), store=memory_store)

        with TestClient(app) as client:
            response = _upload(client, auth_headers, valid_archive)

        assert response.status_code == 400
        assert "maximum upload size" in _detail(response)

    def test_empty_upload(self, client: TestClient, auth_headers) -> None:
        response = client.post(f"{MODULE_URL}/1.0.0", content=b"", headers=auth_headers)
        assert response.status_code == 400


class TestVersionValidation:
    """Tests for version grammar enforcement."""

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-beta"])
    def test_download_rejects_bad_version(self, client: TestClient, version: str) -> None:
        response = client.get(f"{MODULE_URL}/{version}")

        assert response.status_code == 400
        assert "semantic versioning" in _detail(response)

    def test_upload_rejects_bad_version(
        self, client: TestClient, memory_store: InMemoryObjectStore, auth_headers, valid_archive: bytes
    ) -> None:
        response = _upload(client, auth_headers, valid_archive, version="1.0")

        assert response.status_code == 400
        assert memory_store._objects == {}


class TestListing:
    """Tests for namespace and version listing."""

    def test_pagination(self, client: TestClient, auth_headers, valid_archive: bytes) -> None:
        for name in ("alpha", "beta", "delta", "gamma"):
            _upload(client, auth_headers, valid_archive, name=name)

        first = client.get("/v1/modules/acme", params={"limit": 2}).json()
        second = client.get("/v1/modules/acme", params={"limit": 2, "offset": 2}).json()

        assert [m["name"] for m in first["modules"]] == ["alpha", "beta"]
        assert first["meta"] == {
            "limit": 2,
            "current_offset": 0,
            "next_offset": 2,
            "next_url": "/v1/modules/acme?limit=2&offset=2",
        }
        assert [m["name"] for m in second["modules"]] == ["delta", "gamma"]
        assert second["meta"]["next_offset"] is None

    def test_three_modules_two_pages(self, client: TestClient, auth_headers, valid_archive: bytes) -> None:
        for name in ("compute", "network", "storage"):
            _upload(client, auth_headers, valid_archive, name=name)

        first = client.get("/v1/modules/acme?limit=2").json()
        second = client.get("/v1/modules/acme?limit=2&offset=2").json()

        assert len(first["modules"]) == 2
        assert first["meta"]["next_offset"] == 2
        assert "storage" not in [m["name"] for m in first["modules"]]
        assert [m["name"] for m in second["modules"]] == ["storage"]
        assert second["meta"]["next_offset"] is None

    def test_non_numeric_limit(self, client: TestClient) -> None:
        response = client.get("/v1/modules/acme", params={"limit": "many"})
        assert response.status_code == 400
        assert "errors" in response.json()

    def test_versions(self, client: TestClient, auth_headers, valid_archive: bytes) -> None:
        for version in ("1.0.0", "10.0.0", "9.0.0"):
            _upload(client, auth_headers, valid_archive, version=version)

        response = client.get("/v1/modules/acme/vpc/versions")

        assert response.status_code == 200
        assert response.json() == {
            "modules": [
                {
                    "source": "acme/vpc",
                    "versions": [{"version": "10.0.0"}, {"version": "9.0.0"}, {"version": "1.0.0"}],
                }
            ]
        }

    def test_versions_unknown_module(self, client: TestClient) -> None:
        assert client.get("/v1/modules/acme/vpc/versions").status_code == 404


class TestDelete:
    """Tests for deletion."""

    def test_delete_lifecycle(self, client: TestClient, auth_headers, valid_archive: bytes) -> None:
        assert client.delete(f"{MODULE_URL}/1.0.0", headers=auth_headers).status_code == 404

        _upload(client, auth_headers, valid_archive)
        response = client.delete(f"{MODULE_URL}/1.0.0", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"message": "Module acme/vpc version 1.0.0 deleted"}
        assert client.delete(f"{MODULE_URL}/1.0.0", headers=auth_headers).status_code == 404
        assert client.get(f"{MODULE_URL}/1.0.0").status_code == 404


class TestUploadUrl:
    """Tests for direct upload URLs."""

    def test_issue_and_use(self, client: TestClient, memory_store: InMemoryObjectStore, auth_headers) -> None:
        response = client.post(f"{MODULE_URL}/1.0.0/upload-url", headers=auth_headers)

        assert response.status_code == 200
        memory_store.write_url(response.json()["url"], b"direct")
        assert client.get(f"{MODULE_URL}/1.0.0").status_code == 204

    def test_existing_version(self, client: TestClient, auth_headers, valid_archive: bytes) -> None:
        _upload(client, auth_headers, valid_archive)
        response = client.post(f"{MODULE_URL}/1.0.0/upload-url", headers=auth_headers)
        assert response.status_code == 409


class TestAuthentication:
    """Tests for the shared-secret filter on write endpoints."""

    def test_upload_without_key(
        self, client: TestClient, memory_store: InMemoryObjectStore, valid_archive: bytes
    ) -> None:
        response = _upload(client, {}, valid_archive)

        assert response.status_code == 401
        assert response.json() == {"errors": [{"detail": "Missing X-API-Key header"}]}
        assert memory_store._objects == {}

    def test_upload_wrong_key(self, client: TestClient, valid_archive: bytes) -> None:
        response = _upload(client, {"X-API-Key": "wrong"}, valid_archive)

        assert response.status_code == 401
        assert _detail(response) == "Invalid API key"

    def test_delete_without_key(self, client: TestClient) -> None:
        assert client.delete(f"{MODULE_URL}/1.0.0").status_code == 401

    def test_upload_url_without_key(self, client: TestClient) -> None:
        assert client.post(f"{MODULE_URL}/1.0.0/upload-url").status_code == 401

    def test_reads_need_no_key(self, client: TestClient) -> None:
        assert client.get("/v1/modules/acme").status_code == 200

    def test_unconfigured_key(self, settings, memory_store, valid_archive: bytes) -> None:
        app = create_app(settings=replace(settings, api_key=None), store=memory_store)

        with TestClient(app) as client:
            response = _upload(client, {"X-API-Key": "anything"}, valid_archive)

        assert response.status_code == 500
        assert _detail(response) == "Server API key is not configured"


class TestStoreFailures:
    """Tests for object store failure mapping."""

    def test_timeout_is_503(self, client: TestClient, memory_store: InMemoryObjectStore) -> None:
        memory_store.list_keys = AsyncMock(side_effect=ObjectStoreTimeoutError("list_keys timed out"))

        response = client.get("/v1/modules/acme")

        assert response.status_code == 503
        assert "retry later" in _detail(response)

    def test_store_error_is_500(self, client: TestClient, memory_store: InMemoryObjectStore) -> None:
        memory_store.list_keys = AsyncMock(side_effect=ObjectStoreError("bucket gone"))

        response = client.get("/v1/modules/acme", headers={"X-Request-ID": "req-42"})

        assert response.status_code == 500
        assert response.json()["request_id"] == "req-42"
        assert _detail(response) == "Object store failure"

    def test_startup_fails_fast(self, settings) -> None:
        store = InMemoryObjectStore()
        store.validate_connectivity = AsyncMock(side_effect=ObjectStoreConnectivityError("bad credentials"))
        app = create_app(settings=settings, store=store)

        with pytest.raises(ObjectStoreConnectivityError):
            with TestClient(app):
                pass


class TestRequestContext:
    """Tests for request correlation."""

    def test_request_id_generated(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.headers["X-Request-ID"]

    def test_request_id_propagated(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["environment"] == "test"

    def test_detailed_health(self, client: TestClient) -> None:
        response = client.get("/health/detailed")

        assert response.json()["services"] == {"object_store": "healthy"}
        assert response.json()["status"] == "healthy"

    def test_detailed_health_degraded(self, client: TestClient, memory_store: InMemoryObjectStore) -> None:
        """Test store errors are reported generically, without endpoint details."""
        memory_store.bucket_exists = AsyncMock(
            side_effect=ObjectStoreError("Failed to check bucket modules: minio.internal:9000 refused")
        )

        response = client.get("/health/detailed")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["services"] == {"object_store": "unhealthy"}

    def test_detailed_health_missing_bucket(self, client: TestClient, memory_store: InMemoryObjectStore) -> None:
        memory_store.bucket_exists = AsyncMock(return_value=False)

        response = client.get("/health/detailed")

        assert response.json()["status"] == "degraded"
        assert response.json()["services"] == {"object_store": "unhealthy"}

    def test_detailed_health_never_creates_bucket(
        self, client: TestClient, memory_store: InMemoryObjectStore
    ) -> None:
        memory_store.validate_connectivity = AsyncMock()

        client.get("/health/detailed")

        memory_store.validate_connectivity.assert_not_called()
