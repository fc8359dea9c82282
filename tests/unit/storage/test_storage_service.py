"""Unit tests for the Supabase storage client."""

import json
from unittest.mock import patch

import httpx
import pytest

from cre_docs.core.exceptions import ConfigurationError, StorageError
from cre_docs.services.storage_service import StorageService

BASE_URL = "https://project.supabase.co"


@pytest.fixture
def storage() -> StorageService:
    return StorageService(url=BASE_URL, service_role_key="service-key", timeout=5)


def mock_transport(handler):
    """Patch httpx.AsyncClient so every client built by the service uses ``handler``."""
    real_client = httpx.AsyncClient

    def build(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    return patch("cre_docs.services.storage_service.httpx.AsyncClient", side_effect=build)


class TestStorageService:
    """Test suite for StorageService."""

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self, storage):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["upsert"] = request.headers["x-upsert"]
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"Key": "training-documents/rent_roll/a.pdf"})

        with mock_transport(handler):
            result = await storage.upload_file(
                b"%PDF", bucket="training-documents", path="rent_roll/a.pdf",
                content_type="application/pdf",
            )

        assert seen["url"] == f"{BASE_URL}/storage/v1/object/training-documents/rent_roll/a.pdf"
        assert seen["upsert"] == "false"
        assert seen["auth"] == "Bearer service-key"
        assert result == {
            "path": "rent_roll/a.pdf",
            "url": f"{BASE_URL}/storage/v1/object/public/training-documents/rent_roll/a.pdf",
        }

    @pytest.mark.asyncio
    async def test_upload_failure(self, storage):
        with mock_transport(lambda request: httpx.Response(400, text="Duplicate")):
            with pytest.raises(StorageError) as exc_info:
                await storage.upload_file(b"x", bucket="b", path="p")
        assert "Duplicate" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_download(self, storage):
        with mock_transport(lambda request: httpx.Response(200, content=b"bytes")):
            assert await storage.download_file("b", "p.png") == b"bytes"

    @pytest.mark.asyncio
    async def test_download_missing_object(self, storage):
        with mock_transport(lambda request: httpx.Response(404, text="Not found")):
            with pytest.raises(StorageError):
                await storage.download_file("b", "missing.png")

    @pytest.mark.asyncio
    async def test_transport_error(self, storage):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with mock_transport(handler):
            with pytest.raises(StorageError) as exc_info:
                await storage.download_file("b", "p.png")
        assert isinstance(exc_info.value.original_error, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_delete(self, storage):
        with mock_transport(lambda request: httpx.Response(200, json={})):
            assert await storage.delete_file("b", "p.png") is True
        with mock_transport(lambda request: httpx.Response(404, text="Not found")):
            assert await storage.delete_file("b", "p.png") is False

    @pytest.mark.asyncio
    async def test_signed_url_is_made_absolute(self, storage):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"signedURL": "/object/sign/b/p.png?token=abc"})

        with mock_transport(handler):
            url = await storage.get_signed_url("b", "p.png", expires_in=60)

        assert seen["path"] == "/storage/v1/object/sign/b/p.png"
        assert seen["body"] == {"expiresIn": 60}
        assert url == f"{BASE_URL}/storage/v1/object/sign/b/p.png?token=abc"

    @pytest.mark.asyncio
    async def test_unconfigured(self):
        storage = StorageService(url="", service_role_key="")
        with pytest.raises(ConfigurationError):
            await storage.download_file("b", "p.png")
