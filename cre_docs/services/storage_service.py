"""Object storage over the Supabase Storage REST API."""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from cre_docs.core.config import settings
from cre_docs.core.exceptions import ConfigurationError, StorageError
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StorageService:
    """Path-addressed upload, download and delete of binary objects."""

    def __init__(
        self,
        url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.url = (url if url is not None else settings.supabase_url).rstrip("/")
        self.service_role_key = (
            service_role_key if service_role_key is not None else settings.supabase_service_role_key
        )
        self.timeout = timeout or settings.http_timeout
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    def _object_url(self, bucket: str, path: str, prefix: str = "object") -> str:
        return f"{self.base_api_url}/{prefix}/{bucket}/{quote(path)}"

    def _ensure_configured(self) -> None:
        if not self.url or not self.service_role_key:
            raise ConfigurationError("Supabase storage is not configured")

    async def upload_file(
        self,
        content: bytes,
        bucket: str,
        path: str,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> Dict[str, Any]:
        """Upload bytes to a bucket path.

        Returns:
            Dict with the storage ``path`` and its public ``url``.

        Raises:
            StorageError: If the upload fails.
        """
        self._ensure_configured()
        headers = {
            **self.headers,
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self._object_url(bucket, path), headers=headers, content=content
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to storage: {str(e)}", exc_info=True)
            raise StorageError(f"Storage upload error: {str(e)}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to storage: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise StorageError(f"Upload failed: {response.text}")

        LOGGER.info(f"Uploaded {bucket}/{path}", extra={"bytes": len(content)})
        return {"path": path, "url": self.get_public_url(bucket, path)}

    async def download_file(self, bucket: str, path: str) -> bytes:
        """Download an object's bytes.

        Raises:
            StorageError: If the object cannot be fetched.
        """
        self._ensure_configured()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self._object_url(bucket, path), headers=self.headers)
        except httpx.HTTPError as e:
            LOGGER.error(f"Error downloading file from storage: {str(e)}", exc_info=True)
            raise StorageError(f"Storage download error: {str(e)}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to download file from storage: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise StorageError(f"Failed to download {bucket}/{path}: {response.status_code}")
        return response.content

    async def delete_file(self, bucket: str, path: str) -> bool:
        self._ensure_configured()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.delete(self._object_url(bucket, path), headers=self.headers)
        except httpx.HTTPError as e:
            LOGGER.error(f"Error deleting file from storage: {str(e)}", exc_info=True)
            raise StorageError(f"Storage delete error: {str(e)}", original_error=e) from e

        if response.status_code not in (200, 204):
            LOGGER.warning(
                f"Failed to delete file from storage: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            return False
        return True

    def get_public_url(self, bucket: str, path: str) -> str:
        return self._object_url(bucket, path, prefix="object/public")

    async def get_signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        """Generate a signed URL for a private object.

        Raises:
            StorageError: If URL generation fails.
        """
        self._ensure_configured()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self._object_url(bucket, path, prefix="object/sign"),
                    headers=self.headers,
                    json={"expiresIn": expires_in},
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error generating signed URL: {str(e)}", exc_info=True)
            raise StorageError(f"Signed URL error: {str(e)}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to generate signed URL: {response.text}",
                extra={"bucket": bucket, "path": path, "status_code": response.status_code}
            )
            raise StorageError(f"Signed URL generation failed: {response.text}")

        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageError("Storage response did not contain signedURL")

        # Supabase answers with a path relative to /storage/v1
        if signed_path.startswith("/"):
            return f"{self.base_api_url}{signed_path}"
        return signed_path
