"""Storage service for handling Supabase storage operations."""

import time
from typing import Callable, Dict, Optional

import httpx

from subsidy_portal.core.config import settings
from subsidy_portal.core.exceptions import StorageUnavailable
from subsidy_portal.utils.logging import get_logger

LOGGER = get_logger(__name__)


def build_storage_path(owner_ref: str, document_key: str, timestamp_ms: int, ext: str) -> str:
    """Content-addressed object path: ``{owner}/{key}/{unix_ms}.{ext}``."""
    extension = (ext or "bin").lstrip(".").lower()
    return f"{owner_ref}/{document_key}/{timestamp_ms}.{extension}"


class StorageService:
    """Durable blob storage in a Supabase bucket.

    Paths are generated here from the write-time clock, never by the caller,
    and existing objects are never overwritten. Every failure surfaces as
    StorageUnavailable; rollback policy belongs to the caller.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        bucket: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.url = url if url is not None else settings.supabase_url
        self.service_role_key = (
            service_role_key if service_role_key is not None else settings.supabase_service_role_key
        )
        self.bucket = bucket or settings.storage_bucket
        self.timeout = timeout or settings.http_timeout
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }
        self._transport = transport
        self._clock = clock

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def write(
        self,
        owner_ref: str,
        document_key: str,
        data: bytes,
        ext: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Upload ``data`` under a fresh timestamped path.

        Returns:
            The storage path of the new object.

        Raises:
            StorageUnavailable: If the upload fails or the path already exists
        """
        path = build_storage_path(str(owner_ref), document_key, int(self._clock() * 1000), ext)
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{path}"

        try:
            async with self._client() as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type, "x-upsert": "false"},
                    content=data,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to Supabase: {e}", exc_info=True, extra={"path": path})
            raise StorageUnavailable(f"Storage upload error: {e}", path=path, original_error=e) from e

        if response.status_code in (400, 409) and "exist" in response.text.lower():
            LOGGER.error(f"Refusing to overwrite existing object {path}", extra={"path": path})
            raise StorageUnavailable(f"Object already exists at {path}", path=path)
        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageUnavailable(f"Upload failed ({response.status_code}): {response.text}", path=path)

        LOGGER.info(f"Stored {len(data)} bytes at {path}")
        return path

    async def read(self, path: str) -> bytes:
        """Download the object at ``path``.

        Raises:
            StorageUnavailable: If the object cannot be fetched
        """
        download_url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with self._client() as client:
                response = await client.get(download_url, headers=self.headers)
        except httpx.HTTPError as e:
            LOGGER.error(f"Error downloading file from Supabase: {e}", exc_info=True, extra={"path": path})
            raise StorageUnavailable(f"Storage download error: {e}", path=path, original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to download file from Supabase: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageUnavailable(f"Download failed ({response.status_code}): {response.text}", path=path)

        return response.content

    async def delete(self, path: str) -> None:
        """Remove the object at ``path``. Missing objects are not an error.

        Raises:
            StorageUnavailable: If the storage service cannot be reached or refuses
        """
        delete_url = f"{self.base_api_url}/object/{self.bucket}"
        try:
            async with self._client() as client:
                response = await client.request(
                    "DELETE", delete_url, headers=self.headers, json={"prefixes": [path]}
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error deleting file from Supabase: {e}", exc_info=True, extra={"path": path})
            raise StorageUnavailable(f"Storage delete error: {e}", path=path, original_error=e) from e

        if response.status_code == 404:
            LOGGER.info(f"Object {path} already absent")
            return
        if response.status_code != 200:
            LOGGER.error(
                f"Failed to delete file from Supabase: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageUnavailable(f"Delete failed ({response.status_code}): {response.text}", path=path)

        LOGGER.info(f"Deleted object {path}")

    async def get_signed_url(self, path: str, expires_in: int = 3600) -> Dict[str, str]:
        """Generate a signed URL for the object at ``path``.

        Returns:
            Dict with ``signed_url`` and ``storage_path``.

        Raises:
            StorageUnavailable: If URL generation fails
        """
        url = f"{self.base_api_url}/object/sign/{self.bucket}/{path}"
        try:
            async with self._client() as client:
                response = await client.post(url, headers=self.headers, json={"expiresIn": expires_in})
        except httpx.HTTPError as e:
            LOGGER.error(f"Error generating signed URL: {e}", exc_info=True, extra={"path": path})
            raise StorageUnavailable(f"Signed URL error: {e}", path=path, original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to generate signed URL: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageUnavailable(f"Signed URL generation failed: {response.text}", path=path)

        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise StorageUnavailable("Supabase response did not contain signedURL", path=path)

        # Supabase returns a relative path, with or without the /storage/v1 prefix
        signed_url = signed_path
        if signed_path.startswith("/storage/v1/"):
            signed_url = f"{self.url}{signed_path}"
        elif signed_path.startswith("/"):
            signed_url = f"{self.base_api_url}{signed_path}"

        return {"signed_url": signed_url, "storage_path": path}

    async def signed_download_url(self, path: str, ttl: int = 3600) -> str:
        """Signed download URL valid for ``ttl`` seconds."""
        result = await self.get_signed_url(path, expires_in=ttl)
        return result["signed_url"]
