"""
Object storage client for uploaded lecture audio.
Speaks the Supabase Storage REST API.
"""
from typing import List, Optional
from urllib.parse import quote
import httpx
import logging

from ..core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def normalize_storage_path(path: str, bucket: str) -> str:
    """Strip a leading '<bucket>/' that older records duplicated into the path"""
    path = path.lstrip("/")
    prefix = f"{bucket}/"
    if path.startswith(prefix):
        path = path[len(prefix):]
    return path


class StorageService:
    def __init__(
        self,
        base_url: str,
        service_key: Optional[str],
        bucket: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.service_key = service_key
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = {}
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"
            headers["apikey"] = self.service_key
        if extra:
            headers.update(extra)
        return headers

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(normalize_storage_path(path, self.bucket))}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(normalize_storage_path(path, self.bucket))}"

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Upload a blob; returns the stored path"""
        stored_path = normalize_storage_path(path, self.bucket)
        try:
            response = await self.client.post(
                self._object_url(stored_path),
                content=data,
                headers=self._headers({"Content-Type": content_type, "x-upsert": "false"})
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Upload of {stored_path} failed: {e}")
            raise PersistenceError(f"Failed to upload {stored_path}") from e

        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{stored_path}")
        return stored_path

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        """Time-limited read URL for a stored object"""
        stored_path = normalize_storage_path(path, self.bucket)
        try:
            response = await self.client.post(
                f"{self.base_url}/storage/v1/object/sign/{self.bucket}/{quote(stored_path)}",
                json={"expiresIn": ttl_seconds},
                headers=self._headers()
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Signing {stored_path} failed: {e}")
            raise PersistenceError(f"Failed to sign {stored_path}") from e

        signed = data.get("signedURL") or data.get("signedUrl")
        if not signed:
            raise PersistenceError(f"No signed URL returned for {stored_path}")

        # The API answers with a path relative to /storage/v1
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"

    async def remove(self, paths: List[str]) -> None:
        """Delete stored objects by path"""
        prefixes = [normalize_storage_path(path, self.bucket) for path in paths if path]
        if not prefixes:
            return
        try:
            response = await self.client.request(
                "DELETE",
                f"{self.base_url}/storage/v1/object/{self.bucket}",
                json={"prefixes": prefixes},
                headers=self._headers()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Removing {prefixes} failed: {e}")
            raise PersistenceError("Failed to remove stored objects") from e

        logger.info(f"Removed {len(prefixes)} objects from {self.bucket}")

    async def close(self):
        await self.client.aclose()
