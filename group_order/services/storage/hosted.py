"""
Hosted Image Storage Service

Production implementation talking to a hosted object store's REST API
(Supabase Storage compatible) with httpx.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - STORAGE_URL: project URL, e.g. https://<project>.supabase.co
    - STORAGE_API_KEY: service key allowed to write the bucket
    - STORAGE_BUCKET: a public bucket

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional

import httpx

from group_order.core.config import get_settings
from group_order.services.storage.base import BaseStorageService, StorageResult

logger = logging.getLogger(__name__)


class HostedStorageService(BaseStorageService):
    """
    Object storage over HTTP.

    Endpoints used:
        POST   /storage/v1/object/{bucket}/{path}      upload
        DELETE /storage/v1/object/{bucket}             delete by prefixes
        GET    /storage/v1/object/public/{bucket}/...  public read
        GET    /storage/v1/bucket/{bucket}             health
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Raises:
            ValueError: If STORAGE_URL or STORAGE_API_KEY is not configured
        """
        settings = get_settings()

        if not settings.storage_url or not settings.storage_api_key:
            raise ValueError(
                "STORAGE_URL and STORAGE_API_KEY are required for hosted storage. "
                "Set them in your .env file or environment variables."
            )

        self.base_url = settings.storage_url.rstrip("/")
        self.bucket = settings.storage_bucket
        self._headers = {
            "Authorization": f"Bearer {settings.storage_api_key}",
            "apikey": settings.storage_api_key,
        }
        self._transport = transport

        logger.info(f"HostedStorageService initialized (bucket={self.bucket})")

    @property
    def provider_name(self) -> str:
        return "hosted"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=30.0,
            transport=self._transport,
        )

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> StorageResult:
        path = self.build_object_path(filename)

        try:
            async with self._client() as client:
                response = await client.post(
                    f"/storage/v1/object/{self.bucket}/{path}",
                    content=content,
                    headers={
                        "Content-Type": content_type or "application/octet-stream",
                        "x-upsert": "true",
                    },
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Hosted upload rejected for {filename}: {e.response.text}")
            return StorageResult(success=False, error_message=e.response.text)
        except httpx.HTTPError as e:
            logger.error(f"Hosted upload failed for {filename}: {e}")
            return StorageResult(success=False, error_message=str(e))

        logger.info(f"Uploaded image {path} to bucket {self.bucket}")
        return StorageResult(success=True, path=path, public_url=self.public_url(path))

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def delete(self, path: str) -> StorageResult:
        try:
            async with self._client() as client:
                response = await client.request(
                    "DELETE",
                    f"/storage/v1/object/{self.bucket}",
                    json={"prefixes": [path]},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Hosted delete rejected for {path}: {e.response.text}")
            return StorageResult(success=False, path=path, error_message=e.response.text)
        except httpx.HTTPError as e:
            logger.error(f"Hosted delete failed for {path}: {e}")
            return StorageResult(success=False, path=path, error_message=str(e))

        logger.info(f"Deleted image {path} from bucket {self.bucket}")
        return StorageResult(success=True, path=path)

    async def health_check(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get(f"/storage/v1/bucket/{self.bucket}")
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Hosted storage health check failed: {e}")
            return False
