"""
Local Image Storage Service

Development implementation: images are written under UPLOAD_DIRECTORY
and served by the app at /uploads.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from pathlib import Path
from typing import Optional

from group_order.core.config import get_settings
from group_order.services.storage.base import BaseStorageService, StorageResult

logger = logging.getLogger(__name__)


class LocalStorageService(BaseStorageService):
    """Filesystem-backed storage for development."""

    URL_PREFIX = "/uploads"

    def __init__(self, root: Optional[str] = None):
        settings = get_settings()
        self.root = Path(root or settings.upload_directory)
        logger.info(f"LocalStorageService initialized (root={self.root})")

    @property
    def provider_name(self) -> str:
        return "local"

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return target

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> StorageResult:
        path = self.build_object_path(filename)
        try:
            target = self._resolve(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except (OSError, ValueError) as e:
            logger.error(f"Local upload failed for {filename}: {e}")
            return StorageResult(success=False, error_message=str(e))

        logger.info(f"Stored image {path} ({len(content)} bytes)")
        return StorageResult(success=True, path=path, public_url=self.public_url(path))

    def public_url(self, path: str) -> str:
        return f"{self.URL_PREFIX}/{path}"

    async def delete(self, path: str) -> StorageResult:
        try:
            target = self._resolve(path)
            if not target.exists():
                return StorageResult(
                    success=False, path=path, error_message="Object not found"
                )
            target.unlink()
        except (OSError, ValueError) as e:
            logger.error(f"Local delete failed for {path}: {e}")
            return StorageResult(success=False, path=path, error_message=str(e))

        logger.info(f"Deleted image {path}")
        return StorageResult(success=True, path=path)

    async def health_check(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            return True
        except OSError:
            return False
