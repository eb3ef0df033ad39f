"""
Image Storage Service Abstract Base Class

Defines the interface for storing store images (banner pictures).
Both LocalStorageService and HostedStorageService implement it, so the
catalog code is the same in development and production.

Author: Khalil Bannouri
Version: 1.0.0
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional


@dataclass
class StorageResult:
    """
    Standardized result from a storage operation.

    Attributes:
        success: Whether the operation succeeded
        path: Object key inside the bucket/directory
        public_url: URL the pages can use in <img src>
        error_message: Error description if the operation failed
    """
    success: bool
    path: Optional[str] = None
    public_url: Optional[str] = None
    error_message: Optional[str] = None


class BaseStorageService(ABC):
    """Abstract base class for image storage services."""

    ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @staticmethod
    def build_object_path(filename: str) -> str:
        """Unique object key that keeps the original extension."""
        suffix = PurePosixPath(filename or "").suffix.lower() or ".jpg"
        return f"stores/{uuid.uuid4().hex}{suffix}"

    @abstractmethod
    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> StorageResult:
        """Store an image and return its key and public URL."""
        pass

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL of a stored object."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> StorageResult:
        """Remove a stored object."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service availability."""
        pass
