"""
Image Storage Service Factory

Returns LocalStorageService or HostedStorageService based on ENV_MODE.

Usage:
    from group_order.services.storage import get_storage_service

    storage = get_storage_service()
    result = await storage.upload(content, "banner.png", "image/png")

Environment Switching:
    - ENV_MODE=development → LocalStorageService (files under UPLOAD_DIRECTORY)
    - ENV_MODE=staging/production → HostedStorageService (REST object store)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from group_order.core.config import get_settings
from group_order.services.storage.base import BaseStorageService, StorageResult
from group_order.services.storage.hosted import HostedStorageService
from group_order.services.storage.local import LocalStorageService

logger = logging.getLogger(__name__)


@lru_cache()
def get_storage_service() -> BaseStorageService:
    """
    Get the configured storage service instance.

    Raises:
        ValueError: If hosted mode but storage credentials are missing
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Storage Service: Using LocalStorageService (development mode)")
        return LocalStorageService()
    else:
        logger.info(f"Storage Service: Using HostedStorageService ({settings.env_mode.value} mode)")
        return HostedStorageService()


def reset_storage_service() -> None:
    """Clear the cached service instance."""
    get_storage_service.cache_clear()


__all__ = [
    "get_storage_service",
    "reset_storage_service",
    "BaseStorageService",
    "StorageResult",
    "LocalStorageService",
    "HostedStorageService",
]
