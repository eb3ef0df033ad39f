"""
Change Feed Factory

Returns MemoryChangeFeed or RedisChangeFeed based on ENV_MODE.

Environment Switching:
    - ENV_MODE=development → MemoryChangeFeed (single process)
    - ENV_MODE=staging/production → RedisChangeFeed (all processes)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from group_order.core.config import get_settings
from group_order.services.realtime.base import BaseChangeFeed, ChangeEvent
from group_order.services.realtime.memory import MemoryChangeFeed
from group_order.services.realtime.redis_feed import RedisChangeFeed

logger = logging.getLogger(__name__)


@lru_cache()
def get_change_feed() -> BaseChangeFeed:
    """Get the configured change feed instance."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Change Feed: Using MemoryChangeFeed (development mode)")
        return MemoryChangeFeed()
    else:
        logger.info(f"Change Feed: Using RedisChangeFeed ({settings.env_mode.value} mode)")
        return RedisChangeFeed()


def reset_change_feed() -> None:
    """Clear the cached feed instance."""
    get_change_feed.cache_clear()


__all__ = [
    "get_change_feed",
    "reset_change_feed",
    "BaseChangeFeed",
    "ChangeEvent",
    "MemoryChangeFeed",
    "RedisChangeFeed",
]
