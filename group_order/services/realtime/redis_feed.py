"""
Redis Change Feed

Production implementation over Redis pub/sub, so every server process
(and every page connected to any of them) sees every change.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from group_order.core.config import get_settings
from group_order.services.realtime.base import BaseChangeFeed, ChangeEvent

logger = logging.getLogger(__name__)


class RedisChangeFeed(BaseChangeFeed):
    """Pub/sub on a single channel named after CHANGE_CHANNEL_PREFIX."""

    def __init__(self, url: Optional[str] = None, channel: Optional[str] = None):
        settings = get_settings()
        self.url = url or settings.redis_url
        self.channel = channel or settings.change_channel_prefix
        self._client: Optional[aioredis.Redis] = None
        logger.info(f"RedisChangeFeed initialized (channel={self.channel})")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def start(self) -> None:
        if self._client is None:
            self._client = aioredis.Redis.from_url(self.url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> aioredis.Redis:
        if self._client is None:
            raise RuntimeError("RedisChangeFeed used before start()")
        return self._client

    async def publish(self, event: ChangeEvent) -> None:
        client = self._require_client()
        receivers = await client.publish(self.channel, event.to_json())
        logger.debug(f"Change: {event.table} {event.action} #{event.record_id} → {receivers} receivers")

    async def _iterate(self, pubsub) -> AsyncIterator[ChangeEvent]:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                yield ChangeEvent.from_json(message["data"])
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring malformed change message: {e}")

    @asynccontextmanager
    async def subscribe(self):
        pubsub = self._require_client().pubsub()
        await pubsub.subscribe(self.channel)
        try:
            yield self._iterate(pubsub)
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    async def health_check(self) -> bool:
        try:
            return bool(await self._require_client().ping())
        except (RedisError, RuntimeError) as e:
            logger.error(f"Redis change feed health check failed: {e}")
            return False
