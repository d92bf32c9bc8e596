"""Redis-backed cache for precomputed personalised feeds."""

import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

from feedrank.domain.repositories import IFeedCache

logger = logging.getLogger(__name__)

FEED_KEY_PREFIX = "feed:"


class RedisFeedCache(IFeedCache):
    """Stores the serialised feed response under ``feed:{user_id}``.

    Cache errors never fail a request: they are logged and treated as a miss.
    """

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = 300):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(user_id: str) -> str:
        return f"{FEED_KEY_PREFIX}{user_id}"

    async def get(self, user_id: str) -> Optional[dict[str, Any]]:
        try:
            value = await self.client.get(self.key(user_id))
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.warning("Feed cache get error for user %s: %s", user_id, e)
            return None

    async def set(self, user_id: str, feed: dict[str, Any]) -> None:
        try:
            await self.client.setex(self.key(user_id), self.ttl_seconds, json.dumps(feed))
        except Exception as e:
            logger.warning("Feed cache set error for user %s: %s", user_id, e)

    async def invalidate(self, user_id: str) -> None:
        try:
            await self.client.delete(self.key(user_id))
        except Exception as e:
            logger.warning("Feed cache invalidate error for user %s: %s", user_id, e)
