"""Async Redis client shared across the application (feed cache)."""

from typing import AsyncGenerator

import redis.asyncio as aioredis

from feedrank.core.config import settings


def create_redis_client() -> aioredis.Redis:
    return aioredis.from_url(settings.redis_url, decode_responses=True)


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """FastAPI dependency: yield a connected Redis client, close on teardown."""
    client = create_redis_client()
    try:
        yield client
    finally:
        await client.aclose()
