"""Async implementations of feed background work.

These coroutines hold the logic executed by Celery workers. Each one is
self-contained: it opens its own DB session (independent of any request
lifecycle) and its own Redis client.

The Celery task wrappers in ``feedrank.infrastructure.tasks.feed_tasks`` call
these with ``asyncio.run()``.
"""

import logging

from feedrank.api.schemas import PersonalizedFeedResponse
from feedrank.core.config import settings
from feedrank.core.redis_client import create_redis_client
from feedrank.infrastructure.cache.feed_cache import RedisFeedCache
from feedrank.infrastructure.database.connection import worker_session_maker
from feedrank.infrastructure.database.repository import (
    ActivityProfileRepository,
    BookRepository,
)
from feedrank.services.recommendation import RecommendationService

logger = logging.getLogger(__name__)


async def warm_personalized_feed_task(user_id: str) -> None:
    """Recompute a user's feed and store it in the feed cache."""
    logger.info("BG-TASK: warming feed for user %s", user_id)
    client = create_redis_client()
    try:
        async with worker_session_maker() as session:
            service = RecommendationService(
                book_repository=BookRepository(session),
                profile_repository=ActivityProfileRepository(session),
                config=settings.scoring,
            )
            feed = await service.get_personalized_feed(user_id)

        payload = PersonalizedFeedResponse.from_feed(feed).model_dump(mode="json")
        cache = RedisFeedCache(client, ttl_seconds=settings.feed_cache_ttl_seconds)
        await cache.set(user_id, payload)
        logger.info(
            "BG-TASK: feed cached for user %s (%d recommendations)",
            user_id,
            len(feed.recommended_for_you),
        )
    except Exception as exc:
        logger.error("BG-TASK: feed warm-up failed for user %s: %s", user_id, exc, exc_info=True)
        raise
    finally:
        await client.aclose()
