"""Dependency injection container."""

from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.core.config import Settings, get_settings
from feedrank.core.redis_client import get_redis
from feedrank.domain.repositories import (
    IActivityProfileRepository,
    IBookRepository,
    IFeedCache,
)
from feedrank.domain.services import IInteractionService, IRecommendationService
from feedrank.infrastructure.cache.feed_cache import RedisFeedCache
from feedrank.infrastructure.database.connection import get_db
from feedrank.infrastructure.database.repository import (
    ActivityProfileRepository,
    BookRepository,
)
from feedrank.services.interaction_service import InteractionService
from feedrank.services.recommendation import RecommendationService


# ---------------------------------------------------------------------------
# Infrastructure providers
# ---------------------------------------------------------------------------
async def get_feed_cache(
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[Optional[IFeedCache], None]:
    """Yield the Redis feed cache, or None when caching is disabled."""
    if not settings.feed_cache_enabled:
        yield None
        return
    async for client in get_redis():
        yield RedisFeedCache(client, ttl_seconds=settings.feed_cache_ttl_seconds)


# ---------------------------------------------------------------------------
# Repository providers
# ---------------------------------------------------------------------------
async def get_book_repository(session: AsyncSession = Depends(get_db)) -> IBookRepository:
    return BookRepository(session)


async def get_profile_repository(
    session: AsyncSession = Depends(get_db),
) -> IActivityProfileRepository:
    return ActivityProfileRepository(session)


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------
async def get_recommendation_service(
    book_repo: IBookRepository = Depends(get_book_repository),
    profile_repo: IActivityProfileRepository = Depends(get_profile_repository),
    settings: Settings = Depends(get_settings),
) -> IRecommendationService:
    return RecommendationService(
        book_repository=book_repo,
        profile_repository=profile_repo,
        config=settings.scoring,
    )


async def get_interaction_service(
    book_repo: IBookRepository = Depends(get_book_repository),
    profile_repo: IActivityProfileRepository = Depends(get_profile_repository),
    feed_cache: Optional[IFeedCache] = Depends(get_feed_cache),
    settings: Settings = Depends(get_settings),
) -> IInteractionService:
    return InteractionService(
        profile_repository=profile_repo,
        book_repository=book_repo,
        feed_cache=feed_cache,
        settings=settings,
    )


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------
async def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """Identity is established upstream; the gateway forwards it in a header."""
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()
