"""Recommendation API routes.

  GET /recommendations/feed                    multi-section personalised feed
  GET /recommendations/personalized            weighted multi-signal ranking
  GET /recommendations/diversified             + collaborative, diversity, exploration
  GET /recommendations/trending                most viewed / purchased
  GET /recommendations/new-releases
  GET /recommendations/genre/{genre}
  GET /recommendations/similar/{book_id}       same genre
  GET /recommendations/content-similar/{book_id}
  GET /recommendations/because-you-read
  GET /recommendations/continue-reading
  GET /recommendations/continue-writing
  GET /recommendations/top-authors
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from feedrank.api.schemas import (
    AuthorEngagementResponse,
    BecauseYouReadResponse,
    BookListResponse,
    ContinueReadingResponse,
    ContinueWritingResponse,
    PersonalizedFeedResponse,
    RecommendationResponse,
)
from feedrank.core.dependencies import (
    get_current_user_id,
    get_feed_cache,
    get_recommendation_service,
)
from feedrank.domain.repositories import IFeedCache
from feedrank.domain.services import IRecommendationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/recommendations", tags=["recommendations"])

Limit = Annotated[int, Query(ge=1, le=100)]


@router.get("/feed", response_model=PersonalizedFeedResponse)
async def get_feed(
    user_id: Annotated[str, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    feed_cache: Annotated[Optional[IFeedCache], Depends(get_feed_cache)],
) -> PersonalizedFeedResponse:
    """Get the personalised home feed.

    Served from the feed cache when a fresh copy exists; otherwise computed and
    written back.
    """
    if feed_cache is not None:
        cached = await feed_cache.get(user_id)
        if cached is not None:
            logger.debug("Feed cache hit for user %s", user_id)
            return PersonalizedFeedResponse.model_validate(cached)

    feed = await recommendation_service.get_personalized_feed(user_id)
    response = PersonalizedFeedResponse.from_feed(feed)
    if feed_cache is not None:
        await feed_cache.set(user_id, response.model_dump(mode="json"))
    return response


@router.get("/personalized", response_model=RecommendationResponse)
async def get_personalized(
    user_id: Annotated[str, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 20,
) -> RecommendationResponse:
    """Weighted multi-signal ranking; trending when the user has no history."""
    recs = await recommendation_service.get_personalized_recommendations(user_id, limit)
    return RecommendationResponse.from_recommendations(recs)


@router.get("/diversified", response_model=RecommendationResponse)
async def get_diversified(
    user_id: Annotated[str, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 20,
    diversity_factor: Annotated[Optional[float], Query(ge=0, le=1)] = None,
) -> RecommendationResponse:
    recs = await recommendation_service.get_diversified_recommendations(
        user_id, limit, diversity_factor
    )
    return RecommendationResponse.from_recommendations(recs)


@router.get("/trending", response_model=RecommendationResponse)
async def get_trending(
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 20,
) -> RecommendationResponse:
    recs = await recommendation_service.get_trending(limit)
    return RecommendationResponse.from_recommendations(recs)


@router.get("/new-releases", response_model=BookListResponse)
async def get_new_releases(
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 20,
    min_quality: Annotated[Optional[float], Query(ge=0, le=100)] = None,
) -> BookListResponse:
    books = await recommendation_service.get_new_releases(limit, min_quality)
    return BookListResponse.from_books(books)


@router.get("/genre/{genre}", response_model=BookListResponse)
async def get_by_genre(
    genre: str,
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 20,
) -> BookListResponse:
    books = await recommendation_service.get_books_by_genre(genre, limit)
    return BookListResponse.from_books(books)


@router.get("/similar/{book_id}", response_model=BookListResponse)
async def get_similar(
    book_id: str,
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 10,
) -> BookListResponse:
    books = await recommendation_service.get_similar_books(book_id, limit)
    return BookListResponse.from_books(books)


@router.get("/content-similar/{book_id}", response_model=BookListResponse)
async def get_content_similar(
    book_id: str,
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 10,
) -> BookListResponse:
    """Books sharing attributes (genre, tags, quality, audience, length, age rating)."""
    books = await recommendation_service.get_content_similar_books(book_id, limit)
    return BookListResponse.from_books(books)


@router.get("/because-you-read", response_model=list[BecauseYouReadResponse])
async def get_because_you_read(
    user_id: Annotated[str, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Annotated[int, Query(ge=1, le=10)] = 3,
    per_source: Annotated[int, Query(ge=1, le=20)] = 4,
) -> list[BecauseYouReadResponse]:
    groups = await recommendation_service.get_because_you_read(user_id, limit, per_source)
    return [BecauseYouReadResponse.model_validate(g) for g in groups]


@router.get("/continue-reading", response_model=list[ContinueReadingResponse])
async def get_continue_reading(
    user_id: Annotated[str, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
) -> list[ContinueReadingResponse]:
    items = await recommendation_service.get_continue_reading(user_id)
    return [ContinueReadingResponse.model_validate(i) for i in items]


@router.get("/continue-writing", response_model=list[ContinueWritingResponse])
async def get_continue_writing(
    user_id: Annotated[str, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Annotated[int, Query(ge=1, le=50)] = 5,
) -> list[ContinueWritingResponse]:
    items = await recommendation_service.get_continue_writing(user_id, limit)
    return [ContinueWritingResponse.model_validate(i) for i in items]


@router.get("/top-authors", response_model=list[AuthorEngagementResponse])
async def get_top_authors(
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: Limit = 10,
) -> list[AuthorEngagementResponse]:
    authors = await recommendation_service.get_top_authors(limit)
    return AuthorEngagementResponse.from_entities(authors)
