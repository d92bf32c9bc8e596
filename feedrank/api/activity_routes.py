"""Activity API routes: everything that writes to the user's activity profile.

  POST /activity/interactions
  POST /activity/books/{book_id}/progress
  POST /activity/books/{book_id}/publish
  POST /activity/books/{book_id}/draft-edit
  PUT  /activity/authors/{author_id}/follow
  GET  /activity/feature-vector
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from feedrank.api.schemas import (
    ActivityProfileResponse,
    AuthorFollowRequest,
    DraftEditRequest,
    FeatureVectorResponse,
    InteractionCreateRequest,
    ReadingProgressRequest,
    WritingActivityRequest,
)
from feedrank.core.config import Settings, get_settings
from feedrank.core.dependencies import (
    get_current_user_id,
    get_interaction_service,
    get_recommendation_service,
)
from feedrank.domain.exceptions import (
    BookNotFoundError,
    InvalidInteractionError,
    ProfileConflictError,
)
from feedrank.domain.services import IInteractionService, IRecommendationService
from feedrank.infrastructure.tasks.feed_tasks import warm_personalized_feed

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/activity", tags=["activity"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, InvalidInteractionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, BookNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _schedule_feed_warmup(user_id: str, settings: Settings) -> None:
    """Recompute the user's feed in a worker after a write."""
    if not settings.feed_cache_enabled:
        return
    try:
        task = warm_personalized_feed.delay(user_id)
        logger.info("Celery feed warm-up task %s dispatched for user %s", task.id, user_id)
    except Exception as e:
        logger.warning("Could not dispatch feed warm-up for user %s: %s", user_id, e)


@router.post("/interactions", response_model=ActivityProfileResponse, status_code=201)
async def record_interaction(
    body: InteractionCreateRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    interaction_service: Annotated[IInteractionService, Depends(get_interaction_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ActivityProfileResponse:
    """Record a view, read, complete, purchase, like, share, review or abandon.

    ``metadata.rating`` (1-5) is read for reviews.
    """
    try:
        profile = await interaction_service.record_interaction(
            user_id, body.book_id, body.interaction_type, body.duration, body.metadata
        )
    except (InvalidInteractionError, BookNotFoundError, ProfileConflictError) as e:
        raise _http_error(e)
    _schedule_feed_warmup(user_id, settings)
    return ActivityProfileResponse.from_entity(profile)


@router.post("/books/{book_id}/progress", response_model=ActivityProfileResponse)
async def update_reading_progress(
    book_id: str,
    body: ReadingProgressRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    interaction_service: Annotated[IInteractionService, Depends(get_interaction_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ActivityProfileResponse:
    """Upsert reading progress; reaching 100% completes the book."""
    try:
        profile = await interaction_service.update_reading_progress(
            user_id, book_id, body.chapter, body.percent, body.reading_time
        )
    except (InvalidInteractionError, BookNotFoundError, ProfileConflictError) as e:
        raise _http_error(e)
    _schedule_feed_warmup(user_id, settings)
    return ActivityProfileResponse.from_entity(profile)


@router.post("/books/{book_id}/publish", response_model=ActivityProfileResponse)
async def record_writing_activity(
    book_id: str,
    body: WritingActivityRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    interaction_service: Annotated[IInteractionService, Depends(get_interaction_service)],
) -> ActivityProfileResponse:
    try:
        profile = await interaction_service.record_writing_activity(user_id, book_id, body.genre)
    except (InvalidInteractionError, ProfileConflictError) as e:
        raise _http_error(e)
    return ActivityProfileResponse.from_entity(profile)


@router.post("/books/{book_id}/draft-edit", response_model=ActivityProfileResponse)
async def record_draft_edit(
    book_id: str,
    body: DraftEditRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    interaction_service: Annotated[IInteractionService, Depends(get_interaction_service)],
) -> ActivityProfileResponse:
    try:
        profile = await interaction_service.record_draft_edit(user_id, book_id, body.writing_time)
    except (InvalidInteractionError, BookNotFoundError, ProfileConflictError) as e:
        raise _http_error(e)
    return ActivityProfileResponse.from_entity(profile)


@router.put("/authors/{author_id}/follow", response_model=ActivityProfileResponse)
async def set_author_following(
    author_id: str,
    body: AuthorFollowRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    interaction_service: Annotated[IInteractionService, Depends(get_interaction_service)],
) -> ActivityProfileResponse:
    try:
        profile = await interaction_service.set_author_following(
            user_id, author_id, body.author_name, body.following
        )
    except (InvalidInteractionError, ProfileConflictError) as e:
        raise _http_error(e)
    return ActivityProfileResponse.from_entity(profile)


@router.get("/feature-vector", response_model=FeatureVectorResponse)
async def get_feature_vector(
    user_id: Annotated[str, Depends(get_current_user_id)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
) -> FeatureVectorResponse:
    """The normalised feature vector the ranking uses for this user."""
    features = await recommendation_service.build_user_feature_vector(user_id)
    if features is None:
        raise HTTPException(status_code=404, detail="No activity recorded for this user")
    return FeatureVectorResponse.from_entity(features)
