"""Recommendation service and feed aggregator for feedrank.

Orchestrates the engine components for one reader:

  1. Activity Profile Builder  -> feature vector (None on cold start)
  2. Similarity Engines        -> similar users, similar books
  3. Signal Scorers            -> per-candidate signals
  4. Ranking Composer          -> weighted score, reasons, diversity, exploration
  5. Feed Aggregator           -> the multi-section personalised feed

Recommendations are a non-critical enhancement: storage failures while
scoring are logged and answered with the trending list instead of an error.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar

from feedrank.core.config import ScoringConfig
from feedrank.domain.entities import (
    ActivityProfile,
    AuthorEngagement,
    BecauseYouReadGroup,
    Book,
    ContinueReadingItem,
    ContinueWritingItem,
    FeatureVector,
    PersonalizedFeed,
    RecommendationWithReason,
    utcnow,
)
from feedrank.domain.repositories import IActivityProfileRepository, IBookRepository
from feedrank.domain.services import IRecommendationService
from feedrank.services.profile_builder import build_feature_vector
from feedrank.services.ranking import (
    apply_diversity_penalty,
    exploration_slots,
    inject_exploration,
    score_diversified,
    score_personalized,
    sort_by_score,
    trending_with_reasons,
)
from feedrank.services.signals import collaborative_score
from feedrank.services.similarity import SimilarityEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

FEED_RECOMMENDED_LIMIT = 12
FEED_WRITING_LIMIT = 5
FEED_BECAUSE_SOURCES = 2
FEED_BECAUSE_PER_SOURCE = 4
FEED_TRENDING_LIMIT = 8
FEED_NEW_RELEASES_LIMIT = 8


class RecommendationService(IRecommendationService):
    """Personalised ranking over the catalog, plus the narrower list queries.

    Cold start (no activity profile) degrades every personalised entry point
    to the trending list; lookups never create a profile.
    """

    def __init__(
        self,
        book_repository: IBookRepository,
        profile_repository: IActivityProfileRepository,
        config: Optional[ScoringConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.book_repository = book_repository
        self.profile_repository = profile_repository
        self.config = config or ScoringConfig()
        self.clock = clock
        self.similarity = SimilarityEngine(profile_repository, book_repository, self.config)

    # --- Personalised rankings ---
    async def get_personalized_recommendations(
        self, user_id: str, limit: int = 20
    ) -> list[RecommendationWithReason]:
        try:
            profile = await self.profile_repository.get(user_id)
            if profile is None:
                logger.info("Cold start for user %s; serving trending", user_id)
                return await self.get_trending(limit)

            now = self.clock()
            candidates = await self._candidates(profile)
            scored = [score_personalized(profile, b, now, self.config) for b in candidates]
            logger.info(
                "Personalized ranking for user %s: %d candidates", user_id, len(candidates)
            )
            return sort_by_score(scored)[:limit]
        except Exception:
            logger.exception("Recommendation engine error for user %s", user_id)
            return await self._trending_fallback(limit)

    async def get_diversified_recommendations(
        self, user_id: str, limit: int = 20, diversity_factor: Optional[float] = None
    ) -> list[RecommendationWithReason]:
        try:
            profile = await self.profile_repository.get(user_id)
            if profile is None:
                logger.info("Cold start for user %s; serving trending", user_id)
                return await self.get_trending(limit)

            now = self.clock()
            features = await self._feature_vector(profile, now)
            candidates = await self._candidates(profile)

            # one batch fetch of neighbour profiles, joined in memory per candidate
            similar_users = await self.similarity.similar_users_for(
                profile, k=self.config.collaborative_k
            )
            similar_profiles = (
                await self.profile_repository.get_many([s.id for s in similar_users])
                if similar_users
                else {}
            )

            scored = [
                score_diversified(
                    profile,
                    features,
                    book,
                    collaborative_score(book, similar_users, similar_profiles, self.config),
                    now,
                    self.config,
                )
                for book in candidates
            ]
            factor = self.config.diversity_factor if diversity_factor is None else diversity_factor
            diversified = apply_diversity_penalty(scored, factor)

            exploration = await self._exploration_pool(
                profile, features, {r.book.id for r in diversified[:limit]}, limit
            )
            logger.info(
                "Diversified ranking for user %s: %d candidates, %d neighbours, %d explore",
                user_id,
                len(candidates),
                len(similar_users),
                len(exploration),
            )
            return inject_exploration(diversified, exploration, limit, self.config)
        except Exception:
            logger.exception("Diversified recommendation error for user %s", user_id)
            return await self._trending_fallback(limit)

    # --- Non-personalised lists ---
    async def get_trending(self, limit: int = 20) -> list[RecommendationWithReason]:
        books = await self.book_repository.list_trending(limit)
        return trending_with_reasons(books)

    async def get_new_releases(
        self, limit: int = 20, min_quality: Optional[float] = None
    ) -> list[Book]:
        since = self.clock() - timedelta(days=self.config.new_release_days)
        threshold = self.config.new_release_min_quality if min_quality is None else min_quality
        return await self.book_repository.list_new_releases(since, threshold, limit)

    async def get_books_by_genre(self, genre: str, limit: int = 20) -> list[Book]:
        if not genre or not genre.strip():
            return []
        return await self.book_repository.list_by_genre(genre.strip(), limit)

    async def get_similar_books(self, book_id: str, limit: int = 10) -> list[Book]:
        book = await self.book_repository.get_by_id(book_id)
        if book is None:
            return []
        return await self.book_repository.list_same_genre(book, limit)

    async def get_content_similar_books(self, book_id: str, limit: int = 10) -> list[Book]:
        return await self.similarity.content_similar_books(book_id, limit)

    async def get_top_authors(self, limit: int = 10) -> list[AuthorEngagement]:
        return await self.book_repository.author_engagement(limit)

    # --- Per-user lists ---
    async def get_because_you_read(
        self, user_id: str, limit: int = 3, per_source: int = 4
    ) -> list[BecauseYouReadGroup]:
        profile = await self.profile_repository.get(user_id)
        if profile is None or not profile.completed_books:
            return []

        source_ids = self._recently_completed(profile)[:limit]
        sources = await self.book_repository.get_many(source_ids)
        excluded = set(profile.completed_books) | set(profile.currently_reading)

        groups: list[BecauseYouReadGroup] = []
        for source_id in source_ids:
            source = sources.get(source_id)
            if source is None:
                continue

            content_similar = await self.similarity.content_similar_books(source_id, per_source)
            collab = await self.similarity.find_similar_books(source_id, per_source)
            collab_books = await self.book_repository.get_many([s.id for s in collab])

            merged: list[Book] = []
            seen: set[str] = set()
            for book in content_similar + [collab_books[s.id] for s in collab if s.id in collab_books]:
                if book.id in seen or book.id in excluded or not book.is_visible:
                    continue
                seen.add(book.id)
                merged.append(book)

            if merged:
                groups.append(
                    BecauseYouReadGroup(based_on=source, recommendations=merged[:per_source])
                )
        return groups

    async def get_continue_reading(self, user_id: str) -> list[ContinueReadingItem]:
        profile = await self.profile_repository.get(user_id)
        if profile is None or not profile.currently_reading:
            return []

        books = await self.book_repository.get_many(profile.currently_reading)
        items = []
        for book_id in profile.currently_reading:
            book = books.get(book_id)
            if book is None:
                continue
            progress = profile.reading_history.get(book_id)
            items.append(
                ContinueReadingItem(
                    book=book,
                    progress=progress.percentage_complete if progress else 0.0,
                    last_read_at=progress.last_read_at if progress else None,
                )
            )
        items.sort(
            key=lambda i: (i.last_read_at is not None, i.last_read_at or datetime.min),
            reverse=True,
        )
        return items

    async def get_continue_writing(
        self, user_id: str, limit: int = FEED_WRITING_LIMIT
    ) -> list[ContinueWritingItem]:
        # draft edits only move writing progress, so truncate after merging
        drafts = await self.book_repository.list_drafts(user_id)
        profile = await self.profile_repository.get(user_id)
        items = []
        for book in drafts:
            last_edited = book.updated_at
            progress = profile.writing_progress.get(book.id) if profile else None
            if progress and progress.last_edited_at > last_edited:
                last_edited = progress.last_edited_at
            items.append(
                ContinueWritingItem(
                    book=book,
                    last_edited_at=last_edited,
                    word_count=book.statistics.word_count,
                )
            )
        items.sort(key=lambda i: i.book.id)
        items.sort(key=lambda i: i.last_edited_at, reverse=True)
        return items[:limit]

    async def build_user_feature_vector(self, user_id: str) -> Optional[FeatureVector]:
        profile = await self.profile_repository.get(user_id)
        if profile is None:
            return None
        return await self._feature_vector(profile, self.clock())

    # --- Feed ---
    async def get_personalized_feed(self, user_id: str) -> PersonalizedFeed:
        """Assemble every feed section; a failing section degrades to empty."""
        recommended = await self.get_diversified_recommendations(user_id, FEED_RECOMMENDED_LIMIT)
        return PersonalizedFeed(
            recommended_for_you=recommended,
            continue_reading=await self._section(
                "continue_reading", user_id, lambda: self.get_continue_reading(user_id), []
            ),
            continue_writing=await self._section(
                "continue_writing", user_id, lambda: self.get_continue_writing(user_id), []
            ),
            because_you_read=await self._section(
                "because_you_read",
                user_id,
                lambda: self.get_because_you_read(
                    user_id, FEED_BECAUSE_SOURCES, FEED_BECAUSE_PER_SOURCE
                ),
                [],
            ),
            trending=await self._section(
                "trending",
                user_id,
                lambda: self.book_repository.list_trending(FEED_TRENDING_LIMIT),
                [],
            ),
            new_releases=await self._section(
                "new_releases",
                user_id,
                lambda: self.get_new_releases(
                    FEED_NEW_RELEASES_LIMIT, self.config.feed_new_release_min_quality
                ),
                [],
            ),
        )

    # -- Helpers --
    async def _candidates(self, profile: ActivityProfile) -> list[Book]:
        books = await self.book_repository.list_published(exclude_author_id=profile.user_id)
        return [b for b in books if not profile.has_interacted(b.id)]

    async def _feature_vector(self, profile: ActivityProfile, now: datetime) -> FeatureVector:
        completed = await self.book_repository.get_many(profile.completed_books)
        return build_feature_vector(profile, completed, now, self.config)

    async def _exploration_pool(
        self,
        profile: ActivityProfile,
        features: FeatureVector,
        chosen_ids: set[str],
        limit: int,
    ) -> list[Book]:
        slots = exploration_slots(limit, self.config)
        pool = await self.book_repository.list_exploration(
            set(features.genre_affinities),
            self.config.exploration_min_quality,
            slots + len(chosen_ids),
        )
        return [
            b
            for b in pool
            if b.id not in chosen_ids
            and b.author_id != profile.user_id
            and not profile.has_interacted(b.id)
        ][:slots]

    @staticmethod
    def _recently_completed(profile: ActivityProfile) -> list[str]:
        """Completed book ids, most recently completed first."""
        completed_at: dict[str, datetime] = {}
        for event in profile.interaction_events:
            if event.type == "complete":
                completed_at[event.book_id] = event.timestamp
        for book_id, progress in profile.reading_history.items():
            if progress.is_completed:
                completed_at[book_id] = progress.last_read_at

        ordered = list(enumerate(profile.completed_books))
        ordered.sort(
            key=lambda pair: (completed_at.get(pair[1], datetime.min), pair[0]),
            reverse=True,
        )
        return [book_id for _, book_id in ordered]

    async def _trending_fallback(self, limit: int) -> list[RecommendationWithReason]:
        try:
            # the failed query may have left the session in an aborted transaction
            await self.book_repository.rollback()
            return await self.get_trending(limit)
        except Exception:
            logger.exception("Trending fallback failed")
            return []

    async def _section(
        self,
        name: str,
        user_id: str,
        load: Callable[[], Awaitable[T]],
        default: Any,
    ) -> T:
        try:
            return await load()
        except Exception:
            logger.exception("Feed section %s failed for user %s", name, user_id)
            await self._rollback_quietly()
            return default

    async def _rollback_quietly(self) -> None:
        try:
            await self.book_repository.rollback()
        except Exception:
            logger.exception("Session rollback failed")
