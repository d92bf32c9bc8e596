"""Pytest configuration: in-memory repositories, a fixed clock and factories."""

import copy
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest

from feedrank.core.config import ScoringConfig, Settings
from feedrank.domain.entities import (
    ActivityProfile,
    AuthorEngagement,
    Book,
    BookStatistics,
    GenrePreference,
)
from feedrank.domain.exceptions import ProfileConflictError
from feedrank.domain.repositories import (
    IActivityProfileRepository,
    IBookRepository,
    IFeedCache,
)
from feedrank.services.interaction_service import InteractionService
from feedrank.services.recommendation import RecommendationService

NOW = datetime(2026, 1, 15, 12, 0, 0)


def make_book(
    book_id: str,
    genre: str = "Fantasy",
    author_id: str = "author-1",
    quality: Optional[float] = 70.0,
    views: int = 0,
    purchases: int = 0,
    word_count: int = 0,
    published_days_ago: Optional[int] = 60,
    **kwargs: Any,
) -> Book:
    statistics = kwargs.pop(
        "statistics",
        BookStatistics(views=views, purchases=purchases, word_count=word_count),
    )
    return Book(
        id=book_id,
        title=kwargs.pop("title", f"Book {book_id}"),
        genre=genre,
        author_id=author_id,
        author_name=kwargs.pop("author_name", f"Name of {author_id}"),
        quality_score=quality,
        statistics=statistics,
        status=kwargs.pop("status", "published"),
        published_at=(
            NOW - timedelta(days=published_days_ago) if published_days_ago is not None else None
        ),
        created_at=kwargs.pop("created_at", NOW - timedelta(days=90)),
        updated_at=kwargs.pop("updated_at", NOW - timedelta(days=30)),
        **kwargs,
    )


def make_profile(user_id: str = "reader-1", **kwargs: Any) -> ActivityProfile:
    genres = kwargs.pop("genres", {})
    profile = ActivityProfile(
        user_id=user_id,
        last_active_at=kwargs.pop("last_active_at", NOW),
        created_at=NOW - timedelta(days=100),
        updated_at=NOW - timedelta(days=1),
        **kwargs,
    )
    for name, weight in genres.items():
        profile.genre_preferences[name.lower()] = GenrePreference(
            genre=name, weight=weight, last_interaction=NOW
        )
    return profile


# ---------------------------------------------------------------------------
# In-memory repositories
# ---------------------------------------------------------------------------
def _quality_key(book: Book) -> float:
    return book.quality_score if book.quality_score is not None else -1


class InMemoryBookRepository(IBookRepository):

    def __init__(self, books: Optional[list[Book]] = None):
        self.books: dict[str, Book] = {b.id: b for b in books or []}
        self.fail = False
        self.rollbacks = 0

    async def rollback(self) -> None:
        self.rollbacks += 1

    def add(self, *books: Book) -> None:
        for book in books:
            self.books[book.id] = book

    def _visible(self) -> list[Book]:
        if self.fail:
            raise RuntimeError("catalog unavailable")
        return sorted((b for b in self.books.values() if b.is_visible), key=lambda b: b.id)

    async def get_by_id(self, book_id: str) -> Optional[Book]:
        return self.books.get(book_id)

    async def get_many(self, book_ids: list[str]) -> dict[str, Book]:
        return {i: self.books[i] for i in book_ids if i in self.books}

    async def list_published(self, exclude_author_id: Optional[str] = None) -> list[Book]:
        return [b for b in self._visible() if b.author_id != exclude_author_id]

    async def list_trending(self, limit: int = 20) -> list[Book]:
        books = sorted(
            self._visible(),
            key=lambda b: (
                -b.statistics.views,
                -b.statistics.purchases,
                -_quality_key(b),
                b.id,
            ),
        )
        return books[:limit]

    async def list_new_releases(
        self, published_since: datetime, min_quality: float, limit: int = 20
    ) -> list[Book]:
        books = [
            b
            for b in self._visible()
            if b.published_at is not None
            and b.published_at >= published_since
            and (b.quality_score is None or b.quality_score >= min_quality)
        ]
        books.sort(key=lambda b: b.id)
        books.sort(key=lambda b: b.published_at, reverse=True)
        return books[:limit]

    async def list_by_genre(self, genre: str, limit: int = 20) -> list[Book]:
        books = [b for b in self._visible() if genre.lower() in b.genre.lower()]
        books.sort(key=lambda b: (-_quality_key(b), -b.statistics.views, b.id))
        return books[:limit]

    async def list_same_genre(self, book: Book, limit: int = 10) -> list[Book]:
        books = [b for b in self._visible() if b.genre == book.genre and b.id != book.id]
        books.sort(key=lambda b: (-_quality_key(b), -b.statistics.views, b.id))
        return books[:limit]

    async def list_content_candidates(self, book: Book, limit: int = 100) -> list[Book]:
        tags = {t.lower() for t in book.tags}
        return [
            b
            for b in self._visible()
            if b.id != book.id
            and (b.genre.lower() == book.genre.lower() or tags & {t.lower() for t in b.tags})
        ][:limit]

    async def list_exploration(
        self, excluded_genres: set[str], min_quality: float, limit: int
    ) -> list[Book]:
        books = [
            b
            for b in self._visible()
            if b.quality_score is not None
            and b.quality_score >= min_quality
            and b.genre.lower() not in excluded_genres
        ]
        books.sort(key=lambda b: (-_quality_key(b), -b.statistics.views, b.id))
        return books[:limit]

    async def list_drafts(self, author_id: str, limit: Optional[int] = None) -> list[Book]:
        books = [
            b for b in self.books.values() if b.author_id == author_id and b.status == "draft"
        ]
        books.sort(key=lambda b: b.id)
        books.sort(key=lambda b: b.updated_at, reverse=True)
        return books[:limit]

    async def author_engagement(self, limit: int = 10) -> list[AuthorEngagement]:
        grouped: dict[str, list[Book]] = {}
        for book in self._visible():
            grouped.setdefault(book.author_id, []).append(book)
        authors = []
        for author_id, books in grouped.items():
            scored = [b.quality_score for b in books if b.quality_score is not None]
            avg_quality = sum(scored) / len(scored) if scored else None
            views = sum(b.statistics.views for b in books)
            purchases = sum(b.statistics.purchases for b in books)
            authors.append(
                AuthorEngagement(
                    author_id=author_id,
                    author_name=books[0].author_name,
                    total_books=len(books),
                    total_views=views,
                    total_purchases=purchases,
                    avg_quality=avg_quality,
                    engagement_score=len(books) * 10
                    + views * 0.1
                    + purchases * 5
                    + (avg_quality if avg_quality is not None else 50) * 0.5,
                )
            )
        authors.sort(key=lambda a: (-a.engagement_score, a.author_id))
        return authors[:limit]


class InMemoryProfileRepository(IActivityProfileRepository):
    """Stores deep copies so callers only see state through get/save."""

    def __init__(self, profiles: Optional[list[ActivityProfile]] = None):
        self.profiles: dict[str, ActivityProfile] = {}
        self.saves = 0
        self.conflicts_to_raise = 0
        self.get_many_calls: list[list[str]] = []
        for profile in profiles or []:
            self.put(profile)

    def put(self, profile: ActivityProfile) -> None:
        stored = copy.deepcopy(profile)
        stored.version = max(stored.version, 1)
        self.profiles[profile.user_id] = stored

    async def get(self, user_id: str) -> Optional[ActivityProfile]:
        profile = self.profiles.get(user_id)
        return copy.deepcopy(profile) if profile else None

    async def get_many(self, user_ids: list[str]) -> dict[str, ActivityProfile]:
        self.get_many_calls.append(list(user_ids))
        return {u: copy.deepcopy(self.profiles[u]) for u in user_ids if u in self.profiles}

    async def save(self, profile: ActivityProfile) -> ActivityProfile:
        if self.conflicts_to_raise > 0:
            self.conflicts_to_raise -= 1
            raise ProfileConflictError(profile.user_id, profile.version)
        stored = self.profiles.get(profile.user_id)
        stored_version = stored.version if stored else 0
        if stored_version != profile.version:
            raise ProfileConflictError(profile.user_id, profile.version)
        saved = copy.deepcopy(profile)
        saved.version = profile.version + 1
        self.profiles[profile.user_id] = saved
        self.saves += 1
        return copy.deepcopy(saved)

    async def completed_sets(self, exclude_user_id: Optional[str] = None) -> dict[str, set[str]]:
        return {
            uid: set(p.completed_books)
            for uid, p in sorted(self.profiles.items())
            if uid != exclude_user_id and p.completed_books
        }

    async def completers_of(self, book_id: str) -> list[str]:
        return sorted(uid for uid, p in self.profiles.items() if book_id in p.completed_books)

    async def reader_counts(self, book_ids: list[str]) -> dict[str, int]:
        counts: Counter = Counter()
        for profile in self.profiles.values():
            for book_id in profile.completed_books:
                if book_id in book_ids:
                    counts[book_id] += 1
        return dict(counts)


class InMemoryFeedCache(IFeedCache):

    def __init__(self):
        self.entries: dict[str, dict[str, Any]] = {}
        self.invalidated: list[str] = []

    async def get(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.entries.get(user_id)

    async def set(self, user_id: str, feed: dict[str, Any]) -> None:
        self.entries[user_id] = feed

    async def invalidate(self, user_id: str) -> None:
        self.invalidated.append(user_id)
        self.entries.pop(user_id, None)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def scoring() -> ScoringConfig:
    return ScoringConfig()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        feed_cache_enabled=False,
        profile_write_retries=3,
        interaction_log_limit=1000,
    )


@pytest.fixture
def book_repo() -> InMemoryBookRepository:
    return InMemoryBookRepository()


@pytest.fixture
def profile_repo() -> InMemoryProfileRepository:
    return InMemoryProfileRepository()


@pytest.fixture
def feed_cache() -> InMemoryFeedCache:
    return InMemoryFeedCache()


@pytest.fixture
def recommendation_service(book_repo, profile_repo, scoring) -> RecommendationService:
    return RecommendationService(book_repo, profile_repo, config=scoring, clock=lambda: NOW)


@pytest.fixture
def interaction_service(
    book_repo, profile_repo, feed_cache, test_settings
) -> InteractionService:
    return InteractionService(
        profile_repo, book_repo, feed_cache=feed_cache, settings=test_settings, clock=lambda: NOW
    )
