"""Repository interfaces (ports) for dependency inversion."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from feedrank.domain.entities import ActivityProfile, AuthorEngagement, Book


class IBookRepository(ABC):
    """Read access to the catalog. Every list method returns visible books
    (published and public) unless stated otherwise."""

    @abstractmethod
    async def get_by_id(self, book_id: str) -> Optional[Book]:
        """Return a book regardless of its publishing status."""
        pass

    @abstractmethod
    async def get_many(self, book_ids: list[str]) -> dict[str, Book]:
        """Batch lookup by id, regardless of publishing status."""
        pass

    @abstractmethod
    async def list_published(self, exclude_author_id: Optional[str] = None) -> list[Book]:
        pass

    @abstractmethod
    async def list_trending(self, limit: int = 20) -> list[Book]:
        """Views desc, purchases desc, quality desc, id asc."""
        pass

    @abstractmethod
    async def list_new_releases(
        self, published_since: datetime, min_quality: float, limit: int = 20
    ) -> list[Book]:
        """Published since the cutoff with quality >= min or unscored, newest first."""
        pass

    @abstractmethod
    async def list_by_genre(self, genre: str, limit: int = 20) -> list[Book]:
        """Case-insensitive substring match; quality desc, views desc."""
        pass

    @abstractmethod
    async def list_same_genre(self, book: Book, limit: int = 10) -> list[Book]:
        """Exact genre match excluding ``book``; quality desc, views desc."""
        pass

    @abstractmethod
    async def list_content_candidates(self, book: Book, limit: int = 100) -> list[Book]:
        """Books sharing the genre or at least one tag with ``book``."""
        pass

    @abstractmethod
    async def list_exploration(
        self, excluded_genres: set[str], min_quality: float, limit: int
    ) -> list[Book]:
        """High-quality books outside ``excluded_genres`` (lower-cased);
        quality desc, views desc."""
        pass

    @abstractmethod
    async def list_drafts(self, author_id: str, limit: Optional[int] = None) -> list[Book]:
        """The author's drafts, most recently updated first (any visibility).

        ``limit=None`` returns every draft.
        """
        pass

    @abstractmethod
    async def author_engagement(self, limit: int = 10) -> list[AuthorEngagement]:
        pass

    async def rollback(self) -> None:
        """Discard a failed unit of work so later reads can reuse the connection."""
        pass


class IActivityProfileRepository(ABC):

    @abstractmethod
    async def get(self, user_id: str) -> Optional[ActivityProfile]:
        pass

    @abstractmethod
    async def get_many(self, user_ids: list[str]) -> dict[str, ActivityProfile]:
        """Batch fetch; users without a profile are absent from the result."""
        pass

    @abstractmethod
    async def save(self, profile: ActivityProfile) -> ActivityProfile:
        """Versioned write.

        Inserts when ``profile.version == 0`` and updates otherwise, but only
        if the stored version still equals ``profile.version``.  Raises
        ``ProfileConflictError`` when another writer got there first.  The
        returned profile carries the new version.
        """
        pass

    @abstractmethod
    async def completed_sets(self, exclude_user_id: Optional[str] = None) -> dict[str, set[str]]:
        """Completed-book sets of every user with at least one completion,
        keyed by user id in ascending order."""
        pass

    @abstractmethod
    async def completers_of(self, book_id: str) -> list[str]:
        """Ids of users who completed ``book_id``, ascending."""
        pass

    @abstractmethod
    async def reader_counts(self, book_ids: list[str]) -> dict[str, int]:
        """Number of users who completed each book (batch)."""
        pass


class IFeedCache(ABC):
    """Externally addressable store for precomputed feeds."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    async def set(self, user_id: str, feed: dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def invalidate(self, user_id: str) -> None:
        pass
