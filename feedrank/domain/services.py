"""Domain-level application service interfaces (ports).

These abstract classes define the contracts that the API layer depends on.
Concrete implementations live in ``feedrank/services/`` and are wired together
by the composition root in ``feedrank/core/dependencies.py``, so route
handlers import from ``feedrank.domain`` only and every service can be
replaced with a test double via ``app.dependency_overrides``.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

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
)


class IRecommendationService(ABC):

    @abstractmethod
    async def get_personalized_recommendations(
        self, user_id: str, limit: int = 20
    ) -> list[RecommendationWithReason]:
        pass

    @abstractmethod
    async def get_diversified_recommendations(
        self, user_id: str, limit: int = 20, diversity_factor: Optional[float] = None
    ) -> list[RecommendationWithReason]:
        pass

    @abstractmethod
    async def get_trending(self, limit: int = 20) -> list[RecommendationWithReason]:
        pass

    @abstractmethod
    async def get_new_releases(
        self, limit: int = 20, min_quality: Optional[float] = None
    ) -> list[Book]:
        pass

    @abstractmethod
    async def get_books_by_genre(self, genre: str, limit: int = 20) -> list[Book]:
        pass

    @abstractmethod
    async def get_similar_books(self, book_id: str, limit: int = 10) -> list[Book]:
        pass

    @abstractmethod
    async def get_content_similar_books(self, book_id: str, limit: int = 10) -> list[Book]:
        pass

    @abstractmethod
    async def get_because_you_read(
        self, user_id: str, limit: int = 3, per_source: int = 4
    ) -> list[BecauseYouReadGroup]:
        pass

    @abstractmethod
    async def get_continue_reading(self, user_id: str) -> list[ContinueReadingItem]:
        pass

    @abstractmethod
    async def get_continue_writing(self, user_id: str, limit: int = 5) -> list[ContinueWritingItem]:
        pass

    @abstractmethod
    async def get_top_authors(self, limit: int = 10) -> list[AuthorEngagement]:
        pass

    @abstractmethod
    async def build_user_feature_vector(self, user_id: str) -> Optional[FeatureVector]:
        pass

    @abstractmethod
    async def get_personalized_feed(self, user_id: str) -> PersonalizedFeed:
        pass


class IInteractionService(ABC):

    @abstractmethod
    async def record_interaction(
        self,
        user_id: str,
        book_id: str,
        interaction_type: str,
        duration: Optional[float] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ActivityProfile:
        pass

    @abstractmethod
    async def record_writing_activity(
        self, user_id: str, book_id: str, genre: str
    ) -> ActivityProfile:
        pass

    @abstractmethod
    async def record_draft_edit(
        self, user_id: str, book_id: str, writing_time: float = 0.0
    ) -> ActivityProfile:
        pass

    @abstractmethod
    async def update_reading_progress(
        self,
        user_id: str,
        book_id: str,
        chapter: int,
        percent: float,
        reading_time: float = 0.0,
    ) -> ActivityProfile:
        pass

    @abstractmethod
    async def set_author_following(
        self, user_id: str, author_id: str, author_name: str = "", following: bool = True
    ) -> ActivityProfile:
        pass
