"""Domain entities for feedrank."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional


InteractionType = Literal[
    "view", "read", "complete", "purchase", "like", "share", "review", "abandon"
]
RecommendationCategory = Literal["personalized", "trending", "new", "similar", "explore"]
ReadingLength = Literal["short", "medium", "long", "any"]

INTERACTION_TYPES: tuple[str, ...] = (
    "view", "read", "complete", "purchase", "like", "share", "review", "abandon",
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention used for every stored datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@dataclass
class BookStatistics:
    views: int = 0
    purchases: int = 0
    total_reviews: int = 0
    average_rating: float = 0.0
    word_count: int = 0


@dataclass
class Book:
    """Catalog item. Only ``statistics`` changes outside the publishing flow."""

    id: str
    title: str
    genre: str
    author_id: str
    author_name: str = ""
    tags: list[str] = field(default_factory=list)
    quality_score: Optional[float] = None  # 0-100, None when unscored
    statistics: BookStatistics = field(default_factory=BookStatistics)
    status: str = "draft"  # draft | published | unpublished
    is_public: bool = True
    published_at: Optional[datetime] = None
    target_audience: Optional[str] = None  # children | young-adult | adult | all-ages
    age_rating: Optional[str] = None  # G | PG | PG-13 | R | 18+
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_visible(self) -> bool:
        return self.status == "published" and self.is_public


# ---------------------------------------------------------------------------
# Activity profile (the engine's only mutable state)
# ---------------------------------------------------------------------------
@dataclass
class GenrePreference:
    genre: str
    weight: float = 50.0  # 0-100
    read_count: int = 0
    written_count: int = 0
    last_interaction: datetime = field(default_factory=utcnow)


@dataclass
class AuthorPreference:
    author_id: str
    author_name: str = "Unknown"
    books_read: int = 0
    average_rating: float = 0.0  # 0-5, 0 means "never rated"
    is_following: bool = False
    last_interaction: datetime = field(default_factory=utcnow)


@dataclass
class InteractionEvent:
    type: str
    book_id: str
    genre: str
    author_id: str
    duration: Optional[float] = None  # minutes
    timestamp: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReadingProgress:
    book_id: str
    last_chapter_read: int = 0
    percentage_complete: float = 0.0
    total_reading_time: float = 0.0
    last_read_at: datetime = field(default_factory=utcnow)
    is_completed: bool = False
    rating: Optional[int] = None


@dataclass
class WritingProgress:
    book_id: str
    last_edited_at: datetime = field(default_factory=utcnow)
    is_completed: bool = False
    total_writing_time: float = 0.0


@dataclass
class ActivityProfile:
    """Per-user behavioural record, created lazily on the first interaction.

    The reading lists are ordered and duplicate-free; a book id sits in at most
    one of ``currently_reading``, ``completed_books`` and ``abandoned_books``.
    ``version`` is the optimistic-concurrency token bumped on every save.
    """

    user_id: str
    genre_preferences: dict[str, GenrePreference] = field(default_factory=dict)
    author_preferences: dict[str, AuthorPreference] = field(default_factory=dict)
    interaction_events: list[InteractionEvent] = field(default_factory=list)
    reading_history: dict[str, ReadingProgress] = field(default_factory=dict)
    writing_progress: dict[str, WritingProgress] = field(default_factory=dict)
    currently_reading: list[str] = field(default_factory=list)
    completed_books: list[str] = field(default_factory=list)
    abandoned_books: list[str] = field(default_factory=list)
    currently_writing: list[str] = field(default_factory=list)
    completed_writing: list[str] = field(default_factory=list)
    total_books_read: int = 0
    total_books_written: int = 0
    total_reading_time: float = 0.0
    total_writing_time: float = 0.0
    last_active_at: datetime = field(default_factory=utcnow)
    current_streak: int = 0
    longest_streak: int = 0
    last_streak_date: Optional[datetime] = None
    version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def genre_preference(self, genre: str) -> Optional[GenrePreference]:
        return self.genre_preferences.get((genre or "").lower())

    def has_interacted(self, book_id: str) -> bool:
        return (
            book_id in self.completed_books
            or book_id in self.currently_reading
            or book_id in self.abandoned_books
        )


# ---------------------------------------------------------------------------
# Transient engine records
# ---------------------------------------------------------------------------
@dataclass
class FeatureVector:
    genre_affinities: dict[str, float]  # lower-cased genre -> [0, 1]
    author_affinities: dict[str, float]  # author id -> [0, 1]
    quality_preference: float  # 0-100
    reading_length_preference: ReadingLength
    avg_reading_time: float
    completion_rate: float
    recent_activity_level: float


@dataclass
class SimilarityResult:
    id: str
    similarity: float


@dataclass
class RecommendationWithReason:
    book: Book
    score: float
    reasons: list[str]
    category: RecommendationCategory = "personalized"


@dataclass
class ContinueReadingItem:
    book: Book
    progress: float
    last_read_at: Optional[datetime]


@dataclass
class ContinueWritingItem:
    book: Book
    last_edited_at: datetime
    word_count: int


@dataclass
class BecauseYouReadGroup:
    based_on: Book
    recommendations: list[Book]


@dataclass
class AuthorEngagement:
    author_id: str
    author_name: str
    total_books: int
    total_views: int
    total_purchases: int
    avg_quality: Optional[float]
    engagement_score: float


@dataclass
class PersonalizedFeed:
    recommended_for_you: list[RecommendationWithReason] = field(default_factory=list)
    continue_reading: list[ContinueReadingItem] = field(default_factory=list)
    continue_writing: list[ContinueWritingItem] = field(default_factory=list)
    because_you_read: list[BecauseYouReadGroup] = field(default_factory=list)
    trending: list[Book] = field(default_factory=list)
    new_releases: list[Book] = field(default_factory=list)
