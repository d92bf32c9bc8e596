"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from feedrank.domain.entities import (
    INTERACTION_TYPES,
    ActivityProfile,
    AuthorEngagement,
    Book,
    FeatureVector,
    PersonalizedFeed,
    RecommendationWithReason,
)


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------
class BookStatisticsResponse(BaseModel):
    views: int
    purchases: int
    total_reviews: int
    average_rating: float
    word_count: int

    model_config = ConfigDict(from_attributes=True)


class BookResponse(BaseModel):
    id: str
    title: str
    genre: str
    author_id: str
    author_name: str
    tags: list[str]
    quality_score: Optional[float] = None
    statistics: BookStatisticsResponse
    status: str
    published_at: Optional[datetime] = None
    target_audience: Optional[str] = None
    age_rating: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class BookListResponse(BaseModel):
    books: list[BookResponse]
    total: int

    @classmethod
    def from_books(cls, books: list[Book]) -> "BookListResponse":
        return cls(books=[BookResponse.model_validate(b) for b in books], total=len(books))


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------
class RecommendedBookResponse(BaseModel):
    book: BookResponse
    score: float
    reasons: list[str]
    category: str

    model_config = ConfigDict(from_attributes=True)


class RecommendationResponse(BaseModel):
    recommendations: list[RecommendedBookResponse]
    total: int

    @classmethod
    def from_recommendations(
        cls, recs: list[RecommendationWithReason]
    ) -> "RecommendationResponse":
        return cls(
            recommendations=[RecommendedBookResponse.model_validate(r) for r in recs],
            total=len(recs),
        )


class ContinueReadingResponse(BaseModel):
    book: BookResponse
    progress: float
    last_read_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ContinueWritingResponse(BaseModel):
    book: BookResponse
    last_edited_at: datetime
    word_count: int

    model_config = ConfigDict(from_attributes=True)


class BecauseYouReadResponse(BaseModel):
    based_on: BookResponse
    recommendations: list[BookResponse]

    model_config = ConfigDict(from_attributes=True)


class AuthorEngagementResponse(BaseModel):
    author_id: str
    author_name: str
    total_books: int
    total_views: int
    total_purchases: int
    avg_quality: Optional[float] = None
    engagement_score: float

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entities(cls, authors: list[AuthorEngagement]) -> list["AuthorEngagementResponse"]:
        return [cls.model_validate(a) for a in authors]


class PersonalizedFeedResponse(BaseModel):
    recommended_for_you: list[RecommendedBookResponse]
    continue_reading: list[ContinueReadingResponse]
    continue_writing: list[ContinueWritingResponse]
    because_you_read: list[BecauseYouReadResponse]
    trending: list[BookResponse]
    new_releases: list[BookResponse]

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_feed(cls, feed: PersonalizedFeed) -> "PersonalizedFeedResponse":
        return cls.model_validate(feed)


class FeatureVectorResponse(BaseModel):
    genre_affinities: dict[str, float]
    author_affinities: dict[str, float]
    quality_preference: float
    reading_length_preference: str
    avg_reading_time: float
    completion_rate: float
    recent_activity_level: float

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, features: FeatureVector) -> "FeatureVectorResponse":
        return cls.model_validate(features)


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------
class InteractionCreateRequest(BaseModel):
    book_id: str = Field(..., min_length=1)
    interaction_type: str = Field(
        ..., description=f"One of: {', '.join(INTERACTION_TYPES)}"
    )
    duration: Optional[float] = Field(None, ge=0, description="Minutes spent")
    metadata: Optional[dict[str, Any]] = None


class ReadingProgressRequest(BaseModel):
    chapter: int = Field(..., ge=0)
    percent: float = Field(..., ge=0, le=100)
    reading_time: float = Field(0.0, ge=0)


class WritingActivityRequest(BaseModel):
    genre: str = Field(..., min_length=1, max_length=100)


class DraftEditRequest(BaseModel):
    writing_time: float = Field(0.0, ge=0)


class AuthorFollowRequest(BaseModel):
    author_name: str = ""
    following: bool = True


class GenrePreferenceResponse(BaseModel):
    genre: str
    weight: float
    read_count: int
    written_count: int
    last_interaction: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityProfileResponse(BaseModel):
    user_id: str
    genre_preferences: list[GenrePreferenceResponse]
    currently_reading: list[str]
    completed_books: list[str]
    abandoned_books: list[str]
    currently_writing: list[str]
    completed_writing: list[str]
    total_books_read: int
    total_books_written: int
    total_reading_time: float
    total_writing_time: float
    current_streak: int
    longest_streak: int
    last_active_at: datetime
    version: int

    @classmethod
    def from_entity(cls, profile: ActivityProfile) -> "ActivityProfileResponse":
        return cls(
            user_id=profile.user_id,
            genre_preferences=[
                GenrePreferenceResponse.model_validate(p)
                for p in sorted(
                    profile.genre_preferences.values(), key=lambda p: (-p.weight, p.genre)
                )
            ],
            currently_reading=profile.currently_reading,
            completed_books=profile.completed_books,
            abandoned_books=profile.abandoned_books,
            currently_writing=profile.currently_writing,
            completed_writing=profile.completed_writing,
            total_books_read=profile.total_books_read,
            total_books_written=profile.total_books_written,
            total_reading_time=profile.total_reading_time,
            total_writing_time=profile.total_writing_time,
            current_streak=profile.current_streak,
            longest_streak=profile.longest_streak,
            last_active_at=profile.last_active_at,
            version=profile.version,
        )
