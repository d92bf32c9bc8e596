"""Activity Profile Builder: raw interaction history -> normalised feature vector."""

from __future__ import annotations

from datetime import datetime

from feedrank.core.config import ScoringConfig
from feedrank.domain.entities import ActivityProfile, Book, FeatureVector, ReadingLength
from feedrank.services.signals import DEFAULT_SCORING, days_since, temporal_decay

SHORT_BOOK_WORDS = 30_000
MEDIUM_BOOK_WORDS = 80_000
MIN_BOOKS_FOR_LENGTH = 3


def author_affinity(is_following: bool, books_read: int, average_rating: float) -> float:
    score = 0.5 if is_following else 0.0
    score += min(books_read * 0.15, 0.3)
    if average_rating > 0:
        score += (average_rating / 5) * 0.2
    return min(1.0, score)


def infer_length_preference(completed: list[Book]) -> ReadingLength:
    word_counts = [b.statistics.word_count for b in completed if b.statistics.word_count > 0]
    if len(word_counts) < MIN_BOOKS_FOR_LENGTH:
        return "any"
    avg = sum(word_counts) / len(word_counts)
    if avg < SHORT_BOOK_WORDS:
        return "short"
    if avg < MEDIUM_BOOK_WORDS:
        return "medium"
    return "long"


def build_feature_vector(
    profile: ActivityProfile,
    completed_books: dict[str, Book],
    now: datetime,
    config: ScoringConfig = DEFAULT_SCORING,
) -> FeatureVector:
    """Build the feature vector for ``profile``.

    ``completed_books`` maps ids from ``profile.completed_books`` to catalog
    records; ids missing from it (deleted books) are ignored.
    """
    genre_affinities = {
        key: (pref.weight / 100) * temporal_decay(pref.last_interaction, now, config)
        for key, pref in profile.genre_preferences.items()
    }

    author_affinities = {
        author_id: author_affinity(pref.is_following, pref.books_read, pref.average_rating)
        for author_id, pref in profile.author_preferences.items()
    }

    completed = [completed_books[bid] for bid in profile.completed_books if bid in completed_books]

    scored = [b.quality_score for b in completed if b.quality_score]
    quality_preference = (
        sum(scored) / len(scored) if scored else config.default_quality_preference
    )

    avg_reading_time = (
        profile.total_reading_time / profile.total_books_read
        if profile.total_reading_time > 0 and profile.total_books_read > 0
        else 0.0
    )

    started = (
        len(profile.currently_reading)
        + len(profile.completed_books)
        + len(profile.abandoned_books)
    )
    completion_rate = len(profile.completed_books) / started if started > 0 else 0.0

    recent_activity_level = max(0.0, 1 - days_since(profile.last_active_at, now) / 30)

    return FeatureVector(
        genre_affinities=genre_affinities,
        author_affinities=author_affinities,
        quality_preference=quality_preference,
        reading_length_preference=infer_length_preference(completed),
        avg_reading_time=avg_reading_time,
        completion_rate=completion_rate,
        recent_activity_level=recent_activity_level,
    )
