"""Independent signal scorers.

Each scorer maps (profile or feature vector, candidate book) to a bounded
real: [0, 1] for the positive signals, [0, penalty cap] for the negative
signal penalty.  Scorers are pure; "now" is always passed in.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from feedrank.core.config import ScoringConfig
from feedrank.domain.entities import ActivityProfile, Book, FeatureVector, SimilarityResult

DEFAULT_SCORING = ScoringConfig()

# ln(2), truncated to the constant used everywhere decay is computed
HALF_LIFE_LN2 = 0.693


def days_since(date: Optional[datetime], now: datetime) -> int:
    """Whole days elapsed, floored; future dates count as zero."""
    if date is None:
        return 0
    return max(0, math.floor((now - date).total_seconds() / 86400))


def temporal_decay(
    date: Optional[datetime], now: datetime, config: ScoringConfig = DEFAULT_SCORING
) -> float:
    """Exponential decay with a 14-day half-life, floored at 0.1."""
    days = days_since(date, now)
    return max(config.decay_floor, math.exp(-HALF_LIFE_LN2 * days / config.decay_half_life_days))


def genre_score(
    profile: ActivityProfile,
    book: Book,
    now: datetime,
    config: ScoringConfig = DEFAULT_SCORING,
) -> float:
    pref = profile.genre_preference(book.genre)
    if pref is None:
        # curiosity default for genres the user has never touched
        return config.unknown_genre_score

    base_weight = pref.weight / 100
    interaction_bonus = min(pref.read_count * 0.05, 0.3)
    writing_bonus = 0.2 if pref.written_count > 0 else 0.0
    recency = temporal_decay(pref.last_interaction, now, config)
    return min(1.0, (base_weight + interaction_bonus + writing_bonus) * recency)


def author_score(profile: ActivityProfile, book: Book) -> float:
    pref = profile.author_preferences.get(book.author_id)
    if pref is None:
        return 0.0

    score = 0.4 if pref.is_following else 0.0
    score += min(pref.books_read * 0.1, 0.3)
    if pref.average_rating > 0:
        score += (pref.average_rating / 5) * 0.3
    return min(1.0, score)


def quality_score(book: Book, config: ScoringConfig = DEFAULT_SCORING) -> float:
    if book.quality_score is None:
        return config.default_quality_score
    return min(1.0, max(0.0, book.quality_score / 100))


def quality_match(
    book: Book, features: FeatureVector, config: ScoringConfig = DEFAULT_SCORING
) -> float:
    """Closeness of the book's quality to the quality the user usually finishes."""
    quality = book.quality_score if book.quality_score is not None else config.default_book_quality
    return min(1.0, max(0.0, 1 - abs(quality - features.quality_preference) / 100))


def popularity_score(book: Book) -> float:
    stats = book.statistics
    view_score = min(math.log10(max(stats.views, 0) + 1) / 5, 1.0)
    purchase_score = min(math.log10(max(stats.purchases, 0) + 1) / 3, 1.0)
    review_score = min(math.log10(max(stats.total_reviews, 0) + 1) / 2, 1.0)
    rating_score = stats.average_rating / 5 if stats.average_rating else 0.5
    return (
        view_score * 0.2
        + purchase_score * 0.3
        + review_score * 0.2
        + rating_score * 0.3
    )


def freshness_score(book: Book, now: datetime) -> float:
    if book.published_at is None:
        return 0.0
    days = days_since(book.published_at, now)
    if days <= 7:
        return 1.0
    if days <= 30:
        return max(0.5, 1 - (days - 7) * 0.02)
    return 0.3


def negative_signal_penalty(
    profile: ActivityProfile, book: Book, config: ScoringConfig = DEFAULT_SCORING
) -> float:
    """Penalty subtracted from the final score, capped at 0.5."""
    rules = config.penalty
    penalty = 0.0

    genre = (book.genre or "").lower()
    abandoned_in_genre = sum(
        1
        for e in profile.interaction_events
        if e.type == "abandon" and (e.genre or "").lower() == genre
    )
    penalty += min(abandoned_in_genre * rules.per_genre_abandon, rules.genre_abandon_cap)

    author_pref = profile.author_preferences.get(book.author_id)
    if (
        author_pref
        and author_pref.books_read > 0
        and 0 < author_pref.average_rating < rules.low_rating_threshold
    ):
        penalty += rules.low_rated_author

    if book.statistics.word_count > rules.long_book_words:
        long_abandons = sum(
            1
            for e in profile.interaction_events
            if e.type == "abandon"
            and (e.metadata or {}).get("word_count", 0) > rules.long_book_words
        )
        if long_abandons >= rules.long_book_abandons:
            penalty += rules.long_book

    return min(penalty, rules.total_cap)


def collaborative_score(
    book: Book,
    similar_users: list[SimilarityResult],
    similar_profiles: dict[str, ActivityProfile],
    config: ScoringConfig = DEFAULT_SCORING,
) -> float:
    """Similarity-weighted mean rating from similar users who completed the book.

    ``similar_profiles`` must be fetched once per request and shared across
    candidates.
    """
    weighted_sum = 0.0
    weight_total = 0.0
    for similar in similar_users:
        other = similar_profiles.get(similar.id)
        if other is None or book.id not in other.completed_books:
            continue
        author_pref = other.author_preferences.get(book.author_id)
        rating = (author_pref.average_rating if author_pref else 0) or config.neutral_rating
        weighted_sum += similar.similarity * (rating / 5)
        weight_total += similar.similarity
    return weighted_sum / weight_total if weight_total > 0 else 0.0
