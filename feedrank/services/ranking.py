"""Ranking composer.

Blends the independent signals into one score per candidate, attaches
human-readable reasons, then re-ranks for genre diversity and reserves a few
slots for exploration outside the user's known genres.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime

from feedrank.core.config import ReasonThresholds, ScoringConfig
from feedrank.domain.entities import (
    ActivityProfile,
    Book,
    FeatureVector,
    RecommendationWithReason,
)
from feedrank.services import signals
from feedrank.services.signals import DEFAULT_SCORING

DEFAULT_REASON = "Recommended for you"
EXPLORE_REASON = "Discover something new"
TRENDING_REASON = "Trending on MeStory"


@dataclass
class SignalBreakdown:
    """Per-candidate signal values, kept for explanations and debugging."""

    genre: float = 0.0
    author: float = 0.0
    quality: float = 0.0
    popularity: float = 0.0
    freshness: float = 0.0
    collaborative: float = 0.0
    penalty: float = 0.0
    rating: float = 0.0  # the book's own quality, drives the "highly rated" reason

    def explain(self, book: Book, thresholds: ReasonThresholds) -> list[str]:
        reasons = []
        if self.genre > thresholds.genre:
            reasons.append(f"Matches your love for {book.genre}")
        if self.author > thresholds.author:
            reasons.append("From an author you enjoy")
        if self.rating > thresholds.quality:
            reasons.append("Highly rated by AI")
        if self.collaborative > thresholds.collaborative:
            reasons.append("Loved by readers like you")
        if self.popularity > thresholds.popularity:
            reasons.append("Popular among readers")
        if self.freshness > thresholds.freshness:
            reasons.append("New release")
        return reasons or [DEFAULT_REASON]


def score_personalized(
    profile: ActivityProfile,
    book: Book,
    now: datetime,
    config: ScoringConfig = DEFAULT_SCORING,
) -> RecommendationWithReason:
    w = config.personalized
    s = SignalBreakdown(
        genre=signals.genre_score(profile, book, now, config),
        author=signals.author_score(profile, book),
        quality=signals.quality_score(book, config),
        popularity=signals.popularity_score(book),
        freshness=signals.freshness_score(book, now),
        penalty=signals.negative_signal_penalty(profile, book, config),
    )
    s.rating = s.quality
    base = (
        s.genre * w.genre
        + s.author * w.author
        + s.quality * w.quality
        + s.popularity * w.popularity
        + s.freshness * w.freshness
    )
    return RecommendationWithReason(
        book=book,
        score=max(0.0, base - s.penalty),
        reasons=s.explain(book, config.reasons),
        category="personalized",
    )


def score_diversified(
    profile: ActivityProfile,
    features: FeatureVector,
    book: Book,
    collaborative: float,
    now: datetime,
    config: ScoringConfig = DEFAULT_SCORING,
) -> RecommendationWithReason:
    """Richer composer used by the feed: adds the collaborative term and
    matches quality against the user's own quality preference."""
    w = config.diversified
    s = SignalBreakdown(
        genre=signals.genre_score(profile, book, now, config),
        author=signals.author_score(profile, book),
        quality=signals.quality_match(book, features, config),
        collaborative=collaborative,
        popularity=signals.popularity_score(book),
        freshness=signals.freshness_score(book, now),
        penalty=signals.negative_signal_penalty(profile, book, config),
        rating=signals.quality_score(book, config),
    )
    base = (
        s.genre * w.genre
        + s.author * w.author
        + s.quality * w.quality
        + s.collaborative * w.collaborative
        + s.popularity * w.popularity
        + s.freshness * w.freshness
    )
    return RecommendationWithReason(
        book=book,
        score=max(0.0, base - s.penalty),
        reasons=s.explain(book, config.reasons),
        category="personalized",
    )


def sort_by_score(recs: list[RecommendationWithReason]) -> list[RecommendationWithReason]:
    return sorted(recs, key=lambda r: (-r.score, r.book.id))


def apply_diversity_penalty(
    recs: list[RecommendationWithReason], diversity_factor: float = 0.3
) -> list[RecommendationWithReason]:
    """Single greedy pass: the n-th repeat of a genre loses n * factor * 0.1."""
    genre_counts: dict[str, int] = {}
    adjusted = []
    for rec in sort_by_score(recs):
        genre = (rec.book.genre or "unknown").lower()
        seen = genre_counts.get(genre, 0)
        adjusted.append(replace(rec, score=max(0.0, rec.score - seen * diversity_factor * 0.1)))
        genre_counts[genre] = seen + 1
    return sort_by_score(adjusted)


def exploration_slots(limit: int, config: ScoringConfig = DEFAULT_SCORING) -> int:
    return max(1, math.floor(limit * config.exploration_ratio))


def inject_exploration(
    diversified: list[RecommendationWithReason],
    exploration: list[Book],
    limit: int,
    config: ScoringConfig = DEFAULT_SCORING,
) -> list[RecommendationWithReason]:
    """Reserve exploration slots after the diversified slice, then truncate.

    Slots the exploration pool cannot fill go back to the diversified list.
    """
    slots = exploration_slots(limit, config)
    explore = [
        RecommendationWithReason(
            book=book,
            score=config.exploration_score,
            reasons=[EXPLORE_REASON],
            category="explore",
        )
        for book in exploration[:slots]
    ]
    head = diversified[: max(0, limit - len(explore))]
    return (head + explore)[:limit]


def trending_with_reasons(books: list[Book]) -> list[RecommendationWithReason]:
    return [
        RecommendationWithReason(
            book=book,
            score=1 - index * 0.05,
            reasons=[TRENDING_REASON],
            category="trending",
        )
        for index, book in enumerate(books)
    ]
