"""Similarity engines.

  1. User-user: Jaccard over completed-book sets (collaborative filtering)
  2. Item-item: co-completion counts with cosine-like normalisation
  3. Content-based: weighted attribute overlap between two books

Candidates are always enumerated in ascending id order and ties are broken by
id, so reruns over the same data return the same ranking.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

import numpy as np

from feedrank.core.config import ScoringConfig
from feedrank.domain.entities import ActivityProfile, Book, SimilarityResult
from feedrank.domain.repositories import IActivityProfileRepository, IBookRepository

logger = logging.getLogger(__name__)

# attribute -> weight; terms with missing data are omitted, never renormalised
CONTENT_WEIGHTS = {
    "genre": 0.30,
    "tags": 0.25,
    "quality": 0.15,
    "audience": 0.15,
    "length": 0.10,
    "age_rating": 0.05,
}


def jaccard(a: set[str], b: set[str]) -> float:
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


def content_similarity(book_a: Book, book_b: Book) -> float:
    similarity = 0.0

    if (book_a.genre or "").lower() and (book_a.genre or "").lower() == (book_b.genre or "").lower():
        similarity += CONTENT_WEIGHTS["genre"]

    tags_a = {t.lower() for t in book_a.tags or []}
    tags_b = {t.lower() for t in book_b.tags or []}
    if tags_a and tags_b:
        similarity += jaccard(tags_a, tags_b) * CONTENT_WEIGHTS["tags"]

    if book_a.quality_score is not None and book_b.quality_score is not None:
        diff = abs(book_a.quality_score - book_b.quality_score)
        similarity += max(0.0, (100 - diff) / 100) * CONTENT_WEIGHTS["quality"]

    if book_a.target_audience and book_a.target_audience == book_b.target_audience:
        similarity += CONTENT_WEIGHTS["audience"]

    words_a = book_a.statistics.word_count
    words_b = book_b.statistics.word_count
    if words_a > 0 and words_b > 0:
        similarity += (min(words_a, words_b) / max(words_a, words_b)) * CONTENT_WEIGHTS["length"]

    if book_a.age_rating and book_a.age_rating == book_b.age_rating:
        similarity += CONTENT_WEIGHTS["age_rating"]

    return similarity


def rank_similar_users(
    user_books: set[str],
    others: dict[str, set[str]],
    k: int,
    min_similarity: float,
) -> list[SimilarityResult]:
    results: list[SimilarityResult] = []
    for other_id in sorted(others):
        other_books = others[other_id]
        if not other_books:
            continue
        similarity = jaccard(user_books, other_books)
        if similarity > min_similarity:
            results.append(SimilarityResult(id=other_id, similarity=similarity))
    results.sort(key=lambda r: (-r.similarity, r.id))
    return results[:k]


def co_completion_similarities(
    source_readers: int,
    co_counts: dict[str, int],
    reader_counts: dict[str, int],
) -> list[SimilarityResult]:
    """coCount(A, B) / sqrt(readers(A) * readers(B)) for every co-completed B."""
    if source_readers == 0 or not co_counts:
        return []
    ids = sorted(co_counts)
    co = np.array([co_counts[i] for i in ids], dtype=float)
    # a co-completer is itself a reader, so this is never below the co count
    readers = np.array([max(reader_counts.get(i, 0), co_counts[i]) for i in ids], dtype=float)
    sims = co / np.sqrt(source_readers * readers)
    order = np.lexsort((np.arange(len(ids)), -sims))
    return [SimilarityResult(id=ids[i], similarity=float(sims[i])) for i in order]


class SimilarityEngine:
    """Repository-backed similarity lookups (batch fetches only)."""

    def __init__(
        self,
        profile_repository: IActivityProfileRepository,
        book_repository: IBookRepository,
        config: Optional[ScoringConfig] = None,
    ):
        self.profile_repository = profile_repository
        self.book_repository = book_repository
        self.config = config or ScoringConfig()

    async def find_similar_users(self, user_id: str, k: Optional[int] = None) -> list[SimilarityResult]:
        profile = await self.profile_repository.get(user_id)
        if profile is None:
            return []
        return await self.similar_users_for(profile, k)

    async def similar_users_for(
        self, profile: ActivityProfile, k: Optional[int] = None
    ) -> list[SimilarityResult]:
        if not profile.completed_books:
            return []
        others = await self.profile_repository.completed_sets(exclude_user_id=profile.user_id)
        return rank_similar_users(
            set(profile.completed_books),
            others,
            k if k is not None else self.config.similar_users_k,
            self.config.min_user_similarity,
        )

    async def find_similar_books(self, book_id: str, limit: int = 10) -> list[SimilarityResult]:
        completers = await self.profile_repository.completers_of(book_id)
        if not completers:
            return []
        profiles = await self.profile_repository.get_many(completers)

        co_counts: Counter = Counter()
        for uid in completers:
            profile = profiles.get(uid)
            if profile is None:
                continue
            for other_id in profile.completed_books:
                if other_id != book_id:
                    co_counts[other_id] += 1

        reader_counts = await self.profile_repository.reader_counts(list(co_counts))
        ranked = co_completion_similarities(len(completers), dict(co_counts), reader_counts)
        return ranked[:limit]

    async def content_similar_books(self, book_id: str, limit: int = 10) -> list[Book]:
        source = await self.book_repository.get_by_id(book_id)
        if source is None:
            return []
        candidates = await self.book_repository.list_content_candidates(
            source, limit=self.config.content_candidate_limit
        )
        scored = [
            (content_similarity(source, c), c)
            for c in candidates
            if c.id != source.id
        ]
        scored.sort(key=lambda pair: (-pair[0], pair[1].id))
        return [book for _, book in scored[:limit]]
