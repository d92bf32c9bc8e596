"""Similarity engine tests."""

import pytest

from conftest import InMemoryBookRepository, InMemoryProfileRepository, make_book, make_profile
from feedrank.services.similarity import (
    SimilarityEngine,
    co_completion_similarities,
    content_similarity,
    jaccard,
    rank_similar_users,
)


def test_jaccard_is_symmetric():
    a = {"b1", "b2", "b3"}
    b = {"b2", "b3", "b4", "b5"}
    assert jaccard(a, b) == jaccard(b, a) == pytest.approx(2 / 5)


def test_jaccard_of_empty_sets_is_zero():
    assert jaccard(set(), set()) == 0.0


def test_rank_similar_users_filters_and_orders():
    others = {
        "zed": {"b1", "b2"},
        "amy": {"b1", "b2"},
        "bob": {"b9"},
        "cat": {"b1", "b5", "b6", "b7"},
        "dan": set(),
    }
    results = rank_similar_users({"b1", "b2", "b3"}, others, k=10, min_similarity=0.05)

    assert [r.id for r in results] == ["amy", "zed", "cat"]
    assert results[0].similarity == pytest.approx(2 / 3)


def test_rank_similar_users_respects_k():
    others = {f"u{i}": {"b1"} for i in range(20)}
    assert len(rank_similar_users({"b1"}, others, k=5, min_similarity=0.05)) == 5


def test_co_completion_normalisation():
    ranked = co_completion_similarities(4, {"b2": 2, "b3": 1}, {"b2": 16, "b3": 1})
    assert [r.id for r in ranked] == ["b3", "b2"]
    assert ranked[0].similarity == pytest.approx(1 / 2)
    assert ranked[1].similarity == pytest.approx(2 / 8)


def test_co_completion_ties_broken_by_id():
    ranked = co_completion_similarities(1, {"c": 1, "a": 1, "b": 1}, {"a": 1, "b": 1, "c": 1})
    assert [r.id for r in ranked] == ["a", "b", "c"]


class TestContentSimilarity:
    def test_identical_attributes_score_one(self):
        kwargs = dict(
            genre="Fantasy",
            tags=["dragons"],
            quality=80,
            word_count=50_000,
            target_audience="adult",
            age_rating="PG",
        )
        assert content_similarity(make_book("a", **kwargs), make_book("b", **kwargs)) == pytest.approx(1.0)

    def test_missing_attributes_are_omitted(self):
        a = make_book("a", genre="Fantasy", quality=None)
        b = make_book("b", genre="fantasy", quality=None)
        assert content_similarity(a, b) == pytest.approx(0.30)

    def test_partial_tag_overlap(self):
        a = make_book("a", genre="Horror", tags=["ghosts", "Haunted"], quality=None)
        b = make_book("b", genre="Romance", tags=["haunted"], quality=None)
        assert content_similarity(a, b) == pytest.approx(0.5 * 0.25)


class TestSimilarityEngine:
    @pytest.fixture
    def engine(self):
        books = InMemoryBookRepository(
            [
                make_book("b1", genre="Fantasy", tags=["magic"]),
                make_book("b2", genre="Fantasy"),
                make_book("b3", genre="Sci-Fi", tags=["magic"]),
                make_book("b4", genre="Romance"),
            ]
        )
        profiles = InMemoryProfileRepository(
            [
                make_profile("me", completed_books=["b1", "b2"]),
                make_profile("twin", completed_books=["b1", "b2", "b3"]),
                make_profile("far", completed_books=["b4"]),
                make_profile("half", completed_books=["b1", "b4"]),
            ]
        )
        return SimilarityEngine(profiles, books)

    async def test_find_similar_users(self, engine):
        results = await engine.find_similar_users("me")
        assert [r.id for r in results] == ["twin", "half"]

    async def test_find_similar_users_cold_start(self, engine):
        assert await engine.find_similar_users("nobody") == []

    async def test_find_similar_books_batches_profile_reads(self, engine):
        results = await engine.find_similar_books("b1")
        ids = [r.id for r in results]
        assert ids[0] == "b2"
        assert set(ids) == {"b2", "b3", "b4"}
        assert len(engine.profile_repository.get_many_calls) == 1

    async def test_content_similar_books(self, engine):
        results = await engine.content_similar_books("b1", limit=5)
        assert [b.id for b in results] == ["b2", "b3"]

    async def test_content_similar_books_unknown_source(self, engine):
        assert await engine.content_similar_books("missing") == []
