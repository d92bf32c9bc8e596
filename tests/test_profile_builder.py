"""Activity profile builder tests."""

from datetime import timedelta

import pytest

from conftest import NOW, make_book, make_profile
from feedrank.domain.entities import AuthorPreference
from feedrank.services.profile_builder import (
    author_affinity,
    build_feature_vector,
    infer_length_preference,
)


def test_author_affinity_components():
    assert author_affinity(True, 1, 5.0) == pytest.approx(0.5 + 0.15 + 0.2)
    assert author_affinity(False, 5, 0.0) == pytest.approx(0.3)
    assert author_affinity(True, 10, 5.0) == 1.0


@pytest.mark.parametrize(
    "word_counts, expected",
    [
        ([10_000, 20_000], "any"),
        ([10_000, 20_000, 25_000], "short"),
        ([40_000, 60_000, 70_000], "medium"),
        ([90_000, 120_000, 100_000], "long"),
        ([0, 0, 90_000, 120_000], "any"),
    ],
)
def test_length_preference(word_counts, expected):
    books = [make_book(f"b{i}", word_count=w) for i, w in enumerate(word_counts)]
    assert infer_length_preference(books) == expected


def test_feature_vector_for_an_active_reader():
    profile = make_profile(
        genres={"Fantasy": 80},
        completed_books=["b1", "b2", "missing"],
        currently_reading=["b3"],
        abandoned_books=["b4"],
        total_books_read=2,
        total_reading_time=300.0,
    )
    profile.author_preferences["author-1"] = AuthorPreference(
        author_id="author-1", books_read=2, is_following=True
    )
    completed = {
        "b1": make_book("b1", quality=90),
        "b2": make_book("b2", quality=70),
    }

    features = build_feature_vector(profile, completed, NOW)

    assert features.genre_affinities == {"fantasy": pytest.approx(0.8)}
    assert features.author_affinities["author-1"] == pytest.approx(0.8)
    assert features.quality_preference == pytest.approx(80)
    assert features.reading_length_preference == "any"
    assert features.avg_reading_time == pytest.approx(150)
    assert features.completion_rate == pytest.approx(3 / 5)
    assert features.recent_activity_level == 1.0


def test_feature_vector_defaults_for_sparse_history():
    profile = make_profile(last_active_at=NOW - timedelta(days=45))
    features = build_feature_vector(profile, {}, NOW)

    assert features.quality_preference == 70
    assert features.avg_reading_time == 0.0
    assert features.completion_rate == 0.0
    assert features.recent_activity_level == 0.0


def test_stale_genre_affinity_decays():
    profile = make_profile(genres={"Horror": 100})
    profile.genre_preferences["horror"].last_interaction = NOW - timedelta(days=28)
    features = build_feature_vector(profile, {}, NOW)
    assert features.genre_affinities["horror"] == pytest.approx(0.25, abs=1e-3)
