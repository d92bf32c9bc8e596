"""HTTP API tests over the in-memory repositories."""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from conftest import make_book, make_profile
from feedrank.api import activity_routes
from feedrank.core.config import get_settings
from feedrank.core.dependencies import (
    get_feed_cache,
    get_interaction_service,
    get_recommendation_service,
)
from feedrank.main import app

READER = {"X-User-Id": "reader"}


@pytest.fixture
def client(recommendation_service, interaction_service, feed_cache, test_settings, book_repo):
    book_repo.add(
        make_book("b1", genre="Fantasy", views=300),
        make_book("b2", genre="Sci-Fi", views=100),
        make_book("draft", author_id="writer", status="draft"),
    )
    app.dependency_overrides[get_recommendation_service] = lambda: recommendation_service
    app.dependency_overrides[get_interaction_service] = lambda: interaction_service
    app.dependency_overrides[get_feed_cache] = lambda: feed_cache
    app.dependency_overrides[get_settings] = lambda: test_settings
    # no context manager: the lifespan would connect to the real database
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestIdentity:
    def test_missing_header_is_unauthorized(self, client):
        assert client.get("/recommendations/personalized").status_code == 401

    def test_blank_header_is_unauthorized(self, client):
        response = client.get("/recommendations/feed", headers={"X-User-Id": "  "})
        assert response.status_code == 401

    def test_public_lists_need_no_identity(self, client):
        response = client.get("/recommendations/trending", params={"limit": 1})
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["recommendations"][0]["book"]["id"] == "b1"
        assert body["recommendations"][0]["category"] == "trending"


class TestRecommendations:
    def test_personalized(self, client, profile_repo):
        profile_repo.put(make_profile("reader", genres={"Sci-Fi": 90}))
        response = client.get("/recommendations/personalized", headers=READER)

        assert response.status_code == 200
        assert [r["book"]["id"] for r in response.json()["recommendations"]] == ["b2", "b1"]

    def test_limit_is_validated(self, client):
        response = client.get("/recommendations/personalized", headers=READER, params={"limit": 0})
        assert response.status_code == 422

    def test_genre(self, client):
        response = client.get("/recommendations/genre/sci")
        assert [b["id"] for b in response.json()["books"]] == ["b2"]

    def test_top_authors(self, client):
        response = client.get("/recommendations/top-authors")
        assert [a["author_id"] for a in response.json()] == ["author-1"]

    def test_continue_reading(self, client, profile_repo):
        profile_repo.put(make_profile("reader", currently_reading=["b2"]))
        response = client.get("/recommendations/continue-reading", headers=READER)
        assert response.json()[0]["book"]["id"] == "b2"
        assert response.json()[0]["progress"] == 0.0


class TestFeed:
    def test_feed_is_computed_and_cached(self, client, profile_repo, feed_cache):
        profile_repo.put(make_profile("reader", genres={"Fantasy": 80}))
        response = client.get("/recommendations/feed", headers=READER)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {
            "recommended_for_you",
            "continue_reading",
            "continue_writing",
            "because_you_read",
            "trending",
            "new_releases",
        }
        assert feed_cache.entries["reader"] == body

    def test_cached_feed_is_served(self, client, feed_cache):
        cached = {
            "recommended_for_you": [],
            "continue_reading": [],
            "continue_writing": [],
            "because_you_read": [],
            "trending": [],
            "new_releases": [],
        }
        feed_cache.entries["reader"] = cached
        assert client.get("/recommendations/feed", headers=READER).json() == cached


class TestActivity:
    def test_record_interaction(self, client, feed_cache):
        response = client.post(
            "/activity/interactions",
            headers=READER,
            json={"book_id": "b1", "interaction_type": "complete"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["completed_books"] == ["b1"]
        assert body["version"] == 1
        assert feed_cache.invalidated == ["reader"]

    def test_unknown_type_is_a_bad_request(self, client):
        response = client.post(
            "/activity/interactions",
            headers=READER,
            json={"book_id": "b1", "interaction_type": "bookmark"},
        )
        assert response.status_code == 400

    def test_unknown_book_is_not_found(self, client):
        response = client.post(
            "/activity/interactions",
            headers=READER,
            json={"book_id": "missing", "interaction_type": "read"},
        )
        assert response.status_code == 404

    def test_write_conflict(self, client, profile_repo):
        profile_repo.conflicts_to_raise = 3
        response = client.post(
            "/activity/interactions",
            headers=READER,
            json={"book_id": "b1", "interaction_type": "read"},
        )
        assert response.status_code == 409

    def test_progress(self, client):
        response = client.post(
            "/activity/books/b1/progress",
            headers=READER,
            json={"chapter": 9, "percent": 100, "reading_time": 40},
        )
        assert response.status_code == 200
        assert response.json()["completed_books"] == ["b1"]

    def test_progress_out_of_range(self, client):
        response = client.post(
            "/activity/books/b1/progress", headers=READER, json={"chapter": 1, "percent": 120}
        )
        assert response.status_code == 422

    def test_publish_and_draft_edit(self, client):
        writer = {"X-User-Id": "writer"}
        response = client.post("/activity/books/draft/draft-edit", headers=writer, json={"writing_time": 15})
        assert response.json()["currently_writing"] == ["draft"]

        response = client.post("/activity/books/draft/publish", headers=writer, json={"genre": "Fantasy"})
        assert response.json()["completed_writing"] == ["draft"]
        assert response.json()["total_books_written"] == 1

    def test_draft_edit_by_another_user(self, client):
        response = client.post("/activity/books/draft/draft-edit", headers=READER, json={})
        assert response.status_code == 400

    def test_follow(self, client):
        response = client.put(
            "/activity/authors/author-1/follow", headers=READER, json={"author_name": "Ann"}
        )
        assert response.status_code == 200
        assert response.json()["user_id"] == "reader"

    def test_feature_vector(self, client, profile_repo):
        assert client.get("/activity/feature-vector", headers=READER).status_code == 404

        profile_repo.put(make_profile("reader", genres={"Fantasy": 80}))
        response = client.get("/activity/feature-vector", headers=READER)
        assert response.status_code == 200
        assert response.json()["genre_affinities"] == {"fantasy": pytest.approx(0.8)}


class TestFeedWarmup:
    def test_dispatched_when_the_cache_is_enabled(self, monkeypatch, test_settings):
        calls = []
        task = SimpleNamespace(delay=lambda user_id: calls.append(user_id) or SimpleNamespace(id="t-1"))
        monkeypatch.setattr(activity_routes, "warm_personalized_feed", task)
        test_settings.feed_cache_enabled = True

        activity_routes._schedule_feed_warmup("reader", test_settings)

        assert calls == ["reader"]

    def test_skipped_when_the_cache_is_disabled(self, monkeypatch, test_settings):
        calls = []
        monkeypatch.setattr(
            activity_routes, "warm_personalized_feed", SimpleNamespace(delay=calls.append)
        )
        activity_routes._schedule_feed_warmup("reader", test_settings)
        assert calls == []

    def test_broker_failure_does_not_propagate(self, monkeypatch, test_settings):
        def unavailable(user_id):
            raise ConnectionError("broker down")

        monkeypatch.setattr(
            activity_routes, "warm_personalized_feed", SimpleNamespace(delay=unavailable)
        )
        test_settings.feed_cache_enabled = True
        activity_routes._schedule_feed_warmup("reader", test_settings)
