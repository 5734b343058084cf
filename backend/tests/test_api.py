"""
End-to-end API tests against a temporary SQLite store.

Tests the full flow: API → services on app.state → Database → Response
"""

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import Mock, AsyncMock

from fastapi.testclient import TestClient

from adapter.grok import GrokAdapterError
from adapter.grok.mocks import MockGrokAdapter
from config import Settings
from database import Database
from main import create_app
from rag import RAGOrchestrator


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(database_path=tmp_path / "api.sqlite3", auto_refresh=False)


@pytest.fixture
def client(settings):
    """Test client with lifespan (schema created, refresher disabled)."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def raw_tweets(count=12, text="Rocket launch #space", likes=40):
    now = datetime.now(timezone.utc)
    return [
        {
            "id": str(i),
            "text": f"{text} {i}",
            "author_id": f"user{i % 3}",
            "created_at": (now - timedelta(minutes=10 * i)).isoformat(),
            "public_metrics": {"like_count": likes, "retweet_count": 5, "reply_count": 2},
        }
        for i in range(count)
    ]


@pytest.fixture
def client_with_data(client):
    response = client.post("/api/v1/posts/twitter", json={"posts": raw_tweets()})
    assert response.status_code == 201
    return client


# ============================================================================
# Health
# ============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["posts_count"] == 0
        assert data["generator_live"] is False
        assert data["refresher_running"] is False

    def test_health_degraded_when_store_unreachable(self, client, tmp_path):
        client.app.state.store = Database(tmp_path / "missing" / "db.sqlite3")

        data = client.get("/api/v1/health").json()
        assert data["status"] == "degraded"
        assert data["posts_count"] is None

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Trend API"


# ============================================================================
# Ingestion
# ============================================================================

class TestIngestion:

    def test_ingest_twitter(self, client):
        response = client.post("/api/v1/posts/twitter", json={"posts": raw_tweets(3)})

        assert response.status_code == 201
        report = response.json()
        assert report["received"] == 3
        assert report["stored"] == 3
        assert report["post_ids"] == ["twitter_0", "twitter_1", "twitter_2"]
        assert client.get("/api/v1/health").json()["posts_count"] == 3

    def test_ingest_generic_platform(self, client):
        payload = {"posts": [{"id": "9", "content": "hello #fyp", "author": "a", "likes": 3}]}
        response = client.post("/api/v1/posts/tiktok", json=payload)

        assert response.status_code == 201
        assert response.json()["platform"] == "tiktok"

    def test_unsupported_platform(self, client):
        response = client.post("/api/v1/posts/myspace", json={"posts": []})
        assert response.status_code == 400

    def test_invalid_body(self, client):
        response = client.post("/api/v1/posts/twitter", json={"items": []})
        assert response.status_code == 422


# ============================================================================
# Trends
# ============================================================================

class TestTrends:

    def test_trends(self, client_with_data):
        response = client_with_data.get("/api/v1/trends", params={"window": "day"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["count"] == len(data["trends"])
        assert "#space" in [t["topic"] for t in data["trends"]]

        velocities = [t["metrics"]["velocity"] for t in data["trends"]]
        assert velocities == sorted(velocities, reverse=True)

    def test_trends_empty_store(self, client):
        data = client.get("/api/v1/trends").json()
        assert data["count"] == 0

    def test_invalid_window(self, client):
        response = client.get("/api/v1/trends", params={"window": "month"})
        assert response.status_code == 422

    def test_refresh_persists(self, client_with_data):
        response = client_with_data.post("/api/v1/trends/refresh")

        assert response.status_code == 200
        count = response.json()["count"]
        assert count > 0
        assert len(client_with_data.app.state.store.get_trends()) == count


# ============================================================================
# Retrieval
# ============================================================================

class TestQuery:

    def test_query_and_fetch(self, client_with_data):
        response = client_with_data.post("/api/v1/query", json={"query": "rocket"})

        assert response.status_code == 200
        data = response.json()
        assert 0 < len(data["results"]) <= 10
        assert data["insights"] is None
        assert data["metadata"]["persisted"] is True
        assert data["metadata"]["source_status"] == {"posts": "ok", "trends": "ok", "contexts": "ok"}

        fetched = client_with_data.get(f"/api/v1/queries/{data['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == data["id"]

    def test_query_with_filters(self, client_with_data):
        response = client_with_data.post("/api/v1/query", json={
            "query": "rocket",
            "filters": {"platforms": ["reddit"]},
        })

        assert response.status_code == 200
        assert [r for r in response.json()["results"] if r["source_type"] == "post"] == []

    def test_query_with_mock_generator(self, client_with_data):
        store = client_with_data.app.state.store
        client_with_data.app.state.rag = RAGOrchestrator(store=store, generator=MockGrokAdapter())

        data = client_with_data.post("/api/v1/query", json={"query": "rocket"}).json()
        assert data["insights"]["answer"].startswith("Found")

    def test_generator_failure_is_502(self, client_with_data):
        generator = Mock()
        generator.generate_insights_async = AsyncMock(side_effect=GrokAdapterError("upstream down"))
        store = client_with_data.app.state.store
        client_with_data.app.state.rag = RAGOrchestrator(store=store, generator=generator)

        response = client_with_data.post("/api/v1/query", json={"query": "rocket"})
        assert response.status_code == 502

    def test_empty_query_rejected(self, client):
        assert client.post("/api/v1/query", json={"query": ""}).status_code == 422

    def test_unknown_query_id(self, client):
        assert client.get("/api/v1/queries/query_missing").status_code == 404


# ============================================================================
# Scoring & analytics
# ============================================================================

class TestScoring:

    def test_sentiment(self, client):
        response = client.post("/api/v1/sentiment", json={"text": "I am so happy and excited!!!"})

        assert response.status_code == 200
        data = response.json()
        assert data["label"] == "positive"
        assert data["emotions"]["joy"] > 0

    def test_virality_scores_content(self, client):
        response = client.post("/api/v1/virality", json={
            "engagement": {"likes": 2000, "shares": 900, "comments": 10},
            "metadata": {"hashtags": ["#viral"], "mentions": ["@someone"]},
            "content": "Breaking: amazing news #viral @someone",
        })

        assert response.status_code == 200
        data = response.json()
        assert 0 <= data["score"] <= 1
        assert data["sentiment"]["label"] == "positive"
        categories = [f["category"] for f in data["factors"]]
        assert categories[:2] == ["high_engagement", "viral_sharing"]
        assert "time_sensitive" in categories

    def test_virality_with_explicit_sentiment(self, client):
        response = client.post("/api/v1/virality", json={
            "engagement": {"likes": 1},
            "sentiment": {"score": -0.8, "magnitude": 8, "label": "negative", "confidence": 0.84},
        })

        data = response.json()
        assert data["sentiment"]["label"] == "negative"
        assert [f["category"] for f in data["factors"]] == ["controversial"]


class TestAnalytics:

    def test_analytics(self, client_with_data):
        client_with_data.post("/api/v1/trends/refresh")
        response = client_with_data.get("/api/v1/analytics", params={"window": "day"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_posts"] == 12
        assert data["total_trends"] > 0
        assert data["top_platforms"] == [{"platform": "twitter", "posts": 12}]

    def test_analytics_empty(self, client):
        data = client.get("/api/v1/analytics").json()
        assert data["total_posts"] == 0
        assert data["viral_content"] == []

    def test_analytics_counts_trends_computed_in_window(self, client_with_data):
        client_with_data.post("/api/v1/trends/refresh")
        store = client_with_data.app.state.store
        two_days_ago = datetime.now(timezone.utc) - timedelta(days=2)
        store.replace_trends([t.model_copy(update={"created_at": two_days_ago}) for t in store.get_trends()])

        day = client_with_data.get("/api/v1/analytics", params={"window": "day"}).json()
        week = client_with_data.get("/api/v1/analytics", params={"window": "week"}).json()

        assert day["total_trends"] == 0
        assert week["total_trends"] > 0


# ============================================================================
# Settings
# ============================================================================

class TestSettings:

    def test_trend_window_from_env(self, monkeypatch):
        monkeypatch.setenv("TREND_WINDOW", "week")
        assert Settings.from_env().trend_window == "week"

    def test_invalid_trend_window_rejected(self, monkeypatch):
        monkeypatch.setenv("TREND_WINDOW", "month")
        with pytest.raises(ValueError, match="TREND_WINDOW"):
            Settings.from_env()
