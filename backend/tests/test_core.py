"""
Unit tests for the core module (IngestionPipeline, TrendRefresher).
"""

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import Mock, AsyncMock

from adapter.models import FetchStatus, Platform, TrendRun
from adapter.platforms import ExtractedPost, UnsupportedPlatformError, extract_metadata
from aggregator import TrendAggregator
from core import (
    IngestionFilters,
    IngestionPipeline,
    TrendRefresher,
    passes_filters,
)
from database import Database, StoreError


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def raw_tweet(tweet_id, text="Loving the new #AI release", likes=10, minutes_ago=0):
    return {
        "id": str(tweet_id),
        "text": text,
        "author_id": f"user{tweet_id}",
        "created_at": (NOW - timedelta(minutes=minutes_ago)).isoformat(),
        "public_metrics": {"like_count": likes, "retweet_count": 2, "reply_count": 1},
    }


def extracted(content="hello world", likes=10, language="en"):
    metadata = extract_metadata(content)
    metadata.language = language
    return ExtractedPost(
        id="twitter_1",
        platform=Platform.TWITTER,
        content=content,
        author="user",
        author_id="user",
        timestamp=NOW,
        engagement={"likes": likes},
        metadata=metadata,
    )


# ============================================================================
# Filters
# ============================================================================

class TestPassesFilters:
    """Test the ingestion collection filters."""

    def test_defaults_accept_everything(self):
        assert passes_filters(extracted(likes=0), IngestionFilters())

    def test_min_engagement(self):
        filters = IngestionFilters(min_engagement=50)
        assert not passes_filters(extracted(likes=49), filters)
        assert passes_filters(extracted(likes=50), filters)

    def test_languages(self):
        filters = IngestionFilters(languages=["en", "es"])
        assert passes_filters(extracted(language="es"), filters)
        assert not passes_filters(extracted(language="fr"), filters)

    def test_exclude_keywords_case_insensitive(self):
        filters = IngestionFilters(exclude_keywords=["Giveaway"])
        assert not passes_filters(extracted(content="Huge GIVEAWAY today"), filters)
        assert passes_filters(extracted(content="Regular post"), filters)


# ============================================================================
# IngestionPipeline
# ============================================================================

class TestIngestionPipeline:
    """Unit tests for IngestionPipeline with a mocked store."""

    @pytest.fixture
    def mock_store(self):
        store = Mock()
        store.save_posts_async = AsyncMock(side_effect=lambda posts: len(posts))
        return store

    @pytest.mark.asyncio
    async def test_ingest_scores_and_stores(self, mock_store):
        pipeline = IngestionPipeline(store=mock_store)
        report = await pipeline.ingest([raw_tweet(1), raw_tweet(2, text="Awful outage, I hate this")], "twitter")

        assert report.platform == Platform.TWITTER
        assert report.received == 2
        assert report.accepted == 2
        assert report.stored == 2
        assert report.store_error is None
        assert report.post_ids == ["twitter_1", "twitter_2"]

        [stored] = mock_store.save_posts_async.await_args.args
        assert stored[0].sentiment.label.value == "positive"
        assert stored[1].sentiment.label.value == "negative"
        assert all(0 <= post.virality_score <= 1 for post in stored)
        assert stored[0].metadata.hashtags == ["#AI"]

    @pytest.mark.asyncio
    async def test_filtered_posts_not_stored(self, mock_store):
        pipeline = IngestionPipeline(store=mock_store, filters=IngestionFilters(min_engagement=100))
        report = await pipeline.ingest([raw_tweet(1, likes=5), raw_tweet(2, likes=500)], "twitter")

        assert report.filtered == 1
        assert report.post_ids == ["twitter_2"]

    @pytest.mark.asyncio
    async def test_malformed_item_skipped(self, mock_store):
        pipeline = IngestionPipeline(store=mock_store)
        bad = {"id": "bad", "text": "oops", "created_at": "yesterday-ish"}

        report = await pipeline.ingest([raw_tweet(1), bad, "not a dict"], "twitter")

        assert report.received == 3
        assert report.skipped == 2
        assert report.stored == 1

    @pytest.mark.asyncio
    async def test_store_failure_reported(self, mock_store):
        mock_store.save_posts_async = AsyncMock(side_effect=StoreError("database is locked"))
        pipeline = IngestionPipeline(store=mock_store)

        report = await pipeline.ingest([raw_tweet(1)], "twitter")

        assert report.accepted == 1
        assert report.stored == 0
        assert report.store_error == "database is locked"

    @pytest.mark.asyncio
    async def test_nothing_accepted_skips_store(self, mock_store):
        pipeline = IngestionPipeline(store=mock_store)
        report = await pipeline.ingest([], "reddit")

        assert report.received == 0
        mock_store.save_posts_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_platform(self, mock_store):
        pipeline = IngestionPipeline(store=mock_store)
        with pytest.raises(UnsupportedPlatformError):
            await pipeline.ingest([raw_tweet(1)], "friendster")


# ============================================================================
# TrendRefresher
# ============================================================================

class TestTrendRefresherUnit:
    """Unit tests for TrendRefresher."""

    @pytest.fixture
    def mock_aggregator(self):
        aggregator = Mock(spec=TrendAggregator)
        aggregator.run = AsyncMock(return_value=TrendRun(window="day"))
        return aggregator

    @pytest.fixture
    def mock_store(self):
        store = Mock()
        store.replace_trends_async = AsyncMock(return_value=0)
        return store

    @pytest.mark.asyncio
    async def test_refresher_initialization(self, mock_aggregator, mock_store):
        refresher = TrendRefresher(mock_aggregator, mock_store, interval=60)

        assert refresher.interval == 60
        assert refresher.window == "day"
        assert refresher.running is False
        assert refresher.last_run is None

    @pytest.mark.asyncio
    async def test_refresher_start_stop(self, mock_aggregator, mock_store):
        refresher = TrendRefresher(mock_aggregator, mock_store, interval=1)

        await refresher.start()
        assert refresher.running is True
        assert refresher._task is not None

        await refresher.stop()
        assert refresher.running is False
        assert refresher._task is None

    @pytest.mark.asyncio
    async def test_refresh_now_replaces_trends(self, mock_aggregator, mock_store):
        refresher = TrendRefresher(mock_aggregator, mock_store, window="hour")
        run = await refresher.refresh_now()

        mock_aggregator.run.assert_awaited_once_with("hour")
        mock_store.replace_trends_async.assert_awaited_once_with([])
        assert refresher.last_run is run

    @pytest.mark.asyncio
    async def test_refresh_now_window_override(self, mock_aggregator, mock_store):
        refresher = TrendRefresher(mock_aggregator, mock_store)
        await refresher.refresh_now("week")

        mock_aggregator.run.assert_awaited_once_with("week")

    @pytest.mark.asyncio
    async def test_store_error_keeps_previous_trends(self, mock_aggregator, mock_store):
        mock_aggregator.run = AsyncMock(return_value=TrendRun(
            window="day", status=FetchStatus.STORE_ERROR, error="db gone"
        ))
        refresher = TrendRefresher(mock_aggregator, mock_store)

        run = await refresher.refresh_now()

        assert run.status == FetchStatus.STORE_ERROR
        mock_store.replace_trends_async.assert_not_awaited()


# ============================================================================
# Integration Tests
# ============================================================================

class TestCoreIntegration:
    """Ingest through the pipeline, then refresh trends from a real store."""

    @pytest.mark.asyncio
    async def test_ingest_then_refresh(self, tmp_path):
        db = Database(tmp_path / "core.sqlite3")
        db.init_db()

        pipeline = IngestionPipeline(store=db)
        tweets = [
            raw_tweet(i, text=f"Rocket launch #space {i}", likes=40, minutes_ago=i * 10)
            for i in range(12)
        ]
        report = await pipeline.ingest(tweets, Platform.TWITTER)
        assert report.stored == 12

        aggregator = TrendAggregator(store=db, clock=lambda: NOW)
        refresher = TrendRefresher(aggregator, db)
        run = await refresher.refresh_now()

        assert run.status == FetchStatus.OK
        topics = [t.topic for t in run.trends]
        assert "#space" in topics

        stored = db.get_trends()
        assert sorted(t.topic for t in stored) == sorted(topics)

    @pytest.mark.asyncio
    async def test_id_less_items_all_stored(self, tmp_path):
        db = Database(tmp_path / "ids.sqlite3")
        db.init_db()

        pipeline = IngestionPipeline(store=db)
        items = [{"text": f"Community update {i}", "likes": i} for i in range(5)]
        report = await pipeline.ingest(items, "facebook")

        assert report.stored == 5
        assert len(set(report.post_ids)) == 5
        assert db.count_posts() == 5
