"""
Core services for the trend backend.
- IngestionPipeline: Extracts, scores, filters and stores raw platform payloads
- TrendRefresher: Background service that rebuilds stored trends periodically

Architecture:
- Posts are scored once, at ingestion
- Trends are recomputed from stored posts on every refresh
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from adapter.models import FetchStatus, Platform, Post, TrendRun
from adapter.platforms import ExtractedPost, get_extractor
from aggregator import DEFAULT_WINDOW, TrendAggregator
from services.sentiment import SentimentScorer
from services.virality import score_virality

logger = logging.getLogger(__name__)


DEFAULT_REFRESH_SECONDS = 300


class IngestionFilters(BaseModel):
    """Collection filters applied to extracted posts before storage."""
    min_engagement: int = Field(default=0, ge=0, description="Minimum likes + shares + comments")
    languages: List[str] = Field(default_factory=list, description="Allowed languages (empty = all)")
    exclude_keywords: List[str] = Field(default_factory=list, description="Case-insensitive content blocklist")


class IngestionReport(BaseModel):
    """Outcome of one ingestion batch."""
    platform: Platform
    received: int = 0
    accepted: int = 0
    skipped: int = 0
    filtered: int = 0
    stored: int = 0
    store_error: Optional[str] = None
    post_ids: List[str] = Field(default_factory=list)


def passes_filters(post: ExtractedPost, filters: IngestionFilters) -> bool:
    """Check an extracted post against the collection filters."""
    if post.engagement.total < filters.min_engagement:
        return False

    if filters.languages and post.metadata.language not in filters.languages:
        return False

    content = post.content.lower()
    if any(keyword.lower() in content for keyword in filters.exclude_keywords):
        return False

    return True


class IngestionPipeline:
    """
    Turns raw platform payloads into scored, stored posts.

    Usage:
        pipeline = IngestionPipeline(store=db)
        report = await pipeline.ingest(raw_tweets, "twitter")
    """

    def __init__(
        self,
        store,
        scorer: Optional[SentimentScorer] = None,
        filters: Optional[IngestionFilters] = None,
    ):
        self.store = store
        self.scorer = scorer or SentimentScorer()
        self.filters = filters or IngestionFilters()

    def score_post(self, extracted: ExtractedPost) -> Post:
        """Annotate an extracted post with sentiment and virality."""
        sentiment = self.scorer.score(extracted.content)
        return Post(
            **extracted.model_dump(),
            sentiment=sentiment,
            virality_score=score_virality(extracted.engagement, sentiment, extracted.metadata),
        )

    async def ingest(self, raw_posts: Iterable[Dict[str, Any]], platform: Platform | str) -> IngestionReport:
        """
        Ingest a batch of raw payloads from one platform.

        Args:
            raw_posts: Raw platform API items
            platform: Source platform

        Returns:
            IngestionReport (store failures are reported, not raised)

        Raises:
            UnsupportedPlatformError: If the platform is unknown
        """
        extractor = get_extractor(platform)
        report = IngestionReport(platform=extractor.platform)
        accepted: List[Post] = []

        for raw in raw_posts:
            report.received += 1
            try:
                extracted = extractor.extract(raw)
            except Exception as e:
                logger.warning(f"Skipping malformed {extractor.platform.value} item: {e}")
                report.skipped += 1
                continue

            if not passes_filters(extracted, self.filters):
                logger.debug(f"Filtered out post {extracted.id}")
                report.filtered += 1
                continue

            accepted.append(self.score_post(extracted))

        report.accepted = len(accepted)
        report.post_ids = [post.id for post in accepted]

        if accepted:
            try:
                report.stored = await self.store.save_posts_async(accepted)
            except Exception as e:
                logger.error(f"Failed to store {len(accepted)} {extractor.platform.value} posts: {e}")
                report.store_error = str(e)

        logger.info(
            f"Ingested {extractor.platform.value}: {report.received} received, "
            f"{report.accepted} accepted, {report.filtered} filtered, "
            f"{report.skipped} skipped, {report.stored} stored"
        )
        return report


class TrendRefresher:
    """
    Background service that re-runs trend identification and stores the result.

    Usage:
        refresher = TrendRefresher(aggregator, store)
        await refresher.start()  # Refreshes every 300s by default
        await refresher.stop()
    """

    def __init__(
        self,
        aggregator: TrendAggregator,
        store,
        interval: int = DEFAULT_REFRESH_SECONDS,
        window: str = DEFAULT_WINDOW,
    ):
        self.aggregator = aggregator
        self.store = store
        self.interval = interval
        self.window = window
        self.last_run: Optional[TrendRun] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the background refresh task."""
        if self._running:
            logger.warning("Refresher already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(f"TrendRefresher started with {self.interval}s interval ({self.window} window)")

    async def stop(self):
        """Stop the background refresh task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("TrendRefresher stopped")

    async def _refresh_loop(self):
        """Main refresh loop."""
        while self._running:
            try:
                await self.refresh_now()
            except Exception as e:
                logger.error(f"Error in refresh loop: {e}")

            await asyncio.sleep(self.interval)

    async def refresh_now(self, window: Optional[str] = None) -> TrendRun:
        """
        Run trend identification once and replace the stored trends.

        Stored trends are left untouched when the run could not read posts.
        """
        run = await self.aggregator.run(window or self.window)
        self.last_run = run

        if run.status == FetchStatus.STORE_ERROR:
            logger.warning(f"Keeping previous trends: {run.error}")
            return run

        await self.store.replace_trends_async(run.trends)
        logger.info(f"Stored {len(run.trends)} trends for {run.window} window")
        return run


__all__ = [
    "IngestionFilters",
    "IngestionReport",
    "IngestionPipeline",
    "TrendRefresher",
    "passes_filters",
]
