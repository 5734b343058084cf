"""
Retrieval-augmented query orchestration.

Flow:
- Retrieve candidates from posts, trends and cultural contexts (independently)
- Score each candidate against the query and keep the top MAX_RESULTS
- Optionally hand the ranked set to the generative collaborator for insights
- Persist the finished query (best-effort)

A failing source degrades to no candidates and is reported in
metadata.source_status; a failing collaborator fails the whole query.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Dict, List, Optional

from adapter.models import (
    CulturalContext,
    FetchStatus,
    Post,
    QueryFilters,
    RAGQuery,
    RAGQueryMetadata,
    RAGResult,
    SentimentLabel,
    Trend,
)

logger = logging.getLogger(__name__)


# Candidate caps per source
POST_LIMIT = 20
TREND_LIMIT = 10
CONTEXT_LIMIT = 5

MAX_RESULTS = 10

# Fixed confidence per source type
POST_CONFIDENCE = 0.8
TREND_CONFIDENCE = 0.9
CONTEXT_CONFIDENCE = 0.85

SUMMARY_SENTENCES = 2

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


class RAGQueryError(RuntimeError):
    """Raised when a query cannot be completed (e.g. the collaborator failed)."""


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------

def calculate_relevance(query: str, content: str) -> float:
    """
    Fraction of query words found in the content.

    A query word matches if it contains, or is contained in, any content word.
    """
    query_words = query.lower().split()
    if not query_words:
        return 0.0

    content_words = content.lower().split()
    matches = sum(
        1
        for query_word in query_words
        if any(query_word in word or word in query_word for word in content_words)
    )
    return matches / len(query_words)


def generate_summary(content: str) -> str:
    """First two sentences of the content."""
    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(content) if s.strip()]
    if not sentences:
        return ""
    return ". ".join(sentences[:SUMMARY_SENTENCES]) + "."


def post_insights(post: Post) -> List[str]:
    insights = []
    if post.virality_score > 0.7:
        insights.append("High virality potential")
    if post.sentiment.label == SentimentLabel.POSITIVE and post.sentiment.score > 0.5:
        insights.append("Strong positive sentiment")
    if len(post.metadata.hashtags) > 3:
        insights.append("Multiple trending hashtags")
    if post.engagement.total > 1000:
        insights.append("High engagement rate")
    return insights


def trend_insights(trend: Trend) -> List[str]:
    insights = []
    if trend.metrics.growth_rate > 10:
        insights.append("Rapid growth trend")
    if trend.metrics.velocity > 500:
        insights.append("High engagement velocity")
    if trend.sentiment.overall == SentimentLabel.POSITIVE and trend.sentiment.positive > 0.6:
        insights.append("Predominantly positive sentiment")
    if trend.virality_factors:
        insights.append(f"{len(trend.virality_factors)} virality factors identified")
    return insights


def context_insights(context: CulturalContext) -> List[str]:
    insights = []
    if context.relevance > 0.8:
        insights.append("Highly relevant cultural context")
    if context.related_events:
        insights.append(f"{len(context.related_events)} related events")
    return insights


def post_result(query: str, post: Post) -> RAGResult:
    return RAGResult(
        id=f"post_{post.id}",
        content=post.content,
        source_type="post",
        source=post,
        relevance=calculate_relevance(query, post.content),
        confidence=POST_CONFIDENCE,
        summary=generate_summary(post.content),
        key_insights=post_insights(post),
        related_content=list(post.metadata.hashtags),
    )


def trend_result(query: str, trend: Trend) -> RAGResult:
    return RAGResult(
        id=f"trend_{trend.id}",
        content=f"{trend.topic}: {trend.metrics.mentions} mentions, {trend.metrics.engagement} engagement",
        source_type="trend",
        source=trend,
        relevance=calculate_relevance(query, trend.topic),
        confidence=TREND_CONFIDENCE,
        summary=f'Trending topic "{trend.topic}" with {trend.metrics.mentions} mentions',
        key_insights=trend_insights(trend),
        related_content=list(trend.related_topics),
    )


def context_result(query: str, context: CulturalContext) -> RAGResult:
    return RAGResult(
        id=f"context_{context.id}",
        content=context.description,
        source_type="context",
        source=context,
        relevance=calculate_relevance(query, context.description),
        confidence=CONTEXT_CONFIDENCE,
        summary=context.description,
        key_insights=context_insights(context),
        related_content=list(context.related_events),
    )


def rank_results(results: List[RAGResult], limit: int = MAX_RESULTS) -> List[RAGResult]:
    """Stable sort by relevance (descending), truncated to limit."""
    return sorted(results, key=lambda r: r.relevance, reverse=True)[:limit]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class RAGOrchestrator:
    """
    Answers free-text questions from the stored corpus.

    Usage:
        rag = RAGOrchestrator(store=db, generator=GrokAdapter())
        result = await rag.query("climate", QueryFilters(platforms=["twitter"]))
    """

    def __init__(self, store, generator=None):
        """
        Initialize the RAGOrchestrator.

        Args:
            store: Store exposing search_posts_async, search_trends_async,
                search_cultural_contexts_async and save_rag_query_async
            generator: Optional collaborator exposing generate_insights_async;
                without one, queries return results only
        """
        self.store = store
        self.generator = generator

    async def retrieve(self, text: str, filters: QueryFilters) -> tuple[List[RAGResult], Dict[str, FetchStatus]]:
        """Collect scored candidates from every source, recording each source's status."""
        results: List[RAGResult] = []
        status: Dict[str, FetchStatus] = {}

        try:
            posts = await self.store.search_posts_async(text, filters, POST_LIMIT)
            results.extend(post_result(text, post) for post in posts)
            status["posts"] = FetchStatus.OK
        except Exception as e:
            logger.error(f"Post search failed for '{text}': {e}")
            status["posts"] = FetchStatus.STORE_ERROR

        try:
            trends = await self.store.search_trends_async(text, filters.categories, TREND_LIMIT)
            results.extend(trend_result(text, trend) for trend in trends)
            status["trends"] = FetchStatus.OK
        except Exception as e:
            logger.error(f"Trend search failed for '{text}': {e}")
            status["trends"] = FetchStatus.STORE_ERROR

        try:
            contexts = await self.store.search_cultural_contexts_async(text, CONTEXT_LIMIT)
            results.extend(context_result(text, context) for context in contexts)
            status["contexts"] = FetchStatus.OK
        except Exception as e:
            logger.error(f"Cultural context search failed for '{text}': {e}")
            status["contexts"] = FetchStatus.STORE_ERROR

        return results, status

    async def query(self, text: str, filters: Optional[QueryFilters] = None) -> RAGQuery:
        """
        Run a retrieval query.

        Args:
            text: Free-text question
            filters: Optional post/trend filters

        Returns:
            RAGQuery with ranked results, optional insights and metadata

        Raises:
            RAGQueryError: If the generative collaborator fails
        """
        filters = filters or QueryFilters()
        started = time.perf_counter()

        candidates, source_status = await self.retrieve(text, filters)
        results = rank_results(candidates)

        insights = None
        if self.generator is not None:
            try:
                insights = await self.generator.generate_insights_async(text, results)
            except Exception as e:
                logger.error(f"Insight generation failed for '{text}': {e}")
                raise RAGQueryError(f"Insight generation failed: {e}") from e

        elapsed_ms = (time.perf_counter() - started) * 1000

        rag_query = RAGQuery(
            id=f"query_{uuid.uuid4().hex}",
            query=text,
            results=results,
            insights=insights,
            metadata=RAGQueryMetadata(
                search_time_ms=elapsed_ms,
                total_results=len(results),
                filters=filters,
                source_status=source_status,
            ),
        )

        # Stored copies read back as persisted
        rag_query.metadata.persisted = True
        try:
            await self.store.save_rag_query_async(rag_query)
        except Exception as e:
            logger.error(f"Failed to persist query {rag_query.id}: {e}")
            rag_query.metadata.persisted = False

        logger.info(
            f"Query '{text}': {len(candidates)} candidates, {len(results)} results "
            f"in {elapsed_ms:.1f}ms"
        )
        return rag_query


__all__ = [
    "RAGOrchestrator",
    "RAGQueryError",
    "calculate_relevance",
    "generate_summary",
    "post_insights",
    "trend_insights",
    "context_insights",
    "rank_results",
    "MAX_RESULTS",
]
