"""
Mock implementations for GrokAdapter responses.
These are separated from the main adapter to avoid using fake data in production.
"""

from __future__ import annotations

import asyncio
import random
import zlib
from collections import Counter
from typing import List

from ..models import RAGInsights, RAGResult


def mock_rng(seed_source: str) -> random.Random:
    """Create a deterministic random number generator for consistent mock data."""
    return random.Random(zlib.crc32(seed_source.encode("utf-8")))


def mock_rag_insights(query: str, results: List[RAGResult]) -> RAGInsights:
    """Mock implementation of RAGInsights for testing."""
    rng = mock_rng(query)

    if not results:
        return RAGInsights(
            answer=f"No stored content matched '{query}'.",
            key_themes=[],
            sentiment_outlook="unknown",
            recommendations=["Broaden the query or widen the date range"],
        )

    tags = Counter(tag for result in results for tag in result.related_content)
    themes = [tag for tag, _ in tags.most_common(3)] or [query]
    sources = Counter(result.source_type for result in results)
    outlook = rng.choice(["positive", "negative", "neutral", "mixed"])

    answer = (
        f"Found {len(results)} results for '{query}' "
        f"({', '.join(f'{count} {kind}' for kind, count in sorted(sources.items()))})."
    )

    return RAGInsights(
        answer=answer,
        key_themes=themes,
        sentiment_outlook=outlook,
        recommendations=rng.sample([
            "Track the top trend over the next day",
            "Compare sentiment across platforms",
            "Watch the leading influencers for follow-up posts",
            "Re-run the query with a narrower date range",
        ], k=2),
    )


class MockGrokAdapter:
    """Drop-in stand-in for GrokAdapter that never calls the network."""

    is_live = False

    def generate_insights(self, query: str, results: List[RAGResult]) -> RAGInsights:
        return mock_rag_insights(query, results)

    async def generate_insights_async(self, query: str, results: List[RAGResult]) -> RAGInsights:
        return await asyncio.to_thread(self.generate_insights, query, results)


__all__ = ["mock_rng", "mock_rag_insights", "MockGrokAdapter"]
