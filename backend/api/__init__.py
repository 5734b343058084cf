"""
FastAPI routes for the trend backend.

Services are constructed in main.create_app and kept on app.state;
the dependency functions below read them from the request's app.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from adapter.models import (
    AnalyticsSummary,
    Engagement,
    FetchStatus,
    PostMetadata,
    QueryFilters,
    RAGQuery,
    Sentiment,
    TimeWindow,
    Trend,
    TrendRun,
    ViralityFactor,
)
from adapter.platforms import UnsupportedPlatformError
from aggregator import TrendAggregator, build_analytics
from core import IngestionPipeline, IngestionReport, TrendRefresher
from database import Database, StoreError
from rag import RAGOrchestrator, RAGQueryError
from services.sentiment import SentimentScorer
from services.virality import identify_factors, score_virality

logger = logging.getLogger(__name__)

# Router for API endpoints
router = APIRouter(prefix="/api/v1", tags=["Trends"])


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    posts_count: Optional[int] = Field(default=None, description="Stored posts (None if the store is unreachable)")
    generator_live: bool = False
    refresher_running: bool = False


class IngestRequest(BaseModel):
    """Batch of raw platform payloads."""
    posts: List[Dict[str, Any]] = Field(description="Raw items as returned by the platform API")


class TrendsResponse(BaseModel):
    window: str
    status: FetchStatus
    count: int
    trends: List[Trend]
    skipped_topics: List[str] = Field(default_factory=list)

    @classmethod
    def from_run(cls, run: TrendRun) -> "TrendsResponse":
        return cls(
            window=run.window,
            status=run.status,
            count=len(run.trends),
            trends=run.trends,
            skipped_topics=run.skipped_topics,
        )


class QueryRequest(BaseModel):
    """Free-text retrieval query."""
    query: str = Field(min_length=1, description="Question to answer from stored content")
    filters: Optional[QueryFilters] = None


class SentimentRequest(BaseModel):
    text: str = Field(description="Text to score")


class ViralityRequest(BaseModel):
    """
    Virality inputs for one post.

    If sentiment is omitted it is scored from content.
    """
    engagement: Engagement = Field(default_factory=Engagement)
    metadata: PostMetadata = Field(default_factory=PostMetadata)
    sentiment: Optional[Sentiment] = None
    content: str = Field(default="", description="Post text (used for sentiment and time-sensitivity)")


class ViralityResponse(BaseModel):
    score: float
    sentiment: Sentiment
    factors: List[ViralityFactor]


# ============================================================================
# Dependencies
# ============================================================================

def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


def get_store(request: Request) -> Database:
    return _service(request, "store")


def get_pipeline(request: Request) -> IngestionPipeline:
    return _service(request, "pipeline")


def get_aggregator(request: Request) -> TrendAggregator:
    return _service(request, "aggregator")


def get_refresher(request: Request) -> TrendRefresher:
    return _service(request, "refresher")


def get_rag(request: Request) -> RAGOrchestrator:
    return _service(request, "rag")


def get_scorer(request: Request) -> SentimentScorer:
    return _service(request, "scorer")


# ============================================================================
# Routes
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, store: Database = Depends(get_store)):
    """Health check endpoint."""
    try:
        posts_count = await store.count_posts_async()
        status = "healthy"
    except StoreError as e:
        logger.error(f"Health check could not reach store: {e}")
        posts_count = None
        status = "degraded"

    rag = getattr(request.app.state, "rag", None)
    refresher = getattr(request.app.state, "refresher", None)
    generator = rag.generator if rag else None

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc),
        posts_count=posts_count,
        generator_live=bool(generator and generator.is_live),
        refresher_running=bool(refresher and refresher.running),
    )


# ----------------------------------------------------------------------------
# Ingestion
# ----------------------------------------------------------------------------

@router.post("/posts/{platform}", response_model=IngestionReport, status_code=201)
async def ingest_posts(
    platform: str,
    request: IngestRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Extract, score and store a batch of raw posts from one platform."""
    try:
        return await pipeline.ingest(request.posts, platform)
    except UnsupportedPlatformError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ----------------------------------------------------------------------------
# Trends
# ----------------------------------------------------------------------------

@router.get("/trends", response_model=TrendsResponse)
async def get_trends(
    window: TimeWindow = Query(default="day", description="Lookback window: hour, day or week"),
    aggregator: TrendAggregator = Depends(get_aggregator),
):
    """Identify trends in the window from the stored posts."""
    run = await aggregator.run(window)
    return TrendsResponse.from_run(run)


@router.post("/trends/refresh", response_model=TrendsResponse)
async def refresh_trends(
    window: Optional[TimeWindow] = Query(default=None, description="Override the configured window"),
    refresher: TrendRefresher = Depends(get_refresher),
):
    """Run trend identification now and replace the stored trends."""
    try:
        run = await refresher.refresh_now(window)
    except StoreError as e:
        logger.error(f"Failed to store refreshed trends: {e}")
        raise HTTPException(status_code=503, detail=f"Failed to store trends: {e}")
    return TrendsResponse.from_run(run)


# ----------------------------------------------------------------------------
# Retrieval
# ----------------------------------------------------------------------------

@router.post("/query", response_model=RAGQuery)
async def run_query(request: QueryRequest, rag: RAGOrchestrator = Depends(get_rag)):
    """Answer a question from stored posts, trends and cultural context."""
    try:
        return await rag.query(request.query, request.filters)
    except RAGQueryError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/queries/{query_id}", response_model=RAGQuery)
async def get_query(query_id: str, store: Database = Depends(get_store)):
    """Fetch a previously persisted query."""
    try:
        rag_query = await store.get_rag_query_async(query_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if rag_query is None:
        raise HTTPException(status_code=404, detail=f"Query '{query_id}' not found")
    return rag_query


# ----------------------------------------------------------------------------
# Scoring
# ----------------------------------------------------------------------------

@router.post("/sentiment", response_model=Sentiment)
async def score_sentiment(request: SentimentRequest, scorer: SentimentScorer = Depends(get_scorer)):
    return scorer.score(request.text)


@router.post("/virality", response_model=ViralityResponse)
async def score_post_virality(request: ViralityRequest, scorer: SentimentScorer = Depends(get_scorer)):
    """Score virality and explain it with factors."""
    sentiment = request.sentiment or scorer.score(request.content)
    return ViralityResponse(
        score=score_virality(request.engagement, sentiment, request.metadata),
        sentiment=sentiment,
        factors=identify_factors(request.engagement, sentiment, request.metadata, request.content),
    )


# ----------------------------------------------------------------------------
# Analytics
# ----------------------------------------------------------------------------

@router.get("/analytics", response_model=AnalyticsSummary)
async def get_analytics(
    window: TimeWindow = Query(default="day"),
    store: Database = Depends(get_store),
    aggregator: TrendAggregator = Depends(get_aggregator),
):
    """Corpus summary for the window: platforms, sentiment, categories, top content."""
    try:
        start = aggregator.window_start(window)
        posts = await store.get_posts_since_async(start)
        trends = [trend for trend in await store.get_trends_async() if trend.created_at >= start]
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return build_analytics(posts, trends)


__all__ = ["router"]
