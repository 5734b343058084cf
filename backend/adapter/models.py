"""
Shared data models for adapters, stores and services.

Posts are annotated once at ingestion (sentiment + virality) and then only read.
Trends are rebuilt from scratch every analysis cycle.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    """Platforms a post can originate from."""
    TWITTER = "twitter"
    REDDIT = "reddit"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"
    DISCORD = "discord"
    TELEGRAM = "telegram"


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    MIXED = "mixed"


class TrendCategory(str, Enum):
    TECHNOLOGY = "technology"
    POLITICS = "politics"
    ENTERTAINMENT = "entertainment"
    SPORTS = "sports"
    BUSINESS = "business"
    HEALTH = "health"
    EDUCATION = "education"
    ENVIRONMENT = "environment"
    SOCIAL_JUSTICE = "social_justice"
    MEMES = "memes"
    VIRAL_CHALLENGES = "viral_challenges"
    BREAKING_NEWS = "breaking_news"


class Engagement(BaseModel):
    """Raw engagement counters for a post."""
    likes: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    views: Optional[int] = Field(default=None, ge=0)

    @property
    def total(self) -> int:
        return self.likes + self.shares + self.comments


class PostMetadata(BaseModel):
    """Entities pulled out of the post content."""
    hashtags: List[str] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)
    urls: List[str] = Field(default_factory=list)
    media_urls: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    language: str = Field(default="en")


class Emotions(BaseModel):
    joy: float = Field(default=0.0, ge=0, le=1)
    sadness: float = Field(default=0.0, ge=0, le=1)
    anger: float = Field(default=0.0, ge=0, le=1)
    fear: float = Field(default=0.0, ge=0, le=1)
    surprise: float = Field(default=0.0, ge=0, le=1)
    disgust: float = Field(default=0.0, ge=0, le=1)


class Sentiment(BaseModel):
    """
    Text-derived sentiment annotation.

    Attributes:
        score: Polarity from -1.0 (negative) to 1.0 (positive)
        magnitude: Absolute raw lexicon score (unbounded)
        label: Categorical label
        emotions: Per-emotion intensities
        confidence: Bounded confidence in the label
    """
    score: float = Field(default=0.0, ge=-1, le=1)
    magnitude: float = Field(default=0.0, ge=0)
    label: SentimentLabel = Field(default=SentimentLabel.NEUTRAL)
    emotions: Emotions = Field(default_factory=Emotions)
    confidence: float = Field(default=0.5, ge=0.5, le=0.95)


class ViralityFactor(BaseModel):
    """An evidenced explanation for why a post (or trend) spreads."""
    category: str = Field(description="Factor tag, e.g. 'high_engagement'")
    description: str
    impact: float = Field(ge=0, le=1)
    evidence: List[str] = Field(default_factory=list)


class Post(BaseModel):
    """A single scored social-media post."""
    id: str = Field(description="Unique post ID, prefixed with the platform")
    platform: Platform
    content: str
    author: str
    author_id: str
    timestamp: datetime = Field(description="When the post was published (UTC)")
    engagement: Engagement = Field(default_factory=Engagement)
    metadata: PostMetadata = Field(default_factory=PostMetadata)
    sentiment: Sentiment = Field(default_factory=Sentiment)
    virality_score: float = Field(default=0.0, ge=0, le=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp", "created_at", "updated_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # Naive datetimes from payloads are taken to be UTC already
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Influencer(BaseModel):
    id: str
    username: str
    platform: Platform
    followers: int = 0
    engagement_rate: float = Field(description="Total engagement / posts by this author")
    influence: float = Field(description="Total engagement / posts in the trend")
    topics: List[str] = Field(default_factory=list)
    recent_post_ids: List[str] = Field(default_factory=list)


class TrendTimelinePoint(BaseModel):
    timestamp: datetime = Field(description="Start of the hour bucket")
    mentions: int
    engagement: int
    sentiment: SentimentLabel


class TrendMetrics(BaseModel):
    mentions: int = 0
    engagement: int = 0
    reach: int = 0
    growth_rate: float = Field(default=0.0, description="Mentions per hour")
    velocity: float = Field(default=0.0, description="Engagement per hour")


class SentimentDistribution(BaseModel):
    positive: float = 0.0
    negative: float = 0.0
    neutral: float = 0.0
    overall: SentimentLabel = SentimentLabel.NEUTRAL


class Trend(BaseModel):
    """An aggregated topic cluster that passed the significance test."""
    id: str
    topic: str
    hashtag: Optional[str] = None
    platform: Platform
    category: TrendCategory
    metrics: TrendMetrics
    sentiment: SentimentDistribution
    related_topics: List[str] = Field(default_factory=list)
    influencers: List[Influencer] = Field(default_factory=list)
    timeline: List[TrendTimelinePoint] = Field(default_factory=list)
    virality_factors: List[ViralityFactor] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DemographicFactors(BaseModel):
    age_groups: Dict[str, float] = Field(default_factory=dict)
    genders: Dict[str, float] = Field(default_factory=dict)
    interests: List[str] = Field(default_factory=list)
    socioeconomic_factors: List[str] = Field(default_factory=list)


class GeographicFactors(BaseModel):
    countries: Dict[str, float] = Field(default_factory=dict)
    regions: Dict[str, float] = Field(default_factory=dict)
    cities: Dict[str, float] = Field(default_factory=dict)
    languages: Dict[str, float] = Field(default_factory=dict)


class CulturalContext(BaseModel):
    """Curated background record used to enrich query answers."""
    id: str
    topic: str
    description: str
    relevance: float = Field(default=0.0, ge=0, le=1)
    related_events: List[str] = Field(default_factory=list)
    historical_context: str = ""
    demographic_factors: DemographicFactors = Field(default_factory=DemographicFactors)
    geographic_factors: GeographicFactors = Field(default_factory=GeographicFactors)


class DateRange(BaseModel):
    start: datetime
    end: datetime


class QueryFilters(BaseModel):
    platforms: List[Platform] = Field(default_factory=list)
    date_range: Optional[DateRange] = None
    categories: List[TrendCategory] = Field(default_factory=list)
    min_engagement: Optional[int] = Field(default=None, ge=0)
    sentiment: List[SentimentLabel] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)


class FetchStatus(str, Enum):
    """Outcome of a store read, so empty-by-failure differs from empty-by-no-match."""
    OK = "ok"
    STORE_ERROR = "store_error"


SourceType = Literal["post", "trend", "context"]


class RAGResult(BaseModel):
    """A ranked retrieval hit referencing exactly one source record."""
    id: str
    content: str
    source_type: SourceType
    source: Union[Post, Trend, CulturalContext]
    relevance: float = Field(ge=0, le=1)
    confidence: float = Field(ge=0, le=1)
    summary: str = ""
    key_insights: List[str] = Field(default_factory=list)
    related_content: List[str] = Field(default_factory=list)


class RAGInsights(BaseModel):
    """Structured narrative returned by the generative collaborator."""
    answer: str = Field(description="Direct answer to the user's question grounded in the results")
    key_themes: List[str] = Field(description="Main themes found across the retrieved content")
    sentiment_outlook: str = Field(description="How audiences feel about the subject")
    recommendations: List[str] = Field(description="Suggested follow-ups or monitoring points")


class RAGQueryMetadata(BaseModel):
    search_time_ms: float
    total_results: int
    filters: QueryFilters = Field(default_factory=QueryFilters)
    source_status: Dict[str, FetchStatus] = Field(default_factory=dict)
    persisted: bool = False


class RAGQuery(BaseModel):
    id: str
    query: str
    results: List[RAGResult] = Field(default_factory=list)
    insights: Optional[RAGInsights] = None
    metadata: RAGQueryMetadata
    created_at: datetime = Field(default_factory=utcnow)


TimeWindow = Literal["hour", "day", "week"]


class TrendRun(BaseModel):
    """Result of one trend identification pass."""
    window: TimeWindow
    trends: List[Trend] = Field(default_factory=list)
    status: FetchStatus = FetchStatus.OK
    error: Optional[str] = None
    posts_scanned: int = 0
    skipped_topics: List[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=utcnow)


class PlatformCount(BaseModel):
    platform: Platform
    posts: int


class SentimentCount(BaseModel):
    sentiment: SentimentLabel
    count: int


class CategoryCount(BaseModel):
    category: TrendCategory
    count: int


class AnalyticsSummary(BaseModel):
    total_posts: int = 0
    total_trends: int = 0
    average_engagement: float = 0.0
    top_platforms: List[PlatformCount] = Field(default_factory=list)
    sentiment_distribution: List[SentimentCount] = Field(default_factory=list)
    trending_categories: List[CategoryCount] = Field(default_factory=list)
    viral_content: List[Post] = Field(default_factory=list)
    recent_trends: List[Trend] = Field(default_factory=list)


__all__ = [
    "Platform",
    "SentimentLabel",
    "TrendCategory",
    "Engagement",
    "PostMetadata",
    "Emotions",
    "Sentiment",
    "ViralityFactor",
    "Post",
    "Influencer",
    "TrendTimelinePoint",
    "TrendMetrics",
    "SentimentDistribution",
    "Trend",
    "DemographicFactors",
    "GeographicFactors",
    "CulturalContext",
    "DateRange",
    "QueryFilters",
    "FetchStatus",
    "SourceType",
    "RAGResult",
    "RAGInsights",
    "RAGQueryMetadata",
    "RAGQuery",
    "TimeWindow",
    "TrendRun",
    "PlatformCount",
    "SentimentCount",
    "CategoryCount",
    "AnalyticsSummary",
    "utcnow",
]
