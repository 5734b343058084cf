"""
Trend aggregation over the scored post corpus.

Architecture:
- Posts are the source of truth; trends are derived, never patched
- Each run re-reads the time window from the store and rebuilds every trend
- A post may belong to several topic groups (hashtags + key phrases)

A topic becomes a trend only if:
- its group holds at least MIN_TOPIC_POSTS posts, and
- the computed metrics pass the significance filter (mentions, velocity, growth)
"""

from __future__ import annotations

import logging
import re
import uuid
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from adapter.models import (
    AnalyticsSummary,
    CategoryCount,
    FetchStatus,
    Influencer,
    Platform,
    PlatformCount,
    Post,
    SentimentCount,
    SentimentDistribution,
    SentimentLabel,
    TimeWindow,
    Trend,
    TrendCategory,
    TrendMetrics,
    TrendRun,
    TrendTimelinePoint,
    ViralityFactor,
)
from services.virality import identify_factors

logger = logging.getLogger(__name__)


# Lookback per analysis window (in hours)
WINDOW_HOURS: Dict[str, int] = {
    "hour": 1,
    "day": 24,
    "week": 168,
}

DEFAULT_WINDOW = "day"

# Grouping gate
MIN_TOPIC_POSTS = 5

# Significance gate (all must hold)
MIN_MENTIONS = 10
MIN_VELOCITY = 100.0
MIN_GROWTH_RATE = 2.0

# Key phrase extraction
MIN_PHRASE_WORD_LENGTH = 4
MAX_KEY_PHRASES = 10

MAX_RELATED_TOPICS = 10
MAX_INFLUENCERS = 5
MAX_TREND_FACTORS = 5
FACTOR_SAMPLE_SIZE = 10
RECENT_POSTS_PER_INFLUENCER = 3

# A timeline bucket takes a label only if it covers more than this share of posts
DOMINANT_SENTIMENT_SHARE = 0.6

# Ordered: the first category with a matching substring wins
CATEGORY_KEYWORDS: Tuple[Tuple[TrendCategory, Tuple[str, ...]], ...] = (
    (TrendCategory.TECHNOLOGY, ("ai", "tech", "software")),
    (TrendCategory.POLITICS, ("politics", "election", "government")),
    (TrendCategory.ENTERTAINMENT, ("movie", "music", "celebrity")),
    (TrendCategory.SPORTS, ("sport", "game", "team")),
    (TrendCategory.BUSINESS, ("business", "company", "market")),
    (TrendCategory.HEALTH, ("health", "medical", "covid")),
    (TrendCategory.ENVIRONMENT, ("climate", "environment", "green")),
    (TrendCategory.SOCIAL_JUSTICE, ("justice", "protest", "rights")),
)
DEFAULT_CATEGORY = TrendCategory.MEMES

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


# ---------------------------------------------------------------------------
# Topic extraction
# ---------------------------------------------------------------------------

def extract_key_phrases(content: str) -> List[str]:
    """
    Extract 2-word then 3-word phrases from content.

    Punctuation is stripped and words of MIN_PHRASE_WORD_LENGTH-1 characters
    or fewer are dropped before building n-grams.
    """
    words = [
        word
        for word in _PUNCTUATION_RE.sub("", content.lower()).split()
        if len(word) >= MIN_PHRASE_WORD_LENGTH
    ]

    phrases = [f"{a} {b}" for a, b in zip(words, words[1:])]
    phrases.extend(f"{a} {b} {c}" for a, b, c in zip(words, words[1:], words[2:]))
    return phrases[:MAX_KEY_PHRASES]


def extract_topics(post: Post) -> List[str]:
    """Topic set for a post: lowercased hashtags plus its key phrases."""
    topics = [tag.lower() for tag in post.metadata.hashtags]
    topics.extend(extract_key_phrases(post.content))
    return list(dict.fromkeys(topics))


def group_posts_by_topic(posts: Sequence[Post]) -> Dict[str, List[Post]]:
    """Group posts under every topic they mention (preserving post order)."""
    groups: Dict[str, List[Post]] = defaultdict(list)
    for post in posts:
        for topic in extract_topics(post):
            groups[topic].append(post)
    return dict(groups)


# ---------------------------------------------------------------------------
# Per-group analysis
# ---------------------------------------------------------------------------

def hours_span(posts: Sequence[Post]) -> float:
    timestamps = [post.timestamp for post in posts]
    return (max(timestamps) - min(timestamps)).total_seconds() / 3600


def calculate_trend_metrics(posts: Sequence[Post]) -> TrendMetrics:
    mentions = len(posts)
    engagement = sum(post.engagement.total for post in posts)
    reach = sum(post.engagement.views or 0 for post in posts)
    span = max(1.0, hours_span(posts))

    return TrendMetrics(
        mentions=mentions,
        engagement=engagement,
        reach=reach,
        growth_rate=mentions / span,
        velocity=engagement / span,
    )


def sentiment_distribution(posts: Sequence[Post]) -> SentimentDistribution:
    """Label fractions over the group; anything not positive/negative counts as neutral."""
    counts = Counter(post.sentiment.label for post in posts)
    positive = counts[SentimentLabel.POSITIVE]
    negative = counts[SentimentLabel.NEGATIVE]
    total = len(posts)
    neutral = total - positive - negative

    if positive > negative:
        overall = SentimentLabel.POSITIVE
    elif negative > positive:
        overall = SentimentLabel.NEGATIVE
    else:
        overall = SentimentLabel.NEUTRAL

    return SentimentDistribution(
        positive=positive / total,
        negative=negative / total,
        neutral=neutral / total,
        overall=overall,
    )


def find_related_topics(topic: str, posts: Sequence[Post]) -> List[str]:
    related = []
    for post in posts:
        for tag in post.metadata.hashtags:
            tag = tag.lower()
            if tag != topic.lower() and tag not in related:
                related.append(tag)
    return related[:MAX_RELATED_TOPICS]


def identify_influencers(posts: Sequence[Post], platform: Platform) -> List[Influencer]:
    """Rank authors in the group by their total engagement."""
    stats: Dict[str, Dict[str, int]] = {}
    author_posts: Dict[str, List[Post]] = defaultdict(list)

    for post in posts:
        entry = stats.setdefault(post.author, {"posts": 0, "engagement": 0})
        entry["posts"] += 1
        entry["engagement"] += post.engagement.total
        author_posts[post.author].append(post)

    ranked = sorted(stats.items(), key=lambda item: item[1]["engagement"], reverse=True)

    influencers = []
    for author, entry in ranked[:MAX_INFLUENCERS]:
        own_posts = author_posts[author]
        first_tags = own_posts[0].metadata.hashtags
        influencers.append(Influencer(
            id=author,
            username=author,
            platform=platform,
            followers=0,
            engagement_rate=entry["engagement"] / entry["posts"],
            influence=entry["engagement"] / len(posts),
            topics=first_tags[:1],
            recent_post_ids=[p.id for p in own_posts[:RECENT_POSTS_PER_INFLUENCER]],
        ))
    return influencers


def dominant_sentiment(posts: Sequence[Post]) -> SentimentLabel:
    """The label held by more than DOMINANT_SENTIMENT_SHARE of posts, else MIXED."""
    counts = Counter(post.sentiment.label for post in posts)
    candidates = (SentimentLabel.POSITIVE, SentimentLabel.NEGATIVE, SentimentLabel.NEUTRAL)
    max_count = max(counts[label] for label in candidates)

    if max_count / len(posts) > DOMINANT_SENTIMENT_SHARE:
        for label in candidates:
            if counts[label] == max_count:
                return label
    return SentimentLabel.MIXED


def floor_to_hour(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def build_timeline(posts: Sequence[Post]) -> List[TrendTimelinePoint]:
    """Bucket posts by hour (oldest bucket first)."""
    buckets: Dict[datetime, List[Post]] = defaultdict(list)
    for post in posts:
        buckets[floor_to_hour(post.timestamp)].append(post)

    return [
        TrendTimelinePoint(
            timestamp=hour,
            mentions=len(hour_posts),
            engagement=sum(p.engagement.total for p in hour_posts),
            sentiment=dominant_sentiment(hour_posts),
        )
        for hour, hour_posts in sorted(buckets.items())
    ]


def merge_virality_factors(posts: Sequence[Post]) -> List[ViralityFactor]:
    """
    Merge the factors of the group's most engaged posts.

    Same category: keep the highest impact and concatenate evidence.
    """
    top_posts = sorted(posts, key=lambda p: p.engagement.total, reverse=True)[:FACTOR_SAMPLE_SIZE]

    merged: Dict[str, ViralityFactor] = {}
    for post in top_posts:
        for factor in identify_factors(post.engagement, post.sentiment, post.metadata, post.content):
            existing = merged.get(factor.category)
            if existing is None:
                merged[factor.category] = factor.model_copy(deep=True)
            else:
                existing.impact = max(existing.impact, factor.impact)
                existing.evidence.extend(factor.evidence)

    return list(merged.values())[:MAX_TREND_FACTORS]


def categorize_trend(posts: Sequence[Post]) -> TrendCategory:
    content = " ".join(post.content for post in posts).lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in content for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def primary_platform(posts: Sequence[Post]) -> Platform:
    """Plurality vote; ties go to the platform seen first."""
    counts = Counter(post.platform for post in posts)
    if not counts:
        return Platform.TWITTER
    return counts.most_common(1)[0][0]


def is_significant(trend: Trend) -> bool:
    metrics = trend.metrics
    return (
        metrics.mentions >= MIN_MENTIONS
        and metrics.velocity >= MIN_VELOCITY
        and metrics.growth_rate >= MIN_GROWTH_RATE
    )


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class TrendAggregator:
    """
    Identifies trends from the posts stored within a time window.

    The aggregator keeps no state between runs: every call re-reads the store.

    Usage:
        aggregator = TrendAggregator(store=db)
        trends = await aggregator.identify_trends("day")
        run = await aggregator.run("hour")   # same, with explicit status
    """

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the TrendAggregator.

        Args:
            store: Post store exposing get_posts_since_async(start)
            clock: Returns "now" (UTC); defaults to the wall clock
        """
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def window_start(self, window: str, now: Optional[datetime] = None) -> datetime:
        if window not in WINDOW_HOURS:
            raise ValueError(f"Invalid window: {window}. Valid: {list(WINDOW_HOURS.keys())}")
        now = now or self.clock()
        return now - timedelta(hours=WINDOW_HOURS[window])

    async def identify_trends(self, window: TimeWindow = DEFAULT_WINDOW) -> List[Trend]:
        """
        Identify significant trends in the window, highest velocity first.

        A store failure yields an empty list; use run() to tell the two apart.
        """
        run = await self.run(window)
        return run.trends

    async def run(self, window: TimeWindow = DEFAULT_WINDOW) -> TrendRun:
        """
        Run one trend identification pass.

        Args:
            window: "hour", "day" or "week"

        Returns:
            TrendRun with the surviving trends and the fetch status
        """
        now = self.clock()
        start = self.window_start(window, now)

        try:
            posts = await self.store.get_posts_since_async(start)
        except Exception as e:
            logger.error(f"Failed to fetch posts for {window} window: {e}")
            return TrendRun(
                window=window,
                status=FetchStatus.STORE_ERROR,
                error=str(e),
                analyzed_at=now,
            )

        groups = group_posts_by_topic(posts)
        trends: List[Trend] = []
        skipped: List[str] = []
        candidates = 0

        for topic, group in groups.items():
            if len(group) < MIN_TOPIC_POSTS:
                continue
            candidates += 1

            try:
                trend = self.analyze_topic(topic, group, now)
            except Exception as e:
                logger.error(f"Error analyzing topic '{topic}': {e}")
                skipped.append(topic)
                continue

            if is_significant(trend):
                trends.append(trend)
            else:
                logger.debug(
                    f"Topic '{topic}' not significant: {trend.metrics.mentions} mentions, "
                    f"{trend.metrics.velocity:.1f}/h velocity, {trend.metrics.growth_rate:.2f}/h growth"
                )

        trends.sort(key=lambda t: t.metrics.velocity, reverse=True)

        logger.info(
            f"Trend run ({window}): {len(posts)} posts, {len(groups)} topics, "
            f"{candidates} candidates, {len(trends)} trends, {len(skipped)} skipped"
        )

        return TrendRun(
            window=window,
            trends=trends,
            posts_scanned=len(posts),
            skipped_topics=skipped,
            analyzed_at=now,
        )

    def analyze_topic(self, topic: str, posts: Sequence[Post], now: Optional[datetime] = None) -> Trend:
        """Build the full Trend for one topic group (no significance check)."""
        now = now or self.clock()
        platform = primary_platform(posts)

        return Trend(
            id=f"trend_{uuid.uuid4().hex[:16]}",
            topic=topic,
            hashtag=topic if topic.startswith("#") else None,
            platform=platform,
            category=categorize_trend(posts),
            metrics=calculate_trend_metrics(posts),
            sentiment=sentiment_distribution(posts),
            related_topics=find_related_topics(topic, posts),
            influencers=identify_influencers(posts, platform),
            timeline=build_timeline(posts),
            virality_factors=merge_virality_factors(posts),
            created_at=now,
            updated_at=now,
        )


# ---------------------------------------------------------------------------
# Corpus analytics
# ---------------------------------------------------------------------------

def build_analytics(posts: Sequence[Post], trends: Sequence[Trend], limit: int = 10) -> AnalyticsSummary:
    """
    Summarize a window of posts and its trends for dashboards.

    Args:
        posts: Posts in the window
        trends: Trends identified for the same window
        limit: Maximum viral posts / recent trends to include
    """
    if not posts and not trends:
        return AnalyticsSummary()

    platforms = Counter(post.platform for post in posts)
    sentiments = Counter(post.sentiment.label for post in posts)
    categories = Counter(trend.category for trend in trends)

    total_engagement = sum(post.engagement.total for post in posts)
    viral = sorted(posts, key=lambda p: p.virality_score, reverse=True)[:limit]
    recent = sorted(trends, key=lambda t: t.created_at, reverse=True)[:limit]

    return AnalyticsSummary(
        total_posts=len(posts),
        total_trends=len(trends),
        average_engagement=total_engagement / len(posts) if posts else 0.0,
        top_platforms=[PlatformCount(platform=p, posts=n) for p, n in platforms.most_common(5)],
        sentiment_distribution=[SentimentCount(sentiment=s, count=n) for s, n in sentiments.most_common()],
        trending_categories=[CategoryCount(category=c, count=n) for c, n in categories.most_common()],
        viral_content=viral,
        recent_trends=recent,
    )


__all__ = [
    "TrendAggregator",
    "build_analytics",
    "extract_key_phrases",
    "extract_topics",
    "group_posts_by_topic",
    "calculate_trend_metrics",
    "sentiment_distribution",
    "find_related_topics",
    "identify_influencers",
    "dominant_sentiment",
    "build_timeline",
    "merge_virality_factors",
    "categorize_trend",
    "primary_platform",
    "is_significant",
    "WINDOW_HOURS",
    "DEFAULT_WINDOW",
    "MIN_TOPIC_POSTS",
]
