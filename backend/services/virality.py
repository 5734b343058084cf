"""
Virality scoring for individual posts.

Two independent views of the same inputs:
- score_virality: a weighted 0-1 composite (deterministic, side-effect free)
- identify_factors: threshold rules explaining *why* a post may spread
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Sequence, Tuple

from adapter.models import (
    Engagement,
    PostMetadata,
    Sentiment,
    SentimentLabel,
    ViralityFactor,
)

# Component weights (sum to 1.0)
ENGAGEMENT_WEIGHT = 0.40
SHARE_VELOCITY_WEIGHT = 0.25
SENTIMENT_WEIGHT = 0.20
CONTENT_WEIGHT = 0.15

# Total engagement at which the engagement term saturates
ENGAGEMENT_SATURATION = 10_000
# Share/like ratio at which the share-velocity term saturates
SHARE_RATIO_SATURATION = 0.5

SENTIMENT_SCORES: Dict[SentimentLabel, float] = {
    SentimentLabel.POSITIVE: 0.8,
    SentimentLabel.NEGATIVE: 0.6,
    SentimentLabel.NEUTRAL: 0.4,
    SentimentLabel.MIXED: 0.4,
}

TRENDING_HASHTAGS = frozenset({"#viral", "#trending", "#fyp", "#foryou", "#trend"})
URGENCY_KEYWORDS = ("breaking", "just", "now", "live", "urgent", "alert")

HIGH_ENGAGEMENT_THRESHOLD = 1000
VIRAL_SHARE_RATIO = 0.3


def share_ratio(engagement: Engagement) -> float:
    return engagement.shares / max(1, engagement.likes)


def content_score(metadata: PostMetadata) -> float:
    """Score discoverability signals in the post metadata (0-1)."""
    score = 0.0

    if metadata.hashtags:
        score += min(0.3, len(metadata.hashtags) * 0.1)

    if metadata.mentions:
        score += min(0.2, len(metadata.mentions) * 0.05)

    if metadata.urls:
        score += 0.1

    if metadata.language == "en":
        score += 0.1

    return min(1.0, score)


def score_virality(engagement: Engagement, sentiment: Sentiment, metadata: PostMetadata) -> float:
    """
    Combine engagement, share velocity, sentiment and content signals.

    Args:
        engagement: Post engagement counters
        sentiment: Sentiment annotation for the post text
        metadata: Extracted hashtags/mentions/urls/language

    Returns:
        Virality score clamped to [0, 1]
    """
    engagement_term = min(1.0, engagement.total / ENGAGEMENT_SATURATION)
    velocity_term = min(1.0, share_ratio(engagement) / SHARE_RATIO_SATURATION)
    sentiment_term = SENTIMENT_SCORES.get(sentiment.label, 0.4)

    score = (
        engagement_term * ENGAGEMENT_WEIGHT
        + velocity_term * SHARE_VELOCITY_WEIGHT
        + sentiment_term * SENTIMENT_WEIGHT
        + content_score(metadata) * CONTENT_WEIGHT
    )
    return min(1.0, max(0.0, score))


def identify_factors(
    engagement: Engagement,
    sentiment: Sentiment,
    metadata: PostMetadata,
    text: str,
) -> List[ViralityFactor]:
    """
    Apply independent threshold rules; any number of factors may fire.

    Returns:
        Factors in rule order
    """
    factors: List[ViralityFactor] = []

    total = engagement.total
    if total > HIGH_ENGAGEMENT_THRESHOLD:
        factors.append(ViralityFactor(
            category="high_engagement",
            description="High overall engagement indicates strong audience interest",
            impact=min(1.0, total / ENGAGEMENT_SATURATION),
            evidence=[f"{total} total engagements"],
        ))

    ratio = share_ratio(engagement)
    if ratio > VIRAL_SHARE_RATIO:
        factors.append(ViralityFactor(
            category="viral_sharing",
            description="High share-to-like ratio suggests content is being widely shared",
            impact=min(1.0, ratio),
            evidence=[f"{ratio:.2f} share ratio"],
        ))

    if sentiment.label == SentimentLabel.POSITIVE and sentiment.score > 0.5:
        factors.append(ViralityFactor(
            category="positive_emotion",
            description="Strong positive sentiment drives engagement",
            impact=sentiment.score,
            evidence=[f"Sentiment score: {sentiment.score:.2f}"],
        ))

    if sentiment.label == SentimentLabel.NEGATIVE and sentiment.score < -0.3:
        factors.append(ViralityFactor(
            category="controversial",
            description="Controversial content often goes viral due to strong reactions",
            impact=abs(sentiment.score),
            evidence=[f"Sentiment score: {sentiment.score:.2f}"],
        ))

    trending = [tag for tag in metadata.hashtags if tag.lower() in TRENDING_HASHTAGS]
    if trending:
        factors.append(ViralityFactor(
            category="trending_hashtags",
            description="Use of trending hashtags increases discoverability",
            impact=min(1.0, len(trending) * 0.3),
            evidence=trending,
        ))

    if metadata.mentions:
        factors.append(ViralityFactor(
            category="influencer_mentions",
            description="Mentions of influencers can amplify reach",
            impact=min(1.0, len(metadata.mentions) * 0.2),
            evidence=list(metadata.mentions),
        ))

    lowered = (text or "").lower()
    if any(keyword in lowered for keyword in URGENCY_KEYWORDS):
        factors.append(ViralityFactor(
            category="time_sensitive",
            description="Time-sensitive content creates urgency and sharing",
            impact=0.7,
            evidence=["Contains time-sensitive keywords"],
        ))

    return factors


def predict_virality_trend(
    current_score: float,
    history: Sequence[Tuple[datetime, float]],
) -> Dict[str, object]:
    """
    Estimate whether a post's virality is rising from its recent score history.

    Args:
        current_score: Latest virality score (kept for API symmetry)
        history: (timestamp, score) observations, any order

    Returns:
        {"trend": "increasing"|"decreasing"|"stable", "confidence": float}
    """
    if len(history) < 2:
        return {"trend": "stable", "confidence": 0.5}

    recent = sorted(history, key=lambda point: point[0], reverse=True)[:5]

    increasing = 0
    comparisons = 0
    for newer, older in zip(recent, recent[1:]):
        if newer[1] > older[1]:
            increasing += 1
        comparisons += 1

    ratio = increasing / comparisons
    if ratio > 0.6:
        return {"trend": "increasing", "confidence": ratio}
    if ratio < 0.4:
        return {"trend": "decreasing", "confidence": 1 - ratio}
    return {"trend": "stable", "confidence": 0.5}


__all__ = [
    "score_virality",
    "identify_factors",
    "predict_virality_trend",
    "content_score",
    "share_ratio",
    "TRENDING_HASHTAGS",
    "URGENCY_KEYWORDS",
]
