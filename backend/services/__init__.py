"""
Scoring services: per-post sentiment and virality.
"""

from .sentiment import SentimentScorer, neutral_sentiment
from .virality import identify_factors, predict_virality_trend, score_virality

__all__ = [
    "SentimentScorer",
    "neutral_sentiment",
    "score_virality",
    "identify_factors",
    "predict_virality_trend",
]
