"""
Lexicon-based sentiment scoring for post text.

Sentiment is a best-effort annotation: scoring never raises, a failure yields
the neutral default.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from afinn import Afinn

from adapter.models import Emotions, Sentiment, SentimentLabel

logger = logging.getLogger(__name__)


# Raw AFINN sums are divided by this before clamping to [-1, 1]
SCORE_NORMALIZER = 10.0

POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1

# Keyword hits per emotion that saturate its intensity at 1.0
EMOTION_SATURATION = 5.0

EMOTION_KEYWORDS: Dict[str, List[str]] = {
    "joy": ["happy", "joy", "excited", "great", "amazing", "wonderful", "love", "lol", "haha"],
    "sadness": ["sad", "depressed", "crying", "miss", "lost", "alone", "hurt"],
    "anger": ["angry", "mad", "hate", "furious", "rage", "annoyed", "fuck"],
    "fear": ["scared", "afraid", "terrified", "worried", "anxious", "panic"],
    "surprise": ["wow", "omg", "unexpected", "shocked", "surprised", "amazing"],
    "disgust": ["disgusting", "gross", "nasty", "awful", "terrible"],
}

_EMOTION_PATTERNS: Dict[str, List[re.Pattern]] = {
    emotion: [re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE) for word in words]
    for emotion, words in EMOTION_KEYWORDS.items()
}


def neutral_sentiment() -> Sentiment:
    """The annotation used when text cannot be scored."""
    return Sentiment(
        score=0.0,
        magnitude=0.0,
        label=SentimentLabel.NEUTRAL,
        emotions=Emotions(),
        confidence=0.5,
    )


def label_for_score(score: float) -> SentimentLabel:
    # Never returns MIXED; only trend-level aggregation produces that label.
    if score > POSITIVE_THRESHOLD:
        return SentimentLabel.POSITIVE
    if score < NEGATIVE_THRESHOLD:
        return SentimentLabel.NEGATIVE
    return SentimentLabel.NEUTRAL


def score_emotions(text: str) -> Emotions:
    """Count whole-word emotion keywords and normalize each to [0, 1]."""
    intensities = {}
    for emotion, patterns in _EMOTION_PATTERNS.items():
        hits = sum(len(pattern.findall(text)) for pattern in patterns)
        intensities[emotion] = min(1.0, hits / EMOTION_SATURATION)
    return Emotions(**intensities)


class SentimentScorer:
    """
    Maps raw text to a Sentiment annotation.

    Usage:
        scorer = SentimentScorer()
        sentiment = scorer.score("I am so happy and excited!!!")
    """

    def __init__(self, lexicon: Optional[Afinn] = None):
        self.lexicon = lexicon or Afinn(language="en")

    def score(self, text: str) -> Sentiment:
        """
        Score a piece of text.

        Args:
            text: Raw post content

        Returns:
            Sentiment annotation (neutral default on any failure)
        """
        try:
            raw_score = float(self.lexicon.score(text or ""))
            score = max(-1.0, min(1.0, raw_score / SCORE_NORMALIZER))
            confidence = min(0.95, max(0.5, abs(score) * 0.8 + 0.2))

            return Sentiment(
                score=score,
                magnitude=abs(raw_score),
                label=label_for_score(score),
                emotions=score_emotions(text or ""),
                confidence=confidence,
            )
        except Exception as e:
            logger.error(f"Sentiment scoring failed, using neutral default: {e}")
            return neutral_sentiment()


__all__ = [
    "SentimentScorer",
    "neutral_sentiment",
    "label_for_score",
    "score_emotions",
    "EMOTION_KEYWORDS",
]
