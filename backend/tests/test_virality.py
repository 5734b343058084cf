"""Unit tests for virality scoring and factor rules."""

import pytest
from datetime import datetime, timezone, timedelta

from adapter.models import Engagement, PostMetadata, Sentiment, SentimentLabel
from services.virality import (
    content_score,
    identify_factors,
    predict_virality_trend,
    score_virality,
)


def neutral():
    return Sentiment()


def positive(score: float = 0.8):
    return Sentiment(score=score, magnitude=score * 10, label=SentimentLabel.POSITIVE, confidence=0.84)


class TestScoreVirality:

    def test_zero_engagement_neutral(self):
        # 0.4 neutral sentiment * 0.2 + en language 0.1 * 0.15
        score = score_virality(Engagement(), neutral(), PostMetadata())
        assert score == pytest.approx(0.08 + 0.015)

    def test_extreme_inputs_stay_in_range(self):
        huge = Engagement(likes=10**9, shares=10**9, comments=10**9, views=10**9)
        metadata = PostMetadata(
            hashtags=[f"#tag{i}" for i in range(50)],
            mentions=[f"@user{i}" for i in range(50)],
            urls=["https://example.com"],
        )
        score = score_virality(huge, positive(1.0), metadata)

        assert 0.0 <= score <= 1.0
        assert score == pytest.approx(0.4 + 0.25 + 0.16 + 0.7 * 0.15)

    def test_deterministic(self):
        engagement = Engagement(likes=120, shares=40, comments=9)
        metadata = PostMetadata(hashtags=["#ai"], mentions=["@dev"])

        scores = {score_virality(engagement, positive(), metadata) for _ in range(5)}
        assert len(scores) == 1

    def test_shares_without_likes(self):
        # likes floor at 1 for the share ratio
        score = score_virality(Engagement(shares=5), neutral(), PostMetadata(language="fr"))
        assert score == pytest.approx(5 / 10_000 * 0.4 + 0.25 + 0.08)

    def test_content_score_caps(self):
        metadata = PostMetadata(
            hashtags=["#a", "#b", "#c", "#d", "#e"],
            mentions=["@a", "@b", "@c", "@d", "@e"],
            urls=["https://x.test"],
        )
        assert content_score(metadata) == pytest.approx(0.3 + 0.2 + 0.1 + 0.1)


class TestIdentifyFactors:

    def test_no_factors_for_quiet_post(self):
        factors = identify_factors(Engagement(likes=10), neutral(), PostMetadata(), "a quiet day")
        assert factors == []

    def test_high_engagement(self):
        factors = identify_factors(Engagement(likes=2000, shares=100), neutral(), PostMetadata(), "")

        assert [f.category for f in factors] == ["high_engagement"]
        assert factors[0].impact == pytest.approx(0.21)
        assert factors[0].evidence == ["2100 total engagements"]

    def test_viral_sharing(self):
        factors = identify_factors(Engagement(likes=100, shares=50), neutral(), PostMetadata(), "")

        assert factors[0].category == "viral_sharing"
        assert factors[0].impact == pytest.approx(0.5)

    def test_sentiment_rules(self):
        pos = identify_factors(Engagement(), positive(0.7), PostMetadata(), "")
        neg = identify_factors(
            Engagement(),
            Sentiment(score=-0.5, magnitude=5, label=SentimentLabel.NEGATIVE, confidence=0.6),
            PostMetadata(),
            "",
        )

        assert [f.category for f in pos] == ["positive_emotion"]
        assert [f.category for f in neg] == ["controversial"]
        assert neg[0].impact == pytest.approx(0.5)

    def test_trending_hashtags_case_insensitive(self):
        metadata = PostMetadata(hashtags=["#Viral", "#fyp", "#cats"])
        factors = identify_factors(Engagement(), neutral(), metadata, "")

        assert factors[0].category == "trending_hashtags"
        assert factors[0].evidence == ["#Viral", "#fyp"]
        assert factors[0].impact == pytest.approx(0.6)

    def test_mentions_and_urgency(self):
        metadata = PostMetadata(mentions=["@a", "@b"])
        factors = identify_factors(Engagement(), neutral(), metadata, "BREAKING: storm incoming")

        assert [f.category for f in factors] == ["influencer_mentions", "time_sensitive"]
        assert factors[0].impact == pytest.approx(0.4)
        assert factors[1].impact == 0.7

    def test_all_rules_fire_in_order(self):
        factors = identify_factors(
            Engagement(likes=1000, shares=900, comments=50),
            positive(0.9),
            PostMetadata(hashtags=["#trending"], mentions=["@someone"]),
            "live now",
        )

        assert [f.category for f in factors] == [
            "high_engagement",
            "viral_sharing",
            "positive_emotion",
            "trending_hashtags",
            "influencer_mentions",
            "time_sensitive",
        ]


class TestPredictViralityTrend:

    def _history(self, scores):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return [(start + timedelta(hours=i), score) for i, score in enumerate(scores)]

    def test_short_history_is_stable(self):
        assert predict_virality_trend(0.5, self._history([0.5])) == {"trend": "stable", "confidence": 0.5}

    def test_increasing(self):
        result = predict_virality_trend(0.9, self._history([0.1, 0.2, 0.3, 0.4, 0.5]))
        assert result == {"trend": "increasing", "confidence": 1.0}

    def test_decreasing(self):
        result = predict_virality_trend(0.1, self._history([0.5, 0.4, 0.3, 0.2, 0.1]))
        assert result == {"trend": "decreasing", "confidence": 1.0}

    def test_only_five_most_recent_points_count(self):
        # Old rising points are ignored; the last five fall
        scores = [0.1, 0.2, 0.3, 0.4, 0.9, 0.8, 0.7, 0.6, 0.5]
        result = predict_virality_trend(0.5, self._history(scores))
        assert result["trend"] == "decreasing"

    def test_order_independent(self):
        history = self._history([0.1, 0.2, 0.3, 0.4])
        assert predict_virality_trend(0.4, list(reversed(history))) == predict_virality_trend(0.4, history)
