"""
Per-platform extraction of raw API payloads into post fields.

Each platform is one PlatformExtractor variant registered in EXTRACTORS.
Adding a platform means adding a variant and registering it, nothing else.
Platforms without a dedicated variant use GenericExtractor.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Engagement, Platform, PostMetadata

logger = logging.getLogger(__name__)

HASHTAG_RE = re.compile(r"#\w+")
MENTION_RE = re.compile(r"@\w+")
URL_RE = re.compile(r"https?://[^\s]+")

DEFAULT_LANGUAGE = "en"
UNKNOWN_AUTHOR = "unknown"


class UnsupportedPlatformError(ValueError):
    """Raised when a payload names a platform that is not in the enumeration."""
    pass


class ExtractedPost(BaseModel):
    """Platform-neutral fields pulled from one raw payload (not yet scored)."""
    id: str
    platform: Platform
    content: str
    author: str
    author_id: str
    timestamp: datetime
    engagement: Engagement = Field(default_factory=Engagement)
    metadata: PostMetadata = Field(default_factory=PostMetadata)


def extract_metadata(content: str) -> PostMetadata:
    """Pull hashtags, mentions and URLs out of post content."""
    return PostMetadata(
        hashtags=HASHTAG_RE.findall(content),
        mentions=MENTION_RE.findall(content),
        urls=URL_RE.findall(content),
        language=DEFAULT_LANGUAGE,
    )


def _as_int(value: Any) -> int:
    # YouTube statistics arrive as strings
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        return datetime.now(timezone.utc)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class PlatformExtractor:
    """
    Base extraction capability set.

    Subclasses override the individual field extractors; extract() assembles
    them into an ExtractedPost.
    """

    platform: Platform

    def __init__(self, platform: Optional[Platform] = None):
        if platform is not None:
            self.platform = platform

    def extract(self, raw: Dict[str, Any]) -> ExtractedPost:
        content = self.content(raw)
        return ExtractedPost(
            id=self.post_id(raw),
            platform=self.platform,
            content=content,
            author=self.author(raw),
            author_id=self.author_id(raw),
            timestamp=self.timestamp(raw),
            engagement=self.engagement(raw),
            metadata=extract_metadata(content),
        )

    def post_id(self, raw: Dict[str, Any]) -> str:
        return self._qualified_id(raw.get("id"))

    def _qualified_id(self, raw_id: Any) -> str:
        # Random fallback for id-less payloads
        return f"{self.platform.value}_{raw_id or uuid.uuid4().hex}"

    def content(self, raw: Dict[str, Any]) -> str:
        return raw.get("text") or raw.get("content") or ""

    def author(self, raw: Dict[str, Any]) -> str:
        return raw.get("author") or raw.get("username") or UNKNOWN_AUTHOR

    def author_id(self, raw: Dict[str, Any]) -> str:
        return raw.get("author_id") or raw.get("author") or UNKNOWN_AUTHOR

    def timestamp(self, raw: Dict[str, Any]) -> datetime:
        return _parse_datetime(raw.get("created_at") or raw.get("timestamp"))

    def engagement(self, raw: Dict[str, Any]) -> Engagement:
        return Engagement(
            likes=_as_int(raw.get("likes")),
            shares=_as_int(raw.get("shares")),
            comments=_as_int(raw.get("comments")),
            views=_as_int(raw["views"]) if raw.get("views") is not None else None,
        )


class GenericExtractor(PlatformExtractor):
    """Fallback for platforms whose payloads already use the neutral field names."""
    pass


class TwitterExtractor(PlatformExtractor):
    """Twitter API v2 tweet objects (public_metrics, author_id)."""

    platform = Platform.TWITTER

    def content(self, raw: Dict[str, Any]) -> str:
        return raw.get("text") or ""

    def author(self, raw: Dict[str, Any]) -> str:
        return raw.get("author_id") or UNKNOWN_AUTHOR

    def author_id(self, raw: Dict[str, Any]) -> str:
        return raw.get("author_id") or UNKNOWN_AUTHOR

    def timestamp(self, raw: Dict[str, Any]) -> datetime:
        return _parse_datetime(raw.get("created_at"))

    def engagement(self, raw: Dict[str, Any]) -> Engagement:
        metrics = raw.get("public_metrics") or {}
        return Engagement(
            likes=_as_int(metrics.get("like_count")),
            shares=_as_int(metrics.get("retweet_count")),
            comments=_as_int(metrics.get("reply_count")),
            views=_as_int(metrics["impression_count"]) if "impression_count" in metrics else None,
        )


class RedditExtractor(PlatformExtractor):
    """Reddit listing children (score, num_comments, created_utc)."""

    platform = Platform.REDDIT

    def content(self, raw: Dict[str, Any]) -> str:
        return raw.get("selftext") or raw.get("title") or ""

    def author(self, raw: Dict[str, Any]) -> str:
        return raw.get("author") or UNKNOWN_AUTHOR

    def author_id(self, raw: Dict[str, Any]) -> str:
        return raw.get("author") or UNKNOWN_AUTHOR

    def timestamp(self, raw: Dict[str, Any]) -> datetime:
        return _parse_datetime(raw.get("created_utc"))

    def engagement(self, raw: Dict[str, Any]) -> Engagement:
        # Reddit has no share counter
        return Engagement(
            likes=_as_int(raw.get("score")),
            shares=0,
            comments=_as_int(raw.get("num_comments")),
        )


class YouTubeExtractor(PlatformExtractor):
    """YouTube Data API v3 search/video items (snippet + statistics)."""

    platform = Platform.YOUTUBE

    def post_id(self, raw: Dict[str, Any]) -> str:
        raw_id = raw.get("id")
        if isinstance(raw_id, dict):
            raw_id = raw_id.get("videoId")
        return self._qualified_id(raw_id)

    def content(self, raw: Dict[str, Any]) -> str:
        snippet = raw.get("snippet") or {}
        return snippet.get("description") or snippet.get("title") or ""

    def author(self, raw: Dict[str, Any]) -> str:
        return (raw.get("snippet") or {}).get("channelTitle") or UNKNOWN_AUTHOR

    def author_id(self, raw: Dict[str, Any]) -> str:
        return (raw.get("snippet") or {}).get("channelId") or UNKNOWN_AUTHOR

    def timestamp(self, raw: Dict[str, Any]) -> datetime:
        return _parse_datetime((raw.get("snippet") or {}).get("publishedAt"))

    def engagement(self, raw: Dict[str, Any]) -> Engagement:
        stats = raw.get("statistics") or {}
        return Engagement(
            likes=_as_int(stats.get("likeCount")),
            shares=0,
            comments=_as_int(stats.get("commentCount")),
            views=_as_int(stats.get("viewCount")),
        )


EXTRACTORS: Dict[Platform, PlatformExtractor] = {
    Platform.TWITTER: TwitterExtractor(),
    Platform.REDDIT: RedditExtractor(),
    Platform.YOUTUBE: YouTubeExtractor(),
}


def get_extractor(platform: Platform | str) -> PlatformExtractor:
    """
    Look up the extractor for a platform.

    Args:
        platform: Platform enum member or its string value

    Returns:
        The registered variant, or a GenericExtractor bound to the platform

    Raises:
        UnsupportedPlatformError: If the platform is not a known Platform value
    """
    try:
        platform = Platform(platform)
    except ValueError as e:
        raise UnsupportedPlatformError(f"Unsupported platform: {platform}") from e

    extractor = EXTRACTORS.get(platform)
    if extractor is None:
        return GenericExtractor(platform)
    return extractor


__all__ = [
    "PlatformExtractor",
    "GenericExtractor",
    "TwitterExtractor",
    "RedditExtractor",
    "YouTubeExtractor",
    "ExtractedPost",
    "EXTRACTORS",
    "get_extractor",
    "extract_metadata",
    "UnsupportedPlatformError",
]
