"""
Environment-driven settings.

Values come from the process environment, with a .env file loaded first
(existing environment variables win).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from aggregator import WINDOW_HOURS
from database import DB_PATH


def _csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    database_path: Path = DB_PATH
    xai_api_key: Optional[str] = None
    grok_model_fast: str = "grok-4-1-fast"
    grok_model_reasoning: str = "grok-4-1-fast-reasoning"
    trend_window: str = "day"
    trend_refresh_seconds: int = 300
    auto_refresh: bool = True
    min_engagement: int = 0
    allowed_languages: List[str] = field(default_factory=list)
    exclude_keywords: List[str] = field(default_factory=list)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        trend_window = os.environ.get("TREND_WINDOW", "day")
        if trend_window not in WINDOW_HOURS:
            raise ValueError(f"Invalid TREND_WINDOW: {trend_window}. Valid: {list(WINDOW_HOURS.keys())}")

        return cls(
            database_path=Path(os.environ.get("DATABASE_PATH", str(DB_PATH))),
            xai_api_key=os.environ.get("XAI_API_KEY") or None,
            grok_model_fast=os.environ.get("GROK_MODEL_FAST", "grok-4-1-fast"),
            grok_model_reasoning=os.environ.get("GROK_MODEL_REASONING", "grok-4-1-fast-reasoning"),
            trend_window=trend_window,
            trend_refresh_seconds=int(os.environ.get("TREND_REFRESH_SECONDS", "300")),
            auto_refresh=os.environ.get("AUTO_REFRESH", "true").lower() == "true",
            min_engagement=int(os.environ.get("MIN_ENGAGEMENT", "0")),
            allowed_languages=_csv(os.environ.get("ALLOWED_LANGUAGES")),
            exclude_keywords=_csv(os.environ.get("EXCLUDE_KEYWORDS")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
