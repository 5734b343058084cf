"""
Trend Backend - Main FastAPI Application

Run with:
    uvicorn main:app --reload --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapter.grok import GrokAdapter
from aggregator import TrendAggregator
from api import router
from config import Settings
from core import IngestionFilters, IngestionPipeline, TrendRefresher
from database import Database
from rag import RAGOrchestrator
from services.sentiment import SentimentScorer

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_services(app: FastAPI, settings: Settings) -> None:
    """Construct every service and attach it to app.state."""
    store = Database(settings.database_path)
    scorer = SentimentScorer()

    generator = None
    if settings.xai_api_key:
        generator = GrokAdapter(
            api_key=settings.xai_api_key,
            fast_model=settings.grok_model_fast,
            reasoning_model=settings.grok_model_reasoning,
        )

    aggregator = TrendAggregator(store=store)

    app.state.settings = settings
    app.state.store = store
    app.state.scorer = scorer
    app.state.aggregator = aggregator
    app.state.pipeline = IngestionPipeline(
        store=store,
        scorer=scorer,
        filters=IngestionFilters(
            min_engagement=settings.min_engagement,
            languages=settings.allowed_languages,
            exclude_keywords=settings.exclude_keywords,
        ),
    )
    app.state.refresher = TrendRefresher(
        aggregator=aggregator,
        store=store,
        interval=settings.trend_refresh_seconds,
        window=settings.trend_window,
    )
    app.state.rag = RAGOrchestrator(store=store, generator=generator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - setup and teardown.
    """
    settings: Settings = app.state.settings

    logger.info("Starting trend backend...")
    app.state.store.init_db()
    logger.info(f"✓ Database ready at {settings.database_path}")

    if app.state.rag.generator is not None and app.state.rag.generator.is_live:
        logger.info("✓ Grok Adapter live")
    else:
        logger.warning("⚠ Grok Adapter not configured - set XAI_API_KEY (queries return results only)")

    refresher: TrendRefresher = app.state.refresher
    if settings.auto_refresh:
        await refresher.start()
    else:
        logger.info("ℹ Trend refresh disabled (set AUTO_REFRESH=true to enable)")

    logger.info("Trend backend ready!")

    yield  # Application runs here

    logger.info("Shutting down trend backend...")
    await refresher.stop()
    logger.info("Goodbye!")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Explicit settings; read from the environment when omitted
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Trend API",
        description="Social media trend detection, virality scoring and retrieval",
        version="1.0.0",
        lifespan=lifespan,
    )
    build_services(app, settings)

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        return {"name": "Trend API", "version": "1.0.0", "docs": "/docs"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
