"""
Typed helper wrapping Grok (xai-sdk) flows for the generative pass of RAG queries.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from xai_sdk import Client
from xai_sdk.chat import system, user

from ..models import Post, RAGInsights, RAGResult, Trend

logger = logging.getLogger(__name__)

# Results included in the prompt; the orchestrator already truncates to 10
MAX_PROMPT_RESULTS = 10
MAX_SNIPPET_CHARS = 280


class GrokAdapterError(RuntimeError):
    """Raised when a Grok call fails or returns an unusable payload."""
    pass


class GrokAdapter:
    """
    Adapter for Grok API calls with error handling and logging.

    The adapter is the generative collaborator of the RAG orchestrator: it
    receives the query plus ranked results and returns structured insights.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        fast_model: Optional[str] = None,
        reasoning_model: Optional[str] = None,
    ) -> None:
        self.api_key = api_key or os.getenv("XAI_API_KEY")
        self.fast_model = fast_model or os.getenv("GROK_MODEL_FAST", "grok-4-1-fast")
        self.reasoning_model = reasoning_model or os.getenv("GROK_MODEL_REASONING", "grok-4-1-fast-reasoning")
        self._client: Optional[Client] = None

        if self.api_key:
            try:
                self._client = Client(api_key=self.api_key)
                logger.info("GrokAdapter initialized with live API client")
            except Exception as e:
                logger.warning(f"Failed to initialize xAI client: {e}")
                self._client = None
        else:
            logger.warning("GrokAdapter initialized without API key; generative calls will fail")

    @property
    def is_live(self) -> bool:
        return self._client is not None

    def _structured_call(self, *, model: str, system_prompt: str, user_prompt: str, schema: type[BaseModel]) -> Optional[BaseModel]:
        """
        Perform a structured chat call via xai-sdk.
        Returns None when no client is configured or the call fails.
        """
        if not self._client:
            logger.debug("No client available, returning None")
            return None

        start_time_ms = time.time() * 1000
        try:
            chat = self._client.chat.create(model=model)
            chat.append(system(system_prompt))
            chat.append(user(user_prompt))
            _, payload = chat.parse(schema)

            latency_ms = (time.time() * 1000) - start_time_ms
            logger.debug(f"Grok call to {model} for {schema.__name__} succeeded ({latency_ms:.0f}ms)")
            return payload
        except Exception as e:
            latency_ms = (time.time() * 1000) - start_time_ms
            logger.error(f"Grok call to {model} failed after {latency_ms:.0f}ms: {e}", exc_info=True)
            return None

    # ---------------------------------------------------------------------
    # Prompt building
    # ---------------------------------------------------------------------

    @staticmethod
    def _describe_result(index: int, result: RAGResult) -> str:
        snippet = result.content[:MAX_SNIPPET_CHARS]
        line = f"{index}. [{result.source_type}] (relevance {result.relevance:.2f}) {snippet}"

        source = result.source
        if isinstance(source, Post):
            line += (
                f" | platform={source.platform.value}, sentiment={source.sentiment.label.value},"
                f" engagement={source.engagement.total}, virality={source.virality_score:.2f}"
            )
        elif isinstance(source, Trend):
            line += (
                f" | category={source.category.value}, growth={source.metrics.growth_rate:.1f}/h,"
                f" velocity={source.metrics.velocity:.0f}/h, sentiment={source.sentiment.overall.value}"
            )

        if result.key_insights:
            line += f" | insights: {', '.join(result.key_insights)}"
        return line

    def build_prompt(self, query: str, results: List[RAGResult]) -> str:
        now = datetime.now(timezone.utc)
        if results:
            context = "\n".join(
                self._describe_result(i + 1, result)
                for i, result in enumerate(results[:MAX_PROMPT_RESULTS])
            )
        else:
            context = "No matching posts, trends or context records were found."

        return f"""Question: {query}
Current time: {now.strftime('%Y-%m-%d %H:%M')} UTC
Retrieved content ({len(results)} results, most relevant first):

{context}"""

    # ---------------------------------------------------------------------
    # Public high-level helpers
    # ---------------------------------------------------------------------

    def generate_insights(self, query: str, results: List[RAGResult]) -> RAGInsights:
        """
        Summarize ranked retrieval results into an answer for the query.
        Uses the reasoning model since answers span several sources;
        the fast model is enough when nothing was retrieved.

        Raises:
            GrokAdapterError: If the call fails or no client is configured
        """
        payload = self._structured_call(
            model=self.reasoning_model if results else self.fast_model,
            system_prompt="""You are a social media trend analyst answering questions for a research dashboard.
Answer only from the retrieved posts, trends and cultural context provided. Be concise and specific.""",
            user_prompt=self.build_prompt(query, results),
            schema=RAGInsights,
        )
        if isinstance(payload, RAGInsights):
            return payload
        raise GrokAdapterError(f"Grok API call failed for generate_insights({query!r}). No fallback available.")

    async def generate_insights_async(self, query: str, results: List[RAGResult]) -> RAGInsights:
        """
        Async version of generate_insights.
        Runs the blocking xai-sdk call in a thread pool to avoid blocking the event loop.
        """
        return await asyncio.to_thread(self.generate_insights, query, results)


__all__ = [
    "GrokAdapter",
    "GrokAdapterError",
    "RAGInsights",
]
