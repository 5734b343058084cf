"""
SQLite store for posts, trends, cultural context records and RAG queries.

Complex sub-structures are stored as JSON blobs; a few flat columns are kept
alongside them for filtering. Every public read/write has an *_async twin that
runs it in a worker thread so callers on the event loop never block.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from adapter.models import (
    CulturalContext,
    Engagement,
    Post,
    PostMetadata,
    QueryFilters,
    RAGQuery,
    Sentiment,
    Trend,
    TrendCategory,
)

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent / "db.sqlite3"
SCHEMA_PATH = Path(__file__).parent / "schema.sql"

TABLES = ("rag_queries", "cultural_contexts", "trends", "posts")


class StoreError(Exception):
    """Raised when the underlying database rejects or cannot serve a request."""
    pass


def _like(value: str) -> str:
    """Build a case-insensitive substring LIKE pattern (ESCAPE '\\')."""
    escaped = value.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


class Database:
    """
    Store for the trend/RAG backend.

    Usage:
        db = Database("/tmp/trends.sqlite3")
        db.init_db()
        db.save_posts(posts)
        recent = db.get_posts_since(datetime.now(timezone.utc) - timedelta(hours=24))
    """

    def __init__(self, path: Path | str = DB_PATH):
        self.path = Path(path)

    def init_db(self, reset: bool = False) -> None:
        """
        Create the schema.

        Args:
            reset: If True, drops all existing tables and recreates them (fresh start).
                   If False, only creates tables if they don't exist (preserves data).
        """
        with self.connect() as conn:
            if reset:
                for table in TABLES:
                    conn.execute(f"DROP TABLE IF EXISTS {table}")
            conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a committed-or-rolled-back connection."""
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Posts

    @staticmethod
    def _post_row(post: Post) -> Tuple[Any, ...]:
        return (
            post.id,
            post.platform.value,
            post.content,
            post.author,
            post.author_id,
            _iso(post.timestamp),
            post.timestamp.timestamp(),
            post.engagement.total,
            post.sentiment.label.value,
            post.metadata.language,
            json.dumps([tag.lower() for tag in post.metadata.hashtags]),
            post.engagement.model_dump_json(),
            post.metadata.model_dump_json(),
            post.sentiment.model_dump_json(),
            post.virality_score,
            _iso(post.created_at),
            _iso(post.updated_at),
        )

    @staticmethod
    def _row_to_post(row: sqlite3.Row) -> Post:
        return Post(
            id=row["id"],
            platform=row["platform"],
            content=row["content"],
            author=row["author"],
            author_id=row["author_id"],
            timestamp=datetime.fromisoformat(row["published_at"]),
            engagement=Engagement.model_validate_json(row["engagement"]),
            metadata=PostMetadata.model_validate_json(row["metadata"]),
            sentiment=Sentiment.model_validate_json(row["sentiment"]),
            virality_score=row["virality_score"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def save_posts(self, posts: Iterable[Post]) -> int:
        """Insert posts, replacing the scores of posts that were re-processed."""
        rows = [self._post_row(post) for post in posts]
        if not rows:
            return 0

        with self.connect() as db:
            db.executemany(
                """INSERT INTO posts
                   (id, platform, content, author, author_id, published_at, timestamp,
                    total_engagement, sentiment_label, language, hashtags,
                    engagement, metadata, sentiment, virality_score, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                   content = excluded.content,
                   total_engagement = excluded.total_engagement,
                   sentiment_label = excluded.sentiment_label,
                   hashtags = excluded.hashtags,
                   engagement = excluded.engagement,
                   metadata = excluded.metadata,
                   sentiment = excluded.sentiment,
                   virality_score = excluded.virality_score,
                   updated_at = excluded.updated_at""",
                rows,
            )
        return len(rows)

    def get_posts_since(self, start: datetime) -> List[Post]:
        """Get all posts published at or after start, newest first."""
        with self.connect() as db:
            cursor = db.execute(
                "SELECT * FROM posts WHERE timestamp >= ? ORDER BY timestamp DESC, id",
                (start.timestamp(),),
            )
            return [self._row_to_post(row) for row in cursor.fetchall()]

    def search_posts(self, query: str, filters: Optional[QueryFilters] = None, limit: int = 20) -> List[Post]:
        """
        Find posts whose content contains the query or that carry it as a hashtag.

        Args:
            query: Free-text query (matched case-insensitively)
            filters: Optional platform / date range / engagement / sentiment / language filters
            limit: Maximum posts to return

        Returns:
            Matching posts, newest first
        """
        term = query.strip().lower()
        tag = term if term.startswith("#") else f"#{term}"

        clauses = [
            "(LOWER(content) LIKE ? ESCAPE '\\' "
            "OR EXISTS (SELECT 1 FROM json_each(posts.hashtags) WHERE json_each.value IN (?, ?)))"
        ]
        params: List[Any] = [_like(term), term, tag]

        if filters:
            if filters.platforms:
                values = [p.value for p in filters.platforms]
                clauses.append(f"platform IN ({_placeholders(values)})")
                params.extend(values)
            if filters.date_range:
                clauses.append("timestamp BETWEEN ? AND ?")
                params.extend([filters.date_range.start.timestamp(), filters.date_range.end.timestamp()])
            if filters.min_engagement:
                clauses.append("total_engagement >= ?")
                params.append(filters.min_engagement)
            if filters.sentiment:
                values = [s.value for s in filters.sentiment]
                clauses.append(f"sentiment_label IN ({_placeholders(values)})")
                params.extend(values)
            if filters.languages:
                clauses.append(f"language IN ({_placeholders(filters.languages)})")
                params.extend(filters.languages)

        params.append(limit)
        with self.connect() as db:
            cursor = db.execute(
                f"SELECT * FROM posts WHERE {' AND '.join(clauses)} ORDER BY timestamp DESC, id LIMIT ?",
                params,
            )
            return [self._row_to_post(row) for row in cursor.fetchall()]

    def count_posts(self) -> int:
        with self.connect() as db:
            return db.execute("SELECT COUNT(*) FROM posts").fetchone()[0]

    # Trends

    def replace_trends(self, trends: Iterable[Trend]) -> int:
        """Supersede the stored trends with a new analysis run's output."""
        rows = [
            (
                trend.id,
                trend.topic,
                trend.category.value,
                trend.platform.value,
                trend.metrics.velocity,
                json.dumps(trend.related_topics),
                trend.model_dump_json(),
                _iso(trend.created_at),
            )
            for trend in trends
        ]
        with self.connect() as db:
            db.execute("DELETE FROM trends")
            db.executemany(
                """INSERT INTO trends (id, topic, category, platform, velocity, related_topics, data, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
        return len(rows)

    def get_trends(self, limit: int = 50) -> List[Trend]:
        """Get the stored trends, highest velocity first."""
        with self.connect() as db:
            cursor = db.execute("SELECT data FROM trends ORDER BY velocity DESC LIMIT ?", (limit,))
            return [Trend.model_validate_json(row["data"]) for row in cursor.fetchall()]

    def search_trends(
        self,
        query: str,
        categories: Optional[Sequence[TrendCategory]] = None,
        limit: int = 10,
    ) -> List[Trend]:
        """Find trends whose topic or related topics contain the query."""
        pattern = _like(query.strip())
        clauses = [
            "(LOWER(topic) LIKE ? ESCAPE '\\' "
            "OR EXISTS (SELECT 1 FROM json_each(trends.related_topics) "
            "WHERE LOWER(json_each.value) LIKE ? ESCAPE '\\'))"
        ]
        params: List[Any] = [pattern, pattern]

        if categories:
            values = [c.value for c in categories]
            clauses.append(f"category IN ({_placeholders(values)})")
            params.extend(values)

        params.append(limit)
        with self.connect() as db:
            cursor = db.execute(
                f"SELECT data FROM trends WHERE {' AND '.join(clauses)} ORDER BY velocity DESC LIMIT ?",
                params,
            )
            return [Trend.model_validate_json(row["data"]) for row in cursor.fetchall()]

    # Cultural context

    def save_cultural_context(self, context: CulturalContext) -> None:
        with self.connect() as db:
            db.execute(
                """INSERT INTO cultural_contexts (id, topic, description, data)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                   topic = excluded.topic,
                   description = excluded.description,
                   data = excluded.data""",
                (context.id, context.topic, context.description, context.model_dump_json()),
            )

    def search_cultural_contexts(self, query: str, limit: int = 5) -> List[CulturalContext]:
        """Find context records whose topic or description contains the query."""
        pattern = _like(query.strip())
        with self.connect() as db:
            cursor = db.execute(
                """SELECT data FROM cultural_contexts
                   WHERE LOWER(topic) LIKE ? ESCAPE '\\' OR LOWER(description) LIKE ? ESCAPE '\\'
                   ORDER BY id
                   LIMIT ?""",
                (pattern, pattern, limit),
            )
            return [CulturalContext.model_validate_json(row["data"]) for row in cursor.fetchall()]

    # RAG queries

    def save_rag_query(self, rag_query: RAGQuery) -> None:
        dumped: Dict[str, Any] = rag_query.model_dump(mode="json")
        with self.connect() as db:
            db.execute(
                """INSERT INTO rag_queries (id, query, results, insights, metadata, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    rag_query.id,
                    rag_query.query,
                    json.dumps(dumped["results"]),
                    json.dumps(dumped["insights"]) if dumped["insights"] is not None else None,
                    json.dumps(dumped["metadata"]),
                    _iso(rag_query.created_at),
                ),
            )

    def get_rag_query(self, query_id: str) -> Optional[RAGQuery]:
        with self.connect() as db:
            row = db.execute("SELECT * FROM rag_queries WHERE id = ?", (query_id,)).fetchone()
        if row is None:
            return None
        return RAGQuery(
            id=row["id"],
            query=row["query"],
            results=json.loads(row["results"]),
            insights=json.loads(row["insights"]) if row["insights"] else None,
            metadata=json.loads(row["metadata"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # -------------------------------------------------------------------------
    # Async versions (run blocking sqlite calls in a thread pool)
    # -------------------------------------------------------------------------

    async def save_posts_async(self, posts: Iterable[Post]) -> int:
        return await asyncio.to_thread(self.save_posts, list(posts))

    async def get_posts_since_async(self, start: datetime) -> List[Post]:
        return await asyncio.to_thread(self.get_posts_since, start)

    async def search_posts_async(self, query: str, filters: Optional[QueryFilters] = None, limit: int = 20) -> List[Post]:
        return await asyncio.to_thread(self.search_posts, query, filters, limit)

    async def count_posts_async(self) -> int:
        return await asyncio.to_thread(self.count_posts)

    async def replace_trends_async(self, trends: Iterable[Trend]) -> int:
        return await asyncio.to_thread(self.replace_trends, list(trends))

    async def get_trends_async(self, limit: int = 50) -> List[Trend]:
        return await asyncio.to_thread(self.get_trends, limit)

    async def search_trends_async(
        self,
        query: str,
        categories: Optional[Sequence[TrendCategory]] = None,
        limit: int = 10,
    ) -> List[Trend]:
        return await asyncio.to_thread(self.search_trends, query, categories, limit)

    async def search_cultural_contexts_async(self, query: str, limit: int = 5) -> List[CulturalContext]:
        return await asyncio.to_thread(self.search_cultural_contexts, query, limit)

    async def save_rag_query_async(self, rag_query: RAGQuery) -> None:
        await asyncio.to_thread(self.save_rag_query, rag_query)

    async def get_rag_query_async(self, query_id: str) -> Optional[RAGQuery]:
        return await asyncio.to_thread(self.get_rag_query, query_id)


__all__ = ["Database", "StoreError", "DB_PATH"]
