"""AI content cache and the generate-or-reuse gate.

Generated content is keyed by ``(quiz_attempt_id, content_type)``; there is at
most one record per key and a second ``put`` replaces the first.

Backings:
- ``InMemoryContentCache``: thread-safe TTL cache, process local.
- ``SQLContentStore``: the ``ai_content`` table, the source of truth.
- ``TieredContentCache``: reads the fast tier, then the persistent tier and
  backfills the fast tier on a hit; writes go to both.

``ContentGate`` sits on top of any backing and decides whether a piece of
content should be generated at all. The check is advisory: two concurrent
requests for the same uncached key may both generate, and the later write wins.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, cast

import structlog
from cachetools import TTLCache
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bizfit_api.database import AIContent
from bizfit_api.models import AIContentRecord, ContentType, GenerationDecision, QuizAnswers
from bizfit_api.observability import record_cache_lookup

logger = structlog.get_logger()

CacheKey = tuple[int, str]


class ContentStoreError(Exception):
    """Raised when the backing store cannot be read or written."""

    pass


class ContentCache(ABC):
    """Key-value store for generated AI content."""

    @abstractmethod
    def get(self, quiz_attempt_id: int, content_type: str) -> AIContentRecord | None:
        """Return the stored record, or None."""

    @abstractmethod
    def put(
        self,
        quiz_attempt_id: int,
        content_type: str,
        content: Any,
        generated_at: datetime | None = None,
    ) -> AIContentRecord:
        """Store content, replacing any existing record for the key."""

    @abstractmethod
    def delete(self, quiz_attempt_id: int, content_type: str) -> bool:
        """Delete one record. Returns True if it existed."""

    @abstractmethod
    def list_for_attempt(self, quiz_attempt_id: int) -> list[AIContentRecord]:
        """All records stored for a quiz attempt."""

    @abstractmethod
    def clear_attempt(self, quiz_attempt_id: int, prefix: str | None = None) -> int:
        """Delete all records for an attempt, optionally only types with ``prefix``."""


class InMemoryContentCache(ContentCache):
    """Thread-safe in-memory content cache with automatic expiration."""

    def __init__(self, ttl_seconds: int = 3600, max_entries: int = 5000):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._cache: TTLCache[CacheKey, AIContentRecord] = TTLCache(
            maxsize=max_entries,
            ttl=ttl_seconds,
        )
        self._lock = threading.Lock()

    def get(self, quiz_attempt_id: int, content_type: str) -> AIContentRecord | None:
        with self._lock:
            result = self._cache.get((quiz_attempt_id, content_type))
            return cast(AIContentRecord, result) if result is not None else None

    def put(
        self,
        quiz_attempt_id: int,
        content_type: str,
        content: Any,
        generated_at: datetime | None = None,
    ) -> AIContentRecord:
        record = AIContentRecord(
            quiz_attempt_id=quiz_attempt_id,
            content_type=content_type,
            content=content,
            generated_at=generated_at or datetime.now(timezone.utc),
        )
        with self._lock:
            self._cache[(quiz_attempt_id, content_type)] = record
        return record

    def delete(self, quiz_attempt_id: int, content_type: str) -> bool:
        with self._lock:
            return self._cache.pop((quiz_attempt_id, content_type), None) is not None

    def list_for_attempt(self, quiz_attempt_id: int) -> list[AIContentRecord]:
        with self._lock:
            return [record for key, record in self._cache.items() if key[0] == quiz_attempt_id]

    def clear_attempt(self, quiz_attempt_id: int, prefix: str | None = None) -> int:
        with self._lock:
            keys = [
                key
                for key in list(self._cache.keys())
                if key[0] == quiz_attempt_id and (prefix is None or key[1].startswith(prefix))
            ]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def get_stats(self) -> dict:
        """Get statistics about the cache."""
        with self._lock:
            return {
                "entries": len(self._cache),
                "max_entries": self._max_entries,
                "ttl_seconds": self._ttl,
            }


def _to_record(row: AIContent) -> AIContentRecord:
    generated_at = row.generated_at
    # SQLite drops tzinfo on the way back
    if generated_at.tzinfo is None:
        generated_at = generated_at.replace(tzinfo=timezone.utc)
    return AIContentRecord(
        quiz_attempt_id=row.quiz_attempt_id,
        content_type=row.content_type,
        content=row.content,
        generated_at=generated_at,
    )


class SQLContentStore(ContentCache):
    """Content store backed by the ``ai_content`` table.

    SQLAlchemy errors are re-raised as ``ContentStoreError``.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _select(quiz_attempt_id: int, content_type: str):
        return select(AIContent).where(
            AIContent.quiz_attempt_id == quiz_attempt_id,
            AIContent.content_type == content_type,
        )

    def get(self, quiz_attempt_id: int, content_type: str) -> AIContentRecord | None:
        try:
            with self._session_factory() as session:
                row = session.scalar(self._select(quiz_attempt_id, content_type))
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            raise ContentStoreError(f"Failed to read AI content: {e}") from e

    def _upsert(
        self,
        session: Session,
        quiz_attempt_id: int,
        content_type: str,
        content: Any,
        generated_at: datetime,
    ) -> AIContent:
        row = session.scalar(self._select(quiz_attempt_id, content_type))
        if row is None:
            row = AIContent(
                quiz_attempt_id=quiz_attempt_id,
                content_type=content_type,
                content=content,
                generated_at=generated_at,
            )
            session.add(row)
        else:
            row.content = content
            row.generated_at = generated_at
        session.commit()
        return row

    def put(
        self,
        quiz_attempt_id: int,
        content_type: str,
        content: Any,
        generated_at: datetime | None = None,
    ) -> AIContentRecord:
        generated_at = generated_at or datetime.now(timezone.utc)
        try:
            with self._session_factory() as session:
                try:
                    row = self._upsert(session, quiz_attempt_id, content_type, content, generated_at)
                except IntegrityError:
                    # A concurrent writer inserted the same key first; latest write wins
                    session.rollback()
                    row = self._upsert(session, quiz_attempt_id, content_type, content, generated_at)
                return _to_record(row)
        except SQLAlchemyError as e:
            raise ContentStoreError(f"Failed to save AI content: {e}") from e

    def delete(self, quiz_attempt_id: int, content_type: str) -> bool:
        try:
            with self._session_factory() as session:
                result = session.execute(
                    delete(AIContent).where(
                        AIContent.quiz_attempt_id == quiz_attempt_id,
                        AIContent.content_type == content_type,
                    )
                )
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise ContentStoreError(f"Failed to delete AI content: {e}") from e

    def list_for_attempt(self, quiz_attempt_id: int) -> list[AIContentRecord]:
        try:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(AIContent)
                    .where(AIContent.quiz_attempt_id == quiz_attempt_id)
                    .order_by(AIContent.id)
                )
                return [_to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise ContentStoreError(f"Failed to list AI content: {e}") from e

    def clear_attempt(self, quiz_attempt_id: int, prefix: str | None = None) -> int:
        statement = delete(AIContent).where(AIContent.quiz_attempt_id == quiz_attempt_id)
        if prefix is not None:
            statement = statement.where(AIContent.content_type.startswith(prefix, autoescape=True))
        try:
            with self._session_factory() as session:
                result = session.execute(statement)
                session.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            raise ContentStoreError(f"Failed to clear AI content: {e}") from e


class TieredContentCache(ContentCache):
    """Fast tier in front of a persistent tier."""

    def __init__(self, fast: ContentCache, persistent: ContentCache):
        self.fast = fast
        self.persistent = persistent

    def get(self, quiz_attempt_id: int, content_type: str) -> AIContentRecord | None:
        record = self.fast.get(quiz_attempt_id, content_type)
        if record is not None:
            return record

        record = self.persistent.get(quiz_attempt_id, content_type)
        if record is not None:
            self.fast.put(quiz_attempt_id, content_type, record.content, record.generated_at)
        return record

    def put(
        self,
        quiz_attempt_id: int,
        content_type: str,
        content: Any,
        generated_at: datetime | None = None,
    ) -> AIContentRecord:
        record = self.persistent.put(quiz_attempt_id, content_type, content, generated_at)
        self.fast.put(quiz_attempt_id, content_type, content, record.generated_at)
        return record

    def delete(self, quiz_attempt_id: int, content_type: str) -> bool:
        self.fast.delete(quiz_attempt_id, content_type)
        return self.persistent.delete(quiz_attempt_id, content_type)

    def list_for_attempt(self, quiz_attempt_id: int) -> list[AIContentRecord]:
        return self.persistent.list_for_attempt(quiz_attempt_id)

    def clear_attempt(self, quiz_attempt_id: int, prefix: str | None = None) -> int:
        self.fast.clear_attempt(quiz_attempt_id, prefix)
        return self.persistent.clear_attempt(quiz_attempt_id, prefix)


# Content types that may be generated without a quiz attempt to attach them to
PERSISTENCE_OPTIONAL_TYPES = frozenset({ContentType.PREVIEW.value})


def requires_persistence(content_type: str) -> bool:
    return content_type not in PERSISTENCE_OPTIONAL_TYPES


class ContentGate:
    """Decides whether AI content should be generated, and saves what was.

    The backings are synchronous; every call into them runs in a worker thread
    so a slow database never blocks the event loop.
    """

    def __init__(self, cache: ContentCache):
        self.cache = cache

    async def get(self, quiz_attempt_id: int, content_type: str) -> AIContentRecord | None:
        """Stored record for the key. Store errors propagate."""
        return await asyncio.to_thread(self.cache.get, quiz_attempt_id, content_type)

    async def put(self, quiz_attempt_id: int, content_type: str, content: Any) -> AIContentRecord:
        """Store content for the key. Store errors propagate."""
        return await asyncio.to_thread(self.cache.put, quiz_attempt_id, content_type, content)

    async def lookup(self, quiz_attempt_id: int | None, content_type: str) -> Any | None:
        """Stored content for the key, or None on a miss or a store error."""
        if quiz_attempt_id is None:
            return None
        try:
            record = await self.get(quiz_attempt_id, content_type)
        except ContentStoreError as e:
            logger.warning(
                "AI content lookup failed, treating as miss",
                quiz_attempt_id=quiz_attempt_id,
                content_type=content_type,
                error=str(e),
            )
            record_cache_lookup(content_type, "error")
            return None

        if record is None:
            record_cache_lookup(content_type, "miss")
            return None

        record_cache_lookup(content_type, "hit")
        return record.content

    async def should_generate(
        self,
        content_type: str,
        answers: QuizAnswers | None,
        quiz_attempt_id: int | None = None,
    ) -> GenerationDecision:
        """Check whether content for the key needs to be generated.

        Decision order: no answers, then no attempt id for a persisted type,
        then existing content, then generate.
        """
        if answers is None:
            return GenerationDecision(should_generate=False, reason="No quiz data available")

        if quiz_attempt_id is None:
            if requires_persistence(content_type):
                return GenerationDecision(
                    should_generate=False,
                    reason="No quiz attempt ID; content could not be attributed",
                )
            return GenerationDecision(
                should_generate=True,
                reason="Preview content can be generated without a quiz attempt",
            )

        existing = await self.lookup(quiz_attempt_id, content_type)
        if existing is not None:
            logger.info(
                "Using existing AI content",
                quiz_attempt_id=quiz_attempt_id,
                content_type=content_type,
            )
            return GenerationDecision(
                should_generate=False,
                reason="AI content already exists",
                existing_content=existing,
            )

        return GenerationDecision(should_generate=True, reason="No existing AI content found")

    async def save(self, quiz_attempt_id: int | None, content_type: str, content: Any) -> bool:
        """Persist generated or fallback content. Failures are logged, not raised."""
        if quiz_attempt_id is None:
            return False
        try:
            await self.put(quiz_attempt_id, content_type, content)
        except ContentStoreError as e:
            logger.error(
                "Failed to save AI content",
                quiz_attempt_id=quiz_attempt_id,
                content_type=content_type,
                error=str(e),
            )
            return False
        logger.info("Saved AI content", quiz_attempt_id=quiz_attempt_id, content_type=content_type)
        return True

    async def clear(self, quiz_attempt_id: int, prefix: str | None = None) -> int:
        """Delete stored content for an attempt. Store errors propagate."""
        deleted = await asyncio.to_thread(self.cache.clear_attempt, quiz_attempt_id, prefix)
        logger.info(
            "Cleared AI content",
            quiz_attempt_id=quiz_attempt_id,
            prefix=prefix,
            deleted=deleted,
        )
        return deleted
