"""Tests for AI content caches and the content gate."""

import threading
from datetime import datetime, timezone

import pytest

from bizfit_api.content_cache import (
    ContentGate,
    ContentStoreError,
    InMemoryContentCache,
    SQLContentStore,
    TieredContentCache,
    requires_persistence,
)
from bizfit_api.database import check_connection, create_db_engine, create_session_factory
from bizfit_api.models import ContentType


@pytest.fixture
def broken_store():
    """A SQL store whose table was never created."""
    engine = create_db_engine("sqlite://")
    yield SQLContentStore(create_session_factory(engine))
    engine.dispose()


class TestInMemoryContentCache:
    """Tests for InMemoryContentCache."""

    def test_put_and_get(self):
        cache = InMemoryContentCache()
        record = cache.put(1, "preview", {"previewInsights": "Hello"})

        assert record.quiz_attempt_id == 1
        assert record.content_type == "preview"
        assert cache.get(1, "preview") == record
        assert cache.get(1, "fullReport") is None
        assert cache.get(2, "preview") is None

    def test_put_replaces(self):
        cache = InMemoryContentCache()
        cache.put(1, "preview", "first")
        cache.put(1, "preview", "second")
        assert cache.get(1, "preview").content == "second"
        assert cache.get_stats()["entries"] == 1

    def test_delete(self):
        cache = InMemoryContentCache()
        cache.put(1, "preview", "x")
        assert cache.delete(1, "preview") is True
        assert cache.delete(1, "preview") is False

    def test_list_for_attempt(self):
        cache = InMemoryContentCache()
        cache.put(1, "preview", "a")
        cache.put(1, "fullReport", "b")
        cache.put(2, "preview", "c")
        assert {r.content_type for r in cache.list_for_attempt(1)} == {"preview", "fullReport"}

    def test_clear_attempt_with_prefix(self):
        cache = InMemoryContentCache()
        cache.put(1, "model_Freelancing", "a")
        cache.put(1, "model_SaaS Development", "b")
        cache.put(1, "preview", "c")
        cache.put(2, "model_Freelancing", "d")

        assert cache.clear_attempt(1, "model_") == 2
        assert cache.get(1, "preview") is not None
        assert cache.get(2, "model_Freelancing") is not None

    def test_max_entries(self):
        cache = InMemoryContentCache(max_entries=2)
        for attempt in range(5):
            cache.put(attempt, "preview", "x")
        assert cache.get_stats()["entries"] == 2

    def test_stats(self):
        cache = InMemoryContentCache(ttl_seconds=60, max_entries=10)
        cache.put(1, "preview", "x")
        assert cache.get_stats() == {"entries": 1, "max_entries": 10, "ttl_seconds": 60}


class TestSQLContentStore:
    """Tests for SQLContentStore."""

    def test_put_and_get(self, sql_store):
        sql_store.put(5, "characteristics", {"characteristics": ["Driven"]})
        record = sql_store.get(5, "characteristics")

        assert record.content == {"characteristics": ["Driven"]}
        assert record.generated_at.tzinfo is not None
        assert sql_store.get(5, "preview") is None

    def test_upsert_keeps_one_row(self, sql_store):
        first = datetime(2024, 1, 1, tzinfo=timezone.utc)
        sql_store.put(5, "preview", "old", generated_at=first)
        sql_store.put(5, "preview", "new")

        records = sql_store.list_for_attempt(5)
        assert len(records) == 1
        assert records[0].content == "new"
        assert records[0].generated_at > first

    def test_delete(self, sql_store):
        sql_store.put(5, "preview", "x")
        assert sql_store.delete(5, "preview") is True
        assert sql_store.delete(5, "preview") is False

    def test_clear_attempt(self, sql_store):
        sql_store.put(5, "preview", "a")
        sql_store.put(5, "fullReport", "b")
        sql_store.put(6, "preview", "c")

        assert sql_store.clear_attempt(5) == 2
        assert sql_store.list_for_attempt(5) == []
        assert sql_store.get(6, "preview") is not None

    def test_clear_prefix_is_literal(self, sql_store):
        """The underscore in a prefix matches only an underscore."""
        sql_store.put(5, "model_Freelancing", "a")
        sql_store.put(5, "modelXFreelancing", "b")

        assert sql_store.clear_attempt(5, "model_") == 1
        assert sql_store.get(5, "modelXFreelancing") is not None

    def test_errors_wrapped(self, broken_store):
        with pytest.raises(ContentStoreError):
            broken_store.get(1, "preview")
        with pytest.raises(ContentStoreError):
            broken_store.put(1, "preview", "x")
        with pytest.raises(ContentStoreError):
            broken_store.clear_attempt(1)

    def test_check_connection(self):
        engine = create_db_engine("sqlite://")
        assert check_connection(engine) is True
        engine.dispose()


class TestTieredContentCache:
    """Tests for the fast/persistent cascade."""

    def test_persistent_hit_backfills_fast_tier(self, sql_store):
        fast = InMemoryContentCache()
        tiered = TieredContentCache(fast, sql_store)
        sql_store.put(3, "fullReport", {"a": 1})

        assert fast.get(3, "fullReport") is None
        assert tiered.get(3, "fullReport").content == {"a": 1}
        assert fast.get(3, "fullReport").content == {"a": 1}

    def test_put_writes_both_tiers(self, sql_store):
        fast = InMemoryContentCache()
        tiered = TieredContentCache(fast, sql_store)
        tiered.put(3, "preview", "x")

        assert fast.get(3, "preview").content == "x"
        assert sql_store.get(3, "preview").content == "x"

    def test_clear_both_tiers(self, sql_store):
        fast = InMemoryContentCache()
        tiered = TieredContentCache(fast, sql_store)
        tiered.put(3, "model_Freelancing", "x")
        tiered.put(3, "preview", "y")

        assert tiered.clear_attempt(3, "model_") == 1
        assert fast.get(3, "model_Freelancing") is None
        assert tiered.get(3, "preview").content == "y"

    def test_persistent_failure_propagates(self, broken_store):
        tiered = TieredContentCache(InMemoryContentCache(), broken_store)
        with pytest.raises(ContentStoreError):
            tiered.put(3, "preview", "x")


class TestContentGate:
    """Tests for the generate-or-reuse decision."""

    def test_requires_persistence(self):
        assert requires_persistence(ContentType.PREVIEW) is False
        assert requires_persistence(ContentType.FULL_REPORT) is True
        assert requires_persistence("model_Freelancing") is True

    @pytest.mark.asyncio
    async def test_no_answers(self, memory_gate):
        decision = await memory_gate.should_generate(ContentType.PREVIEW, None, 1)
        assert decision.should_generate is False
        assert decision.reason == "No quiz data available"

    @pytest.mark.asyncio
    async def test_no_attempt_for_persisted_type(self, memory_gate, answers):
        decision = await memory_gate.should_generate(ContentType.FULL_REPORT, answers)
        assert decision.should_generate is False
        assert decision.reason == "No quiz attempt ID; content could not be attributed"

    @pytest.mark.asyncio
    async def test_preview_without_attempt(self, memory_gate, answers):
        decision = await memory_gate.should_generate(ContentType.PREVIEW, answers)
        assert decision.should_generate is True

    @pytest.mark.asyncio
    async def test_existing_content(self, memory_gate, answers):
        await memory_gate.save(1, ContentType.FULL_REPORT, {"a": 1})
        decision = await memory_gate.should_generate(ContentType.FULL_REPORT, answers, 1)

        assert decision.should_generate is False
        assert decision.reason == "AI content already exists"
        assert decision.existing_content == {"a": 1}

    @pytest.mark.asyncio
    async def test_nothing_stored(self, memory_gate, answers):
        decision = await memory_gate.should_generate(ContentType.FULL_REPORT, answers, 1)
        assert decision.should_generate is True
        assert decision.reason == "No existing AI content found"
        assert decision.existing_content is None

    @pytest.mark.asyncio
    async def test_get_and_put(self, memory_gate):
        record = await memory_gate.put(4, ContentType.PREVIEW, "text")
        assert record.quiz_attempt_id == 4
        assert (await memory_gate.get(4, ContentType.PREVIEW)).content == "text"
        assert await memory_gate.get(4, ContentType.FULL_REPORT) is None

    @pytest.mark.asyncio
    async def test_store_calls_leave_the_event_loop_thread(self, answers):
        """Backing store calls run in a worker thread."""
        threads = []

        class RecordingCache(InMemoryContentCache):
            def get(self, quiz_attempt_id, content_type):
                threads.append(threading.get_ident())
                return super().get(quiz_attempt_id, content_type)

            def put(self, quiz_attempt_id, content_type, content, generated_at=None):
                threads.append(threading.get_ident())
                return super().put(quiz_attempt_id, content_type, content, generated_at)

        gate = ContentGate(RecordingCache())
        await gate.save(1, ContentType.FULL_REPORT, {"a": 1})
        await gate.should_generate(ContentType.FULL_REPORT, answers, 1)

        assert len(threads) == 2
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_store_error_is_a_miss(self, broken_store, answers):
        """A failing store never blocks generation."""
        gate = ContentGate(broken_store)
        decision = await gate.should_generate(ContentType.CHARACTERISTICS, answers, 1)
        assert decision.should_generate is True
        assert await gate.lookup(1, ContentType.CHARACTERISTICS) is None

    @pytest.mark.asyncio
    async def test_get_error_propagates(self, broken_store):
        with pytest.raises(ContentStoreError):
            await ContentGate(broken_store).get(1, ContentType.PREVIEW)

    @pytest.mark.asyncio
    async def test_save_without_attempt(self, memory_gate):
        assert await memory_gate.save(None, ContentType.PREVIEW, "x") is False

    @pytest.mark.asyncio
    async def test_save_failure_not_raised(self, broken_store):
        assert await ContentGate(broken_store).save(1, ContentType.PREVIEW, "x") is False

    @pytest.mark.asyncio
    async def test_clear(self, memory_gate):
        await memory_gate.save(1, "model_Freelancing", "a")
        await memory_gate.save(1, ContentType.PREVIEW, "b")
        assert await memory_gate.clear(1, "model_") == 1
        assert await memory_gate.clear(1) == 1

    @pytest.mark.asyncio
    async def test_clear_failure_propagates(self, broken_store):
        with pytest.raises(ContentStoreError):
            await ContentGate(broken_store).clear(1)
