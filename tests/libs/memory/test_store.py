"""
Tests for the in-memory conversation store.

Tests verify:
- Session creation and lazy creation on write
- Per-session message cap (oldest dropped first)
- Recent-context window and unknown sessions
- Idle expiry sweep with an injected clock
- Concurrent appends on one session
- Redis backing hydration and degraded mode
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from libs.memory.short_term import RedisConversationBacking
from libs.memory.store import ConversationStore
from libs.models.chat import Message


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ConversationStore(max_messages=10, idle_timeout=timedelta(minutes=60), clock=clock)


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_session_returns_unique_ids(self, store):
        first = store.create_session()
        second = store.create_session()

        assert first != second
        assert first in store and second in store
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_new_session_is_empty(self, store):
        session_id = store.create_session()

        session = await store.get_session(session_id)

        assert session is not None
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_add_message_creates_unknown_session(self, store):
        await store.add_message("client-chosen-id", "user", "Where is my order?")

        context = await store.get_recent_context("client-chosen-id")

        assert len(context) == 1
        assert context[0].role == "user"
        assert context[0].content == "Where is my order?"

    @pytest.mark.asyncio
    async def test_unknown_session_has_no_context(self, store):
        assert await store.get_recent_context("nope", count=4) == []
        assert "nope" not in store

    @pytest.mark.asyncio
    async def test_get_session_unknown_returns_none(self, store):
        assert await store.get_session("nope") is None


    @pytest.mark.asyncio
    async def test_unknown_reads_leave_no_lock_behind(self, store):
        for i in range(100):
            assert await store.get_recent_context(f"ghost-{i}") == []
            assert await store.get_session(f"ghost-{i}") is None

        assert store._locks == {}


class TestMessageWindow:
    @pytest.mark.asyncio
    async def test_cap_drops_oldest_first(self, store):
        session_id = store.create_session()
        for i in range(15):
            await store.add_message(session_id, "user" if i % 2 == 0 else "assistant", f"m{i}")

        session = await store.get_session(session_id)

        assert len(session.messages) == 10
        assert [m.content for m in session.messages] == [f"m{i}" for i in range(5, 15)]

    @pytest.mark.asyncio
    async def test_recent_context_returns_last_n_in_order(self, store):
        session_id = store.create_session()
        for i in range(6):
            await store.add_message(session_id, "user", f"m{i}")

        context = await store.get_recent_context(session_id, count=4)

        assert [m.content for m in context] == ["m2", "m3", "m4", "m5"]

    @pytest.mark.asyncio
    async def test_recent_context_shorter_history(self, store):
        session_id = store.create_session()
        await store.add_message(session_id, "user", "only one")

        context = await store.get_recent_context(session_id, count=4)

        assert [m.content for m in context] == ["only one"]

    @pytest.mark.asyncio
    async def test_non_positive_count_returns_empty(self, store):
        session_id = store.create_session()
        await store.add_message(session_id, "user", "hello")

        assert await store.get_recent_context(session_id, count=0) == []

    @pytest.mark.asyncio
    async def test_returned_context_is_a_copy(self, store):
        session_id = store.create_session()
        await store.add_message(session_id, "user", "hello")

        context = await store.get_recent_context(session_id)
        context.clear()

        assert len(await store.get_recent_context(session_id)) == 1


class TestExpiry:
    @pytest.mark.asyncio
    async def test_sweep_removes_idle_sessions(self, store, clock):
        stale = store.create_session()
        clock.advance(minutes=45)
        fresh = store.create_session()
        clock.advance(minutes=20)

        removed = store.sweep()

        assert removed == 1
        assert stale not in store
        assert fresh in store

    @pytest.mark.asyncio
    async def test_activity_refreshes_session(self, store, clock):
        session_id = store.create_session()
        clock.advance(minutes=50)
        await store.get_recent_context(session_id)
        clock.advance(minutes=50)

        assert store.sweep() == 0
        assert session_id in store

    @pytest.mark.asyncio
    async def test_write_after_expiry_starts_fresh_session(self, store, clock):
        session_id = store.create_session()
        await store.add_message(session_id, "user", "old question")
        clock.advance(minutes=61)
        store.sweep()

        await store.add_message(session_id, "user", "new question")

        context = await store.get_recent_context(session_id)
        assert [m.content for m in context] == ["new question"]

    @pytest.mark.asyncio
    async def test_sweeper_task_start_and_stop(self, clock):
        store = ConversationStore(
            idle_timeout=timedelta(minutes=60),
            sweep_interval_seconds=0.01,
            clock=clock,
        )
        store.create_session()
        clock.advance(minutes=90)

        store.start_sweeper()
        await asyncio.sleep(0.05)
        await store.stop_sweeper()

        assert len(store) == 0


    @pytest.mark.asyncio
    async def test_sweep_drops_session_lock(self, store, clock):
        session_id = store.create_session()
        await store.add_message(session_id, "user", "hello")
        assert session_id in store._locks
        clock.advance(minutes=61)

        store.sweep()

        assert session_id not in store._locks


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self):
        store = ConversationStore(max_messages=100)
        session_id = store.create_session()

        await asyncio.gather(
            *(store.add_message(session_id, "user", f"m{i}") for i in range(50))
        )

        session = await store.get_session(session_id)
        assert len(session.messages) == 50
        assert {m.content for m in session.messages} == {f"m{i}" for i in range(50)}

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, store):
        first = store.create_session()
        second = store.create_session()

        await asyncio.gather(
            store.add_message(first, "user", "about returns"),
            store.add_message(second, "user", "about shipping"),
        )

        assert [m.content for m in await store.get_recent_context(first)] == ["about returns"]
        assert [m.content for m in await store.get_recent_context(second)] == ["about shipping"]


    @pytest.mark.asyncio
    async def test_mixed_reads_and_writes_on_new_session(self):
        store = ConversationStore(max_messages=100)

        await asyncio.gather(
            *(store.get_recent_context("client-session") for _ in range(10)),
            *(store.add_message("client-session", "user", f"m{i}") for i in range(20)),
            *(store.get_recent_context("client-session") for _ in range(10)),
        )

        session = await store.get_session("client-session")
        assert len(session.messages) == 20
        assert list(store._locks) == ["client-session"]


class TestBacking:
    @pytest.mark.asyncio
    async def test_default_mode_is_memory(self, store):
        assert store.mode == "memory"
        assert not store.is_degraded

    @pytest.mark.asyncio
    async def test_writes_are_persisted_and_hydrated(self, redis_client):
        backing = RedisConversationBacking(redis_client, max_messages=10)
        writer = ConversationStore(backing=backing)
        await writer.add_message("s1", "user", "Do you ship abroad?")
        await writer.add_message("s1", "assistant", "Yes, to Canada and Mexico.")

        # A fresh store (new process) sees the same history
        reader = ConversationStore(backing=backing)
        context = await reader.get_recent_context("s1")

        assert reader.mode == "redis"
        assert [m.content for m in context] == ["Do you ship abroad?", "Yes, to Canada and Mexico."]

    @pytest.mark.asyncio
    async def test_backing_write_failure_keeps_memory_copy(self):
        backing = AsyncMock(spec=RedisConversationBacking)
        backing.load.return_value = []
        backing.append.side_effect = ConnectionError("redis down")
        store = ConversationStore(backing=backing)

        await store.add_message("s1", "user", "hello there")

        context = await store.get_recent_context("s1")
        assert [m.content for m in context] == ["hello there"]

    @pytest.mark.asyncio
    async def test_backing_load_failure_treated_as_miss(self):
        backing = AsyncMock(spec=RedisConversationBacking)
        backing.load.side_effect = ConnectionError("redis down")
        store = ConversationStore(backing=backing)

        assert await store.get_recent_context("s1") == []

    @pytest.mark.asyncio
    async def test_mark_degraded(self, redis_client):
        store = ConversationStore(backing=RedisConversationBacking(redis_client))

        store.mark_degraded("redis unavailable")

        assert store.mode == "degraded"
        assert store.is_degraded
        assert store.backing is None

        await store.add_message("s1", "user", "still works")
        assert len(await store.get_recent_context("s1")) == 1

    @pytest.mark.asyncio
    async def test_attach_backing_clears_degraded(self, redis_client):
        store = ConversationStore()
        store.mark_degraded("redis unavailable")

        store.attach_backing(RedisConversationBacking(redis_client))

        assert store.mode == "redis"


def test_message_is_immutable():
    message = Message(role="user", content="hello")
    with pytest.raises(Exception):
        message.content = "changed"
