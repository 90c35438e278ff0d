"""
Tests for the Redis conversation backing.

Tests verify:
- Append and load in chronological order
- Sliding window (FIFO)
- TTL applied on every write
- Unknown sessions load as empty
"""

from datetime import datetime, timezone

import pytest

from libs.memory.short_term import RedisConversationBacking
from libs.models.chat import Message


@pytest.fixture
async def backing(redis_client):
    return RedisConversationBacking(redis_client, max_messages=10, ttl_seconds=3600)


@pytest.mark.asyncio
async def test_append_and_load(backing):
    """Messages come back oldest first with role, content and timestamp."""
    stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    await backing.append("s1", Message(role="user", content="Do you ship to Canada?", timestamp=stamp))
    await backing.append("s1", Message(role="assistant", content="Yes, we do."))

    messages = await backing.load("s1")

    assert [m.role for m in messages] == ["user", "assistant"]
    assert messages[0].content == "Do you ship to Canada?"
    assert messages[0].timestamp == stamp


@pytest.mark.asyncio
async def test_sliding_window(backing):
    """Only the newest max_messages are kept."""
    for i in range(15):
        await backing.append("s2", Message(role="user", content=f"Message {i}"))

    messages = await backing.load("s2")

    assert len(messages) == 10
    assert messages[0].content == "Message 5"
    assert messages[-1].content == "Message 14"


@pytest.mark.asyncio
async def test_ttl_set_on_write(backing, redis_client):
    await backing.append("s3", Message(role="user", content="hello"))

    ttl = await redis_client.ttl("session:s3:messages")

    assert 0 < ttl <= 3600


@pytest.mark.asyncio
async def test_unknown_session_is_empty(backing):
    assert await backing.load("missing") == []


@pytest.mark.asyncio
async def test_delete(backing):
    await backing.append("s4", Message(role="user", content="hello"))
    await backing.delete("s4")

    assert await backing.load("s4") == []
