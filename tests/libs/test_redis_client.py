"""Tests for the Redis client manager."""

import pytest

from libs.caching.redis_client import get_redis_client, reset_redis_client


@pytest.fixture(autouse=True)
async def fresh_client():
    await reset_redis_client()
    yield
    await reset_redis_client()


@pytest.mark.asyncio
async def test_fake_client_in_test_env():
    client = await get_redis_client()

    assert client is not None
    assert await client.ping()
    assert await get_redis_client() is client


@pytest.mark.asyncio
async def test_missing_url_returns_none(monkeypatch):
    monkeypatch.delenv("FAQBOT_REDIS_URL", raising=False)

    assert await get_redis_client(use_fake=False) is None
    # later calls skip the reconnect attempt
    assert await get_redis_client(use_fake=False) is None
