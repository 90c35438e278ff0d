"""
Pytest configuration and fixtures for FAQ bot tests.

Provides shared fixtures for:
- Test environment settings (FAQBOT_APP_ENV=test, no external services)
- Mock Redis client (fakeredis)
- Common test data (FAQ candidates, conversation history)
"""

import os

import pytest

# Set before any application module builds settings at import time
os.environ["FAQBOT_APP_ENV"] = "test"
for _var in ("FAQBOT_SUPABASE_URL", "FAQBOT_SUPABASE_KEY", "FAQBOT_LLM_API_KEY"):
    os.environ.pop(_var, None)

from libs.common.settings import get_settings  # noqa: E402
from libs.models.chat import Message, SearchCandidate  # noqa: E402


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("FAQBOT_APP_ENV", "test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def redis_client():
    """
    Provide fakeredis client for testing.

    This avoids requiring actual Redis server during tests.
    """
    from fakeredis import aioredis as fakeredis

    client = fakeredis.FakeRedis(decode_responses=True)

    yield client

    await client.flushdb()
    await client.aclose()


@pytest.fixture
def shipping_candidate():
    return SearchCandidate(
        id="faq-ship-1",
        question="Do you ship internationally?",
        answer="We ship to Canada and Mexico.",
        category="shipping",
        similarity=0.92,
    )


@pytest.fixture
def shipping_history():
    """One complete exchange about shipping."""
    return [
        Message(role="user", content="How long does shipping take?"),
        Message(role="assistant", content="Standard delivery takes 3-5 business days."),
    ]
