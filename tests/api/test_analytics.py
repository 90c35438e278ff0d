"""Tests for query and feedback logging."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from api.analytics import QueryLogger
from libs.supabase.client import SupabaseClient


@pytest.mark.asyncio
async def test_mock_logger_assigns_ids():
    query_logger = QueryLogger()

    first = await query_logger.log_query("Do you ship?", "faq-1", 0.91, "direct", 120)
    second = await query_logger.log_query("asdkjasd", None, None, "fallback", 40)

    assert query_logger.is_mock
    assert first != second
    assert [e.route_decision for e in query_logger.entries] == ["direct", "fallback"]


@pytest.mark.asyncio
async def test_mock_logger_records_feedback():
    query_logger = QueryLogger()
    log_id = await query_logger.log_query("Do you ship?", "faq-1", 0.91, "direct", 120)

    await query_logger.save_feedback(log_id, helpful=False, rating=2, feedback_type="incomplete")

    assert query_logger.entries[0].feedback == {"feedback": 0, "rating": 2, "feedback_type": "incomplete"}


@pytest.mark.asyncio
async def test_feedback_for_unknown_id_is_ignored():
    query_logger = QueryLogger()

    await query_logger.save_feedback("999", helpful=True)


@pytest.mark.asyncio
async def test_mock_log_keeps_most_recent_entries():
    query_logger = QueryLogger(max_mock_entries=3)

    ids = [await query_logger.log_query(f"q{i}", None, None, "fallback", 1) for i in range(5)]

    assert [e.id for e in query_logger.entries] == ids[2:]
    await query_logger.save_feedback(ids[0], helpful=True)
    assert all(e.feedback == {} for e in query_logger.entries)


@pytest.mark.asyncio
async def test_query_text_truncated():
    query_logger = QueryLogger()

    await query_logger.log_query("x" * 5000, None, None, "fallback", 1)

    assert len(query_logger.entries[0].query_text) == 1000


@pytest.mark.asyncio
async def test_supabase_failure_returns_none():
    client = MagicMock(spec=SupabaseClient)
    client.insert = AsyncMock(side_effect=ConnectionError("supabase down"))
    query_logger = QueryLogger(client)

    assert await query_logger.log_query("q", None, None, "fallback", 1) is None


@pytest.mark.asyncio
async def test_supabase_insert_and_feedback():
    client = MagicMock(spec=SupabaseClient)
    client.insert = AsyncMock(return_value=[{"id": 17}])
    client.update = AsyncMock()
    query_logger = QueryLogger(client)

    log_id = await query_logger.log_query("q", "faq-3", 0.66, "llm_synthesis", 900, llm_used=True)
    await query_logger.save_feedback(log_id, helpful=True, rating=5)

    assert log_id == "17"
    table, row = client.insert.await_args.args
    assert table == "query_logs"
    assert row["llm_used"] is True
    client.update.assert_awaited_once_with(
        "query_logs", {"feedback": 1, "rating": 5}, match={"id": "17"}
    )


@pytest.mark.asyncio
async def test_supabase_feedback_failure_is_swallowed():
    client = MagicMock(spec=SupabaseClient)
    client.update = AsyncMock(side_effect=ConnectionError("supabase down"))

    await QueryLogger(client).save_feedback("17", helpful=True)
