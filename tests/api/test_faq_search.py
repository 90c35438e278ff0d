"""Tests for FAQ vector search."""

import json

import httpx
import pytest

from api.tools.faq_search import SupabaseFaqSearch, parse_candidates
from libs.supabase.client import SupabaseClient


def make_search(handler):
    client = SupabaseClient(
        "https://project.supabase.co",
        "key",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return SupabaseFaqSearch(client)


class TestParseCandidates:
    def test_sorted_best_first(self):
        rows = [
            {"id": 1, "question": "Q1", "answer": "A1", "category": "shipping", "similarity": 0.61},
            {"id": 2, "question": "Q2", "answer": "A2", "similarity": 0.93},
        ]

        candidates = parse_candidates(rows)

        assert [c.id for c in candidates] == ["2", "1"]
        assert candidates[1].category == "shipping"

    def test_malformed_rows_dropped(self):
        rows = [
            {"id": 1, "question": "Q1", "answer": "", "similarity": 0.9},
            {"id": 2, "question": "Q2", "similarity": 0.8},
            "not a row",
            {"id": 3, "question": "Q3", "answer": "A3", "similarity": "n/a"},
            {"id": 4, "question": "Q4", "answer": "A4", "similarity": 0.7},
        ]

        assert [c.id for c in parse_candidates(rows)] == ["4"]

    def test_similarity_clamped(self):
        rows = [{"id": 1, "question": "Q", "answer": "A", "similarity": 1.0000002}]

        assert parse_candidates(rows)[0].similarity == 1.0

    def test_non_list_payload(self):
        assert parse_candidates({"message": "error"}) == []


@pytest.mark.asyncio
async def test_search_calls_match_faq():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=[{"id": 7, "question": "Do you ship?", "answer": "Yes.", "similarity": 0.88}],
        )

    search = make_search(handler)
    candidates = await search.search_by_vector([0.1, 0.2], threshold=0.5, limit=3)

    assert seen["path"] == "/rest/v1/rpc/match_faq"
    assert seen["body"] == {"query_embedding": [0.1, 0.2], "match_threshold": 0.5, "match_count": 3}
    assert candidates[0].answer == "Yes."


@pytest.mark.asyncio
async def test_search_error_returns_empty():
    search = make_search(lambda request: httpx.Response(500))

    assert await search.search_by_vector([0.1], 0.5, 3) == []


@pytest.mark.asyncio
async def test_search_without_client_returns_empty():
    assert await SupabaseFaqSearch(None).search_by_vector([0.1], 0.5, 3) == []
