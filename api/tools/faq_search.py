"""FAQ similarity search.

Calls the ``match_faq`` Postgres function (pgvector cosine similarity)
through Supabase RPC. Rows are validated into ``SearchCandidate`` here,
at the edge; malformed rows are dropped. Any backend error yields an empty
list, which the routing engine treats as "no match".
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence

import structlog
from pydantic import ValidationError

from libs.models.chat import SearchCandidate
from libs.supabase.client import SupabaseClient

logger = structlog.get_logger(__name__)


class SearchGateway(Protocol):
    """Vector search over the FAQ corpus."""

    async def search_by_vector(
        self, embedding: Sequence[float], threshold: float, limit: int
    ) -> List[SearchCandidate]:
        """Return candidates sorted by descending similarity; never raises."""
        ...


def parse_candidates(rows: Any) -> List[SearchCandidate]:
    """Shape raw RPC rows into candidates, best first."""
    if not isinstance(rows, list):
        logger.warning("Unexpected search payload", payload_type=type(rows).__name__)
        return []

    candidates = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            candidates.append(
                SearchCandidate(
                    id=str(row["id"]),
                    question=row["question"],
                    answer=row["answer"],
                    category=row.get("category"),
                    similarity=min(max(float(row["similarity"]), 0.0), 1.0),
                )
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            logger.warning("Dropping malformed search row", error=str(e))

    candidates.sort(key=lambda c: c.similarity, reverse=True)
    return candidates


class SupabaseFaqSearch:
    """``SearchGateway`` backed by the Supabase ``match_faq`` RPC."""

    def __init__(self, client: Optional[SupabaseClient], function: str = "match_faq"):
        self.client = client
        self.function = function

    async def search_by_vector(
        self, embedding: Sequence[float], threshold: float = 0.5, limit: int = 3
    ) -> List[SearchCandidate]:
        if self.client is None:
            logger.error("Vector search unavailable, Supabase not configured")
            return []

        try:
            rows = await self.client.rpc(
                self.function,
                {
                    "query_embedding": list(embedding),
                    "match_threshold": threshold,
                    "match_count": limit,
                },
            )
        except Exception as e:
            logger.error("Vector search failed", error=str(e), error_type=type(e).__name__)
            return []

        candidates = parse_candidates(rows)
        logger.debug(
            "Vector search completed",
            results=len(candidates),
            top_similarity=candidates[0].similarity if candidates else None,
        )
        return candidates[:limit]
