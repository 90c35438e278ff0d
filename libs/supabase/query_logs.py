"""Functions for writing query logs and feedback to the ``query_logs`` table."""

import hashlib
from typing import Optional

import structlog

from libs.supabase.client import SupabaseClient

logger = structlog.get_logger(__name__)

FEEDBACK_TYPES = ("accurate", "incomplete", "unclear", "irrelevant", "outdated")


def hash_query(query_text: str) -> str:
    """Stable hash used to group identical questions."""
    return hashlib.md5(query_text.lower().strip().encode("utf-8")).hexdigest()


def build_feedback_update(
    helpful: bool,
    rating: Optional[int] = None,
    feedback_text: Optional[str] = None,
    feedback_type: Optional[str] = None,
) -> dict:
    """Column values for a feedback update; invalid optional fields are skipped."""
    values = {"feedback": 1 if helpful else 0}

    if rating is not None and 1 <= rating <= 5:
        values["rating"] = rating

    if feedback_text and feedback_text.strip():
        values["feedback_text"] = feedback_text.strip()

    if feedback_type in FEEDBACK_TYPES:
        values["feedback_type"] = feedback_type

    return values


async def insert_query_log(
    client: SupabaseClient,
    query_text: str,
    top_faq_id: Optional[str],
    similarity_score: Optional[float],
    route_decision: str,
    response_time_ms: int,
    llm_used: bool = False,
    context_used: bool = False,
    matched_faq_category: Optional[str] = None,
) -> Optional[str]:
    """Inserts a row into ``query_logs``.

    Returns:
        The new row id as a string, or None if Supabase returned no row.
    """
    rows = await client.insert(
        "query_logs",
        {
            "query_text": query_text,
            "query_hash": hash_query(query_text),
            "top_faq_id": top_faq_id,
            "similarity_score": similarity_score,
            "route_decision": route_decision,
            "response_time_ms": response_time_ms,
            "llm_used": llm_used,
            "context_used": context_used,
            "matched_faq_category": matched_faq_category,
        },
    )
    if not rows:
        return None
    log_id = rows[0].get("id")
    return str(log_id) if log_id is not None else None


async def update_feedback(
    client: SupabaseClient,
    query_log_id: str,
    helpful: bool,
    rating: Optional[int] = None,
    feedback_text: Optional[str] = None,
    feedback_type: Optional[str] = None,
) -> None:
    """Attaches user feedback to an existing ``query_logs`` row."""
    await client.update(
        "query_logs",
        build_feedback_update(helpful, rating, feedback_text, feedback_type),
        match={"id": query_log_id},
    )
