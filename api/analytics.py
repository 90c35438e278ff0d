"""Query and feedback logging.

Every routed query is written to the Supabase ``query_logs`` table so that
feedback can later be attached to it. Logging is best-effort: failures are
logged and swallowed, and never change the answer a user sees.

When Supabase is not configured (local development, tests) an in-memory
log holding the most recent entries is used instead.
"""

from __future__ import annotations

import itertools
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from libs.supabase.client import SupabaseClient
from libs.supabase.query_logs import (
    build_feedback_update,
    hash_query,
    insert_query_log,
    update_feedback,
)

logger = structlog.get_logger(__name__)


class QueryLog(BaseModel):
    """Model for query log entries."""

    id: str
    timestamp: float
    query_text: str = Field(max_length=1000)
    query_hash: str
    top_faq_id: Optional[str] = None
    similarity_score: Optional[float] = None
    route_decision: str
    response_time_ms: int
    llm_used: bool = False
    context_used: bool = False
    matched_faq_category: Optional[str] = None
    feedback: Dict[str, Any] = Field(default_factory=dict)


class QueryLogger:
    """Writes query logs and feedback to Supabase, or to memory if unconfigured."""

    def __init__(self, client: Optional[SupabaseClient] = None, max_mock_entries: int = 1000):
        self.client = client
        self.max_mock_entries = max_mock_entries
        self._mock_storage: OrderedDict[str, QueryLog] = OrderedDict()
        self._ids = itertools.count(1)
        if client is None:
            logger.warning("Supabase not configured, using in-memory query log")

    @property
    def is_mock(self) -> bool:
        return self.client is None

    @property
    def entries(self) -> List[QueryLog]:
        return list(self._mock_storage.values())

    async def log_query(
        self,
        query_text: str,
        top_faq_id: Optional[str],
        similarity: Optional[float],
        route: str,
        response_time_ms: int,
        llm_used: bool = False,
        context_used: bool = False,
        category: Optional[str] = None,
    ) -> Optional[str]:
        """Record a routing decision. Returns the log id, or None on failure."""
        query_text = query_text[:1000]  # Truncate to prevent abuse
        try:
            if self.client is None:
                log_id = str(next(self._ids))
                self._mock_storage[log_id] = QueryLog(
                    id=log_id,
                    timestamp=time.time(),
                    query_text=query_text,
                    query_hash=hash_query(query_text),
                    top_faq_id=top_faq_id,
                    similarity_score=similarity,
                    route_decision=route,
                    response_time_ms=response_time_ms,
                    llm_used=llm_used,
                    context_used=context_used,
                    matched_faq_category=category,
                )
                while len(self._mock_storage) > self.max_mock_entries:
                    self._mock_storage.popitem(last=False)
            else:
                log_id = await insert_query_log(
                    self.client,
                    query_text=query_text,
                    top_faq_id=top_faq_id,
                    similarity_score=similarity,
                    route_decision=route,
                    response_time_ms=response_time_ms,
                    llm_used=llm_used,
                    context_used=context_used,
                    matched_faq_category=category,
                )

            logger.info(
                "Query logged",
                log_id=log_id,
                route=route,
                similarity=similarity,
                response_time_ms=response_time_ms,
                llm_used=llm_used,
                context_used=context_used,
            )
            return log_id

        except Exception as e:
            logger.error("Failed to log query", error=str(e), route=route)
            return None

    async def save_feedback(
        self,
        query_log_id: str,
        helpful: bool,
        rating: Optional[int] = None,
        feedback_text: Optional[str] = None,
        feedback_type: Optional[str] = None,
    ) -> None:
        """Attach feedback to a logged query."""
        try:
            if self.client is None:
                entry = self._mock_storage.get(str(query_log_id))
                if entry is None:
                    logger.warning("Feedback for unknown query log", query_log_id=query_log_id)
                    return
                entry.feedback.update(build_feedback_update(helpful, rating, feedback_text, feedback_type))
            else:
                await update_feedback(
                    self.client,
                    str(query_log_id),
                    helpful,
                    rating=rating,
                    feedback_text=feedback_text,
                    feedback_type=feedback_type,
                )

            logger.info("Feedback saved", query_log_id=query_log_id, helpful=helpful, rating=rating)

        except Exception as e:
            logger.error("Failed to save feedback", query_log_id=query_log_id, error=str(e))
