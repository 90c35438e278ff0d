"""Three-tier query routing for the FAQ bot.

For each inbound question the engine:

1. fetches recent history for the session and rewrites context-dependent
   follow-ups (``ContextRewriter``),
2. embeds the (rewritten) query and runs a similarity search,
3. picks a route from the best similarity:

   ==================  =======================================================
   similarity          route
   ==================  =======================================================
   no match / < 0.5    ``fallback``: fixed deflection text, no LLM call
   0.5 <= s < 0.8      ``llm_synthesis`` from candidates >= 0.4, or
                       ``direct_fallback`` with the top answer when the
                       synthesizer returns None
   >= 0.8              ``direct``: the stored answer verbatim
   ==================  =======================================================

   Any exception in steps 2-3 yields the ``error`` route.

4. logs the decision once and appends the user and assistant turns to the
   conversation store on a background task.

Only blank queries are rejected (``InvalidQueryError``); every other
failure degrades to a route.
"""

import math
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Protocol, Sequence

import structlog

from api.analytics import QueryLogger
from api.llm.synthesizer import create_synthesizer
from api.tools.embedding import create_embedding_client
from api.tools.faq_search import SearchGateway, SupabaseFaqSearch
from libs.common.background import BackgroundDispatcher
from libs.common.settings import Settings, get_settings
from libs.memory.context_rewriter import ContextRewriter
from libs.memory.store import ConversationStore
from libs.models.chat import (
    FaqContext,
    Message,
    RouteDecision,
    RouteType,
    SearchCandidate,
    TopCandidate,
)
from libs.supabase.client import create_supabase_client

logger = structlog.get_logger(__name__)

FALLBACK_MESSAGE = (
    "I'm not sure about that specific question. "
    "You can contact our support team at support@example.com "
    "or try rephrasing your question."
)
ERROR_MESSAGE = "Search is starting up, please try again in a moment."


class InvalidQueryError(ValueError):
    """Raised for blank queries, before any external call."""

    pass


class Embedder(Protocol):
    async def generate(self, text: str) -> List[float]:
        ...


class Synthesizer(Protocol):
    async def synthesize(
        self,
        query: str,
        faq_context: Sequence[FaqContext],
        history: Optional[List[str]] = None,
    ) -> Optional[str]:
        ...


@dataclass(frozen=True)
class RoutingThresholds:
    """Similarity cut-offs; see the module docstring for the tier table."""

    direct: float = 0.8
    synthesis: float = 0.5
    context: float = 0.4
    search_match: float = 0.5
    search_limit: int = 3


def confidence_from_similarity(similarity: float) -> int:
    """Similarity in [0, 1] as a 0-100 percentage, halves rounded up."""
    return int(math.floor(similarity * 100 + 0.5))


def format_history(history: Sequence[Message]) -> List[str]:
    return [
        f"{'User' if message.role == 'user' else 'Assistant'}: {message.content}"
        for message in history
    ]


class RoutingEngine:
    """Turns a raw question into a ``RouteDecision``."""

    def __init__(
        self,
        store: ConversationStore,
        rewriter: ContextRewriter,
        embedder: Embedder,
        search: SearchGateway,
        synthesizer: Synthesizer,
        query_logger: QueryLogger,
        dispatcher: Optional[BackgroundDispatcher] = None,
        thresholds: Optional[RoutingThresholds] = None,
        history_window: int = 4,
    ):
        self.store = store
        self.rewriter = rewriter
        self.embedder = embedder
        self.search = search
        self.synthesizer = synthesizer
        self.query_logger = query_logger
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.thresholds = thresholds or RoutingThresholds()
        self.history_window = history_window

    async def route(
        self,
        query: str,
        candidates: Sequence[SearchCandidate],
        history: Optional[List[str]] = None,
    ) -> RouteDecision:
        """Pick the response tier for ranked ``candidates``."""
        top = candidates[0] if candidates else None
        top_info = TopCandidate(question=top.question, category=top.category) if top else None

        if top is None or top.similarity < self.thresholds.synthesis:
            return RouteDecision(
                route=RouteType.FALLBACK,
                answer=FALLBACK_MESSAGE,
                confidence=0,
                top_candidate=top_info,
            )

        confidence = confidence_from_similarity(top.similarity)

        if top.similarity >= self.thresholds.direct:
            return RouteDecision(
                route=RouteType.DIRECT,
                answer=top.answer,
                confidence=confidence,
                top_candidate=top_info,
            )

        faq_context = [
            FaqContext(question=c.question, answer=c.answer, similarity=c.similarity)
            for c in candidates
            if c.similarity >= self.thresholds.context
        ]
        synthesized = await self.synthesizer.synthesize(query, faq_context, history)

        if synthesized:
            return RouteDecision(
                route=RouteType.LLM_SYNTHESIS,
                answer=synthesized,
                confidence=confidence,
                llm_used=True,
                top_candidate=top_info,
            )

        logger.info("Synthesis unavailable, using best FAQ answer", faq_id=top.id)
        return RouteDecision(
            route=RouteType.DIRECT_FALLBACK,
            answer=top.answer,
            confidence=confidence,
            top_candidate=top_info,
        )

    async def process_query(self, session_id: Optional[str], raw_query: Optional[str]) -> RouteDecision:
        """
        Route one inbound question.

        Args:
            session_id: Existing session id, or None to start a new session
            raw_query: The user's question

        Returns:
            RouteDecision including the session id and query log id

        Raises:
            InvalidQueryError: blank query
        """
        if raw_query is None or not raw_query.strip():
            raise InvalidQueryError("Query is required")

        query = raw_query.strip()
        if not session_id:
            session_id = self.store.create_session()

        try:
            history = await self.store.get_recent_context(session_id, count=self.history_window)
        except Exception as e:
            logger.warning("Failed to load conversation history", session_id=session_id, error=str(e))
            history = []

        rewritten = self.rewriter.rewrite_with_context(query, history)
        context_used = rewritten != query

        logger.info(
            "Processing query",
            session_id=session_id,
            query_text=query[:100],
            context_used=context_used,
            history_messages=len(history),
        )

        start_time = time.perf_counter()
        top: Optional[SearchCandidate] = None
        try:
            embedding = await self.embedder.generate(rewritten)
            candidates = await self.search.search_by_vector(
                embedding,
                self.thresholds.search_match,
                self.thresholds.search_limit,
            )
            top = candidates[0] if candidates else None
            decision = await self.route(query, candidates, format_history(history))
        except Exception as e:
            logger.error(
                "Query routing failed",
                session_id=session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            decision = RouteDecision(route=RouteType.ERROR, answer=ERROR_MESSAGE, confidence=0)
        response_time_ms = int((time.perf_counter() - start_time) * 1000)

        query_log_id = await self._log_decision(query, decision, top, response_time_ms, context_used)
        self.dispatcher.dispatch(
            "conversation_append",
            self._append_turn(session_id, query, decision.answer),
        )

        logger.info(
            "Query routed",
            session_id=session_id,
            route=decision.route.value,
            confidence=decision.confidence,
            llm_used=decision.llm_used,
            response_time_ms=response_time_ms,
        )

        return decision.model_copy(
            update={
                "session_id": session_id,
                "query_log_id": query_log_id,
                "context_used": context_used,
                "rewritten_query": rewritten if context_used else None,
            }
        )

    async def _log_decision(
        self,
        query: str,
        decision: RouteDecision,
        top: Optional[SearchCandidate],
        response_time_ms: int,
        context_used: bool,
    ) -> Optional[str]:
        # fallback and error answers are not tied to a matched FAQ
        scored = decision.route.is_llm_route or decision.route.is_direct_route
        try:
            return await self.query_logger.log_query(
                query,
                top.id if (top and scored) else None,
                top.similarity if (top and scored) else None,
                decision.route.value,
                response_time_ms,
                llm_used=decision.llm_used,
                context_used=context_used,
                category=top.category if top else None,
            )
        except Exception as e:
            logger.error("Query logging failed", error=str(e))
            return None

    async def _append_turn(self, session_id: str, query: str, answer: str) -> None:
        await self.store.add_message(session_id, "user", query)
        await self.store.add_message(session_id, "assistant", answer)


def build_routing_engine(settings: Optional[Settings] = None) -> RoutingEngine:
    """Wire the engine and its collaborators from settings."""
    settings = settings or get_settings()
    supabase = create_supabase_client(settings)

    return RoutingEngine(
        store=ConversationStore(
            max_messages=settings.max_session_messages,
            idle_timeout=timedelta(minutes=settings.session_idle_minutes),
            sweep_interval_seconds=settings.session_sweep_minutes * 60,
        ),
        rewriter=ContextRewriter(),
        embedder=create_embedding_client(settings),
        search=SupabaseFaqSearch(supabase),
        synthesizer=create_synthesizer(settings),
        query_logger=QueryLogger(supabase),
        thresholds=RoutingThresholds(
            direct=settings.direct_threshold,
            synthesis=settings.synthesis_threshold,
            context=settings.context_threshold,
            search_match=settings.search_match_threshold,
            search_limit=settings.search_limit,
        ),
        history_window=settings.history_window,
    )


# Global engine instance
_engine: Optional[RoutingEngine] = None


def get_routing_engine() -> RoutingEngine:
    """Get or create the global routing engine."""
    global _engine
    if _engine is None:
        _engine = build_routing_engine()
    return _engine


def set_routing_engine(engine: Optional[RoutingEngine]) -> None:
    """Replace the global engine (tests, alternate wiring)."""
    global _engine
    _engine = engine
