from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import ORJSONResponse

from api.middleware.rate_limiter import search_rate_limiter
from api.models import (
    FeedbackRequest,
    FeedbackResponse,
    SearchRequest,
    SearchResponse,
)
from api.orchestrators.routing_engine import (
    InvalidQueryError,
    RoutingEngine,
    get_routing_engine,
)

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/v1/search", response_model=SearchResponse, tags=["Search"])
async def search_faq(
    request: Request,
    search_request: SearchRequest,
    engine: RoutingEngine = Depends(get_routing_engine),
) -> SearchResponse:
    """Answer a customer question from the FAQ corpus.

    The question is routed to one of three tiers by similarity: the stored
    answer verbatim, an LLM answer synthesized from close matches, or a
    fixed deflection. Pass the returned ``session_id`` with follow-ups so
    short questions like "what about Canada?" are read in context.

    Args:
        request: FastAPI request object
        search_request: Question and optional session id

    Returns:
        SearchResponse: Answer, route, confidence and ids for follow-ups

    A blank query gets a 400 with body ``{"error": "Query is required"}``.

    Raises:
        HTTPException: 429 for rate limits

    Example:
        ```bash
        curl -X POST http://localhost:8000/api/v1/search \\
          -H "Content-Type: application/json" \\
          -d '{"query": "Do you ship internationally?"}'
        ```
    """
    await search_rate_limiter.check_rate_limit(request)

    request_id = getattr(request.state, "request_id", "unknown")
    logger.info(
        "Search request received",
        request_id=request_id,
        has_session=search_request.session_id is not None,
    )

    try:
        decision = await engine.process_query(search_request.session_id, search_request.query)
    except InvalidQueryError as e:
        logger.info("Search request rejected", request_id=request_id, reason=str(e))
        return ORJSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})

    return SearchResponse.from_decision(decision)


@router.post("/v1/feedback", response_model=FeedbackResponse, tags=["Feedback"])
async def submit_feedback(
    feedback: FeedbackRequest,
    engine: RoutingEngine = Depends(get_routing_engine),
) -> FeedbackResponse:
    """Submit feedback for an answer.

    Args:
        feedback: Query log id, thumbs up/down and optional rating or comment

    Returns:
        FeedbackResponse with success status

    Example:
        ```bash
        curl -X POST http://localhost:8000/api/v1/feedback \\
          -H "Content-Type: application/json" \\
          -d '{"query_log_id": "42", "helpful": true, "rating": 5}'
        ```
    """
    await engine.query_logger.save_feedback(
        feedback.query_log_id,
        feedback.helpful,
        rating=feedback.rating,
        feedback_text=feedback.feedback,
        feedback_type=feedback.feedback_type,
    )
    return FeedbackResponse(success=True)
