"""Pydantic models for the FAQ bot API.

Request and response bodies for the search, feedback and health endpoints.
"""

from __future__ import annotations

import time
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from libs.models.chat import RouteDecision
from libs.supabase.query_logs import FEEDBACK_TYPES


class SearchRequest(BaseModel):
    """Request model for a user question."""
    model_config = ConfigDict(populate_by_name=True)

    # Blank queries are rejected by the routing engine with a 400
    query: str = Field(..., max_length=500, description="User question", examples=["Do you ship internationally?"])
    session_id: Optional[str] = Field(
        None,
        alias="sessionId",
        max_length=100,
        description="Session to continue; omit to start a new one",
    )


class TopResult(BaseModel):
    question: str
    category: Optional[str] = None


class SearchResponse(BaseModel):
    """Response model for the search endpoint.

    Attributes:
        answer: Text shown to the user
        route: Routing tier that produced the answer
        confidence: Best similarity as a 0-100 percentage (0 for fallback/error)
        session_id: Session to send with the next question
        llm_used: Whether the answer was synthesized by the LLM
        context_used: Whether the question was rewritten with history
        rewritten_query: The rewritten question, when context was used
        query_log_id: Id to reference when submitting feedback
        top_result: Best matching FAQ, if any
    """

    answer: str = Field(description="Answer text", examples=["We ship to Canada and Mexico."])
    route: Literal["direct", "llm_synthesis", "direct_fallback", "fallback", "error"]
    confidence: int = Field(ge=0, le=100, examples=[92])
    session_id: str
    llm_used: bool
    context_used: bool
    rewritten_query: Optional[str] = None
    query_log_id: Optional[str] = None
    top_result: Optional[TopResult] = None

    @classmethod
    def from_decision(cls, decision: RouteDecision) -> "SearchResponse":
        top = decision.top_candidate
        return cls(
            answer=decision.answer,
            route=decision.route.value,
            confidence=decision.confidence,
            session_id=decision.session_id or "",
            llm_used=decision.llm_used,
            context_used=decision.context_used,
            rewritten_query=decision.rewritten_query,
            query_log_id=decision.query_log_id,
            top_result=TopResult(question=top.question, category=top.category) if top else None,
        )


class FeedbackRequest(BaseModel):
    """Request model for submitting feedback on an answer."""
    model_config = ConfigDict(populate_by_name=True)

    query_log_id: str = Field(alias="queryLogId", description="Id returned by the search endpoint")
    helpful: bool = Field(description="Thumbs up (true) or down (false)")
    rating: Optional[int] = Field(default=None, ge=1, le=5, description="Optional 1-5 star rating")
    feedback: Optional[str] = Field(default=None, max_length=500, description="Optional free-text comment")
    feedback_type: Optional[str] = Field(default=None, alias="feedbackType")

    @field_validator("query_log_id", mode="before")
    @classmethod
    def coerce_log_id(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator("feedback_type")
    @classmethod
    def feedback_type_must_be_known(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in FEEDBACK_TYPES:
            raise ValueError(f"feedback_type must be one of {', '.join(FEEDBACK_TYPES)}")
        return v


class FeedbackResponse(BaseModel):
    """Response model for feedback submission."""

    success: bool = Field(description="Whether feedback was accepted")


class HealthResponse(BaseModel):
    """Response model for health check endpoints.

    Attributes:
        status: ok, degraded or healthy
        service: Service name
        version: Service version
        timestamp: Unix timestamp
        details: Component status
    """

    status: Literal["healthy", "ok", "degraded"] = Field(description="Health status", examples=["ok"])
    service: str = Field(default="faqbot-api")
    version: str = Field(default="0.1.0")
    timestamp: float = Field(default_factory=time.time)
    details: dict[str, str] | None = Field(
        default=None,
        description="Component status",
        examples=[{"embedding": "ready", "memory_mode": "redis", "llm_circuit": "closed"}],
    )
