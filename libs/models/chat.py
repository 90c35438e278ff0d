"""Pydantic models shared by the conversation store and the routing engine.

These models are the typed boundary between the core and its collaborators:
search payloads are shaped into ``SearchCandidate`` once at the edge and
never travel through the core as raw dicts.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RouteType(str, Enum):
    """Response strategy chosen for a query."""

    DIRECT = "direct"
    LLM_SYNTHESIS = "llm_synthesis"
    DIRECT_FALLBACK = "direct_fallback"
    FALLBACK = "fallback"
    ERROR = "error"

    @property
    def is_llm_route(self) -> bool:
        """Routes that went through the synthesis tier, whether or not the LLM answered."""
        return self in (RouteType.LLM_SYNTHESIS, RouteType.DIRECT_FALLBACK)

    @property
    def is_direct_route(self) -> bool:
        """Routes whose answer is a stored FAQ answer."""
        return self in (RouteType.DIRECT, RouteType.DIRECT_FALLBACK)


class Message(BaseModel):
    """A single conversational turn. Immutable once appended."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"] = Field(..., description="The role of the message sender.")
    content: str = Field(..., description="The text content of the message.")
    timestamp: datetime = Field(default_factory=_utcnow, description="When the message was appended.")


class Session(BaseModel):
    """Short-lived conversation context keyed by an opaque id."""
    id: str = Field(..., description="Unique identifier for the session.")
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    last_active_at: datetime = Field(default_factory=_utcnow)


class SearchCandidate(BaseModel):
    """An FAQ entry returned by similarity search."""
    id: str
    question: str
    answer: str = Field(..., min_length=1)
    category: str | None = None
    similarity: float = Field(..., ge=0.0, le=1.0)


class FaqContext(BaseModel):
    """FAQ snippet handed to the answer synthesizer."""
    question: str
    answer: str = Field(..., min_length=1)
    similarity: float


class TopCandidate(BaseModel):
    question: str
    category: str | None = None


class RouteDecision(BaseModel):
    """Outcome of routing one query."""

    route: RouteType
    answer: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=0, le=100)
    llm_used: bool = False
    context_used: bool = False
    top_candidate: TopCandidate | None = None
    session_id: str | None = None
    query_log_id: str | None = None
    rewritten_query: str | None = None
