"""Follow-up query rewriting from recent conversation history.

A rule-based, deterministic heuristic:

1. Decide whether the query stands on its own. Short queries (three words
   or fewer) only do so when they contain a stock phrase such as "hello";
   longer queries need context when they contain a referential cue word
   ("it", "what about", ...), matched on word boundaries.
2. If context is needed, take the last exchange (latest assistant message
   and the user message before it), classify it into a topic bucket and
   append ``(regarding <topic>)`` to the query.

Topic buckets and cue lists are checked in declaration order and the first
match wins, so their order is part of the behavior.
"""

import re
from typing import Dict, Optional, Sequence, Tuple

import structlog

from libs.models.chat import Message

logger = structlog.get_logger(__name__)

SHORT_QUERY_MAX_TOKENS = 3

SELF_CONTAINED_SHORT_PHRASES: Tuple[str, ...] = (
    "help",
    "hello",
    "hi",
    "thanks",
    "bye",
    "what do you do",
    "who are you",
)

CONTEXT_CUES: Tuple[str, ...] = (
    # pronouns
    "it",
    "that",
    "this",
    "they",
    "them",
    "those",
    "these",
    # discourse markers
    "the same",
    "what about",
    "how about",
    "and if",
    "what if",
    "but what",
    "also",
    "too",
    "instead",
    "another",
)

TOPIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "returns and refunds": ("return", "refund", "send back", "exchange"),
    "shipping and delivery": ("ship", "deliver", "track", "arrival", "arrive"),
    "payments and billing": ("pay", "charge", "bill", "credit", "price", "cost"),
    "account management": ("account", "password", "login", "sign", "profile"),
    "orders": ("order", "purchase", "buy", "cancel"),
    "product information": ("product", "item", "size", "color", "stock"),
}


class ContextRewriter:
    """Augments context-dependent follow-up questions with the prior topic."""

    def __init__(
        self,
        short_phrases: Sequence[str] = SELF_CONTAINED_SHORT_PHRASES,
        context_cues: Sequence[str] = CONTEXT_CUES,
        topic_keywords: Optional[Dict[str, Sequence[str]]] = None,
    ):
        self.short_phrases = tuple(short_phrases)
        self.topic_keywords = dict(topic_keywords if topic_keywords is not None else TOPIC_KEYWORDS)
        self._cue_patterns = [
            re.compile(rf"\b{re.escape(cue)}\b", re.IGNORECASE) for cue in context_cues
        ]

    def is_self_contained(self, query: str) -> bool:
        """Return True when the query can be searched without history."""
        lowered = query.lower().strip()

        if len(lowered.split()) <= SHORT_QUERY_MAX_TOKENS:
            return any(phrase in lowered for phrase in self.short_phrases)

        return not any(pattern.search(lowered) for pattern in self._cue_patterns)

    def rewrite_with_context(self, query: str, history: Sequence[Message]) -> str:
        """
        Rewrite ``query`` with the topic of the last exchange.

        Returns the query unchanged when there is no history, when the query
        is self-contained, or when history holds no complete exchange.
        """
        if not history or self.is_self_contained(query):
            return query

        exchange = self.last_exchange(history)
        if exchange is None:
            return query

        topic = self.extract_topic(*exchange)
        rewritten = f"{query} (regarding {topic})"

        logger.debug("Query rewritten with context", original=query[:100], topic=topic)
        return rewritten

    @staticmethod
    def last_exchange(history: Sequence[Message]) -> Optional[Tuple[str, str]]:
        """Return ``(user_question, assistant_answer)`` of the latest exchange."""
        for i in range(len(history) - 1, -1, -1):
            if history[i].role != "assistant":
                continue
            for j in range(i - 1, -1, -1):
                if history[j].role == "user":
                    return history[j].content, history[i].content
            return None
        return None

    def extract_topic(self, user_query: str, bot_response: str) -> str:
        """Classify an exchange into a topic bucket, else echo the question."""
        combined = f"{user_query} {bot_response}".lower()

        for topic, keywords in self.topic_keywords.items():
            if any(keyword in combined for keyword in keywords):
                return topic

        return user_query
