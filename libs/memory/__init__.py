"""
Conversation memory for the FAQ bot.

Provides:
- Conversation store (bounded per-session history with idle expiry)
- Context rewriter (follow-up questions rewritten with the last topic)
- Redis backing (optional durable copy of session history)
"""

from libs.memory.context_rewriter import ContextRewriter
from libs.memory.short_term import RedisConversationBacking
from libs.memory.store import ConversationStore

__all__ = ["ContextRewriter", "ConversationStore", "RedisConversationBacking"]
