"""
Durable backing for conversation history.

Mirrors each session's message list into Redis so history survives a
process restart:
- Sliding window (LPUSH + LTRIM to the session cap)
- TTL equal to the inactivity threshold, so Redis expires idle sessions
  on the same schedule as the in-memory sweep

The in-memory ``ConversationStore`` stays authoritative for request
handling; this class is only consulted on a cache miss.
"""

import json
from datetime import datetime
from typing import List

import structlog

from libs.models.chat import Message

logger = structlog.get_logger(__name__)


class RedisConversationBacking:
    """
    Persists session messages in Redis lists.

    Usage:
        backing = RedisConversationBacking(redis_client, max_messages=10)
        await backing.append(session_id, message)
        messages = await backing.load(session_id)
    """

    def __init__(self, redis_client, max_messages: int = 10, ttl_seconds: int = 3600):
        """
        Initialize the backing.

        Args:
            redis_client: Async Redis client
            max_messages: Maximum messages to keep (sliding window)
            ttl_seconds: Expiry applied after every write
        """
        self.redis = redis_client
        self.max_messages = max_messages
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(session_id: str) -> str:
        return f"session:{session_id}:messages"

    async def append(self, session_id: str, message: Message) -> None:
        """Add message to the session list and trim it to the window."""
        key = self._key(session_id)

        payload = {
            "role": message.role,
            "content": message.content,
            "timestamp": message.timestamp.isoformat(),
        }

        # LPUSH keeps newest first
        await self.redis.lpush(key, json.dumps(payload))
        await self.redis.ltrim(key, 0, self.max_messages - 1)
        await self.redis.expire(key, self.ttl_seconds)

        logger.debug(
            "Message persisted to conversation backing",
            session_id=session_id,
            role=message.role,
            content_length=len(message.content),
        )

    async def load(self, session_id: str) -> List[Message]:
        """
        Load a session's messages.

        Returns:
            Messages in chronological order (oldest first), empty if unknown
        """
        messages_json = await self.redis.lrange(self._key(session_id), 0, -1)

        if not messages_json:
            return []

        messages = []
        for raw in messages_json:
            data = json.loads(raw)
            messages.append(
                Message(
                    role=data["role"],
                    content=data["content"],
                    timestamp=datetime.fromisoformat(data["timestamp"]),
                )
            )

        # Reverse to chronological order (oldest first)
        return list(reversed(messages))

    async def delete(self, session_id: str) -> None:
        """Clear session history."""
        await self.redis.delete(self._key(session_id))
        logger.info("Session backing cleared", session_id=session_id)
