"""
Conversation store for per-session message history.

Keeps the most recent turns of every active session in memory:
- Sliding window (oldest messages dropped first once the cap is reached)
- Idle sessions reclaimed by a periodic sweep
- One asyncio lock per session so concurrent requests on the same session
  never lose updates; different sessions proceed independently
- Optional Redis backing, consulted on a cache miss

When a backing was requested but could not be reached the store keeps
working in-memory only and reports ``mode == "degraded"``.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, List, Literal, Optional

import structlog

from libs.memory.short_term import RedisConversationBacking
from libs.models.chat import Message, Session

logger = structlog.get_logger(__name__)

Role = Literal["user", "assistant"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _SessionLock:
    """A per-session lock plus the number of callers holding or awaiting it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class ConversationStore:
    """
    Bounded, time-limited conversation history keyed by session id.

    Usage:
        store = ConversationStore(max_messages=10)
        session_id = store.create_session()
        await store.add_message(session_id, "user", "Do you ship abroad?")
        history = await store.get_recent_context(session_id, count=4)
    """

    def __init__(
        self,
        max_messages: int = 10,
        idle_timeout: timedelta = timedelta(minutes=60),
        sweep_interval_seconds: float = 30 * 60,
        backing: Optional[RedisConversationBacking] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the store.

        Args:
            max_messages: Cap on retained messages per session
            idle_timeout: Sessions idle longer than this are swept
            sweep_interval_seconds: Delay between background sweeps
            backing: Optional durable backing
            clock: Returns the current time; injectable for tests
        """
        self.max_messages = max_messages
        self.idle_timeout = idle_timeout
        self.sweep_interval_seconds = sweep_interval_seconds
        self.backing = backing
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, _SessionLock] = {}
        self._sweeper: Optional[asyncio.Task] = None
        self._degraded_reason: Optional[str] = None

    # ------------------------------------------------------------------
    # Backing mode

    @property
    def mode(self) -> str:
        if self._degraded_reason is not None:
            return "degraded"
        return "redis" if self.backing is not None else "memory"

    @property
    def is_degraded(self) -> bool:
        return self._degraded_reason is not None

    def attach_backing(self, backing: RedisConversationBacking) -> None:
        self.backing = backing
        self._degraded_reason = None
        logger.info("Conversation backing attached", backend=type(backing).__name__)

    def mark_degraded(self, reason: str) -> None:
        """Record that durable backing was requested but is unavailable."""
        self.backing = None
        self._degraded_reason = reason
        logger.warning(
            "Conversation store running in-memory only",
            reason=reason,
            hint="History will not survive a restart",
        )

    # ------------------------------------------------------------------
    # Session operations

    @asynccontextmanager
    async def _locked(self, session_id: str) -> AsyncIterator[None]:
        # the lock entry lives only while a session exists or a caller uses it
        entry = self._locks.get(session_id)
        if entry is None:
            entry = self._locks[session_id] = _SessionLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and session_id not in self._sessions:
                del self._locks[session_id]

    def _new_session(self, session_id: str, messages: Optional[List[Message]] = None) -> Session:
        now = self._clock()
        session = Session(
            id=session_id,
            messages=messages or [],
            created_at=now,
            last_active_at=now,
        )
        self._sessions[session_id] = session
        return session

    def create_session(self) -> str:
        """Create an empty session and return its id."""
        session_id = str(uuid.uuid4())
        self._new_session(session_id)
        logger.debug("Session created", session_id=session_id)
        return session_id

    async def _load(self, session_id: str) -> Optional[Session]:
        """Return the cached session, hydrating from the backing on a miss."""
        session = self._sessions.get(session_id)
        if session is not None or self.backing is None:
            return session

        try:
            messages = await self.backing.load(session_id)
        except Exception as e:
            logger.warning("Failed to load session from backing", session_id=session_id, error=str(e))
            return None

        if not messages:
            return None

        logger.debug("Session hydrated from backing", session_id=session_id, messages=len(messages))
        return self._new_session(session_id, messages[-self.max_messages:])

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._locked(session_id):
            return await self._load(session_id)

    async def get_recent_context(self, session_id: str, count: int = 4) -> List[Message]:
        """
        Get the last ``count`` messages of a session.

        Returns:
            Messages oldest first; empty for an unknown session
        """
        async with self._locked(session_id):
            session = await self._load(session_id)
            if session is None or count <= 0:
                return []

            session.last_active_at = self._clock()
            return list(session.messages[-count:])

    async def add_message(self, session_id: str, role: Role, content: str) -> None:
        """
        Append a message, creating the session if it is unknown or expired.

        The list is trimmed to ``max_messages`` after the append.
        """
        async with self._locked(session_id):
            session = await self._load(session_id)
            if session is None:
                logger.info("Recreating unknown session on write", session_id=session_id)
                session = self._new_session(session_id)

            now = self._clock()
            message = Message(role=role, content=content, timestamp=now)
            session.messages.append(message)
            session.last_active_at = now

            if len(session.messages) > self.max_messages:
                session.messages = session.messages[-self.max_messages:]

            if self.backing is not None:
                try:
                    await self.backing.append(session_id, message)
                except Exception as e:
                    logger.warning(
                        "Failed to persist message to backing",
                        session_id=session_id,
                        error=str(e),
                    )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------
    # Expiry

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Remove sessions idle longer than ``idle_timeout``.

        Returns:
            Number of sessions removed
        """
        cutoff = (now or self._clock()) - self.idle_timeout
        expired = [sid for sid, s in self._sessions.items() if s.last_active_at < cutoff]

        for session_id in expired:
            del self._sessions[session_id]
            entry = self._locks.get(session_id)
            if entry is not None and entry.users == 0:
                del self._locks[session_id]

        if expired:
            logger.info("Expired sessions swept", removed=len(expired), remaining=len(self._sessions))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error("Session sweep failed", error=str(e))

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop())
        logger.info("Session sweeper started", interval_seconds=self.sweep_interval_seconds)

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Session sweeper stopped")
