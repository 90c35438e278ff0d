"""
Non-blocking dispatch for persistence side effects.

Work handed to the dispatcher runs on its own asyncio task, decoupled from
the request/response path. Failures are reported through a single error
channel (a structlog event plus an optional callback) instead of surfacing
as unobserved exceptions on floating tasks.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

ErrorHandler = Callable[[str, BaseException], None]


class BackgroundDispatcher:
    """
    Track fire-and-forget coroutines and log their failures.

    Usage:
        dispatcher = BackgroundDispatcher()
        dispatcher.dispatch("conversation_append", store.add_message(...))
        await dispatcher.drain()  # on shutdown or in tests
    """

    def __init__(self, on_error: Optional[ErrorHandler] = None):
        self._tasks: Set[asyncio.Task] = set()
        self._on_error = on_error
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, name: str, coro: Awaitable) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(name, t))
        return task

    def _finished(self, name: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task cancelled", task=name)
            return

        error = task.exception()
        if error is None:
            return

        self.failures += 1
        logger.warning(
            "Background task failed",
            task=name,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self._on_error is not None:
            try:
                self._on_error(name, error)
            except Exception as e:
                logger.error("Background error handler failed", task=name, error=str(e))

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every pending task to finish."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)
