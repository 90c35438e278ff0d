"""
Per-client request throttling for the search endpoint.

A sliding window of request timestamps is kept per client in process
memory. Clients are identified by the first X-Forwarded-For hop, falling
back to the peer address. Limits are not shared between workers.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

import structlog
from fastapi import HTTPException, Request, status

from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """
    Sliding window limiter.

    Usage:
        limiter = RateLimiter(max_requests=10, window_seconds=60)
        await limiter.check_rate_limit(request)  # raises 429 when over
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: int = 60,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}
        self._last_purge = clock()

    def hit(self, key: str) -> Optional[int]:
        """
        Count one request for ``key``.

        Returns:
            None if allowed, else seconds until the oldest request leaves the window
        """
        now = self._clock()
        if now - self._last_purge >= self.window_seconds:
            self._purge(now)

        window = self._windows.setdefault(key, deque())
        while window and window[0] <= now - self.window_seconds:
            window.popleft()

        if len(window) >= self.max_requests:
            return int(self.window_seconds - (now - window[0])) + 1

        window.append(now)
        return None

    def _purge(self, now: float) -> None:
        # drop clients whose newest request has left the window
        cutoff = now - self.window_seconds
        stale = [key for key, window in self._windows.items() if not window or window[-1] <= cutoff]
        for key in stale:
            del self._windows[key]
        self._last_purge = now

    @property
    def tracked_clients(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()

    async def check_rate_limit(self, request: Request) -> None:
        """
        Raises:
            HTTPException: 429 with Retry-After when the client is over the limit
        """
        if not self.enabled:
            return

        key = client_key(request)
        retry_after = self.hit(key)
        if retry_after is None:
            return

        logger.warning(
            "Rate limit exceeded",
            client=key,
            max_requests=self.max_requests,
            window_seconds=self.window_seconds,
            retry_after_seconds=retry_after,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error_code": "RATE_LIMIT_EXCEEDED",
                "message": f"Too many questions. Maximum {self.max_requests} per {self.window_seconds} seconds.",
                "retry_after_seconds": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )


_settings = get_settings()

# Shared by the search endpoint
search_rate_limiter = RateLimiter(
    max_requests=_settings.search_rate_limit,
    window_seconds=_settings.search_rate_window_seconds,
)
