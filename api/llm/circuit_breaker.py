"""
Failure isolation and usage caps for the LLM backend.

``CircuitBreaker`` stops calling a failing backend for a cool-down period:

    closed --(N consecutive failures)--> open --(cool-down elapsed)--> half-open
    half-open --(trial succeeds)--> closed
    half-open --(trial fails)--> open

While half-open exactly one trial call is admitted; concurrent callers keep
short-circuiting until the trial reports back.

``DailyUsageCap`` counts successful calls per calendar day.

Both take their time source as a constructor argument and guard every
read-modify-write with a lock.
"""

import threading
import time
from datetime import date
from enum import Enum
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Consecutive-failure circuit breaker with a fixed cool-down."""

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state_locked()

    def _state_locked(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if self._clock() - self._opened_at >= self.cooldown_seconds:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        """Return True if a call may go out now."""
        with self._lock:
            state = self._state_locked()
            if state is CircuitState.CLOSED:
                return True
            if state is CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                logger.info("Circuit half-open, admitting trial call")
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._opened_at is not None:
                logger.info("Circuit closed after successful trial call")
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._trial_in_flight or self._failures >= self.failure_threshold:
                self._opened_at = self._clock()
                self._trial_in_flight = False
                logger.warning(
                    "Circuit opened",
                    consecutive_failures=self._failures,
                    cooldown_seconds=self.cooldown_seconds,
                )

    def release_trial(self) -> None:
        """Give up a half-open trial that ended without an outcome."""
        with self._lock:
            if self._trial_in_flight:
                self._trial_in_flight = False
                logger.info("Circuit trial call abandoned")

    def reset(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False


class DailyUsageCap:
    """Counts successful calls per calendar day."""

    def __init__(self, limit: int = 500, today: Callable[[], date] = date.today):
        self.limit = limit
        self._today = today
        self._lock = threading.Lock()
        self._day = today()
        self._count = 0

    def _roll_locked(self) -> None:
        current = self._today()
        if current != self._day:
            logger.info("Daily LLM usage counter reset", previous_day=str(self._day), calls=self._count)
            self._day = current
            self._count = 0

    @property
    def used(self) -> int:
        with self._lock:
            self._roll_locked()
            return self._count

    def exhausted(self) -> bool:
        with self._lock:
            self._roll_locked()
            return self._count >= self.limit

    def record(self) -> None:
        with self._lock:
            self._roll_locked()
            self._count += 1
