"""
Fixed-window rate limiting for connectors.

Each connector instance owns one limiter. The window resets by wall-clock
comparison on access, not by a timer.

Concurrency:
    check() and consume() are check-then-act without locking. This is
    correct because a connector instance is driven by a single logical
    caller at a time. If a connector is ever shared between concurrent
    callers, consume() needs an asyncio.Lock around it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from .types import RateLimitConfig

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitState:
    """Mutable counter state for one fixed window."""

    max_requests: int
    window_ms: int
    current_count: int = 0
    window_start: float = 0.0


class FixedWindowRateLimiter:
    """
    Fixed-window request counter.

    Example:
        limiter = FixedWindowRateLimiter(RateLimitConfig(max_requests=2, window_ms=1000))
        limiter.consume()  # True
        limiter.consume()  # True
        limiter.consume()  # False until the window elapses

    Args:
        config: Window size and request budget
        clock: Returns the current time in milliseconds (injectable for tests)
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] = now_ms,
    ):
        config = config or RateLimitConfig()
        self._clock = clock
        self.state = RateLimitState(
            max_requests=config.max_requests,
            window_ms=config.window_ms,
            window_start=clock(),
        )

    def _roll_window(self) -> None:
        now = self._clock()
        if now - self.state.window_start > self.state.window_ms:
            self.state.current_count = 0
            self.state.window_start = now

    def check(self) -> bool:
        """Return True if a request would be permitted, without consuming."""
        self._roll_window()
        return self.state.current_count < self.state.max_requests

    def consume(self) -> bool:
        """Consume one request from the current window. Returns False if exhausted."""
        self._roll_window()
        if self.state.current_count < self.state.max_requests:
            self.state.current_count += 1
            return True
        logger.debug(
            f"Rate limit exhausted: {self.state.current_count}/{self.state.max_requests} "
            f"in {self.state.window_ms}ms window"
        )
        return False

    def remaining(self) -> int:
        """Requests left in the current window."""
        self._roll_window()
        return max(0, self.state.max_requests - self.state.current_count)

    def reset_in_ms(self) -> float:
        """Milliseconds until the current window ends."""
        self._roll_window()
        elapsed = self._clock() - self.state.window_start
        return max(0.0, self.state.window_ms - elapsed)

    def reset(self) -> None:
        """Start a fresh window."""
        self.state.current_count = 0
        self.state.window_start = self._clock()


__all__ = ["FixedWindowRateLimiter", "RateLimitState"]
