"""
Exponential backoff with multiplicative jitter.

delay(n) = floor(base + base * jitter_factor * random())
base     = min(initial_delay_ms * multiplier ^ (n - 1), max_delay_ms)

Jitter only ever adds to the base delay, so the capped exponential value
is a lower bound and base * (1 + jitter_factor) is an exclusive upper bound.
"""

from __future__ import annotations

import math
import random
from collections.abc import Callable
from dataclasses import dataclass, field

from .types import RetryConfig


def base_delay_ms(attempt: int, config: RetryConfig) -> float:
    """Capped exponential delay for a 1-indexed attempt, before jitter."""
    delay = config.initial_delay_ms * (config.backoff_multiplier ** (attempt - 1))
    return min(delay, config.max_delay_ms)


@dataclass
class ExponentialJitterBackoff:
    """
    Backoff calculator for connector retries and reconnects.

    Example:
        backoff = ExponentialJitterBackoff(RetryConfig(initial_delay_ms=500))
        backoff.get_delay_ms(1)  # 500..549
        backoff.get_delay_ms(2)  # 1000..1099
    """

    config: RetryConfig = field(default_factory=RetryConfig)
    random_source: Callable[[], float] = random.random

    def get_delay_ms(self, attempt: int) -> int:
        """
        Calculate delay before an attempt.

        Args:
            attempt: Attempt number (1-indexed)

        Returns:
            Delay in whole milliseconds
        """
        delay = base_delay_ms(attempt, self.config)
        delay += delay * self.config.jitter_factor * self.random_source()
        return math.floor(delay)

    def get_delay(self, attempt: int) -> float:
        """Delay in seconds, for asyncio.sleep."""
        return self.get_delay_ms(attempt) / 1000


__all__ = ["ExponentialJitterBackoff", "base_delay_ms"]
