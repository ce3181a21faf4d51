"""
Tests for exponential backoff with jitter.
"""

import pytest

from conduit.connectors import ExponentialJitterBackoff, RetryConfig
from conduit.connectors.backoff import base_delay_ms


class TestBaseDelay:
    def test_exponential_growth(self):
        config = RetryConfig(initial_delay_ms=100, backoff_multiplier=2.0, max_delay_ms=10_000)
        assert base_delay_ms(1, config) == 100
        assert base_delay_ms(2, config) == 200
        assert base_delay_ms(3, config) == 400

    def test_capped_at_max(self):
        config = RetryConfig(initial_delay_ms=1000, backoff_multiplier=10.0, max_delay_ms=5000)
        assert base_delay_ms(3, config) == 5000


class TestExponentialJitterBackoff:
    """Tests for ExponentialJitterBackoff."""

    def test_no_jitter_when_random_is_zero(self):
        backoff = ExponentialJitterBackoff(RetryConfig(initial_delay_ms=500), random_source=lambda: 0.0)
        assert backoff.get_delay_ms(1) == 500
        assert backoff.get_delay_ms(2) == 1000

    def test_jitter_only_adds(self):
        config = RetryConfig(initial_delay_ms=1000, jitter_factor=0.1)
        backoff = ExponentialJitterBackoff(config, random_source=lambda: 0.999)
        assert backoff.get_delay_ms(1) == 1099

    def test_result_is_floored_int(self):
        config = RetryConfig(initial_delay_ms=10, jitter_factor=0.5)
        backoff = ExponentialJitterBackoff(config, random_source=lambda: 0.5)
        delay = backoff.get_delay_ms(1)
        assert isinstance(delay, int)
        assert delay == 12

    @pytest.mark.parametrize("attempt", [1, 2, 3, 5, 8, 12])
    def test_bounds_with_real_randomness(self, attempt):
        config = RetryConfig(initial_delay_ms=1000, max_delay_ms=30_000, jitter_factor=0.1)
        backoff = ExponentialJitterBackoff(config)
        base = base_delay_ms(attempt, config)
        for _ in range(50):
            delay = backoff.get_delay_ms(attempt)
            assert base <= delay < base * 1.1 + 1

    def test_max_delay_plus_jitter_ceiling(self):
        config = RetryConfig(initial_delay_ms=1000, max_delay_ms=30_000, jitter_factor=0.1)
        backoff = ExponentialJitterBackoff(config, random_source=lambda: 0.999999)
        assert backoff.get_delay_ms(20) <= 33_000

    def test_get_delay_seconds(self):
        backoff = ExponentialJitterBackoff(RetryConfig(initial_delay_ms=1500), random_source=lambda: 0.0)
        assert backoff.get_delay(1) == 1.5
