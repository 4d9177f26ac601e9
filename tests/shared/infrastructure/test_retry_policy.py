"""Tests for RetryPolicy backoff."""

import pytest

from warrant.shared.infrastructure.resilience import NO_RETRY, RetryPolicy


class TestRetryPolicy:
    """Test RetryPolicy configuration and delays."""

    def test_default_is_single_attempt(self):
        assert NO_RETRY.max_attempts == 1
        assert NO_RETRY.retries_enabled is False

    def test_exponential_backoff(self):
        policy = RetryPolicy(max_attempts=5, initial_delay=1.0, max_delay=30.0)

        assert [policy.delay_for(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 8.0]

    def test_backoff_capped(self):
        policy = RetryPolicy(max_attempts=10, initial_delay=2.0, max_delay=5.0)

        assert policy.delay_for(3) == 5.0

    def test_delays_are_deterministic(self):
        policy = RetryPolicy(max_attempts=3, initial_delay=0.5)

        assert policy.delay_for(2) == policy.delay_for(2) == 1.0

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"initial_delay": -1.0},
        {"max_delay": -1.0},
    ])
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_attempt_is_one_based(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=2).delay_for(0)

    def test_to_json(self):
        data = RetryPolicy(max_attempts=3, retry_on_timeout=True).to_json()

        assert data["maxAttempts"] == 3
        assert data["retryOnTimeout"] is True
