"""
Unit tests for retry with backoff.
"""

import pytest

from gardensync.core.retry import RetryConfig, calculate_delay, retry_with_backoff


class TestCalculateDelay:
    """Tests for delay schedules."""

    def test_exponential(self):
        config = RetryConfig(initial_delay_ms=1000, backoff_multiplier=2.0, max_delay_ms=100000)

        assert [calculate_delay(i, config) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_linear(self):
        config = RetryConfig.linear(max_attempts=3, step_ms=100)

        assert [calculate_delay(i, config) for i in range(2)] == pytest.approx([0.1, 0.2])

    def test_capped_at_max(self):
        config = RetryConfig(initial_delay_ms=1000, max_delay_ms=1500)

        assert calculate_delay(5, config) == 1.5

    def test_jitter_stays_within_bounds(self):
        config = RetryConfig(initial_delay_ms=1000, jitter=True)

        for _ in range(20):
            assert 0.75 <= calculate_delay(0, config) <= 1.25


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    def test_success_after_failures(self, no_sleep):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OSError("busy")
            return "ok"

        result = retry_with_backoff(flaky, RetryConfig(max_attempts=3), retry_on=(OSError,), sleep=no_sleep)

        assert result.success
        assert result.unwrap() == "ok"
        assert result.attempts == 3
        assert len(no_sleep.delays) == 2

    def test_exhausted_keeps_last_error(self, no_sleep):
        def always():
            raise OSError("still busy")

        result = retry_with_backoff(always, RetryConfig(max_attempts=2), retry_on=(OSError,), sleep=no_sleep)

        assert not result.success
        assert str(result.error) == "still busy"
        assert result.error_history == ["still busy", "still busy"]
        with pytest.raises(OSError):
            result.unwrap()

    def test_give_up_on_takes_precedence(self, no_sleep):
        class Fatal(OSError):
            pass

        def fatal():
            raise Fatal("denied")

        result = retry_with_backoff(
            fatal, RetryConfig(max_attempts=5), retry_on=(OSError,), give_up_on=(Fatal,), sleep=no_sleep
        )

        assert result.attempts == 1
        assert isinstance(result.error, Fatal)
        assert no_sleep.delays == []

    def test_unlisted_errors_are_not_retried(self, no_sleep):
        def broken():
            raise KeyError("x")

        result = retry_with_backoff(broken, RetryConfig(max_attempts=3), retry_on=(OSError,), sleep=no_sleep)

        assert result.attempts == 1
        assert isinstance(result.error, KeyError)
