"""Tests for retry helpers."""

import pytest

from automation_engine.core.error_recovery import RetryConfig, execute_with_retry
from automation_engine.core.exceptions import ConfigurationError, NodeExecutionError
from automation_engine.models.core import RetryPolicy


class TestRetryConfig:
    """Test retry decisions and delays."""

    def test_from_policy(self):
        config = RetryConfig.from_policy(RetryPolicy(max_attempts=4, initial_delay=0.5, backoff_multiplier=3, max_delay=2))

        assert config.max_attempts == 4
        assert config.get_delay(1) == 0.5
        assert config.get_delay(2) == 1.5
        assert config.get_delay(3) == 2

    def test_engine_errors_decide_by_recoverable_flag(self):
        config = RetryConfig(max_attempts=3)

        assert config.should_retry(NodeExecutionError("flaky"), 1)
        assert not config.should_retry(ConfigurationError("broken"), 1)
        assert not config.should_retry(NodeExecutionError("flaky"), 3)

    def test_jitter_stays_below_delay(self):
        config = RetryConfig(base_delay=1.0, jitter=True)

        assert 0.5 <= config.get_delay(1) <= 1.0


class TestExecuteWithRetry:
    """Test the retry loop."""

    def test_returns_first_success(self):
        attempts = []
        delays = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise RuntimeError("not yet")
            return "ok"

        result = execute_with_retry(flaky, RetryConfig(max_attempts=5, base_delay=0.1), sleep=delays.append)

        assert result == "ok"
        assert len(attempts) == 3
        assert delays == [0.1, 0.2]

    def test_raises_last_error(self):
        retries = []

        def always_fails():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            execute_with_retry(
                always_fails,
                RetryConfig(max_attempts=2, base_delay=0),
                on_retry=lambda error, attempt, delay: retries.append(attempt),
                sleep=lambda _: None,
            )

        assert retries == [1]

    def test_interrupted_wait_ends_retries(self):
        attempts = []

        def always_fails():
            attempts.append(1)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            execute_with_retry(always_fails, RetryConfig(max_attempts=5, base_delay=10), sleep=lambda _: True)

        assert len(attempts) == 1
