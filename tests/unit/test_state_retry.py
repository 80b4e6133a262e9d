"""Tests for the retry decorator used by the state stores."""

import logging

import pytest

from partitions.lib.resilience import RetryPolicy, with_retry


class TestWithRetry:
    def test_retries_until_success(self, caplog):
        calls = []

        @with_retry(max_attempts=3, backoff_seconds=0.001, max_backoff_seconds=0.001)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("transient")
            return "ok"

        with caplog.at_level(logging.WARNING):
            assert flaky() == "ok"
        assert len(calls) == 3
        assert "flaky attempt 1/3 failed" in caplog.text

    def test_reraises_after_last_attempt(self):
        calls = []

        @with_retry(max_attempts=2, backoff_seconds=0.001, exponential=False)
        def always_fails():
            calls.append(1)
            raise ConnectionError("down")

        with pytest.raises(ConnectionError, match="down"):
            always_fails()
        assert len(calls) == 2

    def test_only_listed_exceptions_are_retried(self):
        calls = []

        @with_retry(max_attempts=3, backoff_seconds=0.001, retry_exceptions=(ConnectionError,))
        def bad_input():
            calls.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            bad_input()
        assert len(calls) == 1

    def test_preserves_metadata(self):
        @with_retry()
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."

    def test_policy_defaults(self):
        policy = with_retry()
        assert policy == RetryPolicy()
        assert policy.retry_exceptions == (Exception,)
