"""Tests for retry_with_backoff and error classification."""
import sys
import os
import asyncio

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import httpx
import pytest

from app.core.errors import MissingIndexError, TransientSourceError
from app.services.retry import (
    CLASS_POLICY,
    SECONDARY_POLICY,
    RetryPolicy,
    is_missing_index_error,
    is_retryable_error,
    retry_with_backoff,
)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


class Flaky:
    """Async callable that fails `failures` times with `exc` before returning `value`."""

    def __init__(self, failures, exc, value="ok"):
        self.failures = failures
        self.exc = exc
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.value


class TestRetryPolicy:
    def test_exponential_delays_with_cap(self):
        policy = RetryPolicy(max_retries=5, initial_delay_ms=1000)
        assert [policy.delay_ms(i) for i in range(5)] == [1000, 2000, 4000, 5000, 5000]

    def test_default_policies(self):
        assert CLASS_POLICY.max_retries == 3 and CLASS_POLICY.initial_delay_ms == 1000
        assert SECONDARY_POLICY.max_retries == 2 and SECONDARY_POLICY.initial_delay_ms == 500


class TestClassification:
    def test_missing_index(self):
        assert is_missing_index_error(MissingIndexError())
        assert not is_retryable_error(MissingIndexError())

    def test_transient_codes(self):
        assert is_retryable_error(TransientSourceError("service unavailable"))
        assert is_retryable_error(TransientSourceError("boom", code="deadline-exceeded"))
        assert is_retryable_error(TransientSourceError("quota", code="resource-exhausted"))

    def test_other_errors_not_retryable(self):
        assert not is_retryable_error(ValueError("bad row"))

    def test_transient_type_retryable_without_keywords(self):
        assert is_retryable_error(TransientSourceError("connection reset by peer"))
        assert is_retryable_error(httpx.ReadTimeout("timed out"))
        assert is_retryable_error(httpx.ConnectError("connection refused"))

    def test_missing_index_type_wins_over_transient_code(self):
        exc = MissingIndexError("composite lookup not configured", code="unavailable")
        assert is_missing_index_error(exc)
        assert not is_retryable_error(exc)

    def test_missing_index_wording(self):
        assert is_missing_index_error(RuntimeError("The query requires an index. Create it here: ..."))

    def test_ordinary_index_bugs_are_not_schema_errors(self):
        exc = IndexError("list index out of range")
        assert not is_missing_index_error(exc)
        assert not is_retryable_error(exc)


class TestRetryWithBackoff:
    def test_recovers_after_transient_failures(self):
        sleep = RecordingSleep()
        fn = Flaky(2, TransientSourceError("unavailable"))
        assert asyncio.run(retry_with_backoff(fn, CLASS_POLICY, sleep=sleep)) == "ok"
        assert fn.calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_retries_transient_error_without_keywords(self):
        sleep = RecordingSleep()
        fn = Flaky(2, TransientSourceError("connection reset by peer"))
        assert asyncio.run(retry_with_backoff(fn, CLASS_POLICY, sleep=sleep)) == "ok"
        assert fn.calls == 3
        assert sleep.delays == [1.0, 2.0]

    def test_retries_http_timeout(self):
        sleep = RecordingSleep()
        fn = Flaky(2, httpx.ReadTimeout("timed out"))
        assert asyncio.run(retry_with_backoff(fn, SECONDARY_POLICY, sleep=sleep)) == "ok"
        assert fn.calls == 3
        assert sleep.delays == [0.5, 1.0]

    def test_exhausts_and_raises_last_error(self):
        sleep = RecordingSleep()
        fn = Flaky(10, TransientSourceError("unavailable"))
        with pytest.raises(TransientSourceError):
            asyncio.run(retry_with_backoff(fn, CLASS_POLICY, sleep=sleep))
        assert fn.calls == 4
        assert sleep.delays == [1.0, 2.0, 4.0]

    def test_secondary_policy(self):
        sleep = RecordingSleep()
        fn = Flaky(10, TransientSourceError("unavailable"))
        with pytest.raises(TransientSourceError):
            asyncio.run(retry_with_backoff(fn, SECONDARY_POLICY, sleep=sleep))
        assert fn.calls == 3
        assert sleep.delays == [0.5, 1.0]

    def test_missing_index_never_retried(self):
        sleep = RecordingSleep()
        fn = Flaky(10, MissingIndexError())
        with pytest.raises(MissingIndexError):
            asyncio.run(retry_with_backoff(fn, CLASS_POLICY, sleep=sleep))
        assert fn.calls == 1
        assert sleep.delays == []

    def test_non_retryable_raises_immediately(self):
        sleep = RecordingSleep()
        fn = Flaky(10, ValueError("boom"))
        with pytest.raises(ValueError):
            asyncio.run(retry_with_backoff(fn, CLASS_POLICY, sleep=sleep))
        assert fn.calls == 1
