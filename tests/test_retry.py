from __future__ import annotations

import asyncio
import random

import pytest

from assess_core.errors import FetchAborted, RetryableFetchError
from assess_core.retry import RetryPolicy, with_retry


class _Recorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _flaky(fail_times, error=None):
    calls = []

    async def op(attempt):
        calls.append(attempt)
        if len(calls) <= fail_times:
            raise error or RetryableFetchError("boom")
        return "ok"

    return op, calls


def test_succeeds_after_retryable_failure():
    op, calls = _flaky(1)
    sleep = _Recorder()
    out = asyncio.run(with_retry(op, RetryPolicy(max_attempts=3, base_delay=1.0, jitter=0.0), sleep=sleep))
    assert out == "ok"
    assert calls == [1, 2]
    assert sleep.delays == [1.0]


def test_gives_up_after_max_attempts_and_reraises_last_error():
    op, calls = _flaky(5)
    with pytest.raises(RetryableFetchError):
        asyncio.run(with_retry(op, RetryPolicy(max_attempts=2, jitter=0.0), sleep=_Recorder()))
    assert calls == [1, 2]


def test_aborted_fetch_is_not_retried():
    op, calls = _flaky(5, FetchAborted("cancelled by caller"))
    with pytest.raises(FetchAborted):
        asyncio.run(with_retry(op, RetryPolicy(max_attempts=4), sleep=_Recorder()))
    assert calls == [1]


def test_non_retryable_errors_propagate_immediately():
    op, calls = _flaky(5, ValueError("bug"))
    with pytest.raises(ValueError):
        asyncio.run(with_retry(op, RetryPolicy(max_attempts=4), sleep=_Recorder()))
    assert calls == [1]


def test_backoff_is_exponential_capped_and_jittered():
    policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=5.0, jitter=0.5)
    rng = random.Random(7)
    delays = [policy.delay_for(n, rng) for n in range(1, 6)]
    assert 1.0 <= delays[0] <= 1.5
    assert 2.0 <= delays[1] <= 2.5
    assert 4.0 <= delays[2] <= 4.5
    assert delays[3] == delays[4] == 5.0


def test_on_retry_callback_sees_attempt_and_error():
    op, _ = _flaky(2)
    seen = []
    asyncio.run(with_retry(op, RetryPolicy(max_attempts=3, jitter=0.0),
                           on_retry=lambda n, e, d: seen.append((n, type(e).__name__)), sleep=_Recorder()))
    assert seen == [(1, "RetryableFetchError"), (2, "RetryableFetchError")]
