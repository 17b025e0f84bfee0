"""RetryPolicy のテスト。"""
import asyncio

import pytest

from tposlive.pipeline.retry import RetryExhaustedError, RetryPolicy


def test_succeeds_after_failures():
    calls = []
    sleeps = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ValueError("not yet")
        return "ok"

    async def fake_sleep(sec):
        sleeps.append(sec)

    policy = RetryPolicy(max_attempts=3, delay_sec=2)
    assert asyncio.run(policy.run(flaky, sleep=fake_sleep)) == "ok"
    assert len(calls) == 3
    assert sleeps == [2, 2]


def test_exhausted_raises_with_last_error():
    async def always_fail():
        raise RuntimeError("boom")

    async def fake_sleep(sec):
        return None

    with pytest.raises(RetryExhaustedError) as exc_info:
        asyncio.run(RetryPolicy(max_attempts=2, delay_sec=1).run(always_fail, sleep=fake_sleep))
    assert exc_info.value.attempts == 2
    assert str(exc_info.value.last_error) == "boom"


def test_backoff_delays():
    policy = RetryPolicy(max_attempts=4, delay_sec=1, backoff=2)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1, 2, 4]


def test_non_retryable_error_propagates():
    calls = []

    async def fail():
        calls.append(1)
        raise KeyError("x")

    policy = RetryPolicy(max_attempts=3, delay_sec=0, retry_on=(ValueError,))
    with pytest.raises(KeyError):
        asyncio.run(policy.run(fail))
    assert len(calls) == 1


def test_invalid_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
