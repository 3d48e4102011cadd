from __future__ import annotations

import pytest

from notion_sync.config import RetryPolicy
from notion_sync.errors import (
    ClientError,
    ConfigurationError,
    ProxyConnectionReset,
    RequestTimeout,
    ServerError,
)
from notion_sync.retry import backoff_delay, call_with_retry


def test_backoff_delay_schedule_and_jitter_bounds() -> None:
    policy = RetryPolicy(max_attempts=4, base_interval=1.0, factor=3.0, jitter=0.1)
    assert backoff_delay(policy, 1, rand=lambda: 0.0) == 1.0
    assert backoff_delay(policy, 2, rand=lambda: 0.0) == 3.0
    assert backoff_delay(policy, 3, rand=lambda: 0.0) == 9.0
    almost_one = 0.999999
    for attempt in (1, 2, 3):
        floor = policy.base_interval * policy.factor ** (attempt - 1)
        delay = backoff_delay(policy, attempt, rand=lambda: almost_one)
        assert floor <= delay < floor + policy.jitter


def test_policy_rejects_zero_attempts() -> None:
    with pytest.raises(ConfigurationError):
        RetryPolicy(max_attempts=0)


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
@pytest.mark.parametrize("error", [ServerError("boom", status=502), ProxyConnectionReset("reset"), RequestTimeout("slow")])
async def test_retryable_error_uses_whole_budget(sleeps, max_attempts, error) -> None:
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        raise error

    policy = RetryPolicy(max_attempts=max_attempts, base_interval=0.5, factor=2.0, jitter=0.0)
    with pytest.raises(type(error)) as excinfo:
        await call_with_retry(operation, policy, sleep=sleeps)

    assert calls["count"] == max_attempts
    assert excinfo.value.attempts == max_attempts
    assert sleeps.delays == [0.5 * 2.0 ** k for k in range(max_attempts - 1)]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ClientError("bad", status=400), ConfigurationError("no id")])
async def test_terminal_error_is_not_retried(sleeps, error) -> None:
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        raise error

    with pytest.raises(type(error)):
        await call_with_retry(operation, RetryPolicy(max_attempts=5), sleep=sleeps)

    assert calls["count"] == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_server_error_twice_then_success(sleeps) -> None:
    outcomes = [ServerError("HTTP 500", status=500), ServerError("HTTP 500", status=500), "done"]

    async def operation():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    policy = RetryPolicy(max_attempts=3, base_interval=1.0, factor=3.0, jitter=0.1)
    result = await call_with_retry(operation, policy, sleep=sleeps, rand=lambda: 0.5)

    assert result == "done"
    assert outcomes == []
    assert sleeps.delays == pytest.approx([1.05, 3.05])
    assert sum(sleeps.delays) >= 4.0


@pytest.mark.asyncio
async def test_unexpected_exceptions_propagate_untouched(sleeps) -> None:
    async def operation():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await call_with_retry(operation, RetryPolicy(max_attempts=3), sleep=sleeps)
    assert sleeps.delays == []
