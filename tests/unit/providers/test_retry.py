"""Tests for the linear-backoff retry loop."""

from __future__ import annotations

import pytest

from notification_relay.providers.retry import backoff_delay, retry_with_linear_backoff
from tests.fixtures.doubles import ManualSleeper


class Flaky:
    """Coroutine factory failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, *, error: type[Exception] = RuntimeError) -> None:
        self.failures: int = failures
        self.error: type[Exception] = error
        self.calls: int = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "ok"


def test_backoff_delay_grows_linearly() -> None:
    assert [backoff_delay(attempt, 1.5) for attempt in (1, 2, 3, 4)] == [1.5, 3.0, 4.5, 6.0]


@pytest.mark.asyncio
async def test_two_failures_then_success_waits_one_then_two_base_delays() -> None:
    sleeper = ManualSleeper()
    operation = Flaky(2)

    result = await retry_with_linear_backoff(operation, attempts=3, base_delay=1.0, sleep=sleeper)

    assert result == "ok"
    assert operation.calls == 3
    assert sleeper.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_first_success_does_not_sleep() -> None:
    sleeper = ManualSleeper()

    result = await retry_with_linear_backoff(Flaky(0), sleep=sleeper)

    assert result == "ok"
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_exhausted_attempts_reraise_last_error_without_trailing_sleep() -> None:
    sleeper = ManualSleeper()
    operation = Flaky(10)

    with pytest.raises(RuntimeError, match="failure 3"):
        _ = await retry_with_linear_backoff(operation, attempts=3, base_delay=0.5, sleep=sleeper)

    assert operation.calls == 3
    assert sleeper.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_escalation_continues_with_more_attempts() -> None:
    sleeper = ManualSleeper()

    _ = await retry_with_linear_backoff(Flaky(4), attempts=5, base_delay=2.0, sleep=sleeper)

    assert sleeper.delays == [2.0, 4.0, 6.0, 8.0]


@pytest.mark.asyncio
async def test_non_retryable_errors_propagate_immediately() -> None:
    sleeper = ManualSleeper()
    operation = Flaky(1, error=KeyError)

    with pytest.raises(KeyError):
        _ = await retry_with_linear_backoff(operation, retry_on=RuntimeError, sleep=sleeper)

    assert operation.calls == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError, match="at least 1"):
        _ = await retry_with_linear_backoff(Flaky(0), attempts=0)
