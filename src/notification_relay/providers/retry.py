"""Linear-backoff retry loop used by every delivery provider."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from notification_relay.utils.logging import log_with_context
from notification_relay.utils.sanitization import sanitize_exception

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from notification_relay.types.aliases import Sleeper

logger = logging.getLogger(__name__)

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_BASE_DELAY_SECONDS = 1.0


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Return the wait after failed attempt ``attempt`` (1-based).

    Examples:
        >>> [backoff_delay(i, 1.0) for i in (1, 2, 3)]
        [1.0, 2.0, 3.0]
    """
    return base_delay * attempt


async def retry_with_linear_backoff[T](
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = DEFAULT_RETRY_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
    retry_on: type[Exception] | tuple[type[Exception], ...] = Exception,
    sleep: Sleeper = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``operation`` up to ``attempts`` times with linearly growing waits.

    After failed attempt *i* the loop sleeps ``base_delay * i`` before trying
    again. There is no wait after the final attempt, whose exception is
    re-raised unchanged. Exceptions outside ``retry_on`` propagate immediately.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        attempts: Total number of attempts (at least 1)
        base_delay: Base wait in seconds
        retry_on: Exception types that trigger another attempt
        sleep: Awaitable sleep, injectable for tests
        label: Name used in log records

    Returns:
        Result of the first successful attempt

    Raises:
        ValueError: If ``attempts`` is less than 1
    """
    if attempts < 1:
        msg = f"attempts must be at least 1, got {attempts}"
        raise ValueError(msg)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt == attempts:
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"All {attempts} attempts failed for {label}",
                    extra={"label": label, "attempts": attempts, "error": sanitize_exception(exc)},
                )
                raise

            delay = backoff_delay(attempt, base_delay)
            log_with_context(
                logger,
                logging.INFO,
                f"Attempt {attempt}/{attempts} failed for {label}, retrying in {delay:.2f}s",
                extra={
                    "label": label,
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "error": sanitize_exception(exc),
                },
            )
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    msg = "retry loop exited without a result"
    raise RuntimeError(msg)
