"""
Retry utilities for transaction source API calls.

Implements exponential backoff with jitter. Only transient transport
errors should be retried; callers choose which exceptions qualify.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import structlog

from bankbot.transactions.config import RetryConfig

logger = structlog.get_logger()

T = TypeVar("T")


def compute_delay(config: RetryConfig, attempt: int) -> float:
    """Delay before retry number ``attempt`` (0-based), jitter included."""
    delay = min(
        config.initial_delay * (config.exponential_base**attempt),
        config.max_delay,
    )
    if config.jitter:
        delay = delay * (0.5 + random.random() * 0.5)
    return delay


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Execute a function with exponential backoff retry.

    Args:
        func: Async function to execute
        config: Retry configuration
        operation_name: Name for logging
        retry_on: Exception types worth another attempt
        sleep: Awaitable used between attempts

    Returns:
        Function result

    Raises:
        Exception: Last exception if all retries exhausted, or the first
            exception that is not in ``retry_on``
    """
    for attempt in range(config.max_attempts):
        try:
            return await func()
        except retry_on as e:
            attempt_num = attempt + 1

            if attempt_num >= config.max_attempts:
                logger.error(
                    "retry.exhausted",
                    operation=operation_name,
                    attempts=attempt_num,
                    error=str(e),
                )
                raise

            delay = compute_delay(config, attempt)
            logger.warning(
                "retry.attempt",
                operation=operation_name,
                attempt=attempt_num,
                max_attempts=config.max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await sleep(delay)

    raise RuntimeError("Retry failed without exception")
