"""Utility functions for Inbox Assistant."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation: str | None = None,
) -> T:
    """Await ``func()`` and retry it with exponential backoff.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates immediately.

    Args:
        func: Zero-argument coroutine factory.
        max_retries: Maximum number of retry attempts.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
        retry_on: Exception types that trigger a retry.
        operation: Name used in log events.

    Returns:
        The value returned by the first successful attempt.
    """

    name = operation or getattr(func, "__name__", "operation")
    current_delay = delay

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error(
                    "function_retry_exhausted",
                    function=name,
                    attempts=max_retries + 1,
                    error=str(exc),
                )
                raise

            logger.warning(
                "function_retry",
                function=name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=current_delay,
                error=str(exc),
            )
            if current_delay > 0:
                await asyncio.sleep(current_delay)
            current_delay *= backoff

    raise AssertionError("unreachable")


async def shielded(awaitable: Awaitable[T]) -> T:
    """Run a mutating call so that caller cancellation cannot interrupt it.

    If the caller is cancelled the inner task still runs to completion; the
    cancellation is re-raised to the caller once the side effect has landed.
    """

    task = asyncio.ensure_future(awaitable)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        if not task.done():
            await asyncio.wait([task])
        raise


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog with a level filter taken from settings."""

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )
