"""Backoff retry for transient store conflicts, stdlib only."""
from __future__ import annotations

import functools
import logging
import random
import time
from typing import Any, Callable, Tuple, Type

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float, max_delay: float, factor: float, jitter: bool) -> float:
    delay = min(base_delay * (factor ** (attempt - 1)), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


def retry(
    *,
    max_attempts: int = 5,
    base_delay: float = 0.05,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
    when: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], None] | None = None,
) -> Callable:
    """Decorator: re-run the wrapped call while it raises a retryable error.

    ``when`` narrows ``retryable``; an exception it rejects propagates on the
    first attempt.
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except retryable as exc:
                    if when is not None and not when(exc):
                        raise
                    if attempt == max_attempts:
                        logger.error(
                            "%s gave up after %d attempts: %s",
                            fn.__qualname__, max_attempts, exc,
                        )
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay, backoff_factor, jitter)
                    logger.debug(
                        "%s conflict on attempt %d/%d (%s), retrying in %.3fs",
                        fn.__qualname__, attempt, max_attempts, exc, delay,
                    )
                    (sleep or time.sleep)(delay)
            raise RuntimeError("unreachable")  # pragma: no cover

        return wrapper

    return decorator
