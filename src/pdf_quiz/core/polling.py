"""Bounded polling for long-running provider operations."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from .errors import OperationTimeoutError

__all__ = ["poll_until"]

T = TypeVar("T")


def poll_until(
    fetch: Callable[[], T],
    is_done: Callable[[T], bool],
    *,
    timeout_seconds: float,
    initial_interval: float = 0.5,
    max_interval: float = 5.0,
    backoff: float = 1.5,
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call ``fetch`` until ``is_done`` accepts its result.

    The first fetch happens immediately. Between fetches the interval grows
    by ``backoff`` up to ``max_interval`` and never sleeps past the deadline.
    Raises :class:`OperationTimeoutError` with the last fetched value once
    ``timeout_seconds`` have elapsed without a terminal result.
    """

    if timeout_seconds <= 0:
        raise ValueError("timeout_seconds must be positive")
    deadline = clock() + timeout_seconds
    interval = max(0.0, initial_interval)
    value = fetch()
    while not is_done(value):
        remaining = deadline - clock()
        if remaining <= 0:
            raise OperationTimeoutError(
                f"Timed out after {timeout_seconds:g}s waiting for "
                f"{description}.",
                last_value=value,
            )
        sleep(min(interval, remaining))
        interval = min(max_interval, interval * backoff if interval else 0.1)
        value = fetch()
    return value
