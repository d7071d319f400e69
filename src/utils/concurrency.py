"""Shared concurrency primitives for the indexing worker.

Two helpers are exposed:

1. **throttled_gather** -- a drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The worker uses it
   to process a batch of queue deliveries with bounded parallelism.

2. **run_blocking** -- runs a blocking callable (text extraction) on a
   thread pool with an optional timeout, so a slow parser never stalls the
   event loop and a hung one is cut off.  The worker passes its own bounded
   pool so abandoned threads cannot exhaust the loop's default executor.
"""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import Executor
from typing import Any, Awaitable, Callable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many coroutines run simultaneously.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def run_blocking(
    fn: Callable[..., _T],
    *args: Any,
    timeout: float | None = None,
    executor: Executor | None = None,
) -> _T:
    """Run *fn* on *executor* (or the default pool) within *timeout* seconds.

    Raises
    ------
    asyncio.TimeoutError
        If *timeout* elapses first.  The thread itself cannot be killed and
        finishes in the background; its result is discarded.
    """
    loop = asyncio.get_running_loop()
    call = loop.run_in_executor(executor, functools.partial(fn, *args))
    if timeout is None or timeout <= 0:
        return await call
    return await asyncio.wait_for(call, timeout=timeout)
