"""Concurrency helpers shared by the client and the reconciler."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def gather_bounded(
    func: Callable[[T], Awaitable[R]], items: Iterable[T], limit: int,
) -> list[R]:
    """Run ``func`` over ``items`` with at most ``limit`` calls in flight.

    Fail-fast: the first exception cancels every task still running and is
    re-raised. Results come back in completion order.
    """
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> R:
        async with semaphore:
            return await func(item)

    tasks = [asyncio.ensure_future(run(item)) for item in items]
    if not tasks:
        return []

    results: list[R] = []
    try:
        for next_done in asyncio.as_completed(tasks):
            results.append(await next_done)
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        # Also collects exceptions of siblings that failed alongside the first one
        await asyncio.gather(*tasks, return_exceptions=True)
    return results


async def gather_settled(
    func: Callable[[T], Awaitable[R]], items: Iterable[T], limit: int,
) -> list[tuple[T, R | BaseException]]:
    """Run ``func`` over ``items`` and return ``(item, result_or_error)`` pairs.

    Never raises for a failing item; cancellation of the caller still
    propagates.
    """
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> tuple[T, R | BaseException]:
        async with semaphore:
            try:
                return item, await func(item)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                return item, e

    return list(await asyncio.gather(*(run(item) for item in items)))
