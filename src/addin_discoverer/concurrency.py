"""Async helpers shared by the pipeline steps.

Provides a bounded fan-out over a collection and a keyed memoization table
so that concurrent callers asking for the same expensive value share one
in-flight request.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable
from typing import Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")
K = TypeVar("K", bound=Hashable)


async def for_each_async(
    items: Iterable[T],
    func: Callable[[T], Awaitable[R]],
    max_concurrency: int,
    cancel_event: Optional[asyncio.Event] = None,
) -> list[R]:
    """Apply an async operation to every item with at most K calls in flight.

    Every started operation runs to completion even if a sibling fails; once
    all are done the first failure, if any, is raised. When ``cancel_event`` is
    set, items that have not started yet are skipped.

    Args:
        items: Items to process.
        func: Async operation applied to each item.
        max_concurrency: Maximum number of operations running at once.
        cancel_event: Optional event signalling that no new work should start.

    Returns:
        Results of the operations that ran. Order is not guaranteed to match
        the input order.

    Raises:
        ValueError: If max_concurrency is lower than 1.
        Exception: The first exception raised by an operation.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")

    semaphore = asyncio.Semaphore(max_concurrency)
    results: list[R] = []
    skipped = object()

    async def run(item: T):
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                return skipped
            result = await func(item)
            results.append(result)
            return result

    outcomes = await asyncio.gather(
        *(run(item) for item in items), return_exceptions=True
    )

    errors = [o for o in outcomes if isinstance(o, BaseException)]
    if errors:
        logger.debug("%d operation(s) failed during fan-out", len(errors))
        raise errors[0]

    return results


class AsyncMemo(Generic[K, R]):
    """Get-or-compute-once table for async values.

    A second caller asking for a key that is being computed awaits the same
    future. Failed computations are evicted so a later call can try again.
    """

    def __init__(self) -> None:
        self._futures: dict[K, asyncio.Future] = {}

    def __contains__(self, key: K) -> bool:
        future = self._futures.get(key)
        return (
            future is not None
            and future.done()
            and not future.cancelled()
            and future.exception() is None
        )

    def __len__(self) -> int:
        return len(self._futures)

    async def get_or_add(self, key: K, factory: Callable[[K], Awaitable[R]]) -> R:
        """Return the value for ``key``, computing it with ``factory`` if needed.

        Args:
            key: Cache key.
            factory: Coroutine function called with the key on a cache miss.

        Returns:
            The memoized value.
        """
        future = self._futures.get(key)
        if future is None:
            future = asyncio.ensure_future(factory(key))
            self._futures[key] = future

        try:
            return await asyncio.shield(future)
        except Exception:
            if self._futures.get(key) is future:
                del self._futures[key]
            raise

    def clear(self) -> None:
        self._futures.clear()
