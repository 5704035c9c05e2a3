"""Bounded-concurrency helpers shared by the batch stages."""

import asyncio
from typing import Any, Awaitable, Callable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    return [list(items[index:index + size]) for index in range(0, len(items), size)]


async def settle_in_chunks(
    items: Sequence[T],
    size: int,
    worker: Callable[[T], Awaitable[Any]],
) -> List[Tuple[T, Any]]:
    """Run ``worker`` over ``items`` ``size`` at a time.

    Chunks run one after another; inside a chunk every item is awaited even
    if a sibling fails, and the exception is returned in place of its result.
    """
    settled: List[Tuple[T, Any]] = []
    for chunk in chunked(items, size):
        results = await asyncio.gather(*(worker(item) for item in chunk), return_exceptions=True)
        settled.extend(zip(chunk, results))
    return settled
