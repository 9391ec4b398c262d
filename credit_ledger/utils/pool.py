import asyncio
from typing import Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def bounded_gather(
    items: Iterable[T],
    worker: Callable[[T, int], Awaitable[R]],
    limit: int = 6,
) -> List[R]:
    """
    Run `worker(item, index)` for every item with at most `limit` in flight.

    Results come back in input order whatever the completion order. The
    first failure cancels the remaining work and is re-raised.
    """
    items = list(items)
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(item: T, index: int) -> R:
        async with semaphore:
            return await worker(item, index)

    tasks = [asyncio.ensure_future(run(item, index)) for index, item in enumerate(items)]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        # Collect the cancelled tasks so none is left pending or unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
