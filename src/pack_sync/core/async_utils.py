"""Async helpers for running blocking filesystem and HTTP work off the event loop."""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Bounds concurrent per-pack reconciliation; set once at startup
_semaphore: asyncio.Semaphore | None = None


def init_semaphore(max_parallel: int) -> None:
    """Bound reconciliation to *max_parallel* packs at a time.

    Call once per event loop, before the first sync; the CLI passes
    ``Config.max_parallel``.
    """
    global _semaphore
    _semaphore = asyncio.Semaphore(max_parallel)
    logger.debug("Pack reconciliation limit: max_parallel=%d", max_parallel)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking function in a worker thread.

    Example:
        desired = await run_sync(client.fetch_desired_state)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Like ``run_sync`` but bounded by the semaphore.

    Unbounded when ``init_semaphore()`` was never called.
    """
    if _semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with _semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Run coroutines concurrently and return their results in input order.

    Each coroutine should use ``run_sync_limited`` internally.  Exceptions
    propagate from the first failure, so callers that need per-item
    isolation must catch inside the coroutine.
    """
    return list(await asyncio.gather(*coros))
