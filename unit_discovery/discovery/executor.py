"""
Bounded execution of blocking work for discovery tasks.

Discovery fans out one asyncio task per container and per entry, which can
mean thousands of tasks in flight. The tasks themselves are cheap; the
blocking calls they make (``os.scandir``, zip reads, resolver lookups) run
on a small shared thread pool, and a semaphore caps how many of those calls
are queued at once.

Usage::

    async with BlockingRunner(max_workers=8) as runner:
        entries = await runner.run(list_directory, path, layout)
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from unit_discovery.settings import get_max_concurrency, get_max_workers

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BlockingRunner:
    """Run blocking callables on a private thread pool with a concurrency cap.

    Args:
        max_workers: Threads in the pool (default from settings)
        max_concurrency: Max blocking calls submitted at once (default from settings)
    """

    max_workers: int = field(default_factory=get_max_workers)
    max_concurrency: int = field(default_factory=get_max_concurrency)
    _pool: ThreadPoolExecutor | None = field(init=False, default=None, repr=False)
    _semaphore: asyncio.Semaphore | None = field(init=False, default=None, repr=False)

    async def __aenter__(self) -> BlockingRunner:
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="unit-discovery"
        )
        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Execute ``func(*args, **kwargs)`` on the pool and await the result."""
        if self._pool is None or self._semaphore is None:
            raise RuntimeError("BlockingRunner used outside 'async with'")
        async with self._semaphore:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                self._pool, functools.partial(func, *args, **kwargs)
            )


async def gather_all(aws: Iterable[Awaitable[Any]]) -> None:
    """Await every awaitable, then re-raise the first failure.

    Unlike a plain ``asyncio.gather`` this never leaves siblings running
    after one of them fails: all children are joined before anything
    propagates.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
