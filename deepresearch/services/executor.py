from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, Sequence, TypeVar

from loguru import logger

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class TaskOutcome(Generic[T]):
    """Result of one unit of work: either a value or the exception it raised."""

    item: Any
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def batch_items(items: Sequence[T], size: int) -> list[list[T]]:
    size = max(size, 1)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BoundedExecutor:
    """Caps in-flight coroutines with one shared semaphore.

    A failing task never propagates to the batch; its exception is captured in the
    returned TaskOutcome so callers can decide how to report it.
    """

    def __init__(self, parallelism: int):
        self.parallelism = max(parallelism, 1)
        self._semaphore = asyncio.Semaphore(self.parallelism)

    async def run(self, func: Callable[[T], Awaitable[R]], item: T) -> TaskOutcome[R]:
        async with self._semaphore:
            try:
                return TaskOutcome(item=item, value=await func(item))
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(f"Task failed for {item!r}: {exc}")
                return TaskOutcome(item=item, error=exc)

    async def map(
        self, func: Callable[[T], Awaitable[R]], items: Iterable[T]
    ) -> list[TaskOutcome[R]]:
        """Run func over items concurrently; outcomes keep input order."""
        return list(await asyncio.gather(*(self.run(func, item) for item in items)))
