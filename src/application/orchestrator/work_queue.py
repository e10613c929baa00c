"""
Bounded-concurrency dispatch for multi-target operations.

The bound applies once per top-level batch: a map called from inside a running
worker (a crosslist inside a bulk batch) runs its targets one after another, so
in-flight calls never exceed the configured concurrency. With concurrency=1
targets run strictly one after another in input order.
"""
import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")

_inside_batch: ContextVar[bool] = ContextVar("work_queue_inside_batch", default=False)


@dataclass
class WorkResult(Generic[T, R]):
    item: T
    value: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BoundedWorkQueue:
    def __init__(self, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._concurrency = concurrency

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def map(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        *,
        delay_seconds: float = 0.0,
    ) -> list[WorkResult[T, R]]:
        """Run worker over items; exceptions are captured per item, never raised."""
        if self._concurrency == 1 or _inside_batch.get():
            return await self._run_sequential(items, worker, delay_seconds)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _guarded(index: int, item: T) -> WorkResult[T, R]:
            # Stagger starts by the fixed delay; the semaphore bounds overlap
            if delay_seconds and index:
                await asyncio.sleep(delay_seconds * index)
            async with semaphore:
                return await self._run_one(item, worker)

        return list(await asyncio.gather(*(_guarded(i, item) for i, item in enumerate(items))))

    async def _run_sequential(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        delay_seconds: float,
    ) -> list[WorkResult[T, R]]:
        results: list[WorkResult[T, R]] = []
        for index, item in enumerate(items):
            if delay_seconds and index:
                await asyncio.sleep(delay_seconds)
            results.append(await self._run_one(item, worker))
        return results

    @staticmethod
    async def _run_one(item: T, worker: Callable[[T], Awaitable[R]]) -> WorkResult[T, R]:
        token = _inside_batch.set(True)
        try:
            return WorkResult(item=item, value=await worker(item))
        except Exception as exc:
            return WorkResult(item=item, error=exc)
        finally:
            _inside_batch.reset(token)
