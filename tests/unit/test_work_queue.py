"""Unit tests for BoundedWorkQueue dispatch."""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from src.application.orchestrator.work_queue import BoundedWorkQueue


class _InFlight:
    def __init__(self) -> None:
        self.current = 0
        self.peak = 0
        self.started: list[int] = []

    async def work(self, item: int) -> int:
        self.started.append(item)
        self.current += 1
        self.peak = max(self.peak, self.current)
        await asyncio.sleep(0.01)
        self.current -= 1
        return item * 10


class TestBoundedWorkQueue:
    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError):
            BoundedWorkQueue(0)

    @pytest.mark.asyncio
    async def test_sequential_runs_in_input_order_without_overlap(self) -> None:
        tracker = _InFlight()
        results = await BoundedWorkQueue(1).map([3, 1, 2], tracker.work)

        assert tracker.started == [3, 1, 2]
        assert tracker.peak == 1
        assert [r.value for r in results] == [30, 10, 20]

    @pytest.mark.asyncio
    async def test_concurrency_bounds_overlap_and_keeps_result_order(self) -> None:
        tracker = _InFlight()
        results = await BoundedWorkQueue(2).map([1, 2, 3, 4], tracker.work)

        assert tracker.peak == 2
        assert [r.item for r in results] == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_exceptions_are_captured_per_item(self) -> None:
        async def _work(item: str) -> str:
            if item == "bad":
                raise RuntimeError("boom")
            return item.upper()

        results = await BoundedWorkQueue(1).map(["a", "bad", "c"], _work)

        assert [r.ok for r in results] == [True, False, True]
        assert str(results[1].error) == "boom"
        assert results[2].value == "C"

    @pytest.mark.asyncio
    async def test_delay_is_waited_between_items_only(self) -> None:
        sleep = AsyncMock()
        with patch("src.application.orchestrator.work_queue.asyncio.sleep", sleep):
            await BoundedWorkQueue(1).map([1, 2, 3], AsyncMock(return_value=None), delay_seconds=0.5)

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        assert await BoundedWorkQueue(3).map([], AsyncMock()) == []

    @pytest.mark.asyncio
    async def test_nested_batches_share_one_bound(self) -> None:
        tracker = _InFlight()
        queue = BoundedWorkQueue(2)

        async def _crosslist(item: int) -> list[int]:
            inner = await queue.map([item, item + 10, item + 20], tracker.work)
            return [r.value for r in inner]

        results = await queue.map([1, 2, 3], _crosslist)

        assert tracker.peak == 2
        assert results[0].value == [10, 110, 210]
        assert all(r.ok for r in results)

    @pytest.mark.asyncio
    async def test_bound_restored_after_nested_batch(self) -> None:
        queue = BoundedWorkQueue(2)
        await queue.map([1], AsyncMock(return_value=None))

        tracker = _InFlight()
        await queue.map([1, 2, 3, 4], tracker.work)

        assert tracker.peak == 2
