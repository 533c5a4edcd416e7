"""Tests for the pausable task queue."""

from __future__ import annotations

import asyncio

import pytest

from dps_scheduler.services.task_queue import TaskQueue


class TestDispatch:
    def test_runs_serially_in_submission_order(self):
        events: list[str] = []

        def factory(name: str):
            async def _task():
                events.append(f"start {name}")
                await asyncio.sleep(0)
                events.append(f"end {name}")
                return name

            return _task

        async def scenario():
            queue = TaskQueue(concurrency=1)
            return await queue.add_all([factory("a"), factory("b"), factory("c")])

        results = asyncio.run(scenario())
        assert results == ["a", "b", "c"]
        assert events == ["start a", "end a", "start b", "end b", "start c", "end c"]

    def test_exceptions_are_returned_not_raised(self):
        async def boom():
            raise ValueError("nope")

        async def ok():
            return 1

        results = asyncio.run(TaskQueue().add_all([boom, ok]))
        assert isinstance(results[0], ValueError)
        assert results[1] == 1

    def test_concurrency_limit_is_respected(self):
        peak = 0
        running = 0

        async def task():
            nonlocal peak, running
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            running -= 1

        asyncio.run(TaskQueue(concurrency=2).add_all([task] * 5))
        assert peak == 2

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            TaskQueue(concurrency=0)


class TestPauseAndResume:
    def test_pause_withholds_further_dispatch(self):
        started: list[int] = []

        async def scenario():
            queue = TaskQueue()

            def factory(n: int):
                async def _task():
                    started.append(n)
                    if n == 1:
                        queue.pause()
                    return n

                return _task

            batch = asyncio.ensure_future(queue.add_all([factory(1), factory(2), factory(3)]))
            for _ in range(5):
                await asyncio.sleep(0)
            assert queue.is_paused
            assert started == [1]
            assert queue.size == 2

            queue.start()
            return await batch

        assert asyncio.run(scenario()) == [1, 2, 3]
        assert started == [1, 2, 3]

    def test_in_flight_task_finishes_after_pause(self):
        async def scenario():
            queue = TaskQueue()
            gate = asyncio.Event()

            async def slow():
                await gate.wait()
                return "done"

            batch = asyncio.ensure_future(queue.add_all([slow]))
            for _ in range(3):
                await asyncio.sleep(0)
            queue.pause()
            assert queue.pending == 1
            gate.set()
            return await batch

        assert asyncio.run(scenario()) == ["done"]

    def test_clear_cancels_undispatched_tasks(self):
        async def scenario():
            queue = TaskQueue()

            async def first():
                queue.pause()
                queue.clear()
                return "first"

            async def never():
                return "never"

            return await queue.add_all([first, never, never])

        results = asyncio.run(scenario())
        assert results[0] == "first"
        assert all(isinstance(r, asyncio.CancelledError) for r in results[1:])
