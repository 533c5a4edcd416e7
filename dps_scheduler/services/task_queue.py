"""A small pausable work queue for coroutine factories.

``TaskQueue(concurrency=1)`` serializes dispatch: tasks run one at a time in
submission order.  ``pause()`` only withholds *future* dispatch; a task that
is already running always finishes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class TaskQueue:
    def __init__(self, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._concurrency = concurrency
        self._slots: asyncio.Semaphore | None = None
        self._running: asyncio.Event | None = None
        self._paused = False
        self._queued: set[asyncio.Task] = set()
        self._in_flight = 0

    # Asyncio primitives are created lazily so the queue can be built
    # outside a running event loop.
    def _primitives(self) -> tuple[asyncio.Semaphore, asyncio.Event]:
        if self._slots is None or self._running is None:
            self._slots = asyncio.Semaphore(self._concurrency)
            self._running = asyncio.Event()
            if not self._paused:
                self._running.set()
        return self._slots, self._running

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def size(self) -> int:
        """Tasks submitted but not yet dispatched."""
        return len(self._queued)

    @property
    def pending(self) -> int:
        """Tasks currently running."""
        return self._in_flight

    def pause(self) -> None:
        self._paused = True
        if self._running is not None:
            self._running.clear()
        logger.debug("Queue paused (%d queued, %d running)", self.size, self.pending)

    def start(self) -> None:
        self._paused = False
        if self._running is not None:
            self._running.set()
        logger.debug("Queue resumed (%d queued)", self.size)

    def clear(self) -> int:
        """Cancel every task that has not been dispatched yet."""
        queued = list(self._queued)
        for task in queued:
            task.cancel()
        return len(queued)

    # ── Dispatch ─────────────────────────────────────────────────────

    async def _dispatch(self, factory: TaskFactory) -> Any:
        slots, running = self._primitives()
        task = asyncio.current_task()
        while True:
            await running.wait()
            await slots.acquire()
            if running.is_set():
                break
            # Paused while waiting for a free slot
            slots.release()

        self._queued.discard(task)
        self._in_flight += 1
        try:
            return await factory()
        finally:
            self._in_flight -= 1
            slots.release()

    async def add_all(self, factories: Iterable[TaskFactory]) -> list[Any]:
        """Submit a batch and wait until every task has settled.

        Returns each task's result or the exception it raised, in
        submission order.  Tasks removed by ``clear()`` appear as
        ``asyncio.CancelledError``.
        """
        self._primitives()
        tasks = []
        for factory in factories:
            task = asyncio.ensure_future(self._dispatch(factory))
            self._queued.add(task)
            tasks.append(task)
        try:
            return await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            for task in tasks:
                self._queued.discard(task)
