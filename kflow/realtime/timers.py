"""Clock, timer and background-task primitives for the realtime core.

Timers are fire-and-forget: callers never cancel an individual timer, they
compare a timestamp or generation at fire time instead. The scheduler can
cancel everything at once on shutdown so nothing outlives the service.
"""

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any

from kflow.observability.logging import get_logger

logger = get_logger(__name__)

TimerCallback = Callable[[], None]


class Scheduler(ABC):
    """Abstract clock plus delayed-callback facility."""

    @abstractmethod
    def now_ms(self) -> int:
        """Current time in milliseconds."""
        pass

    @abstractmethod
    def call_later(self, delay_ms: int, callback: TimerCallback) -> None:
        """Run callback once after delay_ms milliseconds."""
        pass

    @abstractmethod
    def cancel_all(self) -> int:
        """Cancel every pending timer, returning how many were cancelled."""
        pass

    @property
    @abstractmethod
    def pending(self) -> int:
        """Number of timers that have not fired yet."""
        pass


class LoopScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self) -> None:
        self._handles: dict[int, asyncio.TimerHandle] = {}
        self._ids = itertools.count()

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def call_later(self, delay_ms: int, callback: TimerCallback) -> None:
        loop = asyncio.get_running_loop()
        timer_id = next(self._ids)
        self._handles[timer_id] = loop.call_later(
            delay_ms / 1000, self._fire, timer_id, callback
        )

    def cancel_all(self) -> int:
        cancelled = len(self._handles)
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        return cancelled

    @property
    def pending(self) -> int:
        return len(self._handles)

    def _fire(self, timer_id: int, callback: TimerCallback) -> None:
        self._handles.pop(timer_id, None)
        callback()


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven by an explicit clock.

    Intended for tests and replay tooling: time only moves when advance()
    is called, and due callbacks run in timestamp order.
    """

    def __init__(self, start_ms: int = 1_000_000) -> None:
        self._now = start_ms
        self._queue: list[tuple[int, int, TimerCallback]] = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now

    def call_later(self, delay_ms: int, callback: TimerCallback) -> None:
        heapq.heappush(self._queue, (self._now + delay_ms, next(self._seq), callback))

    def cancel_all(self) -> int:
        cancelled = len(self._queue)
        self._queue.clear()
        return cancelled

    @property
    def pending(self) -> int:
        return len(self._queue)

    def advance(self, ms: int) -> int:
        """Move the clock forward, firing every timer that becomes due.

        Returns:
            Number of callbacks fired
        """
        target = self._now + ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, callback = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            callback()
            fired += 1
        self._now = target
        return fired


class TaskTracker:
    """Keeps references to background coroutines until they finish.

    Failures are logged here; tasks are expected to handle their own
    errors, so anything reaching this point is unexpected.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Schedule a coroutine on the running loop."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        """Cancel all tracked tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
