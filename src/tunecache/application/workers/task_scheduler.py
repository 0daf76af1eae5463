"""Bounded-concurrency task scheduler with recursive spawning.

Hey future me - this is the ENGINE ROOM of a sync run! Every page fetch of every chain goes
through exactly one TaskScheduler, so its concurrency bound is the global limit on driver
and store I/O.

RULES:
1. submit() never blocks - work lands in a FIFO ready queue and is launched as soon as a
   slot is free.
2. Running tasks may submit() more work (a page task submits its own continuation).
3. drain() waits until the ready queue is empty AND nothing runs. It re-checks after every
   completion, so continuations spawned while draining are never missed.
4. A failing task never cancels siblings (bulkhead). The error goes to the task's on_error
   callback and into `failures`.
5. stop() = stop launching. Running tasks finish, queued ones are dropped.

USAGE:
```python
scheduler = TaskScheduler(concurrency=5)
scheduler.submit(lambda: fetch_page(0), label="album@0", on_error=errors.append)
await scheduler.drain()
```
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[None]]
ErrorHandler = Callable[[Exception], None]


@dataclass(frozen=True)
class TaskFailure:
    """A task that raised, as recorded by the scheduler."""

    label: str | None
    error: Exception


@dataclass
class _QueuedTask:
    factory: TaskFactory
    label: str | None
    on_error: ErrorHandler | None


class TaskScheduler:
    """Runs submitted coroutine factories with at most ``concurrency`` in flight."""

    def __init__(self, concurrency: int = 5) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._concurrency = concurrency
        self._ready: deque[_QueuedTask] = deque()
        self._running: set[asyncio.Task[None]] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._stopped = False
        self._failures: list[TaskFailure] = []
        self._max_in_flight = 0

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def size(self) -> int:
        """Tasks waiting in the ready queue."""
        return len(self._ready)

    @property
    def pending(self) -> int:
        """Tasks currently running."""
        return len(self._running)

    @property
    def is_idle(self) -> bool:
        return not self._running and not self._ready

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    @property
    def max_in_flight(self) -> int:
        """Highest number of simultaneously running tasks seen so far."""
        return self._max_in_flight

    @property
    def failures(self) -> list[TaskFailure]:
        return list(self._failures)

    def submit(
        self,
        factory: TaskFactory,
        *,
        label: str | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        """Queue a unit of work. Must be called from inside the event loop."""
        if self._stopped:
            logger.debug(f"Scheduler stopped, dropping task {label or '<unnamed>'}")
            return
        self._ready.append(_QueuedTask(factory=factory, label=label, on_error=on_error))
        self._launch_ready()

    async def drain(self) -> None:
        """Wait until the ready queue is empty and no task is running."""
        while not self.is_idle:
            await self._idle.wait()

    def stop(self) -> None:
        """Stop launching queued tasks. Running tasks are allowed to finish."""
        if self._stopped:
            return
        self._stopped = True
        dropped = len(self._ready)
        self._ready.clear()
        if dropped:
            logger.info(f"Scheduler stopped, {dropped} queued task(s) dropped")
        self._update_idle()

    def _launch_ready(self) -> None:
        while (
            self._ready
            and not self._stopped
            and len(self._running) < self._concurrency
        ):
            item = self._ready.popleft()
            task = asyncio.create_task(self._run(item), name=item.label)
            self._running.add(task)
            task.add_done_callback(self._on_task_done)
        self._max_in_flight = max(self._max_in_flight, len(self._running))
        self._update_idle()

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        self._launch_ready()

    def _update_idle(self) -> None:
        if self.is_idle:
            self._idle.set()
        else:
            self._idle.clear()

    async def _run(self, item: _QueuedTask) -> None:
        try:
            await item.factory()
        except Exception as e:
            self._failures.append(TaskFailure(label=item.label, error=e))
            logger.debug(f"Task {item.label or '<unnamed>'} failed: {e}")
            if item.on_error is not None:
                try:
                    item.on_error(e)
                except Exception:
                    logger.exception(
                        f"Error handler of task {item.label or '<unnamed>'} raised"
                    )
