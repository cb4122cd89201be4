# src/reliable_queue/tasks/task_scheduler.py

"""
Task dispatcher.

An event-driven loop (no polling) that:
- fills free concurrency slots with eligible tasks, in priority order,
- runs the processor for each one in its own asyncio task,
- marks tasks completed, or reschedules them with a backoff delay, or fails them,
- keeps one lazily-armed timer for the earliest not-yet-eligible task.

Everything runs on a single event loop; store mutations happen between
suspension points, so no locks are needed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable

from ..config import QueueConfig
from ..core.events import (
    EventBus,
    QueueUpdated,
    TaskCompleted,
    TaskFailed,
    TaskRetried,
    TaskStarted,
)
from ..core.ports import TaskProcessor
from .backoff import calculate_retry_delay
from .task_models import Task, TaskStatus
from .task_store import TaskStore

logger = logging.getLogger(__name__)


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


def _wants_task(processor: TaskProcessor) -> bool:
    """True if the processor takes the task snapshot after the payload."""
    try:
        params = list(inspect.signature(processor).parameters.values())
    except (TypeError, ValueError):
        return True

    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return True
    positional = [
        p
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    return len(positional) >= 2


class TaskDispatcher:
    """
    Bounded-concurrency dispatch loop.

    pump() is the single entry point: call it after anything that may make a
    task runnable (task added, task finished, retry scheduled, manual retry,
    processor installed). It never blocks and never raises.
    """

    def __init__(
        self,
        store: TaskStore,
        events: EventBus,
        config: QueueConfig,
        *,
        processor: TaskProcessor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._events = events
        self._config = config
        self._processor = processor
        self._clock = clock

        self._in_flight = 0
        self._running: set[asyncio.Task[None]] = set()
        self._wakeup: asyncio.TimerHandle | None = None
        self._wakeup_at: float | None = None
        self._closed = False
        self._idle = asyncio.Event()
        self._refresh_idle()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def has_processor(self) -> bool:
        return self._processor is not None

    def set_processor(self, processor: TaskProcessor | None) -> None:
        self._processor = processor
        self.pump()

    # ---- events ----

    def publish_queue(self) -> None:
        """Emit queue_updated with a snapshot of every tracked task."""
        self._refresh_idle()
        self._events.emit(QueueUpdated(tasks=self._store.snapshot()))

    def _refresh_idle(self) -> None:
        stats = self._store.counts()
        if stats.pending == 0 and stats.processing == 0:
            self._idle.set()
        else:
            self._idle.clear()

    # ---- dispatch ----

    def pump(self) -> None:
        processor = self._processor
        if self._closed or processor is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called from sync code without a loop: tasks wait for the next pump.
            logger.debug("pump() without a running event loop; dispatch deferred")
            return

        while self._in_flight < self._config.concurrency:
            task = self._store.next_eligible(self._clock())
            if task is None:
                break
            self._start(loop, task, processor)

        if self._in_flight < self._config.concurrency:
            self._arm_wakeup(loop)

    def _start(self, loop: asyncio.AbstractEventLoop, task: Task, processor: TaskProcessor) -> None:
        self._in_flight += 1
        self._store.update_task(task.id, status=TaskStatus.PROCESSING)
        logger.debug("Task %s -> processing (attempt %d)", task.id, task.attempt_count + 1)

        self._events.emit(TaskStarted(task=task.snapshot()))
        self.publish_queue()

        runner = loop.create_task(self._run(task, processor), name=f"reliable-queue:{task.id}")
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

    async def _run(self, task: Task, processor: TaskProcessor) -> None:
        try:
            if _wants_task(processor):
                result = processor(task.payload, task.snapshot())  # type: ignore[call-arg]
            else:
                result = processor(task.payload)  # type: ignore[call-arg]
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError as exc:
            runner = asyncio.current_task()
            if self._closed:
                # close() puts interrupted tasks back to PENDING.
                raise
            if runner is not None and runner.cancelling():
                # The runner itself was cancelled: the call did not finish.
                self._store.update_task(task.id, status=TaskStatus.PENDING)
                logger.warning("Task %s runner cancelled; back to pending", task.id)
                self.publish_queue()
                raise
            # Cancellation raised from inside the processor (e.g. an awaited
            # future cancelled elsewhere) counts as a failed attempt.
            self._on_failure(task, exc)
        except Exception as exc:
            self._on_failure(task, exc)
        else:
            self._on_success(task)
        finally:
            self._in_flight -= 1
            if not self._closed:
                asyncio.get_running_loop().call_soon(self.pump)

    def _on_success(self, task: Task) -> None:
        self._store.update_task(task.id, status=TaskStatus.COMPLETED)
        logger.info("Task %s -> completed", task.id)
        self._events.emit(TaskCompleted(task=task.snapshot()))
        self.publish_queue()

    def _on_failure(self, task: Task, exc: BaseException) -> None:
        attempts = task.attempt_count + 1
        error = _error_text(exc)

        if attempts >= self._config.max_retries:
            self._store.update_task(
                task.id,
                status=TaskStatus.FAILED,
                attempt_count=attempts,
                last_error=error,
            )
            logger.error("Task %s -> failed after %d attempt(s): %s", task.id, attempts, error)
            self._events.emit(TaskFailed(task=task.snapshot(), error=exc))
            self.publish_queue()
            return

        delay = calculate_retry_delay(
            attempts,
            self._config.retry_delay,
            self._config.exponential_backoff,
            self._config.max_retry_delay,
        )
        self._store.update_task(
            task.id,
            status=TaskStatus.PENDING,
            attempt_count=attempts,
            eligible_at=self._clock() + delay,
            last_error=error,
        )
        logger.warning(
            "Task %s attempt %d failed (%s); retry in %.3fs", task.id, attempts, error, delay
        )
        self._events.emit(TaskRetried(task=task.snapshot()))
        self.publish_queue()

    # ---- wake-up timer ----

    def _arm_wakeup(self, loop: asyncio.AbstractEventLoop) -> None:
        now = self._clock()
        due = self._store.next_wakeup(now)
        if due is None:
            return

        # A pending timer that fires no later than `due` already covers it.
        if self._wakeup is not None and self._wakeup_at is not None and self._wakeup_at <= due:
            return

        self._cancel_wakeup()
        self._wakeup_at = due
        self._wakeup = loop.call_later(max(0.0, due - now), self._on_wakeup)
        logger.debug("Wake-up armed in %.3fs", due - now)

    def _on_wakeup(self) -> None:
        self._wakeup = None
        self._wakeup_at = None
        self.pump()

    def _cancel_wakeup(self) -> None:
        if self._wakeup is not None:
            self._wakeup.cancel()
        self._wakeup = None
        self._wakeup_at = None

    # ---- lifecycle ----

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until no task is PENDING or PROCESSING (raises TimeoutError on timeout)."""
        self._refresh_idle()
        await asyncio.wait_for(self._idle.wait(), timeout)

    async def close(self) -> None:
        """Stop dispatching: cancel the wake-up timer and in-flight processor calls."""
        if self._closed:
            return
        self._closed = True
        self._cancel_wakeup()

        running = list(self._running)
        for runner in running:
            runner.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

        # Interrupted calls did not finish: their tasks are runnable again.
        for task in self._store.filter_by_status(TaskStatus.PROCESSING):
            self._store.update_task(task.id, status=TaskStatus.PENDING)
        self._in_flight = 0
        self._refresh_idle()
        logger.debug("Dispatcher closed (%d in-flight call(s) cancelled)", len(running))
