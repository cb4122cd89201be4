# src/reliable_queue/core/queue.py

"""
ReliableQueue: the object callers work with.

Thin orchestration over TaskStore (state), TaskDispatcher (execution) and
EventBus (notifications). Caller errors on existing tasks are reported as
False/0 return values; a duplicate id on add() raises DuplicateTaskError.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from ..config import QueueConfig
from ..tasks.backoff import generate_id
from ..tasks.task_models import QueueStats, Task, TaskStatus
from ..tasks.task_scheduler import TaskDispatcher
from ..tasks.task_store import TaskStore
from .events import EventBus, EventCallback, EventKind, Subscription, TaskAdded, TaskRetried
from .ports import PersistenceAdapter, TaskProcessor

logger = logging.getLogger(__name__)


class ReliableQueue:
    def __init__(
        self,
        config: QueueConfig | None = None,
        *,
        processor: TaskProcessor | None = None,
        adapter: PersistenceAdapter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config or QueueConfig()
        self._clock = clock

        if self._config.persistent and adapter is None:
            logger.warning(
                "Queue %s is persistent but has no storage adapter; running in memory",
                self._config.storage_key,
            )
        if not self._config.persistent:
            adapter = None

        self._events = EventBus()
        self._store = TaskStore(adapter, clock=clock)
        self._store.load()
        self._dispatcher = TaskDispatcher(
            self._store,
            self._events,
            self._config,
            processor=processor,
            clock=clock,
        )

    async def __aenter__(self) -> ReliableQueue:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ---- properties ----

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def storage_key(self) -> str:
        return self._config.storage_key

    @property
    def in_flight(self) -> int:
        return self._dispatcher.in_flight

    # ---- setup ----

    def set_processor(self, processor: TaskProcessor | None) -> None:
        """Install or replace the work function. Queued tasks wait while it is None."""
        self._dispatcher.set_processor(processor)

    def on(self, kind: EventKind | str, callback: EventCallback) -> Subscription:
        return self._events.subscribe(kind, callback)

    def start(self) -> None:
        """Dispatch whatever is runnable (e.g. tasks added before the loop started)."""
        self._dispatcher.pump()

    # ---- commands ----

    def add(
        self,
        payload: Any,
        *,
        priority: int = 0,
        delay: float | None = None,
        task_id: str | None = None,
    ) -> str:
        now = self._clock()
        wait = max(0.0, float(delay)) if delay else 0.0
        task = Task(
            id=task_id or generate_id(),
            payload=payload,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
            eligible_at=now + wait,
            priority=int(priority),
            delay=delay,
        )

        self._store.insert(task)
        logger.debug("Task %s added (priority=%s delay=%s)", task.id, task.priority, delay)

        self._events.emit(TaskAdded(task=task.snapshot()))
        self._dispatcher.publish_queue()
        self._dispatcher.pump()
        return task.id

    def remove(self, task_id: str) -> bool:
        if not self._store.remove(task_id):
            return False
        self._dispatcher.publish_queue()
        return True

    def _reset_failed(self, task: Task) -> None:
        self._store.update_task(
            task.id,
            status=TaskStatus.PENDING,
            attempt_count=0,
            eligible_at=self._clock(),
            clear_error=True,
        )
        self._events.emit(TaskRetried(task=task.snapshot()))

    def retry(self, task_id: str) -> bool:
        task = self._store.get(task_id)
        if task is None or task.status != TaskStatus.FAILED:
            return False

        self._reset_failed(task)
        logger.info("Task %s manually retried", task_id)
        self._dispatcher.publish_queue()
        self._dispatcher.pump()
        return True

    def retry_all(self) -> int:
        failed = self._store.filter_by_status(TaskStatus.FAILED)
        for task in failed:
            self._reset_failed(task)

        if failed:
            logger.info("Manually retried %d failed task(s)", len(failed))
            self._dispatcher.publish_queue()
            self._dispatcher.pump()
        return len(failed)

    def _clear_status(self, status: TaskStatus) -> int:
        removed = self._store.remove_where(lambda t: t.status == status)
        if removed:
            self._dispatcher.publish_queue()
        return removed

    def clear_completed(self) -> int:
        return self._clear_status(TaskStatus.COMPLETED)

    def clear_failed(self) -> int:
        return self._clear_status(TaskStatus.FAILED)

    def clear(self) -> None:
        """Remove every task except the ones being processed right now."""
        removed = self._store.remove_where(lambda t: True)
        if not removed:
            # remove_where() only saves when something went away.
            self._store.persist()
        logger.debug("Cleared %d task(s)", removed)
        self._dispatcher.publish_queue()

    # ---- queries ----

    def get_tasks(self) -> list[Task]:
        return self._store.snapshot()

    def get_task(self, task_id: str) -> Task | None:
        task = self._store.get(task_id)
        return task.snapshot() if task is not None else None

    def get_stats(self) -> QueueStats:
        return self._store.counts()

    # ---- lifecycle ----

    async def wait_idle(self, timeout: float | None = None) -> None:
        await self._dispatcher.wait_idle(timeout)

    async def close(self) -> None:
        await self._dispatcher.close()
