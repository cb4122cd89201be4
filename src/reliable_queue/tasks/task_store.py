# src/reliable_queue/tasks/task_store.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from ..core.ports import PersistenceAdapter
from ..errors import DuplicateTaskError
from .task_models import QueueStats, Task, TaskStatus

logger = logging.getLogger(__name__)


def _order_key(task: Task) -> tuple[int, float]:
    # Higher priority first, then older first. list.sort is stable, so equal
    # keys keep insertion order.
    return (-task.priority, task.created_at)


class TaskStore:
    """
    In-memory ordered task collection.

    Tasks are kept sorted by (priority desc, created_at asc), so "what runs next"
    is a linear scan for the first eligible PENDING task.

    Persistence:
    - if an adapter is given, load() restores tasks once (PROCESSING -> PENDING)
    - every mutation calls adapter.save(); failures are logged, never raised

    The clock is wall time (time.time), not time.monotonic: eligible_at and
    created_at are persisted and must still mean the same instant after a
    restart.
    """

    def __init__(
        self,
        adapter: PersistenceAdapter | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tasks: list[Task] = []
        self._by_id: dict[str, Task] = {}
        self._adapter = adapter
        self._clock = clock

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._by_id

    # ---- persistence ----

    def load(self) -> int:
        """Restore tasks from the adapter. Returns how many were loaded."""
        if self._adapter is None:
            return 0

        try:
            records = self._adapter.load()
        except Exception:
            logger.exception("Failed to load queue from storage")
            return 0

        if not records:
            return 0

        loaded = 0
        for raw in records:
            try:
                task = Task.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed stored task: %r", raw)
                continue

            if task.id in self._by_id:
                logger.warning("Skipping duplicate stored task id=%s", task.id)
                continue

            # In-flight work cannot have survived a restart.
            if task.status == TaskStatus.PROCESSING:
                task.status = TaskStatus.PENDING

            self._tasks.append(task)
            self._by_id[task.id] = task
            loaded += 1

        self._sort()
        logger.info("Loaded %d task(s) from storage", loaded)
        return loaded

    def persist(self) -> None:
        if self._adapter is None:
            return
        try:
            self._adapter.save([t.to_dict() for t in self._tasks])
        except Exception:
            logger.exception("Failed to save queue to storage")

    # ---- low-level helpers ----

    def _sort(self) -> None:
        self._tasks.sort(key=_order_key)

    def _detach(self, doomed: Iterable[Task]) -> int:
        ids = {t.id for t in doomed}
        if not ids:
            return 0
        self._tasks = [t for t in self._tasks if t.id not in ids]
        for task_id in ids:
            del self._by_id[task_id]
        return len(ids)

    # ---- public API ----

    def insert(self, task: Task) -> None:
        if task.id in self._by_id:
            raise DuplicateTaskError(task.id)

        self._tasks.append(task)
        self._by_id[task.id] = task
        self._sort()
        self.persist()
        logger.debug(
            "Task inserted id=%s priority=%s eligible_at=%s",
            task.id,
            task.priority,
            task.eligible_at,
        )

    def get(self, task_id: str) -> Task | None:
        return self._by_id.get(task_id)

    def all(self) -> list[Task]:
        """Live task objects in dispatch order (callers must not mutate them)."""
        return list(self._tasks)

    def snapshot(self) -> list[Task]:
        return [t.snapshot() for t in self._tasks]

    def next_eligible(self, now: float) -> Task | None:
        for task in self._tasks:
            if task.status == TaskStatus.PENDING and task.eligible_at <= now:
                return task
        return None

    def next_wakeup(self, now: float) -> float | None:
        """Earliest eligible_at among PENDING tasks that are not runnable yet."""
        times = [
            t.eligible_at
            for t in self._tasks
            if t.status == TaskStatus.PENDING and t.eligible_at > now
        ]
        return min(times) if times else None

    def update_task(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        attempt_count: int | None = None,
        eligible_at: float | None = None,
        last_error: str | None = None,
        clear_error: bool = False,
    ) -> Task | None:
        task = self._by_id.get(task_id)
        if task is None:
            return None

        if status is not None:
            task.status = status
        if attempt_count is not None:
            task.attempt_count = int(attempt_count)
        if eligible_at is not None:
            task.eligible_at = float(eligible_at)
        if last_error is not None:
            task.last_error = last_error
        elif clear_error:
            task.last_error = None

        task.updated_at = self._clock()

        if status == TaskStatus.PENDING:
            self._sort()

        self.persist()
        return task

    def remove(self, task_id: str) -> bool:
        task = self._by_id.get(task_id)
        if task is None or task.status == TaskStatus.PROCESSING:
            return False

        self._detach([task])
        self.persist()
        logger.debug("Task removed id=%s", task_id)
        return True

    def remove_where(self, predicate: Callable[[Task], bool]) -> int:
        """Bulk removal; PROCESSING tasks are always kept."""
        doomed = [
            t for t in self._tasks if t.status != TaskStatus.PROCESSING and predicate(t)
        ]
        removed = self._detach(doomed)
        if removed:
            self.persist()
        return removed

    def filter_by_status(self, status: TaskStatus) -> list[Task]:
        return [t for t in self._tasks if t.status == status]

    def counts(self) -> QueueStats:
        by_status = {s: 0 for s in TaskStatus}
        for task in self._tasks:
            by_status[task.status] += 1
        return QueueStats(
            total=len(self._tasks),
            pending=by_status[TaskStatus.PENDING],
            processing=by_status[TaskStatus.PROCESSING],
            completed=by_status[TaskStatus.COMPLETED],
            failed=by_status[TaskStatus.FAILED],
        )
