# src/reliable_queue/core/events.py

"""
Lifecycle event bus.

Synchronous fan-out: emit() calls every subscriber of the event kind, in
subscription order, before returning. A subscriber that raises is logged and
skipped; it never affects other subscribers or the engine.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import ClassVar

from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


class EventKind(StrEnum):
    TASK_ADDED = "task_added"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_RETRIED = "task_retried"
    QUEUE_UPDATED = "queue_updated"


@dataclass(slots=True, frozen=True)
class TaskAdded:
    kind: ClassVar[EventKind] = EventKind.TASK_ADDED
    task: Task


@dataclass(slots=True, frozen=True)
class TaskStarted:
    kind: ClassVar[EventKind] = EventKind.TASK_STARTED
    task: Task


@dataclass(slots=True, frozen=True)
class TaskCompleted:
    kind: ClassVar[EventKind] = EventKind.TASK_COMPLETED
    task: Task


@dataclass(slots=True, frozen=True)
class TaskFailed:
    kind: ClassVar[EventKind] = EventKind.TASK_FAILED
    task: Task
    error: BaseException


@dataclass(slots=True, frozen=True)
class TaskRetried:
    kind: ClassVar[EventKind] = EventKind.TASK_RETRIED
    task: Task


@dataclass(slots=True, frozen=True)
class QueueUpdated:
    kind: ClassVar[EventKind] = EventKind.QUEUE_UPDATED
    tasks: list[Task] = field(default_factory=list)


QueueEvent = TaskAdded | TaskStarted | TaskCompleted | TaskFailed | TaskRetried | QueueUpdated
EventCallback = Callable[[QueueEvent], object]


@dataclass(slots=True, frozen=True)
class Subscription:
    """Handle returned by EventBus.subscribe(). Calling it unsubscribes."""

    bus: EventBus
    kind: EventKind
    token: int

    def unsubscribe(self) -> bool:
        return self.bus.unsubscribe(self.kind, self.token)

    def __call__(self) -> bool:
        return self.unsubscribe()


class EventBus:
    def __init__(self) -> None:
        self._subscribers: dict[EventKind, dict[int, EventCallback]] = {k: {} for k in EventKind}
        self._tokens = itertools.count(1)

    def subscribe(self, kind: EventKind | str, callback: EventCallback) -> Subscription:
        kind = EventKind(kind)
        token = next(self._tokens)
        self._subscribers[kind][token] = callback
        return Subscription(bus=self, kind=kind, token=token)

    def unsubscribe(self, kind: EventKind | str, token: int) -> bool:
        return self._subscribers[EventKind(kind)].pop(token, None) is not None

    def subscriber_count(self, kind: EventKind | str) -> int:
        return len(self._subscribers[EventKind(kind)])

    def emit(self, event: QueueEvent) -> None:
        # Copy: callbacks may (un)subscribe while we iterate.
        callbacks = list(self._subscribers[event.kind].values())
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Error in queue event handler for %s", event.kind.value)
