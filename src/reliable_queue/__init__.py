"""
reliable_queue: in-process task queue with retries, backoff, priorities and bounded concurrency.

Typical use:

    queue = ReliableQueue(QueueConfig(max_retries=3, concurrency=2))
    queue.set_processor(upload)
    queue.add({"file": "a.txt"}, priority=5)
    await queue.wait_idle()
"""

from .config import QueueConfig
from .core.events import (
    EventBus,
    EventKind,
    QueueEvent,
    QueueUpdated,
    Subscription,
    TaskAdded,
    TaskCompleted,
    TaskFailed,
    TaskRetried,
    TaskStarted,
)
from .core.queue import ReliableQueue
from .core.registry import QueueRegistry
from .errors import DuplicateTaskError, InvalidConfigError, ReliableQueueError
from .storage.json_store import JsonFileTaskStorage
from .storage.sqlite_store import SqliteTaskStorage
from .tasks.backoff import calculate_retry_delay, generate_id
from .tasks.task_models import QueueStats, Task, TaskStatus

__all__ = [
    "DuplicateTaskError",
    "EventBus",
    "EventKind",
    "InvalidConfigError",
    "JsonFileTaskStorage",
    "QueueConfig",
    "QueueEvent",
    "QueueRegistry",
    "QueueStats",
    "QueueUpdated",
    "ReliableQueue",
    "ReliableQueueError",
    "SqliteTaskStorage",
    "Subscription",
    "Task",
    "TaskAdded",
    "TaskCompleted",
    "TaskFailed",
    "TaskRetried",
    "TaskStarted",
    "TaskStatus",
    "calculate_retry_delay",
    "generate_id",
]
