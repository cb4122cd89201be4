# src/reliable_queue/errors.py

from __future__ import annotations


class ReliableQueueError(Exception):
    """Base class for errors raised by the queue engine."""


class InvalidConfigError(ReliableQueueError, ValueError):
    """Queue configuration is malformed (raised at construction time)."""


class DuplicateTaskError(ReliableQueueError, ValueError):
    """A task with the same id is already tracked by the queue."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task id already exists: {task_id}")
        self.task_id = task_id
