# src/reliable_queue/core/ports.py

"""
Ports (interfaces) used by the core.

The engine depends on Protocols instead of concrete implementations.
This keeps the work function and the storage backend swappable and makes testing easier.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import Task

TaskRecord = dict[str, Any]
# Persisted form of a Task (see Task.to_dict / Task.from_dict).

TaskProcessor = Callable[[Any], Awaitable[None] | None] | Callable[[Any, "Task"], Awaitable[None] | None]
# Work function: (payload) or (payload, task snapshot). Raising is the only failure signal.


class PersistenceAdapter(Protocol):
    """
    Storage-side port: where a queue keeps its tasks between runs.

    Both calls are best-effort; the engine logs and ignores any exception.
    - load() is called once, when the queue is built. None means "nothing stored".
    - save() receives every tracked task after each mutation.
    """

    def load(self) -> list[TaskRecord] | None: ...

    def save(self, tasks: list[TaskRecord]) -> None: ...
