# src/reliable_queue/tasks/task_models.py

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Transitions:
    - pending -> processing
    - processing -> completed | pending (retry scheduled) | failed
    - failed -> pending (manual retry only)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def from_raw(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


@dataclass(slots=True)
class Task:
    id: str
    payload: Any
    status: TaskStatus
    created_at: float
    updated_at: float
    eligible_at: float

    priority: int = 0
    attempt_count: int = 0
    delay: float | None = None
    last_error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> Task:
        """Shallow copy handed out to callers and event subscribers."""
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """
        Build a Task from a persisted record.

        Raises KeyError/TypeError/ValueError on records that cannot be read.
        """
        created_at = float(data["created_at"])
        delay = data.get("delay")
        return cls(
            id=str(data["id"]),
            payload=data.get("payload"),
            status=TaskStatus.from_raw(data.get("status")),
            created_at=created_at,
            updated_at=float(data.get("updated_at") or created_at),
            eligible_at=float(data.get("eligible_at") or created_at),
            priority=int(data.get("priority") or 0),
            attempt_count=int(data.get("attempt_count") or 0),
            delay=float(delay) if delay is not None else None,
            last_error=data.get("last_error"),
        )


@dataclass(slots=True, frozen=True)
class QueueStats:
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)
