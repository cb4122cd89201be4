# src/reliable_queue/core/registry.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..config import DEFAULT_STORAGE_KEY, QueueConfig
from .ports import PersistenceAdapter, TaskProcessor
from .queue import ReliableQueue

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str], PersistenceAdapter]


def storage_key_for(name: str) -> str:
    return f"{DEFAULT_STORAGE_KEY}-{name}"


class QueueRegistry:
    """
    Named queues, one instance per name.

    An explicit object owned by the caller (no process-wide singleton): build
    one in the composition root and pass it where it is needed.
    """

    def __init__(
        self,
        *,
        defaults: QueueConfig | None = None,
        adapter_factory: AdapterFactory | None = None,
    ) -> None:
        self._defaults = defaults or QueueConfig()
        self._adapter_factory = adapter_factory
        self._queues: dict[str, ReliableQueue] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._queues

    def __len__(self) -> int:
        return len(self._queues)

    def create_queue(
        self,
        name: str,
        config: QueueConfig | None = None,
        *,
        processor: TaskProcessor | None = None,
    ) -> ReliableQueue:
        """
        Return the queue called `name`, building it on first use.

        The storage key defaults to 'reliable-queue-<name>' unless the given
        config names its own. Config and processor are ignored for an existing queue.
        """
        if not name or not name.strip():
            raise ValueError("queue name is required")

        existing = self._queues.get(name)
        if existing is not None:
            return existing

        cfg = config or self._defaults
        if cfg.storage_key == DEFAULT_STORAGE_KEY:
            cfg = cfg.with_storage_key(storage_key_for(name))

        adapter: PersistenceAdapter | None = None
        if cfg.persistent and self._adapter_factory is not None:
            adapter = self._adapter_factory(cfg.storage_key)

        queue = ReliableQueue(cfg, processor=processor, adapter=adapter)
        self._queues[name] = queue
        logger.info("Queue %s created (storage_key=%s)", name, cfg.storage_key)
        return queue

    def get_queue(self, name: str) -> ReliableQueue | None:
        return self._queues.get(name)

    def remove_queue(self, name: str) -> bool:
        """Forget a queue. The caller is responsible for closing it."""
        return self._queues.pop(name, None) is not None

    def queue_names(self) -> list[str]:
        return list(self._queues)

    def clear_all(self) -> None:
        for queue in self._queues.values():
            queue.clear()

    async def close_all(self) -> None:
        """Close every queue and forget them."""
        queues = list(self._queues.values())
        self._queues.clear()
        for queue in queues:
            await queue.close()
