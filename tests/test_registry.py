# tests/test_registry.py

from __future__ import annotations

import pytest

from reliable_queue.config import QueueConfig
from reliable_queue.core.registry import QueueRegistry, storage_key_for
from reliable_queue.tasks.task_models import TaskStatus

from .fakes import GatedProcessor, MemoryAdapter, settle


def test_create_queue_is_get_or_create() -> None:
    registry = QueueRegistry()
    first = registry.create_queue("uploads")
    again = registry.create_queue("uploads", QueueConfig(concurrency=5))

    assert first is again
    assert again.config.concurrency == 1
    assert registry.get_queue("uploads") is first
    assert registry.get_queue("missing") is None
    assert registry.queue_names() == ["uploads"]


def test_storage_key_is_derived_from_name_unless_given() -> None:
    registry = QueueRegistry()
    derived = registry.create_queue("emails")
    explicit = registry.create_queue("reports", QueueConfig(storage_key="custom-key"))

    assert derived.storage_key == storage_key_for("emails") == "reliable-queue-emails"
    assert explicit.storage_key == "custom-key"


def test_registries_do_not_share_queues() -> None:
    a, b = QueueRegistry(), QueueRegistry()
    assert a.create_queue("q") is not b.create_queue("q")


def test_adapter_factory_used_only_for_persistent_queues() -> None:
    adapters: dict[str, MemoryAdapter] = {}

    def factory(storage_key: str) -> MemoryAdapter:
        adapters[storage_key] = MemoryAdapter()
        return adapters[storage_key]

    registry = QueueRegistry(adapter_factory=factory)
    registry.create_queue("volatile")
    durable = registry.create_queue("durable", QueueConfig(persistent=True))
    durable.add("x")

    assert list(adapters) == ["reliable-queue-durable"]
    assert adapters["reliable-queue-durable"].stored[0]["payload"] == "x"


def test_defaults_apply_to_new_queues() -> None:
    registry = QueueRegistry(defaults=QueueConfig(max_retries=7))
    assert registry.create_queue("q").config.max_retries == 7


def test_remove_queue_and_name_validation() -> None:
    registry = QueueRegistry()
    registry.create_queue("q")

    assert registry.remove_queue("q") is True
    assert registry.remove_queue("q") is False
    assert "q" not in registry
    with pytest.raises(ValueError):
        registry.create_queue("  ")


def test_clear_all_clears_every_queue() -> None:
    registry = QueueRegistry()
    for name in ("a", "b"):
        registry.create_queue(name).add(name)

    registry.clear_all()

    assert all(registry.get_queue(n).get_tasks() == [] for n in ("a", "b"))


@pytest.mark.asyncio
async def test_close_all_stops_dispatch_and_forgets_queues() -> None:
    registry = QueueRegistry()
    processor = GatedProcessor()
    queue = registry.create_queue("work", processor=processor)
    task_id = queue.add("x")
    await settle()

    await registry.close_all()

    assert len(registry) == 0
    assert queue.get_task(task_id).status == TaskStatus.PENDING
