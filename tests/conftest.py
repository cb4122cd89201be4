# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from reliable_queue.cli.bootstrap import AppState
from reliable_queue.config import QueueConfig, Settings
from reliable_queue.core.queue import ReliableQueue
from reliable_queue.core.registry import QueueRegistry

from .fakes import ManualClock, MemoryAdapter


@pytest.fixture()
def fast_config() -> QueueConfig:
    """Retries without waiting, so a failing task drains immediately."""
    return QueueConfig(max_retries=2, retry_delay=0.0, exponential_backoff=False)


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def adapter() -> MemoryAdapter:
    return MemoryAdapter()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings built directly instead of from the environment,
    to keep unit tests isolated and deterministic.
    """
    return Settings(
        app_name="reliable-queue-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        max_retries=2,
        retry_delay=0.0,
        exponential_backoff=False,
        max_retry_delay=0.0,
        concurrency=1,
        persistent=False,
        storage_backend="json",
        storage_path=tmp_path / "queues",
        demo_failure_rate=0.0,
        demo_work_seconds=0.0,
    )


@pytest.fixture()
def state(settings: Settings) -> AppState:
    """AppState with a processor-less queue: tasks stay where the test puts them."""
    registry = QueueRegistry(defaults=settings.queue_config())
    queue = registry.create_queue("demo")
    return AppState(settings=settings, registry=registry, queue=queue)


@pytest.fixture()
def queue(fast_config: QueueConfig) -> ReliableQueue:
    return ReliableQueue(fast_config)
