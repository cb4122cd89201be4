# src/reliable_queue/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the storage backend and wires it into a QueueRegistry,
- builds the demo queue and its simulated work function.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

from ..config import Settings, get_settings
from ..core.ports import PersistenceAdapter
from ..core.queue import ReliableQueue
from ..core.registry import AdapterFactory, QueueRegistry, storage_key_for
from ..storage.json_store import JsonFileTaskStorage
from ..storage.sqlite_store import SqliteTaskStorage
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)

DEMO_QUEUE_NAME = "demo"


@dataclass
class AppState:
    settings: Settings
    registry: QueueRegistry
    queue: ReliableQueue
    queue_name: str = DEMO_QUEUE_NAME


def build_adapter_factory(settings: Settings) -> AdapterFactory:
    """Storage backend selected by RQ_STORAGE_BACKEND (json files or one SQLite db)."""
    if settings.storage_backend == "sqlite":

        def sqlite_factory(storage_key: str) -> PersistenceAdapter:
            return SqliteTaskStorage(settings.storage_path, storage_key)

        return sqlite_factory

    def json_factory(storage_key: str) -> PersistenceAdapter:
        return JsonFileTaskStorage.for_key(settings.storage_path, storage_key)

    return json_factory


def make_demo_processor(settings: Settings, rng: random.Random | None = None):
    """Simulated work: sleeps a bit, then fails with probability demo_failure_rate."""
    rng = rng or random.Random()

    async def process(payload: Any, task: Task) -> None:
        await asyncio.sleep(settings.demo_work_seconds)
        if rng.random() < settings.demo_failure_rate:
            raise RuntimeError(f"simulated failure for {payload!r}")
        logger.debug("Processed %r (task %s)", payload, task.id)

    return process


def create_initial_state(*, settings: Settings | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)

    registry = QueueRegistry(
        defaults=settings.queue_config(),
        adapter_factory=build_adapter_factory(settings),
    )
    queue = registry.create_queue(
        DEMO_QUEUE_NAME,
        settings.queue_config(storage_key=storage_key_for(DEMO_QUEUE_NAME)),
        processor=make_demo_processor(settings),
    )
    return AppState(settings=settings, registry=registry, queue=queue)
