# src/reliable_queue/storage/json_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path

from ..core.ports import TaskRecord

logger = logging.getLogger(__name__)


class JsonFileTaskStorage:
    """
    One queue per JSON file.

    Writes go to '<file>.tmp' first and are moved into place with os.replace,
    so a crash mid-write never leaves a truncated file behind.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @classmethod
    def for_key(cls, directory: str | Path, storage_key: str) -> JsonFileTaskStorage:
        return cls(Path(directory) / f"{storage_key}.json")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[TaskRecord] | None:
        if not self._path.exists():
            return None

        data = json.loads(self._path.read_text("utf-8"))
        if not isinstance(data, list):
            logger.warning("Ignoring %s: expected a JSON list of tasks", self._path)
            return None

        records = [r for r in data if isinstance(r, dict)]
        logger.debug("Read %d task record(s) from %s", len(records), self._path)
        return records

    def save(self, tasks: list[TaskRecord]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(tasks, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(OSError):
            # Payloads may be sensitive: keep the file private on disk.
            os.chmod(self._path, 0o600)
