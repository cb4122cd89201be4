# src/reliable_queue/storage/sqlite_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from ..core.ports import TaskRecord

logger = logging.getLogger(__name__)


class SqliteTaskStorage:
    """
    SQLite persistence for named queues.

    Many queues share one database file; rows are namespaced by storage_key.
    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path, storage_key: str) -> None:
        if not storage_key or not storage_key.strip():
            raise ValueError("storage_key is required")

        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._storage_key = storage_key
        self._ensure_schema()
        logger.info("SqliteTaskStorage ready db=%s key=%s", self._db_path, storage_key)

    @property
    def storage_key(self) -> str:
        return self._storage_key

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS queue_tasks (
                    storage_key TEXT NOT NULL,
                    id TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'pending',
                    payload TEXT NOT NULL DEFAULT 'null',
                    priority INTEGER NOT NULL DEFAULT 0,
                    attempt_count INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    eligible_at REAL NOT NULL,
                    PRIMARY KEY (storage_key, id)
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(queue_tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE queue_tasks ADD COLUMN {name} {decl}")
                logger.info("SqliteTaskStorage migration: added column %s", name)

            add_col("delay", "REAL")
            add_col("last_error", "TEXT")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_queue_tasks_key_pos "
                "ON queue_tasks(storage_key, position)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> TaskRecord:
        return {
            "id": row["id"],
            "payload": json.loads(row["payload"]),
            "status": row["status"],
            "priority": int(row["priority"] or 0),
            "attempt_count": int(row["attempt_count"] or 0),
            "created_at": float(row["created_at"]),
            "updated_at": float(row["updated_at"]),
            "eligible_at": float(row["eligible_at"]),
            "delay": row["delay"],
            "last_error": row["last_error"],
        }

    # ---- PersistenceAdapter ----

    def load(self) -> list[TaskRecord] | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM queue_tasks WHERE storage_key = ? ORDER BY position ASC",
                (self._storage_key,),
            )
            rows = cur.fetchall()
        finally:
            conn.close()

        if not rows:
            return None

        out: list[TaskRecord] = []
        for row in rows:
            try:
                out.append(self._row_to_record(row))
            except (TypeError, ValueError):
                logger.warning("Skipping unreadable row id=%s key=%s", row["id"], self._storage_key)
        return out

    def save(self, tasks: list[TaskRecord]) -> None:
        params: list[tuple[Any, ...]] = [
            (
                self._storage_key,
                str(t["id"]),
                pos,
                str(t["status"]),
                json.dumps(t.get("payload"), ensure_ascii=False),
                int(t.get("priority") or 0),
                int(t.get("attempt_count") or 0),
                float(t["created_at"]),
                float(t["updated_at"]),
                float(t["eligible_at"]),
                t.get("delay"),
                t.get("last_error"),
            )
            for pos, t in enumerate(tasks)
        ]

        conn = self._get_conn()
        try:
            # One transaction: replace this queue's rows as a whole.
            with conn:
                conn.execute("DELETE FROM queue_tasks WHERE storage_key = ?", (self._storage_key,))
                conn.executemany(
                    """
                    INSERT INTO queue_tasks(
                        storage_key, id, position, status, payload,
                        priority, attempt_count, created_at, updated_at, eligible_at,
                        delay, last_error
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    params,
                )
        finally:
            conn.close()

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT COUNT(*) FROM queue_tasks WHERE storage_key = ?", (self._storage_key,)
            )
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()
