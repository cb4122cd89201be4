# src/reliable_queue/config.py

"""Queue configuration and app settings loaded from environment variables (+ optional .env).

Design goals:
- QueueConfig: validated per-queue options, usable without any environment.
- Settings: one object for the console app, read from RQ_* variables.
- No side effects at import time; .env is read on first get_settings().
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from .errors import InvalidConfigError

ENV_PREFIX = "RQ"

DEFAULT_STORAGE_KEY = "reliable-queue"


@dataclass(frozen=True, slots=True)
class QueueConfig:
    """
    Options of a single queue. Durations are in seconds.

    - max_retries: failed attempts before a task becomes FAILED
    - retry_delay: base delay before a retry
    - exponential_backoff: double the delay on every failed attempt
    - max_retry_delay: cap for the exponential delay
    - concurrency: max simultaneous processor calls
    - persistent: load/save tasks through a persistence adapter
    - storage_key: namespace of the queue inside its storage
    """

    max_retries: int = 3
    retry_delay: float = 1.0
    exponential_backoff: bool = True
    max_retry_delay: float = 30.0
    concurrency: int = 1
    persistent: bool = False
    storage_key: str = DEFAULT_STORAGE_KEY

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise InvalidConfigError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.concurrency < 1:
            raise InvalidConfigError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.retry_delay < 0:
            raise InvalidConfigError(f"retry_delay must be >= 0, got {self.retry_delay}")
        if self.max_retry_delay < 0:
            raise InvalidConfigError(f"max_retry_delay must be >= 0, got {self.max_retry_delay}")
        if not self.storage_key or not self.storage_key.strip():
            raise InvalidConfigError("storage_key must not be empty")

    def with_storage_key(self, storage_key: str) -> QueueConfig:
        return replace(self, storage_key=storage_key)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Queue defaults ----
    max_retries: int
    retry_delay: float
    exponential_backoff: bool
    max_retry_delay: float
    concurrency: int

    # ---- Persistence ----
    persistent: bool
    storage_backend: str
    storage_path: Path

    # ---- Console demo ----
    demo_failure_rate: float
    demo_work_seconds: float

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "reliable-queue").strip() or "reliable-queue"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/reliable-queue"))

        storage_backend = _env(_k("STORAGE_BACKEND"), "json").strip().lower()
        if storage_backend not in ("json", "sqlite"):
            storage_backend = "json"

        default_storage = data_dir / ("queues.sqlite3" if storage_backend == "sqlite" else "queues")
        storage_path = _env_path(_k("STORAGE_PATH"), default_storage)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            max_retries=_env_int(_k("MAX_RETRIES"), 3),
            retry_delay=_env_float(_k("RETRY_DELAY"), 1.0),
            exponential_backoff=_env_bool(_k("EXPONENTIAL_BACKOFF"), True),
            max_retry_delay=_env_float(_k("MAX_RETRY_DELAY"), 30.0),
            concurrency=_env_int(_k("CONCURRENCY"), 1),
            persistent=_env_bool(_k("PERSISTENT"), False),
            storage_backend=storage_backend,
            storage_path=storage_path,
            demo_failure_rate=min(1.0, max(0.0, _env_float(_k("DEMO_FAILURE_RATE"), 0.3))),
            demo_work_seconds=max(0.0, _env_float(_k("DEMO_WORK_SECONDS"), 0.5)),
        )

    def queue_config(self, *, storage_key: str = DEFAULT_STORAGE_KEY) -> QueueConfig:
        """Queue defaults from the environment. Raises InvalidConfigError on bad values."""
        return QueueConfig(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            exponential_backoff=self.exponential_backoff,
            max_retry_delay=self.max_retry_delay,
            concurrency=self.concurrency,
            persistent=self.persistent,
            storage_key=storage_key,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        # Local .env never overrides variables already set in the environment.
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
