# config.example.py

"""
Documentation-only module (safe to commit).

The console app reads its configuration from environment variables (optionally via a local .env file).
Library users pass a QueueConfig directly and do not need any of these.

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "RQ_APP_NAME": "App display name (default: reliable-queue).",
    "RQ_LOG_LEVEL": "Console logging level (default: INFO). The file log is always DEBUG.",
    "RQ_DATA_DIR": "Local data directory for logs and storage (default: .local/reliable-queue).",
    # Queue defaults
    "RQ_MAX_RETRIES": "Failed attempts before a task becomes FAILED (default: 3).",
    "RQ_RETRY_DELAY": "Base retry delay in seconds (default: 1.0).",
    "RQ_EXPONENTIAL_BACKOFF": "Double the delay after every failure (true/false, default: true).",
    "RQ_MAX_RETRY_DELAY": "Cap for the retry delay in seconds (default: 30.0).",
    "RQ_CONCURRENCY": "Max simultaneous processor calls (default: 1).",
    # Persistence
    "RQ_PERSISTENT": "Keep tasks between runs (true/false, default: false).",
    "RQ_STORAGE_BACKEND": "json (one file per queue) or sqlite (one db for all queues).",
    "RQ_STORAGE_PATH": (
        "Directory for json files (default: <data_dir>/queues) "
        "or SQLite file (default: <data_dir>/queues.sqlite3)."
    ),
    # Console demo
    "RQ_DEMO_FAILURE_RATE": "Probability that a simulated task fails, 0..1 (default: 0.3).",
    "RQ_DEMO_WORK_SECONDS": "Simulated work duration per task in seconds (default: 0.5).",
}
