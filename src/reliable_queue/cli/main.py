# src/reliable_queue/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState (registry + demo queue), prints queue
events as they happen and runs a slash-command console until /exit or EOF.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime

from ..cli.bootstrap import AppState, create_initial_state
from ..cli.commands import registry as command_registry
from ..config import get_settings
from ..core.events import EventKind, QueueEvent, TaskCompleted, TaskFailed, TaskRetried
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _print_event(event: QueueEvent) -> None:
    if isinstance(event, TaskCompleted):
        _print_ts(f"[DONE] {event.task.id} {event.task.payload!r}")
    elif isinstance(event, TaskRetried):
        task = event.task
        reason = f" ({task.last_error})" if task.last_error else ""
        _print_ts(f"[RETRY] {task.id} attempt {task.attempt_count}{reason}")
    elif isinstance(event, TaskFailed):
        _print_ts(f"[FAILED] {event.task.id} {event.error}")


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str | None]) -> None:
    """Read stdin in a daemon thread so a blocked input() never holds up shutdown."""

    def reader() -> None:
        while True:
            try:
                line = input()
            except (EOFError, KeyboardInterrupt):
                loop.call_soon_threadsafe(lines.put_nowait, None)
                return
            loop.call_soon_threadsafe(lines.put_nowait, line)

    threading.Thread(target=reader, name="stdin-reader", daemon=True).start()


async def run_console(state: AppState) -> None:
    for kind in (EventKind.TASK_COMPLETED, EventKind.TASK_RETRIED, EventKind.TASK_FAILED):
        state.queue.on(kind, _print_event)

    state.queue.start()
    stats = state.queue.get_stats()
    if stats.total:
        _print_ts(f"[QUEUE] Restored {stats.total} task(s) from storage.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.")

    lines: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), lines)

    while True:
        raw = await lines.get()
        if raw is None:
            logger.info("Console EOF received, exiting.")
            break

        user_input = raw.strip()
        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            response = command_registry.handle(state, user_input, emit=_print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list them."
        _print_ts(response)


async def _amain(state: AppState) -> None:
    try:
        await run_console(state)
    finally:
        await state.registry.close_all()


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_amain(state))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt, exiting.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
