# src/reliable_queue/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from datetime import datetime
from typing import cast

from ..errors import DuplicateTaskError
from ..tasks.task_models import Task
from .bootstrap import AppState

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _ts(epoch: float) -> str:
    return datetime.fromtimestamp(epoch).astimezone().strftime("%H:%M:%S")


def format_task(task: Task) -> str:
    line = (
        f"{task.id}  [{task.status.value}]  prio={task.priority}  "
        f"attempts={task.attempt_count}  payload={task.payload!r}  created={_ts(task.created_at)}"
    )
    if task.last_error:
        line += f"  error={task.last_error!r}"
    return line


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add <text>                    -> priority 0, no delay
    /add <text> <priority>         -> higher runs first
    /add <text> <priority> <delay> -> delay in seconds
    """
    if not args:
        return "Usage: /add <text> [priority] [delay_seconds]"

    try:
        priority = int(args[1]) if len(args) > 1 else 0
        delay = float(args[2]) if len(args) > 2 else None
    except ValueError:
        return "Priority must be an integer and delay a number of seconds."

    try:
        task_id = state.queue.add(args[0], priority=priority, delay=delay)
    except DuplicateTaskError as e:
        return str(e)

    if emit:
        with contextlib.suppress(Exception):
            emit(f"[QUEUE] queued {args[0]!r}")
    return f"Added task {task_id}."


def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.queue.get_tasks()
    if not tasks:
        return "Queue is empty."
    lines = [f"Tasks in {state.queue_name} ({len(tasks)}):"]
    for i, task in enumerate(tasks, start=1):
        lines.append(f"{i}. {format_task(task)}")
    return "\n".join(lines)


def cmd_stats(state: AppState, args: list[str]) -> str:
    stats = state.queue.get_stats()
    return (
        "Stats:\n"
        f"  Total: {stats.total}\n"
        f"  Pending: {stats.pending}\n"
        f"  Processing: {stats.processing}\n"
        f"  Completed: {stats.completed}\n"
        f"  Failed: {stats.failed}"
    )


def cmd_retry(state: AppState, args: list[str]) -> str:
    """
    /retry <id> -> retry one failed task
    /retry all  -> retry every failed task
    """
    if not args:
        return "Usage: /retry <task_id> | /retry all"

    if args[0].lower() == "all":
        n = state.queue.retry_all()
        return f"Retried {n} failed task(s)."

    if state.queue.retry(args[0]):
        return f"Task {args[0]} queued again."
    return f"Task {args[0]} is unknown or not failed."


def cmd_remove(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /remove <task_id>"
    if state.queue.remove(args[0]):
        return f"Task {args[0]} removed."
    return f"Task {args[0]} is unknown or being processed."


def cmd_clear(state: AppState, args: list[str]) -> str:
    """
    /clear completed -> drop completed tasks
    /clear failed    -> drop failed tasks
    /clear all       -> drop everything not being processed
    """
    sub = args[0].lower() if args else "all"

    if sub == "completed":
        return f"Cleared {state.queue.clear_completed()} completed task(s)."
    if sub == "failed":
        return f"Cleared {state.queue.clear_failed()} failed task(s)."
    if sub == "all":
        before = state.queue.get_stats().total
        state.queue.clear()
        return f"Cleared {before - state.queue.get_stats().total} task(s)."

    return "Usage: /clear completed | /clear failed | /clear all"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("add", cmd_add, help_text="Queue a task: /add <text> [priority] [delay].")
registry.register("list", cmd_list, help_text="List tasks in dispatch order.", aliases=["ls"])
registry.register("stats", cmd_stats, help_text="Show queue statistics.")
registry.register("retry", cmd_retry, help_text="Retry failed tasks: /retry <id> | /retry all.")
registry.register("remove", cmd_remove, help_text="Remove a task: /remove <id>.", aliases=["rm"])
registry.register(
    "clear", cmd_clear, help_text="Drop tasks: /clear completed | /clear failed | /clear all."
)
