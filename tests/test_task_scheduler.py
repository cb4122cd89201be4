# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio
import importlib

import pytest

from reliable_queue.config import QueueConfig
from reliable_queue.core.events import EventBus, EventKind
from reliable_queue.core.queue import ReliableQueue
from reliable_queue.tasks.task_models import Task, TaskStatus
from reliable_queue.tasks.task_scheduler import TaskDispatcher
from reliable_queue.tasks.task_store import TaskStore

from .fakes import FlakyProcessor, GatedProcessor, ManualClock, settle


@pytest.mark.asyncio
async def test_concurrency_cap_is_never_exceeded() -> None:
    queue = ReliableQueue(QueueConfig(concurrency=2))
    processor = GatedProcessor()
    peak = {"processing": 0}

    def watch(event) -> None:
        processing = sum(1 for t in event.tasks if t.status == TaskStatus.PROCESSING)
        peak["processing"] = max(peak["processing"], processing)

    queue.on(EventKind.QUEUE_UPDATED, watch)
    queue.set_processor(processor)
    for i in range(5):
        queue.add(i)
    await settle()

    assert queue.get_stats().processing == 2
    assert queue.in_flight == 2
    assert processor.calls == [0, 1]

    processor.release()
    await queue.wait_idle(timeout=2.0)

    assert queue.get_stats().completed == 5
    assert processor.max_active == 2
    assert peak["processing"] == 2
    await queue.close()


@pytest.mark.asyncio
async def test_dispatch_follows_priority_then_fifo() -> None:
    queue = ReliableQueue(QueueConfig(concurrency=1))
    queue.add("p1-first", priority=1)
    queue.add("p5", priority=5)
    queue.add("p1-second", priority=1)
    queue.add("p9", priority=9)

    order: list[str] = []
    queue.set_processor(lambda payload, task: order.append(payload))
    await queue.wait_idle(timeout=2.0)

    assert order == ["p9", "p5", "p1-first", "p1-second"]
    await queue.close()


@pytest.mark.asyncio
async def test_exponential_backoff_schedules_capped_delays(clock: ManualClock) -> None:
    config = QueueConfig(max_retries=4, retry_delay=1.0, exponential_backoff=True, max_retry_delay=3.0)
    queue = ReliableQueue(config, clock=clock)
    delays: list[float] = []
    queue.on(EventKind.TASK_RETRIED, lambda e: delays.append(e.task.eligible_at - clock.now))

    queue.set_processor(FlakyProcessor(failures=100))
    task_id = queue.add("x")
    await settle()

    for _ in range(3):
        task = queue.get_task(task_id)
        assert task.status == TaskStatus.PENDING
        # Not eligible yet: starting again dispatches nothing.
        queue.start()
        await settle()
        assert queue.get_task(task_id).attempt_count == task.attempt_count

        clock.now = task.eligible_at
        queue.start()
        await settle()

    task = queue.get_task(task_id)
    assert delays == [2.0, 3.0, 3.0]
    assert task.status == TaskStatus.FAILED
    assert task.attempt_count == 4
    await queue.close()


@pytest.mark.asyncio
async def test_fixed_backoff_uses_base_delay(clock: ManualClock) -> None:
    config = QueueConfig(max_retries=3, retry_delay=5.0, exponential_backoff=False)
    queue = ReliableQueue(config, clock=clock)
    queue.set_processor(FlakyProcessor(failures=1))
    task_id = queue.add("x")
    await settle()

    task = queue.get_task(task_id)
    assert task.eligible_at == clock.now + 5.0
    assert task.attempt_count == 1

    clock.advance(5.0)
    queue.start()
    await settle()
    assert queue.get_task(task_id).status == TaskStatus.COMPLETED
    await queue.close()


@pytest.mark.asyncio
async def test_retry_timer_wakes_dispatch_without_other_events() -> None:
    config = QueueConfig(max_retries=3, retry_delay=0.01, exponential_backoff=True, max_retry_delay=0.05)
    queue = ReliableQueue(config)
    processor = FlakyProcessor(failures=2)
    queue.set_processor(processor)
    task_id = queue.add("x")

    await queue.wait_idle(timeout=2.0)

    assert queue.get_task(task_id).status == TaskStatus.COMPLETED
    assert len(processor.calls) == 3
    await queue.close()


@pytest.mark.asyncio
async def test_delayed_task_waits_for_its_time() -> None:
    queue = ReliableQueue(QueueConfig())
    started: list[str] = []
    queue.set_processor(lambda payload, task: started.append(payload))

    queue.add("later", delay=0.05, priority=10)
    queue.add("now")
    await settle()
    assert started == ["now"]
    assert queue.get_stats().pending == 1

    await queue.wait_idle(timeout=2.0)
    assert started == ["now", "later"]
    await queue.close()


@pytest.mark.asyncio
async def test_wait_idle_times_out_without_processor() -> None:
    queue = ReliableQueue(QueueConfig())
    queue.add("stuck")

    with pytest.raises(asyncio.TimeoutError):
        await queue.wait_idle(timeout=0.05)
    await queue.close()


@pytest.mark.asyncio
async def test_close_returns_in_flight_tasks_to_pending() -> None:
    queue = ReliableQueue(QueueConfig(concurrency=2))
    processor = GatedProcessor()
    queue.set_processor(processor)
    ids = [queue.add(i) for i in range(3)]
    await settle()
    assert queue.in_flight == 2

    await queue.close()

    assert queue.in_flight == 0
    assert [queue.get_task(i).status for i in ids] == [TaskStatus.PENDING] * 3
    assert all(queue.get_task(i).attempt_count == 0 for i in ids)

    # A closed queue accepts tasks but no longer dispatches them.
    queue.add("after-close")
    await settle()
    assert processor.calls == [0, 1]


@pytest.mark.asyncio
async def test_subscriber_can_add_tasks_while_dispatching() -> None:
    queue = ReliableQueue(QueueConfig(concurrency=1))
    order: list[str] = []

    def chain(event) -> None:
        if event.task.payload == "parent":
            queue.add("child")

    queue.on(EventKind.TASK_COMPLETED, chain)
    queue.set_processor(lambda payload, task: order.append(payload))
    queue.add("parent")
    await queue.wait_idle(timeout=2.0)

    assert order == ["parent", "child"]
    await queue.close()


def test_pump_without_event_loop_defers_dispatch() -> None:
    store = TaskStore()
    store.insert(
        Task(
            id="t1",
            payload=None,
            status=TaskStatus.PENDING,
            created_at=0.0,
            updated_at=0.0,
            eligible_at=0.0,
        )
    )
    dispatcher = TaskDispatcher(store, EventBus(), QueueConfig(), processor=lambda p, t: None)

    dispatcher.pump()

    assert dispatcher.in_flight == 0
    assert store.get("t1").status == TaskStatus.PENDING


@pytest.mark.asyncio
async def test_cancelled_await_inside_processor_fails_the_attempt() -> None:
    queue = ReliableQueue(QueueConfig(concurrency=1, max_retries=1))
    calls: list[str] = []

    async def processor(payload: str, task: Task) -> None:
        calls.append(payload)
        if payload == "bad":
            future = asyncio.get_running_loop().create_future()
            future.cancel()
            await future

    queue.set_processor(processor)
    bad = queue.add("bad", priority=1)
    good = queue.add("good")
    await queue.wait_idle(timeout=2.0)

    assert queue.get_task(bad).status == TaskStatus.FAILED
    assert queue.get_task(bad).last_error == "CancelledError"
    assert queue.get_task(good).status == TaskStatus.COMPLETED
    assert queue.in_flight == 0
    assert calls == ["bad", "good"]
    assert queue.remove(bad) is True
    await queue.close()


@pytest.mark.asyncio
async def test_cancelled_runner_puts_task_back_to_pending() -> None:
    queue = ReliableQueue(QueueConfig(concurrency=1))
    processor = GatedProcessor()
    queue.set_processor(processor)
    task_id = queue.add("x")
    await settle()

    (runner,) = [t for t in asyncio.all_tasks() if t.get_name() == f"reliable-queue:{task_id}"]
    runner.cancel()
    await settle()

    # The slot is freed and the task dispatched again, attempt count untouched.
    assert processor.calls == ["x", "x"]
    assert queue.in_flight == 1
    assert queue.get_task(task_id).attempt_count == 0

    processor.release()
    await queue.wait_idle(timeout=2.0)
    assert queue.get_task(task_id).status == TaskStatus.COMPLETED
    await queue.close()


@pytest.mark.asyncio
async def test_single_argument_processor_gets_payload_only() -> None:
    queue = ReliableQueue(QueueConfig(max_retries=1))
    seen: list[object] = []

    async def process(payload: object) -> None:
        seen.append(payload)

    queue.set_processor(process)
    task_id = queue.add({"n": 1})
    await queue.wait_idle(timeout=2.0)

    assert seen == [{"n": 1}]
    assert queue.get_task(task_id).status == TaskStatus.COMPLETED
    await queue.close()


@pytest.mark.asyncio
async def test_processor_call_shape_follows_its_signature() -> None:
    queue = ReliableQueue(QueueConfig(max_retries=1))
    seen: list[tuple] = []

    def sync_one(payload):
        seen.append(("one", payload))

    def varargs(*args):
        seen.append(("varargs", len(args)))

    queue.set_processor(sync_one)
    queue.add("a")
    await queue.wait_idle(timeout=2.0)

    queue.set_processor(varargs)
    queue.add("b")
    await queue.wait_idle(timeout=2.0)

    assert seen == [("one", "a"), ("varargs", 2)]
    assert queue.get_stats().completed == 2
    await queue.close()


@pytest.mark.parametrize(
    "module_name",
    [
        "reliable_queue.tasks.task_scheduler",
        "reliable_queue.core.queue",
        "reliable_queue.core.events",
        "reliable_queue.core.ports",
    ],
)
def test_module_docstrings_are_set(module_name: str) -> None:
    module = importlib.import_module(module_name)
    assert module.__doc__ and module.__doc__.strip()
