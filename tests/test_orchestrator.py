import threading
from pathlib import Path

import pytest

from mediabatch.core import ConverterConfig, EventKind, Task, TaskKind, TaskStatus
from mediabatch.core.errors import OperationError, ValidationError
from mediabatch.core.operations import ConversionOperation
from mediabatch.core.orchestrator import TaskOrchestrator
from mediabatch.core.tasks import create_task


def _record(orchestrator):
    events = []
    orchestrator.subscribe(
        lambda event: events.append((event.kind.value, event.task.input_paths[0] if event.task else None))
    )
    return events


def _make_orchestrator(tmp_path, func, per_input=False, **config):
    operations = {TaskKind.IMAGE: ConversionOperation(func, per_input=per_input)}
    return TaskOrchestrator(operations=operations, config=ConverterConfig(output_root=tmp_path, **config))


def test_failure_in_middle_task_does_not_stop_queue(tmp_path):
    gate = threading.Event()

    def convert(paths, options, config):
        name = paths[0].name
        if name == "one.png":
            assert gate.wait(5)
        if name == "two.png":
            raise OperationError("decoder exploded")
        return [paths[0].with_suffix(".webp")]

    orchestrator = _make_orchestrator(tmp_path, convert)
    events = _record(orchestrator)

    tasks = [create_task("image", [name]) for name in ("one.png", "two.png", "three.png")]
    for task in tasks:
        orchestrator.submit(task)
    gate.set()
    assert orchestrator.wait_until_idle(5)

    lifecycle = [event for event in events if event[0] != "task-added"]
    assert lifecycle == [
        ("task-started", "one.png"),
        ("task-completed", "one.png"),
        ("task-started", "two.png"),
        ("task-failed", "two.png"),
        ("task-started", "three.png"),
        ("task-completed", "three.png"),
        ("idle", None),
    ]
    assert [event for event in events if event[0] == "task-added"] == [
        ("task-added", "one.png"),
        ("task-added", "two.png"),
        ("task-added", "three.png"),
    ]

    first, second, third = tasks
    assert first.status is TaskStatus.COMPLETED
    assert first.result_paths == ("one.webp",)
    assert first.error_message is None
    assert second.status is TaskStatus.FAILED
    assert second.error_message == "decoder exploded"
    assert second.result_paths is None
    assert third.status is TaskStatus.COMPLETED


def test_empty_inputs_are_rejected_before_queueing(tmp_path):
    orchestrator = _make_orchestrator(tmp_path, lambda paths, options, config: [])
    events = _record(orchestrator)

    with pytest.raises(ValidationError):
        orchestrator.submit(Task(kind=TaskKind.IMAGE, input_paths=()))
    with pytest.raises(ValidationError):
        create_task("image", [])

    assert events == []
    assert orchestrator.pending_snapshot() == ()
    assert not orchestrator.busy


def test_only_pending_tasks_can_be_submitted(tmp_path):
    orchestrator = _make_orchestrator(tmp_path, lambda paths, options, config: [paths[0]])
    task = create_task("image", ["a.png"])
    orchestrator.submit(task)
    assert orchestrator.wait_until_idle(5)

    with pytest.raises(ValidationError):
        orchestrator.submit(task)


def test_runs_one_operation_at_a_time(tmp_path):
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def convert(paths, options, config):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        threading.Event().wait(0.02)
        with lock:
            state["active"] -= 1
        return [paths[0]]

    orchestrator = _make_orchestrator(tmp_path, convert)
    for idx in range(5):
        orchestrator.submit(create_task("image", [f"{idx}.png"]))
    assert orchestrator.wait_until_idle(5)
    assert state["peak"] == 1


def test_pending_snapshot_returns_copies_in_order(tmp_path):
    gate = threading.Event()
    started = threading.Event()

    def convert(paths, options, config):
        started.set()
        assert gate.wait(5)
        return [paths[0]]

    orchestrator = _make_orchestrator(tmp_path, convert)
    first = orchestrator.submit(create_task("image", ["first.png"]))
    assert started.wait(5)
    second = orchestrator.submit(create_task("image", ["second.png"], {"quality": 80}))
    third = orchestrator.submit(create_task("image", ["third.png"]))

    snapshot = orchestrator.pending_snapshot()
    assert [task.id for task in snapshot] == [second.id, third.id]
    assert snapshot[0] is not second
    snapshot[0].options["quality"] = 1
    assert second.options["quality"] == 80
    assert first.status is TaskStatus.RUNNING

    gate.set()
    assert orchestrator.wait_until_idle(5)
    assert orchestrator.pending_snapshot() == ()


def test_missing_operation_fails_task_without_invoking_anything(tmp_path):
    orchestrator = TaskOrchestrator(operations={}, config=ConverterConfig(output_root=tmp_path))
    events = _record(orchestrator)
    task = orchestrator.submit(create_task("pdf-to-images", ["doc.pdf"]))
    assert orchestrator.wait_until_idle(5)

    assert task.status is TaskStatus.FAILED
    assert "Unsupported task kind" in task.error_message
    assert events[-2:] == [("task-failed", "doc.pdf"), ("idle", None)]


def test_per_input_operations_run_concurrently_within_a_task(tmp_path):
    barrier = threading.Barrier(3, timeout=5)

    def convert(path, options, config):
        barrier.wait()
        return path.with_suffix(".jpg")

    orchestrator = _make_orchestrator(tmp_path, convert, per_input=True)
    task = orchestrator.submit(create_task("image", ["a.png", "b.png", "c.png"]))
    assert orchestrator.wait_until_idle(5)

    assert task.status is TaskStatus.COMPLETED
    assert task.result_paths == ("a.jpg", "b.jpg", "c.jpg")


def test_per_input_failure_fails_whole_task_after_all_inputs(tmp_path):
    seen = []

    def convert(path, options, config):
        seen.append(path.name)
        if path.name == "bad.png":
            raise OperationError("corrupt header")
        return path

    orchestrator = _make_orchestrator(tmp_path, convert, per_input=True)
    task = orchestrator.submit(create_task("image", ["good.png", "bad.png", "fine.png"]))
    assert orchestrator.wait_until_idle(5)

    assert sorted(seen) == ["bad.png", "fine.png", "good.png"]
    assert task.status is TaskStatus.FAILED
    assert "bad.png: corrupt header" in task.error_message
    assert task.result_paths is None


def test_unexpected_exceptions_are_captured(tmp_path):
    def convert(paths, options, config):
        raise KeyError("boom")

    orchestrator = _make_orchestrator(tmp_path, convert)
    received = []
    orchestrator.subscribe(lambda event: received.append(event))
    task = orchestrator.submit(create_task("image", ["x.png"]))
    assert orchestrator.wait_until_idle(5)

    assert task.status is TaskStatus.FAILED
    failed = [event for event in received if event.kind is EventKind.TASK_FAILED]
    assert isinstance(failed[0].error, KeyError)


def test_broken_subscriber_does_not_stall_queue(tmp_path):
    orchestrator = _make_orchestrator(tmp_path, lambda paths, options, config: [paths[0]])

    def broken(event):
        raise RuntimeError("observer bug")

    orchestrator.subscribe(broken)
    events = _record(orchestrator)
    task = orchestrator.submit(create_task("image", ["a.png"]))
    assert orchestrator.wait_until_idle(5)

    assert task.status is TaskStatus.COMPLETED
    assert events[-1] == ("idle", None)


def test_unsubscribe_stops_delivery(tmp_path):
    orchestrator = _make_orchestrator(tmp_path, lambda paths, options, config: [paths[0]])
    events = []
    unsubscribe = orchestrator.subscribe(events.append)
    unsubscribe()
    orchestrator.submit(create_task("image", ["a.png"]))
    assert orchestrator.wait_until_idle(5)
    assert events == []


def test_idle_subscriber_can_queue_more_work(tmp_path):
    orchestrator = _make_orchestrator(tmp_path, lambda paths, options, config: [paths[0]])
    follow_up = create_task("image", ["later.png"])
    queued = []

    def on_event(event):
        if event.kind is EventKind.IDLE and not queued:
            queued.append(follow_up)
            orchestrator.submit(follow_up)

    orchestrator.subscribe(on_event)
    orchestrator.submit(create_task("image", ["first.png"]))

    assert orchestrator.wait_until_idle(5)
    assert follow_up.status is TaskStatus.COMPLETED
    assert follow_up.result_paths == (str(Path("later.png")),)


def test_same_task_cannot_be_queued_twice(tmp_path):
    gate = threading.Event()

    def convert(paths, options, config):
        if paths[0].name == "blocker.png":
            assert gate.wait(5)
        return [paths[0]]

    orchestrator = _make_orchestrator(tmp_path, convert)
    orchestrator.submit(create_task("image", ["blocker.png"]))
    task = orchestrator.submit(create_task("image", ["a.png"]))
    with pytest.raises(ValidationError, match="already queued"):
        orchestrator.submit(task)
    later = orchestrator.submit(create_task("image", ["b.png"]))

    assert [queued.id for queued in orchestrator.pending_snapshot()] == [task.id, later.id]
    gate.set()
    assert orchestrator.wait_until_idle(5)
    assert task.status is TaskStatus.COMPLETED
    assert later.status is TaskStatus.COMPLETED
    assert not orchestrator.busy


def test_worker_survives_task_moved_out_of_pending(tmp_path):
    gate = threading.Event()

    def convert(paths, options, config):
        if paths[0].name == "blocker.png":
            assert gate.wait(5)
        return [paths[0]]

    orchestrator = _make_orchestrator(tmp_path, convert)
    orchestrator.submit(create_task("image", ["blocker.png"]))
    hijacked = orchestrator.submit(create_task("image", ["a.png"]))
    later = orchestrator.submit(create_task("image", ["b.png"]))
    hijacked.mark_running()
    hijacked.mark_completed([])

    gate.set()
    assert orchestrator.wait_until_idle(5)
    assert later.status is TaskStatus.COMPLETED
    assert not orchestrator.busy


def test_idle_subscriber_may_wait_on_another_thread_using_the_queue(tmp_path):
    orchestrator = _make_orchestrator(tmp_path, lambda paths, options, config: [paths[0]])
    follow_up = create_task("image", ["later.png"])
    helpers = []

    def on_event(event):
        if event.kind is EventKind.IDLE and not helpers:
            helper = threading.Thread(target=lambda: (orchestrator.pending_snapshot(), orchestrator.submit(follow_up)))
            helpers.append(helper)
            helper.start()
            helper.join(5)

    orchestrator.subscribe(on_event)
    orchestrator.submit(create_task("image", ["first.png"]))

    assert orchestrator.wait_until_idle(5)
    assert not helpers[0].is_alive()
    assert follow_up.status is TaskStatus.COMPLETED
