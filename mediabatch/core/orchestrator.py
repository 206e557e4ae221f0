"""Single-worker task queue that runs conversions one at a time."""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Optional

from . import ConverterConfig, EventKind, LifecycleEvent, Task
from .errors import OperationError, TaskStateError, ValidationError
from .operations import ConversionOperation, default_operations
from .tasks import validate_submission

logger = logging.getLogger(__name__)

Subscriber = Callable[[LifecycleEvent], None]


class TaskOrchestrator:
    """FIFO of conversion tasks drained by one background worker.

    Only one task's operation runs at a time. A failing task is recorded as
    failed and the queue moves on. Subscribers receive a ``LifecycleEvent``
    for every transition, on the worker thread.
    """

    def __init__(
        self,
        operations: Optional[dict] = None,
        config: Optional[ConverterConfig] = None,
    ):
        self._operations: dict = default_operations() if operations is None else dict(operations)
        self._config = config or ConverterConfig()
        self._queue: deque[Task] = deque()
        # Ids of tasks queued or running.
        self._active_ids: set[str] = set()
        self._busy = False
        self._lock = threading.RLock()
        self._idle = threading.Event()
        self._idle.set()
        self._subscribers: list[Subscriber] = []
        self._worker: Optional[threading.Thread] = None

    @property
    def config(self) -> ConverterConfig:
        return self._config

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an observer; returns a function that removes it."""

        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def submit(self, task: Task) -> Task:
        """Queue a pending task and start draining if the worker is idle."""

        with self._lock:
            validate_submission(task)
            if task.id in self._active_ids:
                raise ValidationError(f"Task {task.id} is already queued")
            self._active_ids.add(task.id)
            self._queue.append(task)
            self._emit(LifecycleEvent(EventKind.TASK_ADDED, task))
            self._start_worker()
        return task

    def pending_snapshot(self) -> tuple[Task, ...]:
        """Copies of the tasks still waiting to run, in queue order."""

        with self._lock:
            return tuple(task.snapshot() for task in self._queue)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue has drained and ``idle`` has been delivered."""

        return self._idle.wait(timeout)

    def _start_worker(self) -> None:
        if self._busy:
            return
        self._busy = True
        self._idle.clear()
        self._worker = threading.Thread(target=self._drain, name="mediabatch-worker", daemon=True)
        self._worker.start()

    def _drain(self) -> None:
        while True:
            with self._lock:
                task = self._queue.popleft() if self._queue else None
            if task is not None:
                try:
                    self._run_task(task)
                except Exception:
                    logger.exception("Worker failed handling task %s", task.id)
                finally:
                    with self._lock:
                        self._active_ids.discard(task.id)
                continue

            # Emitted without the lock so subscribers may call back into the queue.
            self._emit(LifecycleEvent(EventKind.IDLE))
            with self._lock:
                if self._queue:
                    continue
                self._busy = False
                self._idle.set()
                return

    def _run_task(self, task: Task) -> None:
        try:
            task.mark_running()
        except TaskStateError as exc:
            logger.error("Skipping task %s: %s", task.id, exc)
            return
        self._emit(LifecycleEvent(EventKind.TASK_STARTED, task))
        logger.info("Running task %s (%s) on %s input(s)", task.id, task.kind.value, len(task.input_paths))

        try:
            operation = self._operations.get(task.kind)
            if operation is None:
                raise OperationError(f"Unsupported task kind: {task.kind.value}")
            result_paths = self._dispatch(operation, task)
        except Exception as exc:
            task.mark_failed(str(exc) or exc.__class__.__name__)
            logger.error(
                "Task %s failed: kind=%s inputs=%s error=%s",
                task.id,
                task.kind.value,
                list(task.input_paths),
                task.error_message,
            )
            self._emit(LifecycleEvent(EventKind.TASK_FAILED, task, exc))
        else:
            task.mark_completed(result_paths)
            logger.info("Task %s completed: %s", task.id, list(task.result_paths or ()))
            self._emit(LifecycleEvent(EventKind.TASK_COMPLETED, task))

    def _dispatch(self, operation: ConversionOperation, task: Task) -> list[Path]:
        paths = [Path(p) for p in task.input_paths]
        if not operation.per_input:
            return _as_list(operation.func(paths, task.options, self._config))
        if len(paths) == 1:
            return _as_list(operation.func(paths[0], task.options, self._config))

        workers = max(1, min(self._config.fanout_workers, len(paths)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mediabatch-fanout") as pool:
            futures = [pool.submit(operation.func, path, task.options, self._config) for path in paths]
            wait(futures)

        results: list[Path] = []
        errors: list[str] = []
        for path, future in zip(paths, futures):
            exc = future.exception()
            if exc is not None:
                errors.append(f"{path.name}: {exc}")
            else:
                results.extend(_as_list(future.result()))
        if errors:
            raise OperationError(f"{len(errors)} of {len(paths)} inputs failed: " + "; ".join(errors))
        return results

    def _emit(self, event: LifecycleEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed handling %s", callback, event.kind.value)


def _as_list(result) -> list[Path]:
    if result is None:
        return []
    if isinstance(result, (str, Path)):
        return [Path(result)]
    return [Path(p) for p in result]
