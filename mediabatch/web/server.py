"""FastAPI surface for submitting and inspecting conversion tasks."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from ..core import ConverterConfig, Task
from ..core.errors import ValidationError
from ..core.orchestrator import TaskOrchestrator
from ..core.tasks import build_tasks, create_task

logger = logging.getLogger(__name__)

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("MEDIABATCH_ALLOWED_ORIGINS", "http://localhost:8000").split(",")
    if origin.strip()
]


class TaskRequest(BaseModel):
    """Incoming task submission payload."""

    kind: str = Field(..., min_length=1)
    input_paths: list[str] = Field(..., min_length=1)
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("input_paths")
    @classmethod
    def _strip_paths(cls, value: list[str]) -> list[str]:
        cleaned = [p.strip() for p in value]
        if any(not p for p in cleaned):
            raise ValueError("Input paths must not be empty")
        return cleaned


class TaskResponse(BaseModel):
    """Public view of a task."""

    id: str
    kind: str
    input_paths: list[str]
    options: dict[str, Any]
    status: str
    result_paths: Optional[list[str]] = None
    error_message: Optional[str] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls.model_validate(task.to_dict())


class TaskRegistry:
    """Tasks submitted through the API, kept after they finish."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def add(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.id] = task

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def all(self) -> list[Task]:
        with self._lock:
            return list(self._tasks.values())


def create_app(
    orchestrator: Optional[TaskOrchestrator] = None,
    config: Optional[ConverterConfig] = None,
) -> FastAPI:
    orchestrator = orchestrator or TaskOrchestrator(config=config or ConverterConfig.from_env())
    registry = TaskRegistry()

    app = FastAPI(title="mediabatch", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.orchestrator = orchestrator
    app.state.registry = registry

    def _submit(tasks: list[Task]) -> list[TaskResponse]:
        for task in tasks:
            registry.add(task)
            orchestrator.submit(task)
        return [TaskResponse.from_task(task) for task in tasks]

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/tasks", response_model=TaskResponse, status_code=status.HTTP_202_ACCEPTED)
    async def submit_task(payload: TaskRequest) -> TaskResponse:
        try:
            task = create_task(payload.kind, payload.input_paths, payload.options)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        logger.info("Accepted %s task %s", task.kind.value, task.id)
        return _submit([task])[0]

    @app.post("/api/tasks/batch", response_model=list[TaskResponse], status_code=status.HTTP_202_ACCEPTED)
    async def submit_batch(payload: TaskRequest) -> list[TaskResponse]:
        try:
            tasks = build_tasks(payload.kind, payload.input_paths, payload.options)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        logger.info("Accepted %s %s task(s)", len(tasks), tasks[0].kind.value)
        return _submit(tasks)

    @app.get("/api/tasks", response_model=list[TaskResponse])
    async def list_tasks() -> list[TaskResponse]:
        return [TaskResponse.from_task(task) for task in registry.all()]

    @app.get("/api/tasks/{task_id}", response_model=TaskResponse)
    async def get_task(task_id: str) -> TaskResponse:
        task = registry.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return TaskResponse.from_task(task)

    @app.get("/api/queue", response_model=list[TaskResponse])
    async def pending_queue() -> list[TaskResponse]:
        return [TaskResponse.from_task(task) for task in orchestrator.pending_snapshot()]

    return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("mediabatch.web.server:app", host="127.0.0.1", port=8000)
