"""Core data model for batch conversion and spritesheet processing."""

__all__ = [
    "TaskKind",
    "TaskStatus",
    "Task",
    "EventKind",
    "LifecycleEvent",
    "VideoMetadata",
    "FrameRect",
    "SheetMetadata",
    "GridGeometry",
    "DecodeHints",
    "DecodeResult",
    "ConverterConfig",
]

import copy
import os
import threading
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from PIL import Image

from .errors import TaskStateError

# Guards status and its payload fields so readers never see one without the other.
_STATE_LOCK = threading.RLock()


class TaskKind(str, Enum):
    IMAGE = "image"
    VIDEO_TO_AUDIO = "video-to-audio"
    VIDEO_TO_GIF = "video-to-gif"
    SPRITESHEET_ENCODE = "spritesheet-encode"
    VIDEO_TO_SPRITESHEET = "video-to-spritesheet"
    SPRITESHEET_TO_VIDEO = "spritesheet-to-video"
    IMAGES_TO_PDF = "images-to-pdf"
    PDF_TO_IMAGES = "pdf-to-images"


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.RUNNING},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


@dataclass
class Task:
    """A unit of conversion work and its lifecycle state."""

    kind: TaskKind
    input_paths: tuple[str, ...]
    options: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: TaskStatus = TaskStatus.PENDING
    result_paths: Optional[tuple[str, ...]] = None
    error_message: Optional[str] = None

    def mark_running(self) -> None:
        with _STATE_LOCK:
            self._transition(TaskStatus.RUNNING)

    def mark_completed(self, result_paths) -> None:
        paths = tuple(str(p) for p in result_paths)
        with _STATE_LOCK:
            self._transition(TaskStatus.COMPLETED)
            self.result_paths = paths

    def mark_failed(self, message: str) -> None:
        with _STATE_LOCK:
            self._transition(TaskStatus.FAILED)
            self.error_message = message or "Unknown error"

    def _transition(self, target: TaskStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise TaskStateError(f"Task {self.id} cannot move from {self.status.value} to {target.value}")
        self.status = target

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def snapshot(self) -> "Task":
        """Return a detached copy safe to hand to observers."""

        with _STATE_LOCK:
            return replace(self, options=copy.deepcopy(self.options))

    def to_dict(self) -> dict[str, Any]:
        with _STATE_LOCK:
            return {
                "id": self.id,
                "kind": self.kind.value,
                "input_paths": list(self.input_paths),
                "options": dict(self.options),
                "status": self.status.value,
                "result_paths": list(self.result_paths) if self.result_paths is not None else None,
                "error_message": self.error_message,
            }


class EventKind(str, Enum):
    TASK_ADDED = "task-added"
    TASK_STARTED = "task-started"
    TASK_COMPLETED = "task-completed"
    TASK_FAILED = "task-failed"
    IDLE = "idle"


@dataclass(frozen=True)
class LifecycleEvent:
    """Message delivered to orchestrator subscribers."""

    kind: EventKind
    task: Optional[Task] = None
    error: Optional[BaseException] = None


@dataclass
class VideoMetadata:
    """Basic metadata for a source video."""

    width: int
    height: int
    fps: float
    duration_seconds: float


@dataclass(frozen=True)
class FrameRect:
    """Placement of one frame inside a sheet."""

    index: int
    source: str
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class SheetMetadata:
    """Grid description persisted next to a sheet image."""

    frame_width: int
    frame_height: int
    columns: int
    rows: int
    frame_count: int
    frames: tuple[FrameRect, ...] = ()
    video_fps: Optional[float] = None

    def with_fps(self, fps: float) -> "SheetMetadata":
        """Return a copy carrying the source video frame rate.

        The frame rate can only be recorded once; re-recording the same value
        is a no-op.
        """

        if fps is None or fps <= 0:
            raise ValueError("fps must be a positive number")
        if self.video_fps is not None and self.video_fps != fps:
            raise ValueError(f"videoFps already recorded as {self.video_fps}")
        return replace(self, video_fps=float(fps))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "frameWidth": self.frame_width,
            "frameHeight": self.frame_height,
            "columns": self.columns,
            "rows": self.rows,
            "frameCount": self.frame_count,
            "frames": [
                {
                    "index": rect.index,
                    "source": rect.source,
                    "x": rect.x,
                    "y": rect.y,
                    "width": rect.width,
                    "height": rect.height,
                }
                for rect in self.frames
            ],
        }
        if self.video_fps is not None:
            payload["videoFps"] = self.video_fps
        return payload


@dataclass(frozen=True)
class GridGeometry:
    """How a sheet raster subdivides into frames."""

    frame_width: int
    frame_height: int
    columns: int
    rows: int
    frame_count: int
    source: str = "metadata"


@dataclass
class DecodeHints:
    """Caller-supplied geometry hints used when metadata is missing."""

    frame_width: Optional[int] = None
    frame_height: Optional[int] = None
    columns: Optional[int] = None
    rows: Optional[int] = None
    frame_count: Optional[int] = None
    fps: Optional[float] = None


@dataclass
class DecodeResult:
    """Frames recovered from a sheet, in index order."""

    frames: list[Image.Image]
    fps: float
    geometry: GridGeometry
    skipped: list[int] = field(default_factory=list)


@dataclass
class ConverterConfig:
    """Explicit runtime configuration handed to operations."""

    output_root: Path = field(default_factory=lambda: Path.cwd() / "artifacts")
    default_fps: float = 12.0
    fanout_workers: int = 4
    cleanup_frames: bool = True

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "ConverterConfig":
        """Build a config from MEDIABATCH_* environment variables."""

        env = os.environ if environ is None else environ
        config = cls()
        if env.get("MEDIABATCH_OUTPUT_DIR"):
            config.output_root = Path(env["MEDIABATCH_OUTPUT_DIR"]).expanduser()
        if env.get("MEDIABATCH_DEFAULT_FPS"):
            config.default_fps = float(env["MEDIABATCH_DEFAULT_FPS"])
        if env.get("MEDIABATCH_FANOUT_WORKERS"):
            config.fanout_workers = max(1, int(env["MEDIABATCH_FANOUT_WORKERS"]))
        return config

    def output_dir_for(self, kind: TaskKind, override: Optional[str | Path] = None) -> Path:
        """Return (and create) the folder a kind writes into."""

        target = Path(override) if override else self.output_root / kind.value
        target.mkdir(parents=True, exist_ok=True)
        return target
