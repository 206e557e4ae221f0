"""Task creation and validation at the submission boundary."""

from __future__ import annotations

from pathlib import PurePath
from typing import Any, Iterable, Mapping, Optional

from . import Task, TaskKind, TaskStatus
from .errors import ValidationError

LEGACY_KIND_ALIASES = {
    "video-mp3": TaskKind.VIDEO_TO_AUDIO,
    "video-gif": TaskKind.VIDEO_TO_GIF,
    "spritesheet": TaskKind.SPRITESHEET_ENCODE,
    "video-spritesheet": TaskKind.VIDEO_TO_SPRITESHEET,
    "spritesheet-video": TaskKind.SPRITESHEET_TO_VIDEO,
    "image-pdf": TaskKind.IMAGES_TO_PDF,
    "pdf-image": TaskKind.PDF_TO_IMAGES,
}

# One task carries every input for these kinds.
MULTI_INPUT_KINDS = {TaskKind.SPRITESHEET_ENCODE, TaskKind.IMAGES_TO_PDF}
SINGLE_INPUT_KINDS = {TaskKind.VIDEO_TO_SPRITESHEET, TaskKind.SPRITESHEET_TO_VIDEO, TaskKind.PDF_TO_IMAGES}


def parse_kind(kind: Any) -> TaskKind:
    """Resolve a kind name (or legacy alias) to a TaskKind."""

    if isinstance(kind, TaskKind):
        return kind
    if kind is None or str(kind).strip() == "":
        raise ValidationError("Task kind is required")
    name = str(kind).strip().lower()
    if name in LEGACY_KIND_ALIASES:
        return LEGACY_KIND_ALIASES[name]
    try:
        return TaskKind(name)
    except ValueError as exc:
        known = ", ".join(k.value for k in TaskKind)
        raise ValidationError(f"Unsupported task kind: {kind} (expected one of {known})") from exc


def create_task(kind: Any, input_paths: Optional[Iterable[Any]], options: Optional[Mapping[str, Any]] = None) -> Task:
    """Build a pending task, rejecting malformed submissions."""

    task_kind = parse_kind(kind)
    if input_paths is None or isinstance(input_paths, (str, bytes)):
        raise ValidationError("input_paths must be a list of paths")
    paths = tuple(str(p) for p in input_paths)
    if not paths:
        raise ValidationError("A task needs at least one input path")
    if any(not p.strip() for p in paths):
        raise ValidationError("Input paths must not be empty")
    if task_kind in SINGLE_INPUT_KINDS and len(paths) > 1:
        raise ValidationError(f"{task_kind.value} takes exactly one input, got {len(paths)}")
    if task_kind not in MULTI_INPUT_KINDS:
        _reject_shared_output_names(paths)
    if options is not None and not isinstance(options, Mapping):
        raise ValidationError("options must be a mapping")
    return Task(kind=task_kind, input_paths=paths, options=dict(options or {}))


def _reject_shared_output_names(paths: tuple[str, ...]) -> None:
    """Outputs are named after the input stem, so stems must differ within a task."""

    seen: dict[str, str] = {}
    for path in paths:
        stem = PurePath(path).stem.lower()
        if stem in seen:
            raise ValidationError(f"{seen[stem]} and {path} would write the same output file")
        seen[stem] = path


def build_tasks(kind: Any, input_paths: Iterable[Any], options: Optional[Mapping[str, Any]] = None) -> list[Task]:
    """Split a selection of files into tasks.

    Sheet and PDF kinds bundle every file into one task; every other kind
    gets one task per file.
    """

    task_kind = parse_kind(kind)
    paths = list(input_paths)
    if not paths:
        raise ValidationError("A task needs at least one input path")
    if task_kind in MULTI_INPUT_KINDS:
        return [create_task(task_kind, paths, options)]
    return [create_task(task_kind, [path], options) for path in paths]


def validate_submission(task: Task) -> None:
    """Check a task is fit to enter the queue."""

    if not isinstance(task, Task):
        raise ValidationError("Only Task instances can be submitted")
    if not isinstance(task.kind, TaskKind):
        raise ValidationError(f"Unsupported task kind: {task.kind}")
    if not task.input_paths:
        raise ValidationError("A task needs at least one input path")
    if task.status is not TaskStatus.PENDING:
        raise ValidationError(f"Task {task.id} is {task.status.value}, only pending tasks can be submitted")
