"""Command-line entry point for batch conversions."""

import argparse
import json
import sys
from pathlib import Path

from mediabatch.core import ConverterConfig, EventKind, LifecycleEvent, TaskKind, TaskStatus
from mediabatch.core.errors import ValidationError
from mediabatch.core.orchestrator import TaskOrchestrator
from mediabatch.core.tasks import LEGACY_KIND_ALIASES, build_tasks

KIND_CHOICES = [kind.value for kind in TaskKind] + sorted(LEGACY_KIND_ALIASES)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediabatch",
        description="Queue media files through a conversion pipeline, one task at a time.",
    )
    parser.add_argument("kind", choices=KIND_CHOICES, help="Conversion to run")
    parser.add_argument("inputs", type=Path, nargs="+", help="Input files")
    parser.add_argument("--columns", type=int, help="Spritesheet columns")
    parser.add_argument("--rows", type=int, help="Spritesheet rows (decode hint)")
    parser.add_argument("--width", type=int, help="Target width in px (images, GIF, sheet frames)")
    parser.add_argument(
        "--frame-size",
        type=int,
        nargs=2,
        metavar=("WIDTH", "HEIGHT"),
        help="Frame size hint when decoding a sheet without manifest",
    )
    parser.add_argument("--frame-count", type=int, help="Number of frames to sample or decode")
    parser.add_argument("--fps", type=float, help="Frames per second (GIF output, sheet decoding)")
    parser.add_argument("--format", dest="target_format", help="Output image format (jpg, png, webp)")
    parser.add_argument("--quality", type=int, help="Encoder quality 1-100")
    parser.add_argument("--dpi", type=int, help="PDF render resolution")
    parser.add_argument("--output-dir", type=Path, help="Write results here instead of the default folder")
    parser.add_argument("--output-name", help="Base name for sheet or PDF outputs")
    parser.add_argument("--keep-frames", action="store_true", help="Keep intermediate frame PNGs")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the tasks that would be queued without running them",
    )
    return parser


def options_from_args(args: argparse.Namespace) -> dict:
    """Collect the task options set on the command line."""

    options = {
        "columns": args.columns,
        "rows": args.rows,
        "width": args.width,
        "frame_count": args.frame_count,
        "fps": args.fps,
        "target_format": args.target_format,
        "image_format": args.target_format,
        "quality": args.quality,
        "dpi": args.dpi,
        "output_dir": str(args.output_dir) if args.output_dir else None,
        "output_name": args.output_name,
        "keep_frames": args.keep_frames or None,
    }
    if args.frame_size:
        options["frame_width"], options["frame_height"] = args.frame_size
    return {key: value for key, value in options.items() if value is not None}


def _print_event(event: LifecycleEvent) -> None:
    if event.kind is EventKind.IDLE:
        print("idle: queue drained")
        return
    task = event.task
    line = f"{event.kind.value}: {task.id} ({task.kind.value})"
    if event.kind is EventKind.TASK_COMPLETED:
        line += " -> " + ", ".join(task.result_paths or ())
    elif event.kind is EventKind.TASK_FAILED:
        line += f" !! {task.error_message}"
    print(line)


def main(argv: list[str] | None = None, orchestrator: TaskOrchestrator | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        tasks = build_tasks(args.kind, [str(p) for p in args.inputs], options_from_args(args))
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.dry_run:
        print(json.dumps([task.to_dict() for task in tasks], indent=2))
        return 0

    orchestrator = orchestrator or TaskOrchestrator(config=ConverterConfig.from_env())
    unsubscribe = orchestrator.subscribe(_print_event)
    try:
        for task in tasks:
            orchestrator.submit(task)
        orchestrator.wait_until_idle()
    finally:
        unsubscribe()

    return 0 if all(task.status is TaskStatus.COMPLETED for task in tasks) else 1


if __name__ == "__main__":
    sys.exit(main())
