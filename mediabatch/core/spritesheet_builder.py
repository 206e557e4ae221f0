"""Spritesheet composition using Pillow."""

from __future__ import annotations

import math
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from PIL import Image

from . import ConverterConfig, FrameRect, SheetMetadata, TaskKind
from .errors import DimensionMismatchError, EmptyInputError, OperationError
from . import manifest_writer
from ..utils import file_tools, validators

logger = logging.getLogger(__name__)


def _resolve_grid(frame_count: int, columns: int | None) -> tuple[int, int]:
    """Compute grid layout; prefer the provided column count."""

    if columns:
        columns = max(1, int(columns))
    else:
        # Square-ish fallback
        columns = math.ceil(math.sqrt(frame_count))
    rows = math.ceil(frame_count / columns)
    return columns, rows


def pack_frames(
    frames: Sequence[Image.Image],
    columns: Optional[int] = None,
    sources: Optional[Sequence[str]] = None,
) -> tuple[Image.Image, SheetMetadata]:
    """Pack equally sized frames into one transparent grid image.

    Frames are placed left to right, top to bottom in the order given.
    Unused trailing cells stay fully transparent.
    """

    if not frames:
        raise EmptyInputError("No frames provided to pack.")
    if sources is not None and len(sources) != len(frames):
        raise ValueError("sources must match the number of frames")

    frame_width, frame_height = frames[0].size
    for idx, frame in enumerate(frames[1:], start=1):
        if frame.size != (frame_width, frame_height):
            raise DimensionMismatchError(
                f"Frame {idx} is {frame.width}x{frame.height}, expected {frame_width}x{frame_height}"
            )

    frame_count = len(frames)
    columns, rows = _resolve_grid(frame_count, columns)
    sheet = Image.new("RGBA", (frame_width * columns, frame_height * rows), (0, 0, 0, 0))

    rects: list[FrameRect] = []
    for idx, frame in enumerate(frames):
        row, col = divmod(idx, columns)
        x = col * frame_width
        y = row * frame_height
        sheet.paste(frame.convert("RGBA"), (x, y))
        source = sources[idx] if sources is not None else f"frame-{idx}"
        rects.append(FrameRect(index=idx, source=source, x=x, y=y, width=frame_width, height=frame_height))

    metadata = SheetMetadata(
        frame_width=frame_width,
        frame_height=frame_height,
        columns=columns,
        rows=rows,
        frame_count=frame_count,
        frames=tuple(rects),
    )
    logger.debug("Packed %s frames into %sx%s grid (%sx%s px)", frame_count, columns, rows, *sheet.size)
    return sheet, metadata


def save_spritesheet(sheet: Image.Image, metadata: SheetMetadata, output_dir: Path, name: str) -> tuple[Path, Path]:
    """Persist a sheet as PNG plus its JSON side-file."""

    file_tools.ensure_directory(output_dir)
    sheet_path = output_dir / f"{name}.png"
    sheet.save(sheet_path)
    logger.info("Wrote spritesheet to %s", sheet_path)
    meta_path = manifest_writer.write_metadata(metadata, sheet_path)
    return sheet_path, meta_path


def build_spritesheet(
    image_paths: Sequence[Path],
    options: Mapping[str, Any],
    config: ConverterConfig,
) -> list[Path]:
    """Pack a set of still images into one sheet (one task, many inputs)."""

    existing: list[Path] = []
    for raw in image_paths:
        path = Path(raw)
        if path.exists():
            existing.append(path)
        else:
            logger.warning("Skipping missing spritesheet input %s", path)
    if not existing:
        raise OperationError("None of the provided images exist.")

    columns = validators.option_int(options, "columns")
    output_name = options.get("output_name") or "spritesheet"
    output_dir = config.output_dir_for(TaskKind.SPRITESHEET_ENCODE, options.get("output_dir"))

    frames = []
    for path in existing:
        with Image.open(path) as image:
            frames.append(image.convert("RGBA"))

    sheet, metadata = pack_frames(frames, columns=columns, sources=[str(p) for p in existing])
    sheet_path, meta_path = save_spritesheet(sheet, metadata, output_dir, output_name)
    return [sheet_path, meta_path]
