"""Splitting a spritesheet back into its ordered frames."""

from __future__ import annotations

import logging
import warnings
from typing import Any, Mapping, Optional

from PIL import Image

from . import DecodeHints, DecodeResult, GridGeometry, SheetMetadata
from .errors import GeometryInconsistencyError, PartialExtractionWarning
from ..utils import validators

logger = logging.getLogger(__name__)

DEFAULT_FPS = 12.0


def hints_from_options(options: Mapping[str, Any]) -> DecodeHints:
    """Read decode hints from task options."""

    return DecodeHints(
        frame_width=validators.option_int(options, "frame_width"),
        frame_height=validators.option_int(options, "frame_height"),
        columns=validators.option_int(options, "columns"),
        rows=validators.option_int(options, "rows"),
        frame_count=validators.option_int(options, "frame_count"),
        fps=validators.option_float(options, "fps"),
    )


def resolve_geometry(
    sheet_size: tuple[int, int],
    metadata: Optional[SheetMetadata] = None,
    hints: Optional[DecodeHints] = None,
) -> GridGeometry:
    """Work out the frame grid of a sheet.

    Metadata wins when it carries a frame size. Otherwise hints are applied
    in order of specificity (explicit frame size, columns, rows) and, with
    nothing to go on, the sheet is read as a single strip of square frames.
    """

    sheet_width, sheet_height = sheet_size
    hints = hints or DecodeHints()

    if metadata is not None and metadata.frame_width > 0 and metadata.frame_height > 0:
        frame_width, frame_height = metadata.frame_width, metadata.frame_height
        columns = sheet_width // frame_width
        rows = sheet_height // frame_height
        _check(sheet_size, frame_width, frame_height, columns, rows)
        capacity = columns * rows
        frame_count = metadata.frame_count
        if frame_count <= 0:
            frame_count = capacity
        elif frame_count > capacity:
            logger.warning(
                "Manifest claims %s frames but the %sx%s sheet only holds %s; clamping",
                frame_count,
                sheet_width,
                sheet_height,
                capacity,
            )
            frame_count = capacity
        return GridGeometry(frame_width, frame_height, columns, rows, frame_count, source="metadata")

    if hints.frame_width and hints.frame_height:
        frame_width, frame_height = hints.frame_width, hints.frame_height
        columns = hints.columns or sheet_width // frame_width
        rows = hints.rows or sheet_height // frame_height
        source = "frame-size"
    elif hints.columns:
        columns = hints.columns
        frame_width = sheet_width // columns
        if hints.rows:
            rows = hints.rows
            frame_height = sheet_height // rows
        else:
            frame_height = frame_width
            rows = sheet_height // frame_height if frame_height else 0
        source = "columns"
    elif hints.rows:
        rows = hints.rows
        frame_height = sheet_height // rows
        frame_width = frame_height
        columns = sheet_width // frame_width if frame_width else 0
        source = "rows"
    elif sheet_width >= sheet_height:
        frame_width = frame_height = sheet_height
        columns = sheet_width // frame_width if frame_width else 0
        rows = 1
        source = "horizontal-strip"
    else:
        frame_width = frame_height = sheet_width
        columns = 1
        rows = sheet_height // frame_height if frame_height else 0
        source = "vertical-strip"

    _check(sheet_size, frame_width, frame_height, columns, rows)
    frame_count = columns * rows
    if hints.frame_count and hints.frame_count <= frame_count:
        frame_count = hints.frame_count
    return GridGeometry(frame_width, frame_height, columns, rows, frame_count, source=source)


def _check(sheet_size: tuple[int, int], frame_width: int, frame_height: int, columns: int, rows: int) -> None:
    if frame_width <= 0 or frame_height <= 0 or columns <= 0 or rows <= 0:
        raise GeometryInconsistencyError(
            f"Sheet {sheet_size[0]}x{sheet_size[1]} cannot hold frames of "
            f"{frame_width}x{frame_height} in a {columns}x{rows} grid"
        )


def unpack_frames(
    sheet: Image.Image,
    metadata: Optional[SheetMetadata] = None,
    hints: Optional[DecodeHints] = None,
    default_fps: float = DEFAULT_FPS,
) -> DecodeResult:
    """Cut a sheet into its frames, in index order.

    Cells that would reach past the sheet edge are skipped and reported
    instead of failing the whole decode.
    """

    hints = hints or DecodeHints()
    geometry = resolve_geometry(sheet.size, metadata, hints)
    sheet_width, sheet_height = sheet.size

    frames: list[Image.Image] = []
    skipped: list[int] = []
    for idx in range(geometry.frame_count):
        row, col = divmod(idx, geometry.columns)
        left = col * geometry.frame_width
        top = row * geometry.frame_height
        right = left + geometry.frame_width
        bottom = top + geometry.frame_height
        if right > sheet_width or bottom > sheet_height:
            logger.warning("Skipping frame %s outside sheet bounds: left=%s top=%s", idx, left, top)
            skipped.append(idx)
            continue
        frames.append(sheet.crop((left, top, right, bottom)))

    if skipped:
        warnings.warn(
            f"{len(skipped)} of {geometry.frame_count} frames fell outside the sheet and were skipped",
            PartialExtractionWarning,
            stacklevel=2,
        )

    fps = resolve_fps(metadata, hints, default_fps)
    logger.debug(
        "Decoded %s frames (%s grid %sx%s, %sx%s px) at %s fps",
        len(frames),
        geometry.source,
        geometry.columns,
        geometry.rows,
        geometry.frame_width,
        geometry.frame_height,
        fps,
    )
    return DecodeResult(frames=frames, fps=fps, geometry=geometry, skipped=skipped)


def resolve_fps(
    metadata: Optional[SheetMetadata],
    hints: Optional[DecodeHints],
    default_fps: float = DEFAULT_FPS,
) -> float:
    """Recorded video fps, then the caller's hint, then the default."""

    if metadata is not None and metadata.video_fps:
        return metadata.video_fps
    if hints is not None and hints.fps:
        return hints.fps
    return default_fps
