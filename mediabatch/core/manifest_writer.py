"""Reading and writing the JSON side-file that describes a sheet grid."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from . import FrameRect, SheetMetadata
from ..utils import file_tools

logger = logging.getLogger(__name__)


def metadata_path_for(sheet_path: Path) -> Path:
    """The side-file shares the sheet's base name."""

    return sheet_path.with_suffix(".json")


def write_metadata(metadata: SheetMetadata, sheet_path: Path) -> Path:
    """Write the grid description next to the sheet image."""

    manifest_path = metadata_path_for(sheet_path)
    file_tools.ensure_directory(manifest_path.parent)
    manifest_path.write_text(json.dumps(metadata.to_dict(), indent=2), encoding="utf-8")
    logger.info("Wrote manifest to %s", manifest_path)
    return manifest_path


def load_metadata(sheet_path: Path) -> Optional[SheetMetadata]:
    """Load the side-file for a sheet, or None when it is absent or unusable."""

    manifest_path = metadata_path_for(sheet_path)
    if not manifest_path.exists():
        logger.debug("No manifest next to %s", sheet_path)
        return None
    try:
        raw = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable manifest %s: %s", manifest_path, exc)
        return None
    metadata = parse_metadata(raw)
    if metadata is None:
        logger.warning("Manifest %s is unusable, falling back to heuristics", manifest_path)
    return metadata


def parse_metadata(raw: Any) -> Optional[SheetMetadata]:
    """Build SheetMetadata from our own layout or a foreign tool's.

    Values are looked up at the top level, then under ``meta``, then derived
    from the first frame entry. Returns None when no frame size can be found
    or a frame entry holds non-numeric coordinates.
    """

    if not isinstance(raw, Mapping):
        return None
    meta = raw.get("meta") if isinstance(raw.get("meta"), Mapping) else {}
    frame_entries = _frame_entries(raw.get("frames"))
    first = _rect_of(frame_entries[0][1]) if frame_entries else {}

    frame_width = _positive_int(raw.get("frameWidth") or meta.get("frameWidth") or first.get("width"))
    frame_height = _positive_int(raw.get("frameHeight") or meta.get("frameHeight") or first.get("height"))
    if frame_width is None or frame_height is None:
        return None

    columns = _positive_int(raw.get("columns") or meta.get("columns")) or 1
    rows = _positive_int(raw.get("rows") or meta.get("rows")) or 1
    frame_count = _positive_int(raw.get("frameCount") or meta.get("frameCount")) or len(frame_entries) or 0
    video_fps = _positive_float(raw.get("videoFps") or meta.get("videoFps"))

    rects = []
    for idx, (name, entry) in enumerate(frame_entries):
        rect = _rect_of(entry)
        try:
            rects.append(
                FrameRect(
                    index=int(entry.get("index", idx)) if isinstance(entry, Mapping) else idx,
                    source=str(entry.get("source", name)) if isinstance(entry, Mapping) else name,
                    x=int(rect.get("x", 0)),
                    y=int(rect.get("y", 0)),
                    width=int(rect.get("width", frame_width)),
                    height=int(rect.get("height", frame_height)),
                )
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Frame entry %s is malformed: %s", name, exc)
            return None

    return SheetMetadata(
        frame_width=frame_width,
        frame_height=frame_height,
        columns=columns,
        rows=rows,
        frame_count=frame_count,
        frames=tuple(rects),
        video_fps=video_fps,
    )


def _frame_entries(frames: Any) -> list[tuple[str, Any]]:
    if isinstance(frames, Mapping):
        return [(str(name), entry) for name, entry in frames.items()]
    if isinstance(frames, list):
        return [(f"frame-{idx}", entry) for idx, entry in enumerate(frames)]
    return []


def _rect_of(entry: Any) -> dict[str, Any]:
    """Normalize {x,y,w,h}, {x,y,width,height} and {frame: {...}} rects."""

    if not isinstance(entry, Mapping):
        return {}
    if isinstance(entry.get("frame"), Mapping):
        entry = entry["frame"]
    rect = {}
    for key, aliases in (("x", ("x",)), ("y", ("y",)), ("width", ("width", "w")), ("height", ("height", "h"))):
        for alias in aliases:
            if entry.get(alias) is not None:
                rect[key] = entry[alias]
                break
    return rect


def _positive_int(value: Any) -> Optional[int]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _positive_float(value: Any) -> Optional[float]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None
