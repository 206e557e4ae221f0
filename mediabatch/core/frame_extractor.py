"""Frame extraction logic using moviepy."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

import numpy as np
from PIL import Image

from . import VideoMetadata
from .errors import OperationError
from .video_loader import _ensure_ffmpeg_available, _resolve_video_file_clip, load_metadata
from ..utils import file_tools

logger = logging.getLogger(__name__)

FRAME_NAME_PATTERN = "frame-{:06d}.png"


def _compute_sample_times(
    metadata: VideoMetadata,
    frame_count: int | None = None,
    fps: float | None = None,
    max_frames: int | None = None,
) -> list[float]:
    """Decide which timestamps to sample.

    With neither ``frame_count`` nor ``fps`` every native frame is sampled.
    """

    duration = metadata.duration_seconds
    if duration <= 0:
        return [0.0]

    if frame_count:
        times = np.linspace(0.0, duration, num=frame_count, endpoint=False, dtype=float).tolist()
    else:
        rate = fps or metadata.fps or 1.0
        times = np.arange(0.0, duration, 1.0 / rate, dtype=float).tolist()

    times = [min(t, max(duration - 0.001, 0.0)) for t in times]  # keep within clip
    unique_times = list(dict.fromkeys(times))
    if max_frames and len(unique_times) > max_frames:
        logger.info("Capping frames to %s (requested %s)", max_frames, len(unique_times))
        unique_times = unique_times[:max_frames]
    return unique_times or [0.0]


def iter_frames(
    video_path: Path,
    times: list[float],
    target_width: Optional[int] = None,
) -> Iterator[Image.Image]:
    """Yield RGB frames at the given timestamps, in order."""

    clip_class = _resolve_video_file_clip()
    _ensure_ffmpeg_available()

    logger.info("Extracting %s frames from %s", len(times), video_path)
    try:
        clip = clip_class(str(video_path), audio=False)
    except Exception as exc:  # pragma: no cover - moviepy internals
        raise OperationError(f"Failed to open video {video_path}: {exc}") from exc
    try:
        for ts in times:
            try:
                image = Image.fromarray(clip.get_frame(ts)).convert("RGB")
            except Exception as exc:  # pragma: no cover
                logger.warning("Failed to decode frame at %.3fs: %s", ts, exc)
                continue
            yield _resize_to_width(image, target_width)
    finally:
        clip.close()


def extract_frames(
    video_path: Path,
    output_dir: Path,
    target_width: Optional[int] = None,
    frame_count: Optional[int] = None,
) -> list[Path]:
    """Write frames of a video to ``output_dir`` as numbered PNGs.

    Returns the written paths in temporal order.
    """

    metadata = load_metadata(video_path)
    times = _compute_sample_times(metadata, frame_count=frame_count)
    file_tools.ensure_directory(output_dir)

    for idx, frame in enumerate(iter_frames(video_path, times, target_width), start=1):
        frame.save(output_dir / FRAME_NAME_PATTERN.format(idx))

    frame_paths = file_tools.list_files_with_extensions(output_dir, {".png"})
    if not frame_paths:
        raise OperationError(f"No frames could be extracted from {video_path}")
    logger.debug("Wrote %s frames to %s", len(frame_paths), output_dir)
    return frame_paths


def _resize_to_width(image: Image.Image, width: Optional[int]) -> Image.Image:
    """Scale to a target width keeping aspect ratio."""

    if not width or width == image.width:
        return image
    height = max(1, round(image.height * width / image.width))
    return image.resize((width, height), Image.LANCZOS)
