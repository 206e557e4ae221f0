"""Video loading and metadata discovery through moviepy."""

from __future__ import annotations

import logging
from pathlib import Path

from . import VideoMetadata
from .errors import InvalidMediaError, OperationError
from ..utils import validators

logger = logging.getLogger(__name__)


def load_metadata(video_path: Path) -> VideoMetadata:
    """Return size, frame rate and duration for a video file."""

    validated_path = validators.validate_input_path(video_path, validators.ALLOWED_VIDEO_EXTENSIONS, "video")
    _ensure_ffmpeg_available()
    clip_class = _resolve_video_file_clip()

    try:
        with clip_class(str(validated_path), audio=False) as clip:
            width, height = clip.size
            fps = float(getattr(clip, "fps", 0.0) or 0.0)
            duration_seconds = float(getattr(clip, "duration", 0.0) or 0.0)
    except Exception as exc:  # pragma: no cover - backend dependent
        raise InvalidMediaError(validated_path, reason=f"Could not read metadata: {exc}", label="video") from exc

    logger.debug(
        "Loaded metadata for %s -> %sx%s @ %sfps, %ss",
        validated_path,
        width,
        height,
        fps,
        duration_seconds,
    )
    return VideoMetadata(width=width, height=height, fps=fps, duration_seconds=duration_seconds)


def get_fps(video_path: Path) -> float:
    """Return the video's frame rate, failing if the container does not report one."""

    metadata = load_metadata(video_path)
    if metadata.fps <= 0:
        raise OperationError(f"Video {video_path} does not report a frame rate")
    return metadata.fps


def _ensure_ffmpeg_available() -> None:
    """Raise a friendly error if ffmpeg is missing."""

    try:
        from moviepy.config import FFMPEG_BINARY  # type: ignore
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise OperationError("moviepy is not installed. Run pip install mediabatch.") from exc

    if not FFMPEG_BINARY:
        raise OperationError("ffmpeg not found. Install ffmpeg and ensure it is on PATH.")


def _resolve_video_file_clip():
    """Import VideoFileClip from supported moviepy locations."""

    try:
        from moviepy.editor import VideoFileClip  # type: ignore
        return VideoFileClip
    except ModuleNotFoundError:
        try:
            from moviepy.video.io.VideoFileClip import VideoFileClip  # type: ignore
            return VideoFileClip
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise OperationError("moviepy is not installed. Run pip install mediabatch.") from exc


def _resolve_image_sequence_clip():
    """Import ImageSequenceClip from supported moviepy locations."""

    try:
        from moviepy.video.io.ImageSequenceClip import ImageSequenceClip  # type: ignore
        return ImageSequenceClip
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise OperationError("moviepy is not installed. Run pip install mediabatch.") from exc
