"""Single-input conversions: still images, video to audio, video to GIF."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from PIL import Image

from . import ConverterConfig, TaskKind
from . import frame_extractor, video_loader
from .errors import OperationError
from ..utils import file_tools, validators

logger = logging.getLogger(__name__)

IMAGE_FORMATS = {"jpg", "jpeg", "png", "webp"}
_PILLOW_FORMATS = {"jpg": "JPEG", "jpeg": "JPEG", "png": "PNG", "webp": "WEBP"}
MIN_GIF_WIDTH = 100


def convert_image(input_path: Path, options: Mapping[str, Any], config: ConverterConfig) -> Path:
    """Re-encode an image, optionally shrinking it to a maximum width."""

    input_path = validators.validate_input_path(input_path, validators.ALLOWED_IMAGE_EXTENSIONS, "image")
    target_format = validators.parse_choice(options.get("target_format"), "target_format", IMAGE_FORMATS, "webp")
    quality = validators.option_int(options, "quality")
    validators.validate_quality(quality)
    width = validators.option_int(options, "width")

    extension = "jpg" if target_format in ("jpg", "jpeg") else target_format
    output_dir = config.output_dir_for(TaskKind.IMAGE, options.get("output_dir"))
    output_path = file_tools.output_file(output_dir, input_path, extension)

    save_kwargs: dict[str, Any] = {}
    if quality is not None:
        save_kwargs["quality"] = quality
    if extension == "jpg":
        save_kwargs["optimize"] = True

    with Image.open(input_path) as image:
        result = image.copy()
    if width and width < result.width:
        height = max(1, round(result.height * width / result.width))
        result = result.resize((width, height), Image.LANCZOS)
    if extension == "jpg" and result.mode not in ("RGB", "L"):
        result = _flatten(result)

    result.save(output_path, format=_PILLOW_FORMATS[extension], **save_kwargs)
    logger.info("Converted %s -> %s", input_path, output_path)
    return output_path


def video_to_audio(input_path: Path, options: Mapping[str, Any], config: ConverterConfig) -> Path:
    """Extract the audio track of a video as MP3."""

    input_path = validators.validate_input_path(input_path, validators.ALLOWED_AUDIO_SOURCE_EXTENSIONS, "video")
    output_dir = config.output_dir_for(TaskKind.VIDEO_TO_AUDIO, options.get("output_dir"))
    output_path = file_tools.output_file(output_dir, input_path, "mp3")

    clip_class = video_loader._resolve_video_file_clip()
    video_loader._ensure_ffmpeg_available()
    try:
        clip = clip_class(str(input_path))
    except Exception as exc:  # pragma: no cover - moviepy internals
        raise OperationError(f"Failed to open video {input_path}: {exc}") from exc
    try:
        if clip.audio is None:
            raise OperationError(f"{input_path.name} has no audio track")
        try:
            clip.audio.write_audiofile(str(output_path), codec="libmp3lame", logger=None)
        except Exception as exc:
            raise OperationError(f"Failed to convert {input_path.name} to MP3: {exc}") from exc
    finally:
        clip.close()

    logger.info("Extracted audio %s -> %s", input_path, output_path)
    return output_path


def video_to_gif(input_path: Path, options: Mapping[str, Any], config: ConverterConfig) -> Path:
    """Render a looping GIF from a video."""

    input_path = validators.validate_input_path(input_path, validators.ALLOWED_VIDEO_EXTENSIONS, "video")
    width = validators.option_at_least(options, "width", MIN_GIF_WIDTH)
    fps = validators.option_float(options, "fps")
    output_dir = config.output_dir_for(TaskKind.VIDEO_TO_GIF, options.get("output_dir"))
    output_path = file_tools.output_file(output_dir, input_path, "gif")

    metadata = video_loader.load_metadata(input_path)
    gif_fps = max(1, round(fps)) if fps else max(1, round(metadata.fps or config.default_fps))
    times = frame_extractor._compute_sample_times(metadata, fps=gif_fps)
    frames = list(frame_extractor.iter_frames(input_path, times, target_width=width))
    if not frames:
        raise OperationError(f"No frames could be read from {input_path}")

    first, rest = frames[0], frames[1:]
    first.save(
        output_path,
        format="GIF",
        save_all=True,
        append_images=rest,
        duration=round(1000 / gif_fps),
        loop=0,
    )
    logger.info("Wrote GIF %s (%s frames @ %s fps)", output_path, len(frames), gif_fps)
    return output_path


def _flatten(image: Image.Image) -> Image.Image:
    """Composite transparency onto white for formats without alpha."""

    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.split()[-1])
    return background
