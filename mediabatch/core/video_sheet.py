"""Video <-> spritesheet pipelines built on the frame source and sheet codec."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from PIL import Image

from . import ConverterConfig, TaskKind
from . import frame_extractor, manifest_writer, spritesheet_builder, spritesheet_reader, video_loader
from .errors import OperationError
from ..utils import file_tools, validators

logger = logging.getLogger(__name__)

MIN_FRAME_WIDTH = 32


def video_to_spritesheet(video_path: Path, options: Mapping[str, Any], config: ConverterConfig) -> list[Path]:
    """Extract every frame of a video and pack them into one sheet."""

    video_path = validators.validate_input_path(video_path, validators.ALLOWED_VIDEO_EXTENSIONS, "video")
    width = validators.option_at_least(options, "width", MIN_FRAME_WIDTH)
    columns = validators.option_int(options, "columns")
    frame_count = validators.option_int(options, "frame_count")
    output_name = options.get("output_name") or f"{video_path.stem}_sheet"
    output_dir = config.output_dir_for(TaskKind.VIDEO_TO_SPRITESHEET, options.get("output_dir"))
    keep = bool(options.get("keep_frames")) or not config.cleanup_frames

    with file_tools.scratch_directory(prefix=f"{video_path.stem}_frames_", keep=keep) as frames_dir:
        frame_paths = frame_extractor.extract_frames(
            video_path, frames_dir, target_width=width, frame_count=frame_count
        )
        frames = _load_frames(frame_paths)
        sheet, metadata = spritesheet_builder.pack_frames(
            frames, columns=columns, sources=[p.name for p in frame_paths]
        )

    try:
        fps = video_loader.get_fps(video_path)
    except OperationError as exc:
        logger.warning("Could not read exact fps of %s, using %s: %s", video_path, config.default_fps, exc)
        fps = config.default_fps
    metadata = metadata.with_fps(fps)

    sheet_path, meta_path = spritesheet_builder.save_spritesheet(sheet, metadata, output_dir, output_name)
    return [sheet_path, meta_path]


def spritesheet_to_video(sheet_path: Path, options: Mapping[str, Any], config: ConverterConfig) -> list[Path]:
    """Rebuild an MP4 from a sheet, using its manifest when one exists."""

    sheet_path = Path(sheet_path)
    if not sheet_path.exists():
        raise OperationError(f"Spritesheet not found: {sheet_path}")

    hints = spritesheet_reader.hints_from_options(options)
    metadata = manifest_writer.load_metadata(sheet_path)
    output_dir = config.output_dir_for(TaskKind.SPRITESHEET_TO_VIDEO, options.get("output_dir"))
    output_path = output_dir / f"{sheet_path.stem}_rebuild.mp4"
    keep = bool(options.get("keep_frames")) or not config.cleanup_frames

    with Image.open(sheet_path) as sheet:
        result = spritesheet_reader.unpack_frames(
            sheet.convert("RGBA"), metadata, hints, default_fps=config.default_fps
        )
    if not result.frames:
        raise OperationError(f"No frames could be read from {sheet_path}")

    with file_tools.scratch_directory(prefix=f"{sheet_path.stem}_rebuild_frames_", keep=keep) as frames_dir:
        frame_paths = []
        for idx, frame in enumerate(result.frames):
            frame_path = frames_dir / frame_extractor.FRAME_NAME_PATTERN.format(idx)
            _even_canvas(frame).save(frame_path)
            frame_paths.append(frame_path)
        write_video(frame_paths, result.fps, output_path)

    return [output_path]


def write_video(frame_paths: Sequence[Path], fps: float, output_path: Path) -> Path:
    """Mux an ordered PNG sequence into an H.264 MP4."""

    clip_class = video_loader._resolve_image_sequence_clip()
    video_loader._ensure_ffmpeg_available()
    logger.info("Encoding %s frames at %s fps into %s", len(frame_paths), fps, output_path)
    try:
        clip = clip_class([str(p) for p in frame_paths], fps=fps)
        try:
            clip.write_videofile(
                str(output_path),
                fps=fps,
                codec="libx264",
                audio=False,
                ffmpeg_params=["-pix_fmt", "yuv420p"],
                logger=None,
            )
        finally:
            clip.close()
    except Exception as exc:
        raise OperationError(f"ffmpeg failed to build {output_path.name}: {exc}") from exc
    return output_path


def _load_frames(frame_paths: Sequence[Path]) -> list[Image.Image]:
    frames = []
    for path in frame_paths:
        with Image.open(path) as image:
            frames.append(image.convert("RGBA"))
    return frames


def _even_canvas(frame: Image.Image) -> Image.Image:
    """Flatten to RGB and pad to even dimensions, as yuv420p requires."""

    width = frame.width + frame.width % 2
    height = frame.height + frame.height % 2
    canvas = Image.new("RGB", (width, height), (0, 0, 0))
    rgba = frame.convert("RGBA")
    canvas.paste(rgba, (0, 0), mask=rgba.split()[-1])
    return canvas
