"""Mapping from task kinds to the functions that carry them out."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from . import TaskKind
from . import converters, pdf_tools, spritesheet_builder, video_sheet


@dataclass(frozen=True)
class ConversionOperation:
    """A conversion callable and how the orchestrator should invoke it.

    ``per_input`` operations take one path and return one path; the
    orchestrator maps them over every input of a task. The others receive
    the full ordered list of inputs and return a list of outputs.
    """

    func: Callable
    per_input: bool = False


def _first_input(func: Callable) -> Callable:
    def run(paths, options, config):
        return func(paths[0], options, config)

    run.__name__ = func.__name__
    return run


def default_operations() -> dict[TaskKind, ConversionOperation]:
    return {
        TaskKind.IMAGE: ConversionOperation(converters.convert_image, per_input=True),
        TaskKind.VIDEO_TO_AUDIO: ConversionOperation(converters.video_to_audio, per_input=True),
        TaskKind.VIDEO_TO_GIF: ConversionOperation(converters.video_to_gif, per_input=True),
        TaskKind.SPRITESHEET_ENCODE: ConversionOperation(spritesheet_builder.build_spritesheet),
        TaskKind.VIDEO_TO_SPRITESHEET: ConversionOperation(_first_input(video_sheet.video_to_spritesheet)),
        TaskKind.SPRITESHEET_TO_VIDEO: ConversionOperation(_first_input(video_sheet.spritesheet_to_video)),
        TaskKind.IMAGES_TO_PDF: ConversionOperation(pdf_tools.images_to_pdf),
        TaskKind.PDF_TO_IMAGES: ConversionOperation(pdf_tools.pdf_to_images),
    }
