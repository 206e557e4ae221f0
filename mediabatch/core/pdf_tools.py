"""Conversions between image sets and PDF documents."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

import pypdfium2 as pdfium
from PIL import Image

from . import ConverterConfig, TaskKind
from .errors import OperationError
from ..utils import file_tools, validators

logger = logging.getLogger(__name__)

PAGE_FORMATS = {"png", "jpg", "jpeg", "webp"}
_PILLOW_FORMATS = {"png": "PNG", "jpg": "JPEG", "jpeg": "JPEG", "webp": "WEBP"}
DEFAULT_DPI = 150
DEFAULT_QUALITY = 90


def images_to_pdf(image_paths: Sequence[Path], options: Mapping[str, Any], config: ConverterConfig) -> list[Path]:
    """Bind images into one PDF, one page per image, in the given order."""

    if not image_paths:
        raise OperationError("images_to_pdf needs at least one image")
    paths = [validators.validate_input_path(p, validators.ALLOWED_IMAGE_EXTENSIONS, "image") for p in image_paths]
    output_dir = config.output_dir_for(TaskKind.IMAGES_TO_PDF, options.get("output_dir"))
    output_name = options.get("output_name") or paths[0].stem
    pdf_path = output_dir / f"{output_name}.pdf"

    pages = []
    for path in paths:
        with Image.open(path) as image:
            pages.append(_to_rgb(image))

    pages[0].save(pdf_path, format="PDF", save_all=True, append_images=pages[1:])
    logger.info("Wrote %s-page PDF %s", len(pages), pdf_path)
    return [pdf_path]


def pdf_to_images(pdf_paths: Sequence[Path], options: Mapping[str, Any], config: ConverterConfig) -> list[Path]:
    """Render every page of a PDF into its own image file.

    Pages land in ``<output>/<pdf stem>/<pdf stem>_page-001.<ext>``.
    """

    pdf_path = validators.validate_input_path(pdf_paths[0], validators.ALLOWED_PDF_EXTENSIONS, "PDF")
    image_format = validators.parse_choice(options.get("image_format"), "image_format", PAGE_FORMATS, "png")
    dpi = validators.option_int(options, "dpi") or DEFAULT_DPI
    quality = validators.option_int(options, "quality") or DEFAULT_QUALITY
    validators.validate_quality(quality)

    base_dir = config.output_dir_for(TaskKind.PDF_TO_IMAGES, options.get("output_dir"))
    output_dir = file_tools.ensure_directory(base_dir / pdf_path.stem)

    try:
        document = pdfium.PdfDocument(str(pdf_path))
    except pdfium.PdfiumError as exc:
        raise OperationError(f"Could not open PDF {pdf_path.name}: {exc}") from exc

    image_paths: list[Path] = []
    try:
        page_count = len(document)
        if page_count == 0:
            raise OperationError(f"No pages found in {pdf_path.name}")
        for page_number in range(page_count):
            page = document[page_number]
            try:
                image = page.render(scale=dpi / 72).to_pil()
            finally:
                page.close()
            out_path = output_dir / f"{pdf_path.stem}_page-{page_number + 1:03d}.{image_format}"
            save_kwargs: dict[str, Any] = {}
            if image_format != "png":
                save_kwargs["quality"] = quality
                image = _to_rgb(image)
            image.save(out_path, format=_PILLOW_FORMATS[image_format], **save_kwargs)
            image_paths.append(out_path)
    finally:
        document.close()

    logger.info("Rendered %s pages of %s into %s", len(image_paths), pdf_path, output_dir)
    return image_paths


def _to_rgb(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image.copy()
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.split()[-1])
    return background
