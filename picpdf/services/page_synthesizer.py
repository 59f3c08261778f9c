"""Page synthesizer: one fixed-size page per image, image fit-within and centred."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError
from reportlab.lib import pagesizes
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from picpdf.errors import ConversionFailed
from picpdf.schemas.common import PageGeometry, Placement, UploadedImage

logger = structlog.get_logger(__name__)

# Pillow signals undecodable or hostile input through several exception types
_DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    SyntaxError,
    ValueError,
)


def resolve_geometry(page_size: str) -> PageGeometry:
    """Look up a reportlab page size by name ("A4", "LETTER", ...)."""
    size = getattr(pagesizes, page_size.upper(), None)
    if not isinstance(size, tuple) or len(size) != 2:
        raise ValueError(f"Unknown page size: {page_size}")
    width, height = size
    return PageGeometry(width=width, height=height)


def fit_within(image_width: float, image_height: float, geometry: PageGeometry) -> Placement:
    """Scale an image to fit entirely inside the page and centre it.

    The aspect ratio is preserved and nothing is cropped. Letterboxing is
    split evenly on the constrained axis; a matching aspect ratio leaves none.
    """
    if image_width <= 0 or image_height <= 0:
        raise ValueError(f"Invalid image dimensions: {image_width}x{image_height}")

    scale = min(geometry.width / image_width, geometry.height / image_height)
    width = image_width * scale
    height = image_height * scale
    return Placement(
        x=(geometry.width - width) / 2,
        y=(geometry.height - height) / 2,
        width=width,
        height=height,
    )


def _prepare_frame(frame: Image.Image) -> Image.Image:
    frame = ImageOps.exif_transpose(frame)
    if frame.mode in ("RGB", "L"):
        return frame
    if "A" in frame.getbands() or "transparency" in frame.info:
        return frame.convert("RGBA")
    return frame.convert("RGB")


def load_image(path: str | Path) -> Image.Image:
    """Open and fully decode an image, applying its EXIF orientation.

    Raises:
        ConversionFailed: If the bytes cannot be decoded as an image.
    """
    try:
        with Image.open(path) as image:
            image.load()
            return _prepare_frame(image)
    except _DECODE_ERRORS as exc:
        logger.error("image_decode_failed", path=str(path), error=str(exc))
        raise ConversionFailed(path=str(path), error=str(exc)) from exc


def draw_page(canvas: Canvas, image: Image.Image, geometry: PageGeometry) -> Placement:
    """Emit one page holding *image* at its fit-within placement."""
    placement = fit_within(image.width, image.height, geometry)
    canvas.setPageSize((geometry.width, geometry.height))
    canvas.drawImage(
        ImageReader(image),
        placement.x,
        placement.y,
        width=placement.width,
        height=placement.height,
        mask="auto",
    )
    canvas.showPage()
    return placement


def synthesize_pages(canvas: Canvas, images: Sequence[UploadedImage], geometry: PageGeometry) -> int:
    """Draw one page per image, strictly in the given order.

    Returns:
        Number of pages emitted.
    """
    for index, uploaded in enumerate(images):
        frame = load_image(uploaded.path)
        try:
            placement = draw_page(canvas, frame, geometry)
        finally:
            frame.close()
        logger.debug(
            "page_synthesized",
            page=index,
            stored_filename=uploaded.stored_filename,
            image_size=f"{frame.width}x{frame.height}",
            placed=f"{placement.width:.1f}x{placement.height:.1f}",
        )
    return len(images)
