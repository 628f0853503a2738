"""
Raster encoder: captures the render surface as a bitmap.

The bitmap is drawn at a fixed scale (2x) on an opaque white background so
single-background formats such as JPEG never show transparency artifacts.
"""

from io import BytesIO
from typing import Optional

from PIL import Image, ImageDraw

from ..config import TargetFormat
from ..render.layout import RenderSurface
from ..utils.logging_config import get_logger

logger = get_logger()

# Largest side libjpeg accepts
JPEG_MAX_DIMENSION = 65500


def rasterize(surface: RenderSurface, scale: Optional[float] = None) -> Image.Image:
    """Draw ``surface`` into a new RGB image."""
    cfg = surface.config
    scale = scale or cfg.scale
    size = (max(1, round(surface.width * scale)), max(1, round(surface.height * scale)))

    image = Image.new("RGB", size, cfg.background)
    draw = ImageDraw.Draw(image)

    for run in surface.runs:
        if not run.text.strip():
            continue
        pixel_size = run.font_size * scale
        top = run.y + (run.line_box - run.font_size) / 2
        stroke = surface.fonts.stroke_width(pixel_size, run.bold, run.face)
        draw.text(
            (run.x * scale, top * scale),
            run.text,
            font=surface.fonts.font(pixel_size, run.bold, run.face),
            fill=cfg.text_color,
            stroke_width=stroke,
            stroke_fill=cfg.text_color,
        )

    for marker in surface.markers:
        cx, cy, r = marker.x * scale, marker.y * scale, marker.radius * scale
        box = [cx - r, cy - r, cx + r, cy + r]
        if marker.depth == 0:
            draw.ellipse(box, fill=cfg.text_color)
        elif marker.depth == 1:
            draw.ellipse(box, outline=cfg.text_color, width=max(1, round(scale)))
        else:
            draw.rectangle(box, fill=cfg.text_color)

    logger.debug(f"Rasterized surface {surface.width}x{surface.height} at {scale}x -> {image.width}x{image.height}")
    return image


def fit_jpeg_limits(image: Image.Image) -> Image.Image:
    """Downscale an image whose sides exceed what JPEG can store."""
    longest = max(image.size)
    if longest <= JPEG_MAX_DIMENSION:
        return image
    ratio = JPEG_MAX_DIMENSION / longest
    size = (max(1, round(image.width * ratio)), max(1, round(image.height * ratio)))
    logger.warning(f"Image {image.width}x{image.height} exceeds JPEG limits, downscaling to {size[0]}x{size[1]}")
    return image.resize(size, Image.LANCZOS)


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = BytesIO()
    fit_jpeg_limits(image.convert("RGB")).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def encode_image(image: Image.Image, target_format: TargetFormat, quality: int = 90) -> bytes:
    """
    Encode a bitmap as the final JPG or PNG payload.

    Args:
        image: Bitmap from rasterize()
        target_format: TargetFormat.JPG or TargetFormat.PNG
        quality: JPEG quality (ignored for lossless PNG)

    Returns:
        Encoded image bytes
    """
    if target_format == TargetFormat.JPG:
        return encode_jpeg(image, quality)
    if target_format == TargetFormat.PNG:
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()
    raise ValueError(f"{target_format.value} is not an image format")
