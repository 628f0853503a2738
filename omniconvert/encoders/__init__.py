"""
Target encoders.

``encode()`` picks the encoder for a target format and returns the finished
payload with its content type. PDF and image targets are produced from the
settled render surface; the text family works from the parsed content.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..config import EncoderConfig, TargetFormat
from ..content.nodes import Block
from ..render.bridge import EXPORT_NODE_LOST
from ..render.layout import RenderSurface
from ..utils.error_handling import ConversionError, EncodeError, RenderError
from ..utils.logging_config import get_logger
from .office_html import encode_office_html
from .pdf import encode_pdf, page_offsets
from .raster import encode_image, rasterize
from .text import encode_markdown, encode_plain_text

logger = get_logger()


@dataclass(frozen=True)
class EncodedPayload:
    data: bytes = field(repr=False)
    content_type: str
    extension: str

    @property
    def size(self) -> int:
        return len(self.data)


def encode(
    target_format: TargetFormat,
    blocks: Sequence[Block],
    surface: Optional[RenderSurface] = None,
    config: Optional[EncoderConfig] = None,
    title: Optional[str] = None
) -> EncodedPayload:
    """
    Produce the payload for ``target_format``.

    Args:
        target_format: Format fixed for the attempt
        blocks: Parsed reconstructed content
        surface: Settled render surface, required for PDF/JPG/PNG
        config: Encoder quality settings
        title: Document title for formats that carry one

    Returns:
        EncodedPayload

    Raises:
        RenderError: If a raster target has no render surface
        EncodeError: If the encoder itself fails
    """
    config = config or EncoderConfig()

    if target_format.is_raster and surface is None:
        raise RenderError(EXPORT_NODE_LOST)

    try:
        if target_format == TargetFormat.PDF:
            data = encode_pdf(rasterize(surface), config.pdf_image_quality, config.page_size, title)
        elif target_format in (TargetFormat.JPG, TargetFormat.PNG):
            data = encode_image(rasterize(surface), target_format, config.image_quality)
        elif target_format == TargetFormat.DOCX:
            data = encode_office_html(blocks, title)
        elif target_format == TargetFormat.MD:
            data = encode_markdown(blocks)
        else:
            data = encode_plain_text(blocks)
    except ConversionError:
        raise
    except Exception as e:
        logger.error(f"{target_format.value} encoder failed: {e}")
        raise EncodeError(f"Could not produce the {target_format.value} file: {e}") from e

    logger.info(f"Encoded {target_format.value} payload ({len(data)} bytes)")
    return EncodedPayload(data=data, content_type=target_format.content_type, extension=target_format.extension)


__all__ = [
    "EncodedPayload",
    "encode",
    "encode_image",
    "encode_markdown",
    "encode_office_html",
    "encode_pdf",
    "encode_plain_text",
    "page_offsets",
    "rasterize",
]
