"""
Paginated PDF export of a rasterized surface.

The bitmap is encoded once as JPEG and scaled to the A4 page width. Every
page shows the same full-height image, shifted up by the height already
shown on previous pages, so one tall image is sliced across as many pages as
it needs without re-rasterizing.
"""

from io import BytesIO
from typing import List, Optional, Tuple

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..config import A4_PAGE_SIZE
from ..utils.logging_config import get_logger
from .raster import encode_jpeg

logger = get_logger()

# Sub-point remainders come from float scaling, not content
PAGE_EPSILON = 1e-6


def page_offsets(image_height: float, page_height: float) -> List[float]:
    """
    Vertical offsets of the image on each page, top-down.

    The first page shows the image at offset 0. Another page is added at
    offset ``-consumed`` while unshown content remains, so the page count is
    ``ceil(H / P)`` with a minimum of one and no blank trailing page when the
    image ends exactly on a page boundary.
    """
    if page_height <= 0:
        raise ValueError(f"page height must be positive, got {page_height}")

    offsets = [0.0]
    consumed = page_height
    while image_height - consumed > PAGE_EPSILON:
        offsets.append(-consumed)
        consumed += page_height
    return offsets


def encode_pdf(
    image: Image.Image,
    quality: int = 95,
    page_size: Tuple[float, float] = A4_PAGE_SIZE,
    title: Optional[str] = None
) -> bytes:
    """
    Paginate a bitmap onto portrait pages.

    Args:
        image: Bitmap from rasterize()
        quality: JPEG quality of the embedded image
        page_size: Page (width, height) in points
        title: Optional document title metadata

    Returns:
        PDF bytes
    """
    page_width, page_height = page_size
    jpeg = encode_jpeg(image, quality)
    reader = ImageReader(BytesIO(jpeg))
    pixel_width, pixel_height = reader.getSize()

    image_width = page_width
    image_height = pixel_height * page_width / pixel_width
    offsets = page_offsets(image_height, page_height)

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=page_size)
    if title:
        pdf.setTitle(title)

    for index, offset in enumerate(offsets):
        if index:
            pdf.showPage()
        # reportlab measures y upwards from the bottom edge
        pdf.drawImage(reader, 0, page_height - offset - image_height, width=image_width, height=image_height)

    pdf.save()
    logger.debug(f"Paginated {pixel_width}x{pixel_height}px image onto {len(offsets)} page(s)")
    return buffer.getvalue()
