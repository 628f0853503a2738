"""
Text extraction for inputs the reconstruction service does not take as binary.

Modern Word documents are read with mammoth; anything else (and any .docx
mammoth cannot open) is decoded as text.
"""

from io import BytesIO

import mammoth

from ..models import SourceDocument
from ..utils.logging_config import get_logger

logger = get_logger()

OFFICE_TEXT_EXTENSIONS = (".docx",)


def extract_office_text(content: bytes) -> str:
    """
    Extract raw text from a .docx payload using mammoth.

    Raises whatever mammoth raises for unreadable input.
    """
    result = mammoth.extract_raw_text(BytesIO(content))

    for message in result.messages:
        if message.type == "error":
            logger.error(f"Mammoth error: {message.message}")
        else:
            logger.debug(f"Mammoth {message.type}: {message.message}")

    return result.value


def decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Payload is not valid UTF-8, decoding with replacement characters")
        return content.decode("utf-8", errors="replace")


def extract_document_text(document: SourceDocument) -> str:
    """Best-effort plain text for a source document."""
    if document.extension in OFFICE_TEXT_EXTENSIONS:
        try:
            return extract_office_text(document.content)
        except Exception as e:
            logger.warning(f"Office text extraction failed for {document.name}, treating it as text: {e}")
    return decode_text(document.content)
