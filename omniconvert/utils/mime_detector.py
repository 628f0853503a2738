"""
MIME type resolution for uploaded source documents.

Uploads frequently arrive with no content type or with a generic
``application/octet-stream``. The extractor needs a real type to decide
between sending the bytes inline and sending extracted text, so the declared
type is checked first, then the content, then the extension.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Optional

# Try to import python-magic for content-based detection
try:
    import magic
    MAGIC_AVAILABLE = True
except ImportError:
    magic = None
    MAGIC_AVAILABLE = False

logger = logging.getLogger(__name__)

GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

MIME_TYPE_MAPPINGS = {
    # Documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "rtf": "application/rtf",

    # Text
    "txt": "text/plain",
    "html": "text/html",
    "htm": "text/html",
    "md": "text/markdown",
    "csv": "text/csv",
    "json": "application/json",
    "xml": "application/xml",

    # Images
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
    "bmp": "image/bmp",
}


class MimeTypeDetector:
    """
    MIME type detector with ordered fallbacks.

    Detection priority order:
    1. The type declared by the uploader, unless it is generic
    2. Content-based detection (python-magic, when installed)
    3. Extension-based detection (custom mappings, then mimetypes)
    4. application/octet-stream
    """

    def __init__(self):
        mimetypes.init()
        for ext, mime_type in MIME_TYPE_MAPPINGS.items():
            mimetypes.add_type(mime_type, f".{ext}")

    def detect_from_content(self, content: bytes, filename: Optional[str] = None) -> Optional[str]:
        """Sniff the MIME type from the leading bytes using python-magic."""
        if not MAGIC_AVAILABLE or not content:
            return None

        try:
            detected_mime = magic.from_buffer(content[:8192], mime=True)
        except Exception as e:
            logger.debug(f"Content-based detection failed: {e}")
            return None

        if not detected_mime:
            return None

        # Office XML files sniff as plain zip containers
        extension_mime = self.detect_from_extension(filename) if filename else None
        if extension_mime and self._should_override_magic(detected_mime):
            logger.debug(f"Overriding magic detection {detected_mime} -> {extension_mime}")
            return extension_mime

        logger.debug(f"Content-based detection: {detected_mime}")
        return detected_mime

    def detect_from_extension(self, filename: str) -> Optional[str]:
        """Detect MIME type from the file extension."""
        if not filename:
            return None

        extension = Path(filename).suffix[1:].lower()
        if not extension:
            return None

        mime_type = MIME_TYPE_MAPPINGS.get(extension)
        if not mime_type:
            mime_type, _ = mimetypes.guess_type(f"file.{extension}")

        if mime_type:
            logger.debug(f"Extension-based detection: {extension} -> {mime_type}")
        return mime_type

    def get_mime_type(
        self,
        content: Optional[bytes] = None,
        filename: Optional[str] = None,
        declared: Optional[str] = None
    ) -> str:
        """
        Resolve the MIME type of an upload.

        Args:
            content: Raw file content for content-based detection
            filename: Filename for extension-based detection
            declared: Content type supplied with the upload

        Returns:
            MIME type string, application/octet-stream when nothing matched
        """
        declared_clean = (declared or "").lower().split(";")[0].strip()
        if declared_clean not in GENERIC_MIME_TYPES:
            return declared_clean

        detected_mime = None
        if content:
            detected_mime = self.detect_from_content(content, filename)
        if not detected_mime and filename:
            detected_mime = self.detect_from_extension(filename)
        if not detected_mime:
            detected_mime = "application/octet-stream"

        logger.debug(f"Final MIME type detection for {filename!r}: {detected_mime}")
        return detected_mime

    def _should_override_magic(self, detected_mime: str) -> bool:
        return detected_mime in ("application/zip", "application/octet-stream", "text/plain")


_detector_instance = None


def get_mime_detector() -> MimeTypeDetector:
    """Get the global MIME type detector instance."""
    global _detector_instance
    if _detector_instance is None:
        _detector_instance = MimeTypeDetector()
    return _detector_instance


def get_mime_type(
    content: Optional[bytes] = None,
    filename: Optional[str] = None,
    declared: Optional[str] = None
) -> str:
    """Convenience function to resolve a MIME type using the global detector."""
    return get_mime_detector().get_mime_type(content, filename, declared)
