"""
Conversion configuration for OmniConvert.

This module defines the supported target formats and their result content
types, the legacy input formats refused at selection time, and the settings
for the extractor, the render surface and the encoders. Settings classes read
their values from the environment through ``from_env()``.
"""

import os
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple


class TargetFormat(str, Enum):
    """Container formats a document can be re-exported to."""
    PDF = "PDF"
    DOCX = "DOCX"
    TXT = "TXT"
    JPG = "JPG"
    PNG = "PNG"
    MD = "MD"

    @property
    def extension(self) -> str:
        return self.value.lower()

    @property
    def content_type(self) -> str:
        return FORMAT_CONTENT_TYPES[self]

    @property
    def is_raster(self) -> bool:
        """PDF and image targets are produced from a rasterized render surface."""
        return self in RASTER_FORMATS

    @classmethod
    def parse(cls, value: str) -> "TargetFormat":
        """Accept any case and the common ``jpeg`` / ``markdown`` aliases."""
        key = (value or "").strip().upper()
        key = FORMAT_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            supported = ", ".join(f.value for f in cls)
            raise ValueError(f"Unsupported target format: {value!r}. Supported formats: {supported}")


FORMAT_ALIASES = {
    "JPEG": "JPG",
    "MARKDOWN": "MD",
    "TEXT": "TXT",
}

# DOCX is the Office-HTML compatibility shim, hence the legacy Word type
FORMAT_CONTENT_TYPES: Dict[TargetFormat, str] = {
    TargetFormat.PDF: "application/pdf",
    TargetFormat.DOCX: "application/msword",
    TargetFormat.TXT: "text/plain;charset=utf-8",
    TargetFormat.JPG: "image/jpeg",
    TargetFormat.PNG: "image/png",
    TargetFormat.MD: "text/markdown;charset=utf-8",
}

RASTER_FORMATS = frozenset({TargetFormat.PDF, TargetFormat.JPG, TargetFormat.PNG})

DEFAULT_TARGET_FORMAT = TargetFormat.PDF


# Legacy binary Office formats have no text-extractable structure and are
# refused before the extractor is called.
REJECTED_EXTENSIONS: Dict[str, str] = {
    ".doc": "Legacy .doc files are not supported. Save the document as .docx (Word XML format) and try again.",
    ".xls": "Legacy .xls files are not supported. Save the workbook as .xlsx (Excel XML format) and try again.",
    ".ppt": "Legacy .ppt files are not supported. Save the presentation as .pptx (PowerPoint XML format) and try again.",
}

# Sent to the extractor as-is; everything else is turned into text first
INLINE_BINARY_MIME_TYPES = (
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/webp",
)

# Tags the reconstructed content may use; anything else is stripped
ALLOWED_TAGS = frozenset({"h1", "h2", "p", "br", "ul", "li", "strong"})

# Coarse progress signal for an attempt
PROGRESS_STARTED = 10
PROGRESS_EXTRACTED = 50
PROGRESS_DONE = 100

# A4 portrait in PDF points
A4_PAGE_SIZE: Tuple[float, float] = (595.2755905511812, 841.8897637795277)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    return int(value) if value else default


def _env_paths(name: str) -> List[str]:
    """Font file list separated by the platform path separator."""
    return [path.strip() for path in os.getenv(name, "").split(os.pathsep) if path.strip()]


class ExtractorConfig:
    """Settings for the Gemini-compatible content reconstruction service."""

    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
    DEFAULT_MODEL = "gemini-3-flash-preview"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.0,
        top_p: float = 0.1,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    @classmethod
    def from_env(cls) -> "ExtractorConfig":
        api_key = (
            os.getenv("OMNICONVERT_API_KEY")
            or os.getenv("GEMINI_API_KEY")
            or os.getenv("API_KEY")
        )
        timeout = os.getenv("OMNICONVERT_EXTRACTOR_TIMEOUT", "").strip()
        return cls(
            api_key=api_key,
            base_url=os.getenv("OMNICONVERT_EXTRACTOR_URL", cls.DEFAULT_BASE_URL),
            model=os.getenv("OMNICONVERT_EXTRACTOR_MODEL", cls.DEFAULT_MODEL),
            timeout=float(timeout) if timeout else None,
        )


class RenderConfig:
    """
    Typography and timing of the off-screen render surface.

    Sizes are CSS pixels; the raster encoder multiplies them by ``scale``.
    """

    def __init__(
        self,
        page_width: int = 794,
        padding: int = 50,
        font_size: float = 15.0,
        line_height: float = 1.6,
        text_color: str = "#1a1a1a",
        background: str = "#ffffff",
        scale: int = 2,
        font_path: Optional[str] = None,
        bold_font_path: Optional[str] = None,
        fallback_font_paths: Optional[Sequence[str]] = None,
        settle_delay: float = 0.8,
        poll_interval: float = 0.05,
        settle_timeout: float = 10.0
    ):
        self.page_width = page_width
        self.padding = padding
        self.font_size = font_size
        self.line_height = line_height
        self.text_color = text_color
        self.background = background
        self.scale = scale
        self.font_path = font_path
        self.bold_font_path = bold_font_path
        self.fallback_font_paths = list(fallback_font_paths or [])
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval
        self.settle_timeout = settle_timeout

    @property
    def content_width(self) -> int:
        return self.page_width - 2 * self.padding

    @classmethod
    def from_env(cls) -> "RenderConfig":
        return cls(
            page_width=_env_int("OMNICONVERT_PAGE_WIDTH", 794),
            scale=_env_int("OMNICONVERT_RASTER_SCALE", 2),
            font_path=os.getenv("OMNICONVERT_FONT_PATH") or None,
            bold_font_path=os.getenv("OMNICONVERT_BOLD_FONT_PATH") or None,
            fallback_font_paths=_env_paths("OMNICONVERT_FALLBACK_FONT_PATHS"),
            settle_delay=_env_float("OMNICONVERT_RENDER_SETTLE_DELAY", 0.8),
            settle_timeout=_env_float("OMNICONVERT_RENDER_SETTLE_TIMEOUT", 10.0),
        )


class EncoderConfig:
    """Quality settings for the binary encoders (0-100, Pillow scale)."""

    def __init__(self, image_quality: int = 90, pdf_image_quality: int = 95,
                 page_size: Tuple[float, float] = A4_PAGE_SIZE):
        self.image_quality = image_quality
        self.pdf_image_quality = pdf_image_quality
        self.page_size = page_size

    @classmethod
    def from_env(cls) -> "EncoderConfig":
        return cls(
            image_quality=_env_int("OMNICONVERT_IMAGE_QUALITY", 90),
            pdf_image_quality=_env_int("OMNICONVERT_PDF_IMAGE_QUALITY", 95),
        )


class SessionConfig:
    """
    Lifetime limits of the in-memory session store.

    ``ttl`` is the idle time in seconds after which a session is evicted,
    ``max_sessions`` caps the store and ``sweep_interval`` is how often the
    application looks for expired sessions. Zero disables a limit.
    """

    def __init__(self, ttl: float = 3600.0, max_sessions: int = 100, sweep_interval: float = 60.0):
        self.ttl = ttl
        self.max_sessions = max_sessions
        self.sweep_interval = sweep_interval

    @classmethod
    def from_env(cls) -> "SessionConfig":
        return cls(
            ttl=_env_float("OMNICONVERT_SESSION_TTL", 3600.0),
            max_sessions=_env_int("OMNICONVERT_MAX_SESSIONS", 100),
            sweep_interval=_env_float("OMNICONVERT_SESSION_SWEEP_INTERVAL", 60.0),
        )
