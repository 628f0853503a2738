"""Content extraction: the external reconstruction service and its text pre-step."""

from .base import ContentExtractor
from .gemini import GeminiContentExtractor
from .office import decode_text, extract_document_text, extract_office_text

__all__ = [
    "ContentExtractor",
    "GeminiContentExtractor",
    "decode_text",
    "extract_document_text",
    "extract_office_text",
]
