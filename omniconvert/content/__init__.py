"""Reconstructed content: allowlist enforcement, node model and serializers."""

from .nodes import Block, BulletList, Heading, Inline, LineBreak, ListItem, Paragraph, Text
from .parser import parse_fragment, sanitize_fragment, strip_code_fences
from .serializers import to_html, to_markdown, to_plain_text

__all__ = [
    "Block",
    "BulletList",
    "Heading",
    "Inline",
    "LineBreak",
    "ListItem",
    "Paragraph",
    "Text",
    "parse_fragment",
    "sanitize_fragment",
    "strip_code_fences",
    "to_html",
    "to_markdown",
    "to_plain_text",
]
