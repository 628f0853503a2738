"""Render bridge: lays reconstructed content out on a fixed-width surface."""

from .bridge import EXPORT_NODE_LOST, RenderBridge, wait_until_stable
from .fonts import FontBook
from .layout import LayoutEngine, Marker, RenderSurface, TextRun

__all__ = [
    "EXPORT_NODE_LOST",
    "FontBook",
    "LayoutEngine",
    "Marker",
    "RenderBridge",
    "RenderSurface",
    "TextRun",
    "wait_until_stable",
]
