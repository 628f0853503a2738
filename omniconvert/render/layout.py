"""
Layout engine for the off-screen render surface.

Lays parsed content out in a fixed-width column the way the export page is
styled: 794px wide (A4 at 96dpi), 50px padding, 15px text at 1.6 line
height, h1/h2 at 2em/1.5em, lists indented 40px per level. Whitespace is
preserved (pre-wrap): lines break at spaces, explicit newlines are kept and
words wider than the column are split (break-word).

All coordinates are CSS pixels; the raster encoder scales them.
"""

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..config import RenderConfig
from ..content.nodes import Block, BulletList, Heading, Inline, LineBreak, Paragraph
from ..utils.logging_config import get_logger
from .fonts import FontBook

logger = get_logger()

LIST_INDENT = 40
MARKER_GAP = 14

_TOKEN = re.compile(r"\s+|\S+")


@dataclass(frozen=True)
class BlockStyle:
    scale: float
    margin: float
    bold: bool


BODY_STYLE = BlockStyle(scale=1.0, margin=1.0, bold=False)
HEADING_STYLES = {
    1: BlockStyle(scale=2.0, margin=0.67, bold=True),
    2: BlockStyle(scale=1.5, margin=0.83, bold=True),
}


@dataclass(frozen=True)
class TextRun:
    """A piece of text on one line. ``y`` is the top of its line box."""
    x: float
    y: float
    text: str
    bold: bool
    font_size: float
    line_box: float
    face: int = 0


@dataclass(frozen=True)
class Marker:
    """A list bullet, centred on (x, y)."""
    x: float
    y: float
    radius: float
    depth: int


@dataclass(frozen=True)
class RenderSurface:
    width: int
    height: int
    runs: Tuple[TextRun, ...]
    markers: Tuple[Marker, ...]
    config: RenderConfig = field(compare=False, repr=False)
    fonts: FontBook = field(compare=False, repr=False)
    missing_glyphs: Tuple[str, ...] = ()

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


@dataclass
class _Fragment:
    x: float
    text: str
    bold: bool


class LayoutEngine:
    """Turns block nodes into a RenderSurface."""

    def __init__(self, config: Optional[RenderConfig] = None, fonts: Optional[FontBook] = None):
        self.config = config or RenderConfig()
        self.fonts = fonts or FontBook(
            self.config.font_path,
            self.config.bold_font_path,
            self.config.fallback_font_paths,
        )

    def layout(self, blocks: Sequence[Block]) -> RenderSurface:
        cfg = self.config
        runs: List[TextRun] = []
        markers: List[Marker] = []
        y = float(cfg.padding)
        previous_margin = None

        for block in blocks:
            style = HEADING_STYLES.get(block.level, BODY_STYLE) if isinstance(block, Heading) else BODY_STYLE
            font_size = cfg.font_size * style.scale
            margin = font_size * style.margin

            # Sibling margins collapse
            y += margin if previous_margin is None else max(margin, previous_margin)

            if isinstance(block, (Heading, Paragraph)):
                y = self._flow(block.inlines, cfg.padding, cfg.content_width, y, font_size, style.bold, runs)
            elif isinstance(block, BulletList):
                y = self._list(block, 0, cfg.padding, cfg.content_width, y, runs, markers)
            previous_margin = margin

        if previous_margin is not None:
            y += previous_margin

        missing = self.fonts.missing_glyphs("".join(run.text for run in runs))
        if missing:
            logger.warning(
                f"No available font can draw {len(missing)} character(s), they will render as "
                f"missing-glyph boxes: {''.join(missing[:20])!r}. Set OMNICONVERT_FALLBACK_FONT_PATHS "
                f"to a font that covers them."
            )

        return RenderSurface(
            width=cfg.page_width,
            height=int(math.ceil(y + cfg.padding)),
            runs=tuple(runs),
            markers=tuple(markers),
            config=cfg,
            fonts=self.fonts,
            missing_glyphs=tuple(missing),
        )

    def _list(self, bullet_list: BulletList, depth: int, left: float, width: float, y: float,
              runs: List[TextRun], markers: List[Marker]) -> float:
        font_size = self.config.font_size
        line_box = font_size * self.config.line_height
        item_left = left + LIST_INDENT
        item_width = max(width - LIST_INDENT, font_size)

        for item in bullet_list.items:
            if item.inlines:
                markers.append(Marker(
                    x=item_left - MARKER_GAP,
                    y=y + line_box / 2,
                    radius=font_size * 0.18,
                    depth=depth,
                ))
                y = self._flow(item.inlines, item_left, item_width, y, font_size, False, runs)
            for child in item.children:
                y = self._list(child, depth + 1, item_left, item_width, y, runs, markers)
        return y

    def _flow(self, inlines: Sequence[Inline], left: float, width: float, y: float,
              font_size: float, bold: bool, runs: List[TextRun]) -> float:
        line_box = font_size * self.config.line_height
        for line in self.wrap(inlines, width, font_size, bold):
            for fragment in line:
                x = left + fragment.x
                for segment, face in self.fonts.segments(fragment.text):
                    runs.append(TextRun(x, y, segment, fragment.bold, font_size, line_box, face))
                    x += self.fonts.measure_face(segment, font_size, fragment.bold, face)
            y += line_box
        return y

    def wrap(self, inlines: Sequence[Inline], width: float, font_size: float,
             bold_default: bool = False) -> List[List[_Fragment]]:
        """Break an inline run into lines of fragments no wider than ``width``."""
        lines: List[List[_Fragment]] = [[]]
        state = {"x": 0.0, "soft": False}

        def new_line(soft: bool):
            lines.append([])
            state["x"] = 0.0
            state["soft"] = soft

        def place(text: str, is_bold: bool, advance: float):
            line = lines[-1]
            if line and line[-1].bold == is_bold:
                line[-1].text += text
            else:
                line.append(_Fragment(state["x"], text, is_bold))
            state["x"] += advance

        for node in inlines:
            if isinstance(node, LineBreak):
                new_line(False)
                continue

            is_bold = bold_default or node.strong
            value = node.value.replace("\r", "").replace("\t", "    ")
            for index, segment in enumerate(value.split("\n")):
                if index:
                    new_line(False)
                for token in _TOKEN.findall(segment):
                    advance = self.fonts.measure(token, font_size, is_bold)
                    if token.isspace():
                        # Spaces hang at a soft wrap instead of starting the next line
                        if state["soft"] and not lines[-1]:
                            continue
                        place(token, is_bold, advance)
                    elif state["x"] + advance <= width or not lines[-1]:
                        if advance <= width:
                            place(token, is_bold, advance)
                        else:
                            self._break_word(token, is_bold, width, font_size, lines, new_line, place)
                    elif advance <= width:
                        new_line(True)
                        place(token, is_bold, advance)
                    else:
                        new_line(True)
                        self._break_word(token, is_bold, width, font_size, lines, new_line, place)

        return lines

    def _break_word(self, word: str, is_bold: bool, width: float, font_size: float,
                    lines, new_line, place):
        chunk = ""
        for char in word:
            candidate = chunk + char
            if chunk and self.fonts.measure(candidate, font_size, is_bold) > width:
                place(chunk, is_bold, self.fonts.measure(chunk, font_size, is_bold))
                new_line(True)
                chunk = char
            else:
                chunk = candidate
        if chunk:
            place(chunk, is_bold, self.fonts.measure(chunk, font_size, is_bold))
