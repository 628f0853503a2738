"""
Font loading and text measurement for the render surface.

The primary face is the configured font file, or Pillow's bundled font.
Characters the primary face cannot draw are taken from fallback faces: the
configured fallback files first, then Unicode/CJK fonts found in the usual
system font directories. Text is split into segments per face, so a line of
mixed Latin and CJK text is measured and drawn with the face that actually
has each glyph.
"""

import glob
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import ImageFont

from ..utils.logging_config import get_logger

logger = get_logger()

# Well-known locations of fonts with broad Unicode (CJK) coverage
FALLBACK_FONT_CANDIDATES = [
    '/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/google-noto-cjk/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc',
    '/usr/share/fonts/truetype/wqy/wqy-microhei.ttc',
    '/usr/share/fonts/truetype/wqy/wqy-zenhei.ttc',
    '/usr/share/fonts/wenquanyi/wqy-zenhei/wqy-zenhei.ttc',
    '/usr/share/fonts/truetype/droid/DroidSansFallbackFull.ttf',
    '/usr/share/fonts/truetype/arphic/uming.ttc',
    '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
    '/usr/share/fonts/TTF/DejaVuSans.ttf',
    '/usr/share/fonts/dejavu/DejaVuSans.ttf',
    '/System/Library/Fonts/PingFang.ttc',
    '/System/Library/Fonts/Supplemental/Arial Unicode.ttf',
    'C:/Windows/Fonts/msyh.ttc',
    'C:/Windows/Fonts/simsun.ttc',
]

FALLBACK_FONT_PATTERNS = [
    '/usr/share/fonts/**/NotoSansCJK*.tt[cf]',
    '/usr/share/fonts/**/NotoSansSC*.[ot]tf',
    '/usr/share/fonts/**/wqy-*.tt[cf]',
    '/usr/local/share/fonts/**/NotoSansCJK*.tt[cf]',
]

# Size the glyph coverage checks are drawn at; coverage does not depend on size
COVERAGE_CHECK_SIZE = 24

# Plane 16 private use; no font maps it, so it draws the missing-glyph shape
UNMAPPED_CHAR = "\U0010fffd"


def discover_fallback_fonts() -> List[str]:
    """System font files likely to cover CJK text, in preference order."""
    found = [path for path in FALLBACK_FONT_CANDIDATES if Path(path).exists()]
    for pattern in FALLBACK_FONT_PATTERNS:
        for path in sorted(glob.glob(pattern, recursive=True)):
            if path not in found:
                found.append(path)
    return found


def _glyph_shape(font, char: str) -> Tuple[Tuple[int, int], bytes]:
    mask = font.getmask(char)
    return mask.size, bytes(mask)


class FontBook:
    """
    Fonts for one typographic setup, cached per face, size and weight.

    Face 0 is the primary face; higher indexes are fallbacks. Without a bold
    font file, and for every fallback face, bold runs are drawn with a stroke
    (``synthetic_bold``).
    """

    def __init__(
        self,
        font_path: Optional[str] = None,
        bold_font_path: Optional[str] = None,
        fallback_paths: Optional[Sequence[str]] = None,
        discover: bool = True
    ):
        self.font_path = font_path
        self.bold_font_path = bold_font_path
        paths = list(fallback_paths or [])
        if discover:
            paths.extend(path for path in discover_fallback_fonts() if path not in paths)
        self.fallback_paths = [path for path in paths if path != font_path]
        self._font = lru_cache(maxsize=64)(self._load)
        self._measure = lru_cache(maxsize=8192)(self._length)
        self._faces_ok: Dict[int, bool] = {}
        self._coverage: Dict[Tuple[int, str], bool] = {}
        self._missing_shapes: Dict[int, Tuple[Tuple[int, int], bytes]] = {}

    @property
    def face_count(self) -> int:
        return 1 + len(self.fallback_paths)

    def _load(self, size: float, bold: bool, face: int = 0):
        if face:
            return ImageFont.truetype(self.fallback_paths[face - 1], size=size)

        path = self.bold_font_path if bold and self.bold_font_path else self.font_path
        if path:
            try:
                return ImageFont.truetype(path, size=size)
            except OSError as e:
                logger.warning(f"Could not load font {path}, falling back to the bundled font: {e}")
        return ImageFont.load_default(size=size)

    def _length(self, text: str, size: float, bold: bool, face: int) -> float:
        return self.font(size, bold, face).getlength(text)

    def _face_available(self, face: int) -> bool:
        if face not in self._faces_ok:
            try:
                self.font(COVERAGE_CHECK_SIZE, False, face)
                self._faces_ok[face] = True
            except OSError as e:
                logger.warning(f"Could not load fallback font {self.fallback_paths[face - 1]}: {e}")
                self._faces_ok[face] = False
        return self._faces_ok[face]

    def covers(self, char: str, face: int = 0) -> bool:
        """Whether ``face`` has a real glyph for ``char``."""
        if char.isspace():
            return True
        key = (face, char)
        if key not in self._coverage:
            if not self._face_available(face):
                self._coverage[key] = False
            else:
                font = self.font(COVERAGE_CHECK_SIZE, False, face)
                if face not in self._missing_shapes:
                    self._missing_shapes[face] = _glyph_shape(font, UNMAPPED_CHAR)
                self._coverage[key] = _glyph_shape(font, char) != self._missing_shapes[face]
        return self._coverage[key]

    def face_for(self, char: str) -> int:
        """First face that can draw ``char``; the primary face when none can."""
        if self.covers(char, 0):
            return 0
        for face in range(1, self.face_count):
            if self.covers(char, face):
                return face
        return 0

    def missing_glyphs(self, text: str) -> List[str]:
        """Distinct characters of ``text`` that no face can draw."""
        missing = []
        for char in dict.fromkeys(text):
            if not self.covers(char, self.face_for(char)):
                missing.append(char)
        return missing

    def segments(self, text: str) -> List[Tuple[str, int]]:
        """Split ``text`` into (segment, face) pieces."""
        pieces: List[Tuple[str, int]] = []
        for char in text:
            face = pieces[-1][1] if pieces and char.isspace() else self.face_for(char)
            if pieces and pieces[-1][1] == face:
                pieces[-1] = (pieces[-1][0] + char, face)
            else:
                pieces.append((char, face))
        return pieces

    def synthetic_bold(self, bold: bool, face: int = 0) -> bool:
        return bold and (face > 0 or not self.bold_font_path)

    def font(self, size: float, bold: bool = False, face: int = 0):
        real_bold = bool(bold) and face == 0 and bool(self.bold_font_path)
        return self._font(round(size, 2), real_bold, face)

    def measure(self, text: str, size: float, bold: bool = False) -> float:
        """Advance width of ``text`` in pixels at ``size``."""
        if not text:
            return 0.0
        return sum(self.measure_face(segment, size, bold, face) for segment, face in self.segments(text))

    def measure_face(self, text: str, size: float, bold: bool = False, face: int = 0) -> float:
        if not text:
            return 0.0
        real_bold = bool(bold) and face == 0 and bool(self.bold_font_path)
        return self._measure(text, round(size, 2), real_bold, face)

    def stroke_width(self, size: float, bold: bool, face: int = 0) -> int:
        """Stroke used to fake bold at a given pixel size, 0 for real fonts."""
        if not self.synthetic_bold(bold, face):
            return 0
        return max(1, round(size / 30))
