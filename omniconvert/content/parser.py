"""
Allowlist enforcement and parsing for reconstructed content.

The extractor is asked to answer with a fragment that only uses
h1, h2, p, br, ul, li and strong. Its output is still treated as untrusted:
code fences are removed, scripts, styles and comments are dropped,
any other tag is unwrapped (its text is kept) and every attribute is removed
before the fragment is parsed into a sequence of block nodes.

Usage:
    from omniconvert.content import sanitize_fragment, parse_fragment

    clean_html = sanitize_fragment(raw_html)
    blocks = parse_fragment(clean_html)
"""

import re
from collections import Counter
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

from ..config import ALLOWED_TAGS
from ..utils.error_handling import ExtractionError
from ..utils.logging_config import get_logger
from .nodes import Block, BulletList, Heading, Inline, LineBreak, ListItem, Paragraph, Text

logger = get_logger()

# Removed together with everything inside them
DROPPED_TAGS = ("script", "style", "head", "title", "noscript", "template", "iframe", "object")

_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)

_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def strip_code_fences(html_content: str) -> str:
    """Remove a markdown code fence wrapped around the whole fragment."""
    cleaned = _FENCE_OPEN.sub("", html_content or "", count=1)
    cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def _clean_soup(html_content: str) -> BeautifulSoup:
    soup = BeautifulSoup(strip_code_fences(html_content), "html.parser")

    for node in soup.find_all(string=lambda text: isinstance(text, _SKIPPED_STRINGS)):
        node.extract()

    for tag in soup.find_all(DROPPED_TAGS):
        if not tag.decomposed:
            tag.decompose()

    stripped = Counter()
    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            stripped[tag.name] += 1
            tag.unwrap()
        else:
            tag.attrs = {}

    if stripped:
        logger.warning(f"Stripped tags outside the allowlist from reconstructed content: {dict(stripped)}")
    return soup


def sanitize_fragment(html_content: str) -> str:
    """
    Enforce the tag allowlist on a fragment.

    Args:
        html_content: Raw fragment as returned by the extractor

    Returns:
        The cleaned fragment

    Raises:
        ExtractionError: If nothing but whitespace is left
    """
    soup = _clean_soup(html_content)
    if not soup.get_text().strip():
        raise ExtractionError("Reconstruction failed: the extractor returned no content.")
    return str(soup).strip()


def parse_fragment(html_content: str) -> List[Block]:
    """
    Parse a fragment into block nodes, enforcing the allowlist first.

    Loose inline content outside any block becomes a paragraph; blocks
    without visible text are dropped.
    """
    soup = _clean_soup(html_content)
    return _parse_blocks(soup.children)


# ===== BLOCK LEVEL =====

def _parse_blocks(children: Iterable) -> List[Block]:
    blocks: List[Block] = []
    pending: List[Inline] = []

    def flush():
        inlines = _normalize_inlines(pending)
        if inlines:
            blocks.append(Paragraph(tuple(inlines)))
        pending.clear()

    for node in list(children):
        if isinstance(node, NavigableString):
            pending.append(Text(str(node)))
        elif not isinstance(node, Tag):
            continue
        elif node.name in ("h1", "h2"):
            flush()
            inlines = _normalize_inlines(_collect_inlines(node))
            if inlines:
                blocks.append(Heading(int(node.name[1]), tuple(inlines)))
        elif node.name == "p":
            flush()
            blocks.extend(_parse_blocks(node.children))
        elif node.name == "ul":
            flush()
            bullet_list = _parse_list(node)
            if bullet_list is not None:
                blocks.append(bullet_list)
        elif node.name == "li":
            flush()
            item = _parse_item(node)
            if item is not None:
                blocks.append(BulletList((item,)))
        else:
            pending.extend(_inline_tag(node))

    flush()
    return blocks


def _parse_list(tag: Tag) -> Optional[BulletList]:
    items: List[ListItem] = []
    loose: List[Inline] = []

    for child in list(tag.children):
        if isinstance(child, Tag) and child.name == "li":
            _flush_loose_item(loose, items)
            item = _parse_item(child)
            if item is not None:
                items.append(item)
        elif isinstance(child, Tag) and child.name == "ul":
            _flush_loose_item(loose, items)
            nested = _parse_list(child)
            if nested is None:
                continue
            # A list directly inside a list belongs to the previous item
            if items:
                previous = items[-1]
                items[-1] = ListItem(previous.inlines, previous.children + (nested,))
            else:
                items.append(ListItem((), (nested,)))
        elif isinstance(child, NavigableString):
            loose.append(Text(str(child)))
        elif isinstance(child, Tag):
            loose.extend(_inline_tag(child))

    _flush_loose_item(loose, items)
    return BulletList(tuple(items)) if items else None


def _flush_loose_item(loose: List[Inline], items: List[ListItem]):
    inlines = _normalize_inlines(loose)
    if inlines:
        items.append(ListItem(tuple(inlines)))
    loose.clear()


def _parse_item(tag: Tag) -> Optional[ListItem]:
    inlines: List[Inline] = []
    children: List[BulletList] = []

    for child in list(tag.children):
        if isinstance(child, Tag) and child.name == "ul":
            nested = _parse_list(child)
            if nested is not None:
                children.append(nested)
        elif isinstance(child, Tag) and child.name in ("p", "h1", "h2", "li"):
            if _has_text(inlines):
                inlines.append(LineBreak())
            inlines.extend(_collect_inlines(child))
        elif isinstance(child, NavigableString):
            inlines.append(Text(str(child)))
        elif isinstance(child, Tag):
            inlines.extend(_inline_tag(child))

    normalized = _normalize_inlines(inlines)
    if not normalized and not children:
        return None
    return ListItem(tuple(normalized), tuple(children))


# ===== INLINE LEVEL =====

def _inline_tag(tag: Tag) -> List[Inline]:
    if tag.name == "br":
        return [LineBreak()]
    return _collect_inlines(tag, strong=tag.name == "strong")


def _collect_inlines(tag: Tag, strong: bool = False) -> List[Inline]:
    """Flatten the children of a tag into inline nodes."""
    inlines: List[Inline] = []
    for child in tag.children:
        if isinstance(child, NavigableString):
            inlines.append(Text(str(child), strong))
        elif not isinstance(child, Tag):
            continue
        elif child.name == "br":
            inlines.append(LineBreak())
        else:
            if child.name in ("p", "h1", "h2", "li", "ul") and _has_text(inlines):
                inlines.append(LineBreak())
            inlines.extend(_collect_inlines(child, strong or child.name == "strong"))
    return inlines


def _has_text(inlines: Iterable[Inline]) -> bool:
    return any(isinstance(node, Text) and node.value.strip() for node in inlines)


def _normalize_inlines(inlines: Iterable[Inline]) -> List[Inline]:
    """
    Merge adjacent text runs, trim the run and the whitespace around line breaks.

    Returns an empty list when the run has no visible text.
    """
    merged: List[Inline] = []
    for node in inlines:
        if isinstance(node, Text):
            if not node.value:
                continue
            if merged and isinstance(merged[-1], Text) and merged[-1].strong == node.strong:
                merged[-1] = Text(merged[-1].value + node.value, node.strong)
                continue
        merged.append(node)

    if not _has_text(merged):
        return []

    # Source formatting newlines next to an explicit break are not content
    for index, node in enumerate(merged):
        if not isinstance(node, LineBreak):
            continue
        if index > 0 and isinstance(merged[index - 1], Text):
            before = merged[index - 1]
            merged[index - 1] = Text(before.value.rstrip(), before.strong)
        if index + 1 < len(merged) and isinstance(merged[index + 1], Text):
            after = merged[index + 1]
            merged[index + 1] = Text(after.value.lstrip("\r\n"), after.strong)

    while merged and not (isinstance(merged[0], Text) and merged[0].value.strip()):
        merged.pop(0)
    while merged and not (isinstance(merged[-1], Text) and merged[-1].value.strip()):
        merged.pop()

    merged[0] = Text(merged[0].value.lstrip(), merged[0].strong)
    merged[-1] = Text(merged[-1].value.rstrip(), merged[-1].strong)
    return [node for node in merged if not (isinstance(node, Text) and not node.value)]
