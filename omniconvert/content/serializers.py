"""
Per-format serializers for parsed reconstructed content.

Markdown and plain text share one block layout: blocks are separated by a
blank line, list items take one line each and nested items are indented two
spaces per level. Markdown adds heading markers, ``* `` bullets and ``**``
around strong runs; plain text adds nothing. Literal angle brackets are
written as ``&lt;`` / ``&gt;`` in both so the output never contains markup
characters.

Text that happens to be Markdown syntax is backslash-escaped in the Markdown
output so it stays literal: emphasis characters anywhere, and block markers
(``#``, ``-``, ``+``, ``=``, ``1.``) at the start of a line.
"""

import html
import re
from typing import Callable, List, Sequence

from .nodes import Block, BulletList, Heading, Inline, LineBreak, Paragraph, Text

InlineRenderer = Callable[[Sequence[Inline]], str]


def escape_text(value: str) -> str:
    return value.replace("<", "&lt;").replace(">", "&gt;")


_MARKDOWN_SPECIAL = re.compile(r"([\\`*_\[\]])")
_MARKDOWN_LINE_START = re.compile(r"^([ \t]*)([#+=-]|\d+(?=[.)]))", re.MULTILINE)


def escape_markdown(value: str) -> str:
    """Escape characters Markdown would read as inline syntax."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", escape_text(value))


# ===== HTML =====

def _html_inlines(inlines: Sequence[Inline]) -> str:
    parts = []
    for node in inlines:
        if isinstance(node, LineBreak):
            parts.append("<br/>")
        elif node.strong:
            parts.append(f"<strong>{html.escape(node.value, quote=False)}</strong>")
        else:
            parts.append(html.escape(node.value, quote=False))
    return "".join(parts)


def _html_list(bullet_list: BulletList) -> str:
    items = []
    for item in bullet_list.items:
        nested = "".join(_html_list(child) for child in item.children)
        items.append(f"<li>{_html_inlines(item.inlines)}{nested}</li>")
    return f"<ul>{''.join(items)}</ul>"


def to_html(blocks: Sequence[Block]) -> str:
    """Canonical allowlisted fragment, one block per line."""
    lines = []
    for block in blocks:
        if isinstance(block, Heading):
            lines.append(f"<h{block.level}>{_html_inlines(block.inlines)}</h{block.level}>")
        elif isinstance(block, Paragraph):
            lines.append(f"<p>{_html_inlines(block.inlines)}</p>")
        elif isinstance(block, BulletList):
            lines.append(_html_list(block))
    return "\n".join(lines)


# ===== TEXT FAMILY =====

def _markdown_inlines(inlines: Sequence[Inline]) -> str:
    parts = []
    for node in inlines:
        if isinstance(node, LineBreak):
            parts.append("\n")
            continue
        value = escape_markdown(node.value)
        core = value.strip()
        if node.strong and core:
            # Markers must hug the text or markdown ignores them
            lead = value[:len(value) - len(value.lstrip())]
            trail = value[len(value.rstrip()):]
            parts.append(f"{lead}**{core}**{trail}")
        else:
            parts.append(value)
    return _escape_line_starts("".join(parts))


def _escape_line_starts(text: str) -> str:
    def escape(match):
        lead, marker = match.group(1), match.group(2)
        if marker.isdigit():
            return f"{lead}{marker}\\"
        return f"{lead}\\{marker}"
    return _MARKDOWN_LINE_START.sub(escape, text)


def _plain_inlines(inlines: Sequence[Inline]) -> str:
    return "".join("\n" if isinstance(node, LineBreak) else escape_text(node.value) for node in inlines)


def _list_lines(bullet_list: BulletList, render: InlineRenderer, bullet: str, depth: int = 0) -> List[str]:
    indent = "  " * depth
    lines = []
    for item in bullet_list.items:
        text_lines = render(item.inlines).split("\n") if item.inlines else []
        if text_lines:
            lines.append(f"{indent}{bullet}{text_lines[0]}")
            lines.extend(f"{indent}  {line}" for line in text_lines[1:])
        for child in item.children:
            lines.extend(_list_lines(child, render, bullet, depth + 1))
    return lines


def _render_text_family(blocks: Sequence[Block], render: InlineRenderer,
                        heading_marks: bool, bullet: str) -> str:
    chunks = []
    for block in blocks:
        if isinstance(block, Heading):
            prefix = "#" * block.level + " " if heading_marks else ""
            chunks.append(prefix + render(block.inlines))
        elif isinstance(block, Paragraph):
            chunks.append(render(block.inlines))
        elif isinstance(block, BulletList):
            chunks.append("\n".join(_list_lines(block, render, bullet)))
    return "\n\n".join(chunks).strip()


def to_markdown(blocks: Sequence[Block]) -> str:
    text = _render_text_family(blocks, _markdown_inlines, heading_marks=True, bullet="* ")
    return text + "\n" if text else ""


def to_plain_text(blocks: Sequence[Block]) -> str:
    return _render_text_family(blocks, _plain_inlines, heading_marks=False, bullet="")
