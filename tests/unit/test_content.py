"""
Unit tests for allowlist enforcement, fragment parsing and the serializers.
"""

import re

import pytest

from omniconvert.content import (
    BulletList,
    Heading,
    LineBreak,
    ListItem,
    Paragraph,
    Text,
    parse_fragment,
    sanitize_fragment,
    strip_code_fences,
    to_html,
    to_markdown,
    to_plain_text,
)
from omniconvert.utils.error_handling import ExtractionError


ALLOWLISTED_FRAGMENTS = [
    "<h1>Title</h1><p>Line one<br/>Line two</p>",
    "<h2>Agenda</h2><ul><li>First</li><li>Second <strong>point</strong></li></ul>",
    "<p>Plain paragraph with <strong>bold words</strong> inside.</p><p>Second paragraph</p>",
    "<ul><li>One<ul><li>Nested one</li><li>Nested two</li></ul></li><li>Two</li></ul>",
    "<h1>A &lt; B</h1><p>x &gt; y<br>z</p>",
    "<p>  leading and trailing  </p><br/><p>after break</p>",
    "<p># not a heading</p>",
    "<p>* not a bullet</p>",
    "<p>2**3 = 8</p>",
    "<p>- dash<br/>+ plus<br/>1. first<br/>===</p>",
    "<ul><li># item <strong>with *stars*</strong></li></ul>",
    "<p>snake_case [link] `code` back\\slash</p>",
]


def strip_markdown(markdown: str) -> str:
    lines = []
    for line in markdown.split("\n"):
        line = re.sub(r"^#{1,2} ", "", line)
        line = re.sub(r"^(\s*)\* ", r"\1", line)
        lines.append(line)
    text = "\n".join(lines).replace("**", "")
    return re.sub(r"\\([\\`*_\[\]#+=.)-])", r"\1", text).strip()


class TestSanitizer:
    """Allowlist enforcement on untrusted extractor output."""

    def test_code_fences_are_removed(self):
        assert strip_code_fences("```html\n<h1>T</h1>\n```") == "<h1>T</h1>"
        assert strip_code_fences("<p>no fence</p>") == "<p>no fence</p>"

    def test_unknown_tags_are_unwrapped_and_text_kept(self):
        cleaned = sanitize_fragment("<div><p>Hello <em>world</em></p></div>")
        assert cleaned == "<p>Hello world</p>"

    def test_scripts_styles_and_comments_are_dropped(self):
        cleaned = sanitize_fragment(
            "<p>Safe</p><script>alert(1)</script><style>p{}</style><!-- note -->"
        )
        assert cleaned == "<p>Safe</p>"

    def test_attributes_are_removed(self):
        cleaned = sanitize_fragment('<p class="x" onclick="steal()">Hi</p>')
        assert cleaned == "<p>Hi</p>"

    @pytest.mark.parametrize("fragment", ["", "   ", "<div> </div>", "```html\n```", "<script>x</script>"])
    def test_empty_content_is_an_extraction_failure(self, fragment: str):
        with pytest.raises(ExtractionError):
            sanitize_fragment(fragment)


class TestParser:
    """Parsing the constrained tag grammar into block nodes."""

    def test_heading_and_paragraph_with_break(self):
        blocks = parse_fragment("<h1>Title</h1>\n<p>Line one<br/>Line two</p>")
        assert blocks == [
            Heading(1, (Text("Title"),)),
            Paragraph((Text("Line one"), LineBreak(), Text("Line two"))),
        ]

    def test_strong_runs(self):
        blocks = parse_fragment("<p>A <strong>bold</strong> word</p>")
        assert blocks == [Paragraph((Text("A "), Text("bold", strong=True), Text(" word")))]

    def test_nested_list_attaches_to_item(self):
        blocks = parse_fragment("<ul><li>One<ul><li>Nested</li></ul></li><li>Two</li></ul>")
        nested = BulletList((ListItem((Text("Nested"),)),))
        assert blocks == [
            BulletList((
                ListItem((Text("One"),), (nested,)),
                ListItem((Text("Two"),)),
            ))
        ]

    def test_loose_text_becomes_paragraph(self):
        blocks = parse_fragment("Just text<h2>Then heading</h2>")
        assert blocks == [Paragraph((Text("Just text"),)), Heading(2, (Text("Then heading"),))]

    def test_empty_blocks_are_dropped(self):
        assert parse_fragment("<p> </p><h1></h1><ul><li> </li></ul>") == []

    def test_entities_are_decoded(self):
        blocks = parse_fragment("<p>a &lt; b &amp; c</p>")
        assert blocks == [Paragraph((Text("a < b & c"),))]


class TestSerializers:
    """Markdown, plain text and canonical HTML output."""

    def test_markdown_scenario(self):
        markdown = to_markdown(parse_fragment("<h1>Title</h1><p>Line one<br/>Line two</p>"))
        assert "# Title\n\nLine one\nLine two" in markdown
        assert markdown == "# Title\n\nLine one\nLine two\n"

    def test_plain_text_layout(self):
        text = to_plain_text(parse_fragment("<h1>Title</h1><p>Line one<br/>Line two</p>"))
        assert text == "Title\n\nLine one\nLine two"

    def test_markdown_lists_and_strong(self):
        blocks = parse_fragment(
            "<h2>Items</h2><ul><li>One<ul><li>Nested <strong>bold </strong>end</li></ul></li><li>Two</li></ul>"
        )
        assert to_markdown(blocks) == "## Items\n\n* One\n  * Nested **bold** end\n* Two\n"
        assert to_plain_text(blocks) == "Items\n\nOne\n  Nested bold end\nTwo"

    @pytest.mark.parametrize("fragment", ALLOWLISTED_FRAGMENTS)
    def test_markdown_preserves_plain_text_content(self, fragment: str):
        blocks = parse_fragment(fragment)
        assert strip_markdown(to_markdown(blocks)) == to_plain_text(blocks)

    @pytest.mark.parametrize("fragment", ALLOWLISTED_FRAGMENTS + ["<p>&lt;script&gt;alert(1)&lt;/script&gt;</p>"])
    def test_plain_text_has_no_angle_brackets(self, fragment: str):
        text = to_plain_text(parse_fragment(fragment))
        assert "<" not in text
        assert ">" not in text

    def test_markdown_syntax_in_text_stays_literal(self):
        assert to_markdown(parse_fragment("<p># not a heading</p>")) == "\\# not a heading\n"
        assert to_markdown(parse_fragment("<p>* not a bullet</p>")) == "\\* not a bullet\n"
        assert to_markdown(parse_fragment("<p>2**3 = 8</p>")) == "2\\*\\*3 = 8\n"
        assert to_markdown(parse_fragment("<p>line<br/>1. first</p>")) == "line\n1\\. first\n"
        assert to_plain_text(parse_fragment("<p>2**3 = 8</p>")) == "2**3 = 8"

    def test_escaped_brackets_are_written_as_entities(self):
        blocks = parse_fragment("<p>a &lt; b &gt; c</p>")
        assert to_plain_text(blocks) == "a &lt; b &gt; c"
        assert to_markdown(blocks) == "a &lt; b &gt; c\n"

    def test_html_is_canonical(self):
        blocks = parse_fragment('<h1 id="x">T</h1><p>a <b>b</b><br>c &amp; d</p><ul><li>i</li></ul>')
        assert to_html(blocks) == "<h1>T</h1>\n<p>a b<br/>c &amp; d</p>\n<ul><li>i</li></ul>"

    def test_empty_content(self):
        assert to_markdown([]) == ""
        assert to_plain_text([]) == ""
