"""
Unit tests for the layout engine and the render bridge.
"""

import asyncio
import itertools

import pytest

from omniconvert.content import Text, parse_fragment
from omniconvert.render import EXPORT_NODE_LOST, FontBook, LayoutEngine, RenderBridge, wait_until_stable
from omniconvert.utils.error_handling import RenderError


LONG_PARAGRAPH = "<p>" + " ".join(["conversion"] * 120) + "</p>"


class TestLayoutEngine:
    """Fixed-width layout of parsed blocks."""

    def test_surface_has_fixed_width(self, layout_engine, sample_blocks):
        surface = layout_engine.layout(sample_blocks)
        assert surface.width == 794
        assert surface.height > 2 * 50
        assert [run.text for run in surface.runs] == ["Title", "Line one", "Line two"]

    def test_heading_is_bold_and_larger(self, layout_engine, sample_blocks):
        surface = layout_engine.layout(sample_blocks)
        heading, body = surface.runs[0], surface.runs[1]
        assert heading.bold and not body.bold
        assert heading.font_size == pytest.approx(body.font_size * 2)

    def test_explicit_break_starts_new_line(self, layout_engine, sample_blocks):
        surface = layout_engine.layout(sample_blocks)
        first, second = surface.runs[1], surface.runs[2]
        assert second.y == pytest.approx(first.y + first.line_box)
        assert first.x == second.x == 50

    def test_long_text_wraps_within_column(self, layout_engine):
        width = 300
        lines = layout_engine.wrap([Text("word " * 80)], width, 15)
        assert len(lines) > 1
        for line in lines:
            for fragment in line:
                right = fragment.x + layout_engine.fonts.measure(fragment.text.rstrip(), 15)
                assert right <= width + 1

    def test_overlong_word_is_broken(self, layout_engine):
        lines = layout_engine.wrap([Text("x" * 400)], 100, 15)
        assert len(lines) > 1
        assert "".join(f.text for line in lines for f in line) == "x" * 400

    def test_taller_content_gives_taller_surface(self, layout_engine, sample_blocks):
        short = layout_engine.layout(sample_blocks)
        tall = layout_engine.layout(parse_fragment(LONG_PARAGRAPH * 5))
        assert tall.height > short.height

    def test_list_markers_follow_depth(self, layout_engine):
        blocks = parse_fragment("<ul><li>One<ul><li>Two<ul><li>Three</li></ul></li></ul></li></ul>")
        surface = layout_engine.layout(blocks)
        assert [marker.depth for marker in surface.markers] == [0, 1, 2]
        xs = [run.x for run in surface.runs]
        assert xs == sorted(xs) and len(set(xs)) == 3


class TestWaitUntilStable:
    """The stabilization wait."""

    async def test_returns_settled_measurement(self):
        assert await wait_until_stable(lambda: (10, 20), poll_interval=0) == (10, 20)

    async def test_waits_for_value_to_repeat(self):
        values = iter([None, 1, 2, 3, 3])
        calls = []

        def measure():
            value = next(values)
            calls.append(value)
            return value

        assert await wait_until_stable(measure, poll_interval=0) == 3
        assert calls == [None, 1, 2, 3, 3]

    async def test_times_out_when_never_stable(self):
        counter = itertools.count()
        with pytest.raises(RenderError):
            await wait_until_stable(lambda: next(counter), poll_interval=0.001, timeout=0.02)

    async def test_honours_minimum_delay(self):
        loop = asyncio.get_running_loop()
        started = loop.time()
        await wait_until_stable(lambda: 1, min_delay=0.05, poll_interval=0.01)
        assert loop.time() - started >= 0.05


class TestRenderBridge:
    """Attempt-scoped render container."""

    async def test_rendering_twice_gives_identical_surface(self, render_config, sample_blocks):
        bridge = RenderBridge(render_config)
        first = await bridge.render("attempt-1", sample_blocks)
        second = await bridge.render("attempt-1", sample_blocks)
        assert first.size == second.size
        assert len(first.runs) == len(second.runs)
        assert first == second

    async def test_new_attempt_replaces_previous_content(self, render_config, sample_blocks):
        bridge = RenderBridge(render_config)
        await bridge.render("old", parse_fragment(LONG_PARAGRAPH))
        surface = await bridge.render("new", sample_blocks)
        assert bridge.surface("new") is surface
        with pytest.raises(RenderError, match="Export node lost"):
            bridge.surface("old")

    async def test_clear_only_for_owner(self, render_config, sample_blocks):
        bridge = RenderBridge(render_config)
        await bridge.render("current", sample_blocks)
        bridge.clear("stale")
        assert bridge.occupied
        bridge.clear("current")
        assert not bridge.occupied

    def test_missing_surface_is_export_node_lost(self, render_config):
        bridge = RenderBridge(render_config)
        with pytest.raises(RenderError) as exc_info:
            bridge.surface("anything")
        assert exc_info.value.message == EXPORT_NODE_LOST


CJK_TEXT = "文件转换无损"


class TestFontFallback:
    """Glyph coverage and per-character fallback faces."""

    def test_bundled_font_reports_characters_it_cannot_draw(self):
        fonts = FontBook(discover=False)
        assert fonts.missing_glyphs("Title") == []
        assert fonts.missing_glyphs("文件 文") == ["文", "件"]

    def test_layout_warns_about_undrawable_characters(self, render_config, caplog):
        engine = LayoutEngine(render_config, fonts=FontBook(discover=False))
        surface = engine.layout(parse_fragment(f"<p>Report {CJK_TEXT}</p>"))

        assert surface.missing_glyphs == tuple(CJK_TEXT)
        assert "missing-glyph" in caplog.text

    def test_segments_follow_the_covering_face(self, monkeypatch):
        fonts = FontBook(discover=False)
        monkeypatch.setattr(fonts, "face_for", lambda char: 1 if ord(char) >= 0x2E80 else 0)
        assert fonts.segments("ab 文件 cd") == [("ab ", 0), ("文件 ", 1), ("cd", 0)]

    def test_cjk_text_is_drawn_with_distinct_glyphs(self, render_config):
        fonts = FontBook()
        if fonts.missing_glyphs(CJK_TEXT):
            pytest.skip("no CJK-capable font installed")

        masks = {bytes(fonts.font(15, face=fonts.face_for(char)).getmask(char)) for char in CJK_TEXT}
        assert len(masks) == len(CJK_TEXT)

        surface = LayoutEngine(render_config, fonts=fonts).layout(parse_fragment(f"<p>Report {CJK_TEXT}</p>"))
        assert surface.missing_glyphs == ()
        assert "".join(run.text for run in surface.runs) == f"Report {CJK_TEXT}"
        assert surface.runs[0].face == 0
        assert surface.runs[-1].face > 0
