"""
Unit tests for target formats, source documents and stored results.
"""

import os

import pytest

from omniconvert.config import ExtractorConfig, RenderConfig, TargetFormat
from omniconvert.encoders import EncodedPayload
from omniconvert.models import SourceDocument
from omniconvert.results import ConversionResult
from omniconvert.utils.error_handling import (
    GENERIC_FAILURE_MESSAGE,
    ConversionError,
    InvalidTransitionError,
    describe_failure,
)
from omniconvert.utils.mime_detector import get_mime_type
from omniconvert.utils.temp_file_manager import TempFileError


class TestTargetFormat:

    @pytest.mark.parametrize("value, expected", [
        ("pdf", TargetFormat.PDF),
        (" Docx ", TargetFormat.DOCX),
        ("JPEG", TargetFormat.JPG),
        ("markdown", TargetFormat.MD),
        ("text", TargetFormat.TXT),
        ("PNG", TargetFormat.PNG),
    ])
    def test_parse(self, value, expected):
        assert TargetFormat.parse(value) == expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unsupported target format"):
            TargetFormat.parse("gif")

    def test_raster_family(self):
        assert {f for f in TargetFormat if f.is_raster} == {TargetFormat.PDF, TargetFormat.JPG, TargetFormat.PNG}


class TestSourceDocument:

    @pytest.mark.parametrize("name, expected", [
        ("report.pdf", "report.md"),
        ("report.v2.pdf", "report.v2.md"),
        ("README", "README.md"),
        ("folder/photo.JPG", "photo.md"),
        ("", "document.md"),
    ])
    def test_result_name(self, name, expected):
        assert SourceDocument(name, b"x").result_name("md") == expected

    def test_describe(self):
        document = SourceDocument("a.txt", b"abc", "text/plain")
        assert document.describe() == {"id": document.id, "name": "a.txt", "size": 3, "mime_type": "text/plain"}
        assert len(document.id) == 9
        assert document.extension == ".txt"


class TestConversionResult:

    def test_store_read_release(self, temp_manager):
        payload = EncodedPayload(b"content", "text/plain;charset=utf-8", "txt")
        result = ConversionResult.store(payload, "notes.txt", temp_manager)

        assert result.read() == b"content"
        assert result.describe() == {"name": "notes.txt", "content_type": "text/plain;charset=utf-8", "size": 7}
        assert os.path.exists(result.path)

        result.release()
        result.release()
        assert result.released
        assert not os.path.exists(result.path)
        assert temp_manager.get_stats()["file_count"] == 0
        with pytest.raises(TempFileError):
            result.read()


class TestErrorsAndDetection:

    def test_describe_failure_fallback(self):
        assert describe_failure(ConversionError("")) == GENERIC_FAILURE_MESSAGE
        assert describe_failure(ValueError("bad bytes")) == "bad bytes"

    def test_conflict_status(self):
        assert InvalidTransitionError("busy").status_code == 409

    def test_declared_mime_type_wins(self):
        assert get_mime_type(b"%PDF-1.4", "scan.pdf", "application/pdf; charset=binary") == "application/pdf"

    def test_extension_fallback(self):
        assert get_mime_type(None, "notes.md", None) == "text/markdown"
        assert get_mime_type(None, None, None) == "application/octet-stream"


class TestSettings:

    def test_extractor_from_env(self, monkeypatch):
        monkeypatch.delenv("OMNICONVERT_API_KEY", raising=False)
        monkeypatch.setenv("GEMINI_API_KEY", "secret")
        monkeypatch.setenv("OMNICONVERT_EXTRACTOR_URL", "http://localhost:9000/v1/")
        config = ExtractorConfig.from_env()
        assert config.api_key == "secret"
        assert config.endpoint == "http://localhost:9000/v1/models/gemini-3-flash-preview:generateContent"

    def test_render_defaults(self):
        config = RenderConfig()
        assert (config.page_width, config.padding, config.font_size, config.line_height) == (794, 50, 15.0, 1.6)
        assert config.content_width == 694
        assert config.scale == 2
