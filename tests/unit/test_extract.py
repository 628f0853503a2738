"""
Unit tests for the Gemini extractor and the office text pre-step.

The reconstruction service is replaced by an httpx.MockTransport.
"""

import base64
import json

import httpx
import pytest

from omniconvert.config import ExtractorConfig, TargetFormat
from omniconvert.extract import GeminiContentExtractor, decode_text, extract_document_text
from omniconvert.extract.gemini import CONTENT_END_MARKER, CONTENT_START_MARKER
from omniconvert.models import SourceDocument
from omniconvert.utils.error_handling import ErrorCode, ExtractionError


def gemini_answer(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_extractor(handler, api_key: str = "test-key") -> GeminiContentExtractor:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiContentExtractor(ExtractorConfig(api_key=api_key), client=client)


@pytest.fixture
def pdf_document() -> SourceDocument:
    return SourceDocument("scan.pdf", b"%PDF-1.4 fake", "application/pdf")


@pytest.fixture
def text_document() -> SourceDocument:
    return SourceDocument("notes.txt", "Hello\nworld".encode("utf-8"), "text/plain")


class TestRequest:
    """What is sent to the reconstruction service."""

    async def test_binary_input_is_sent_inline(self, pdf_document):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_answer("<p>ok</p>"))

        extractor = make_extractor(handler)
        assert await extractor.reconstruct(pdf_document, TargetFormat.DOCX) == "<p>ok</p>"

        assert seen["url"].endswith("/models/gemini-3-flash-preview:generateContent")
        assert seen["key"] == "test-key"
        parts = seen["body"]["contents"][0]["parts"]
        assert parts[0]["inlineData"]["mimeType"] == "application/pdf"
        assert base64.b64decode(parts[0]["inlineData"]["data"]) == b"%PDF-1.4 fake"
        assert "DOCX" in parts[1]["text"]
        assert seen["body"]["generationConfig"] == {"temperature": 0.0, "topP": 0.1}

    def test_text_input_is_wrapped_in_markers(self, text_document):
        extractor = GeminiContentExtractor(ExtractorConfig(api_key="k"))
        part = extractor.build_content_part(text_document)
        assert part["text"] == f"{CONTENT_START_MARKER}\nHello\nworld\n{CONTENT_END_MARKER}"

    def test_empty_text_input_is_rejected(self):
        extractor = GeminiContentExtractor(ExtractorConfig(api_key="k"))
        with pytest.raises(ExtractionError):
            extractor.build_content_part(SourceDocument("empty.txt", b"  \n", "text/plain"))


class TestResponse:
    """How service answers are turned into fragments or failures."""

    async def test_code_fences_are_stripped(self, text_document):
        extractor = make_extractor(lambda request: httpx.Response(200, json=gemini_answer("```html\n<h1>T</h1>\n```")))
        assert await extractor.reconstruct(text_document, TargetFormat.MD) == "<h1>T</h1>"

    async def test_parts_are_joined(self, text_document):
        answer = {"candidates": [{"content": {"parts": [{"text": "<p>a"}, {"text": "b</p>"}]}}]}
        extractor = make_extractor(lambda request: httpx.Response(200, json=answer))
        assert await extractor.reconstruct(text_document, TargetFormat.TXT) == "<p>ab</p>"

    @pytest.mark.parametrize("answer", [{}, {"candidates": []}, gemini_answer("   ")])
    async def test_empty_answer_is_a_failure(self, text_document, answer):
        extractor = make_extractor(lambda request: httpx.Response(200, json=answer))
        with pytest.raises(ExtractionError) as exc_info:
            await extractor.reconstruct(text_document, TargetFormat.TXT)
        assert exc_info.value.error_code == ErrorCode.EXTRACTION_FAILED

    async def test_blocked_prompt(self, text_document):
        answer = {"promptFeedback": {"blockReason": "SAFETY"}}
        extractor = make_extractor(lambda request: httpx.Response(200, json=answer))
        with pytest.raises(ExtractionError, match="SAFETY"):
            await extractor.reconstruct(text_document, TargetFormat.TXT)

    async def test_malformed_json(self, text_document):
        extractor = make_extractor(lambda request: httpx.Response(200, content=b"not json"))
        with pytest.raises(ExtractionError, match="malformed"):
            await extractor.reconstruct(text_document, TargetFormat.TXT)

    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_busy_service(self, text_document, status):
        extractor = make_extractor(lambda request: httpx.Response(status, json={"error": {"message": "overloaded"}}))
        with pytest.raises(ExtractionError) as exc_info:
            await extractor.reconstruct(text_document, TargetFormat.TXT)
        assert exc_info.value.error_code == ErrorCode.SERVICE_UNAVAILABLE

    async def test_rejected_request_carries_service_message(self, text_document):
        extractor = make_extractor(
            lambda request: httpx.Response(400, json={"error": {"message": "Unsupported MIME type"}})
        )
        with pytest.raises(ExtractionError, match="Unsupported MIME type") as exc_info:
            await extractor.reconstruct(text_document, TargetFormat.TXT)
        assert exc_info.value.status_code == 422

    async def test_timeout(self, text_document):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExtractionError) as exc_info:
            await make_extractor(handler).reconstruct(text_document, TargetFormat.TXT)
        assert exc_info.value.error_code == ErrorCode.SERVICE_TIMEOUT
        assert exc_info.value.status_code == 504

    async def test_unreachable(self, text_document):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ExtractionError) as exc_info:
            await make_extractor(handler).reconstruct(text_document, TargetFormat.TXT)
        assert exc_info.value.error_code == ErrorCode.SERVICE_UNAVAILABLE

    async def test_missing_api_key(self, text_document):
        calls = []
        extractor = make_extractor(lambda request: calls.append(request), api_key="")
        with pytest.raises(ExtractionError) as exc_info:
            await extractor.reconstruct(text_document, TargetFormat.TXT)
        assert exc_info.value.error_code == ErrorCode.SERVICE_UNAVAILABLE
        assert calls == []


class TestOfficeText:
    """Text pre-step for non-binary inputs."""

    def test_unreadable_docx_falls_back_to_text(self):
        document = SourceDocument("broken.docx", b"plain words", "application/octet-stream")
        assert extract_document_text(document) == "plain words"

    def test_decode_text_strips_bom_and_tolerates_bad_bytes(self):
        assert decode_text(b"\xef\xbb\xbfhello") == "hello"
        assert decode_text(b"caf\xe9") == "caf\ufffd"
