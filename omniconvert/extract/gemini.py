"""
Content reconstruction through the Gemini generateContent REST API.

PDFs and images are sent inline (base64) with their MIME type; every other
input is turned into text first and wrapped in content markers. The model is
instructed to reproduce the content verbatim using only the allowlisted tags.
Calls are made once: failures end the attempt instead of being retried.
"""

import base64
from typing import Any, Dict, Optional

import httpx

from ..config import INLINE_BINARY_MIME_TYPES, ExtractorConfig, TargetFormat
from ..content.parser import strip_code_fences
from ..models import SourceDocument
from ..utils.error_handling import ErrorCode, ExtractionError
from ..utils.http_client import ServiceType, get_http_client_factory
from ..utils.logging_config import get_logger
from .base import ContentExtractor
from .office import extract_document_text

logger = get_logger()

RECONSTRUCTION_INSTRUCTION = """You are a lossless document converter. Your only job is to reproduce the supplied original content in full as HTML.

Strict rules:
1. Do not interpret, analyse or summarise the content.
2. Do not omit any original character, punctuation included.
3. Use only these HTML tags: <h1>, <h2>, <p>, <br/>, <ul>, <li>, <strong>.
4. Keep the original line breaks.
5. Output a bare HTML fragment. Never wrap it in ```html fences and never add any preface.
6. If the content is very complex, favour complete text over rich styling."""

CONTENT_START_MARKER = "[START_ORIGINAL_CONTENT]"
CONTENT_END_MARKER = "[END_ORIGINAL_CONTENT]"

BUSY_STATUS_CODES = (429, 500, 502, 503, 504)


class GeminiContentExtractor(ContentExtractor):
    """ContentExtractor backed by a Gemini model."""

    name = "gemini"

    def __init__(self, config: Optional[ExtractorConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or ExtractorConfig.from_env()
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return get_http_client_factory().get_or_create_client(ServiceType.EXTRACTOR)

    def build_content_part(self, document: SourceDocument) -> Dict[str, Any]:
        """The request part that carries the document itself."""
        if document.mime_type in INLINE_BINARY_MIME_TYPES:
            return {
                "inlineData": {
                    "mimeType": document.mime_type,
                    "data": base64.b64encode(document.content).decode("ascii"),
                }
            }

        text = extract_document_text(document)
        if not text or not text.strip():
            raise ExtractionError("The file is empty or its content could not be recognised.")
        return {"text": f"{CONTENT_START_MARKER}\n{text}\n{CONTENT_END_MARKER}"}

    def build_request(self, document: SourceDocument, target_format: TargetFormat) -> Dict[str, Any]:
        instruction = f"{RECONSTRUCTION_INSTRUCTION}\n\nThe result will be exported as {target_format.value}."
        return {
            "contents": [{
                "parts": [
                    self.build_content_part(document),
                    {"text": instruction},
                ]
            }],
            "generationConfig": {
                "temperature": self.config.temperature,
                "topP": self.config.top_p,
            },
        }

    async def reconstruct(self, document: SourceDocument, target_format: TargetFormat) -> str:
        if not self.config.api_key:
            raise ExtractionError(
                "The content reconstruction service is not configured (missing API key).",
                ErrorCode.SERVICE_UNAVAILABLE
            )

        payload = self.build_request(document, target_format)
        headers = {"x-goog-api-key": self.config.api_key}
        request_kwargs = {"json": payload, "headers": headers}
        if self.config.timeout is not None:
            request_kwargs["timeout"] = self.config.timeout

        logger.info(
            f"Requesting reconstruction of {document.name} ({document.mime_type}, "
            f"{document.size} bytes) from {self.config.model}"
        )

        try:
            response = await self.client.post(self.config.endpoint, **request_kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Reconstruction request timed out: {e}")
            raise ExtractionError(
                "The reconstruction service timed out. Try a smaller file or start again.",
                ErrorCode.SERVICE_TIMEOUT
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"Reconstruction service unreachable: {e}")
            raise ExtractionError(
                "The reconstruction service could not be reached. Please try again.",
                ErrorCode.SERVICE_UNAVAILABLE
            ) from e

        if response.status_code >= 400:
            raise self._error_from_response(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ExtractionError("The reconstruction service returned a malformed response.") from e

        fragment = strip_code_fences(self._response_text(data))
        if not fragment:
            raise ExtractionError("Reconstruction failed: the service returned an empty response.")

        logger.info(f"Reconstruction returned {len(fragment)} characters for {document.name}")
        return fragment

    def _response_text(self, data: Dict[str, Any]) -> str:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise ExtractionError(f"The reconstruction service refused the document ({block_reason}).")

        candidates = data.get("candidates") or []
        if not candidates:
            return ""

        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    def _error_from_response(self, response: httpx.Response) -> ExtractionError:
        detail = ""
        try:
            detail = (response.json().get("error") or {}).get("message", "")
        except (ValueError, AttributeError):
            detail = response.text[:200]

        logger.warning(f"Reconstruction service answered {response.status_code}: {detail}")

        if response.status_code in BUSY_STATUS_CODES:
            return ExtractionError(
                "The server is busy and rejected the conversion request. Please try again.",
                ErrorCode.SERVICE_UNAVAILABLE
            )
        message = f"The reconstruction service rejected the document: {detail}" if detail else \
            f"The reconstruction service rejected the document (HTTP {response.status_code})."
        return ExtractionError(message)
