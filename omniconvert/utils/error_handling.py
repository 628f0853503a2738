"""
Centralized error handling for the OmniConvert API.

This module defines the conversion error taxonomy (input rejection, extraction,
render and encode failures), the exceptions that carry it through the
pipeline, and the helpers that turn it into consistent JSON error responses.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Union

from fastapi import HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for consistent error handling."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # Conversion pipeline errors
    INPUT_REJECTED = "INPUT_REJECTED"
    INVALID_FORMAT = "INVALID_FORMAT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    RENDER_FAILED = "RENDER_FAILED"
    ENCODE_FAILED = "ENCODE_FAILED"

    # Extractor service errors
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    SERVICE_TIMEOUT = "SERVICE_TIMEOUT"


class ErrorSeverity(str, Enum):
    """Error severity levels for logging and response handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    # 4xx Client Errors
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.INVALID_FORMAT: 400,
    ErrorCode.INPUT_REJECTED: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.EXTRACTION_FAILED: 422,

    # 5xx Server Errors
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.RENDER_FAILED: 500,
    ErrorCode.ENCODE_FAILED: 500,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.SERVICE_TIMEOUT: 504,
}

ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.RENDER_FAILED: ErrorSeverity.HIGH,
    ErrorCode.ENCODE_FAILED: ErrorSeverity.HIGH,
    ErrorCode.SERVICE_UNAVAILABLE: ErrorSeverity.HIGH,
    ErrorCode.SERVICE_TIMEOUT: ErrorSeverity.MEDIUM,
    ErrorCode.EXTRACTION_FAILED: ErrorSeverity.MEDIUM,
    ErrorCode.CONFLICT: ErrorSeverity.LOW,
    ErrorCode.INVALID_REQUEST: ErrorSeverity.LOW,
    ErrorCode.INVALID_FORMAT: ErrorSeverity.LOW,
    ErrorCode.INPUT_REJECTED: ErrorSeverity.LOW,
    ErrorCode.NOT_FOUND: ErrorSeverity.LOW,
}

# Shown when a failure carries no message of its own
GENERIC_FAILURE_MESSAGE = "File processing timed out. Try a smaller file or start again."


# ===== EXCEPTIONS =====

class ConversionError(Exception):
    """Base class for failures raised inside the conversion pipeline."""

    error_code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str = "", error_code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_MAP.get(self.error_code, 500)


class InputRejectedError(ConversionError):
    """The selected file is in a format that is refused before any processing."""
    error_code = ErrorCode.INPUT_REJECTED


class ExtractionError(ConversionError):
    """The content extractor returned nothing usable or could not be reached."""
    error_code = ErrorCode.EXTRACTION_FAILED


class RenderError(ConversionError):
    """The off-screen render surface is missing or could not be captured."""
    error_code = ErrorCode.RENDER_FAILED


class EncodeError(ConversionError):
    """An encoder failed to produce the target payload."""
    error_code = ErrorCode.ENCODE_FAILED


class InvalidTransitionError(ConversionError):
    """A session operation is not allowed in the current state."""
    error_code = ErrorCode.CONFLICT


def describe_failure(error: BaseException) -> str:
    """Human-readable message for an exception, with the generic fallback."""
    message = getattr(error, "message", None) or str(error)
    return message.strip() or GENERIC_FAILURE_MESSAGE


# ===== RESPONSE HELPERS =====

def create_error_response(
    error_code: Union[ErrorCode, str],
    service: Optional[str] = None,
    details: Optional[str] = None,
    status_code: Optional[int] = None,
    **kwargs
) -> JSONResponse:
    """
    Create a consistent JSON error response across all endpoints.

    Args:
        error_code: Error code from ErrorCode enum or custom string
        service: Component that generated the error
        details: Additional error details (truncated to 1000 chars)
        status_code: Override the default HTTP status code
        **kwargs: Additional fields to include in the error response

    Returns:
        JSONResponse with standardized error format
    """
    if isinstance(error_code, ErrorCode):
        error_type = error_code.value
        if status_code is None:
            status_code = ERROR_STATUS_MAP.get(error_code, 500)
        severity = ERROR_SEVERITY_MAP.get(error_code, ErrorSeverity.MEDIUM)
    else:
        error_type = str(error_code)
        if status_code is None:
            status_code = 500
        severity = ErrorSeverity.MEDIUM

    error_data = {
        "error": error_type,
        "timestamp": datetime.now().isoformat() + "Z",
        "status_code": status_code,
        "severity": severity.value
    }

    if service:
        error_data["service"] = service

    if details:
        error_data["details"] = str(details)[:1000]

    error_data.update(kwargs)

    log_message = f"Error response: {error_data}"
    if severity == ErrorSeverity.CRITICAL:
        logger.critical(log_message)
    elif severity == ErrorSeverity.HIGH:
        logger.error(log_message)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning(log_message)
    else:
        logger.info(log_message)

    return JSONResponse(status_code=status_code, content=error_data)


def create_http_exception(
    error_code: Union[ErrorCode, str],
    details: Optional[str] = None,
    **kwargs
) -> HTTPException:
    """
    Create a FastAPI HTTPException with consistent error details.

    Args:
        error_code: Error code from ErrorCode enum or custom string
        details: Error details to include
        **kwargs: Additional data for the exception

    Returns:
        HTTPException with standardized error format
    """
    if isinstance(error_code, ErrorCode):
        status_code = ERROR_STATUS_MAP.get(error_code, 500)
    else:
        status_code = 500

    error_details = {
        "error": error_code.value if isinstance(error_code, ErrorCode) else str(error_code),
        "timestamp": datetime.now().isoformat() + "Z"
    }

    if details:
        error_details["details"] = str(details)[:500]

    error_details.update(kwargs)

    return HTTPException(status_code=status_code, detail=error_details)


def conversion_error_response(error: ConversionError, service: Optional[str] = None) -> JSONResponse:
    """Render a ConversionError raised outside a session as a JSON error response."""
    return create_error_response(
        error.error_code,
        service=service,
        details=describe_failure(error)
    )
