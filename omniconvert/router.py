"""
HTTP surface of the conversion service.

Session endpoints expose the orchestrator state machine one operation at a
time; ``POST /convert/{target_format}`` runs a whole conversion for a single
upload and answers with the converted file.
"""

from io import BytesIO
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from .models import ConversionStatus
from .orchestrator import ConversionSession, SessionRegistry
from .results import ConversionResult
from .utils.error_handling import (
    ERROR_STATUS_MAP,
    ConversionError,
    ErrorCode,
    conversion_error_response,
    create_error_response,
    create_http_exception,
)
from .utils.logging_config import get_logger
from .utils.temp_file_manager import TempFileError

logger = get_logger()

SERVICE_NAME = "omniconvert"

router = APIRouter()


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _get_session(request: Request, session_id: str) -> ConversionSession:
    try:
        return get_registry(request).get(session_id)
    except KeyError:
        raise create_http_exception(ErrorCode.NOT_FOUND, details=f"Unknown session: {session_id}")


def _attachment_headers(filename: str) -> dict:
    # Plain filename for old clients, RFC 5987 form for non-ASCII names
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "'")
    return {
        "Content-Disposition": f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
    }


def _result_response(result: ConversionResult) -> StreamingResponse:
    try:
        data = result.read()
    except TempFileError as e:
        raise create_http_exception(ErrorCode.NOT_FOUND, details=str(e))

    return StreamingResponse(
        BytesIO(data),
        media_type=result.content_type,
        headers=_attachment_headers(result.name)
    )


def _snapshot_response(session: ConversionSession, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=session.snapshot())


def _failed_status(session: ConversionSession) -> int:
    return ERROR_STATUS_MAP.get(session.error_code or ErrorCode.INTERNAL_ERROR, 500)


async def _select_upload(session: ConversionSession, file: UploadFile):
    content = await file.read()
    session.select_file(file.filename or "document", content, file.content_type)


# ===== SESSIONS =====

@router.post("/sessions", status_code=201)
async def create_session(request: Request):
    session = get_registry(request).create()
    return session.snapshot()


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    return _get_session(request, session_id).snapshot()


@router.post("/sessions/{session_id}/file")
async def select_file(request: Request, session_id: str, file: UploadFile = File(...)):
    """Upload the source document. Legacy Office formats answer 400 with the error snapshot."""
    session = _get_session(request, session_id)
    try:
        await _select_upload(session, file)
    except ConversionError as e:
        return _snapshot_response(session, e.status_code)
    return session.snapshot()


@router.put("/sessions/{session_id}/target")
async def set_target_format(request: Request, session_id: str, target_format: str = Form(...)):
    session = _get_session(request, session_id)
    try:
        session.set_target_format(target_format)
    except ConversionError as e:
        return conversion_error_response(e, SERVICE_NAME)
    return session.snapshot()


@router.post("/sessions/{session_id}/convert")
async def convert(request: Request, session_id: str, wait: bool = Query(True)):
    """
    Start a conversion attempt.

    With ``wait=true`` the response is sent once the attempt has finished;
    otherwise the attempt runs in the background (202) and progress can be
    followed with GET /sessions/{id}.
    """
    session = _get_session(request, session_id)
    try:
        if not wait:
            scheduled = session.schedule_conversion()
            return _snapshot_response(session, 202 if scheduled else 200)
        await session.start_conversion()
    except ConversionError as e:
        return conversion_error_response(e, SERVICE_NAME)

    if session.status == ConversionStatus.ERROR:
        return _snapshot_response(session, _failed_status(session))
    return session.snapshot()


@router.get("/sessions/{session_id}/result")
async def download_result(request: Request, session_id: str):
    session = _get_session(request, session_id)
    if session.result is None:
        raise create_http_exception(ErrorCode.NOT_FOUND, details="No conversion result is available.")
    return _result_response(session.result)


@router.post("/sessions/{session_id}/reset")
async def reset_session(request: Request, session_id: str):
    session = _get_session(request, session_id)
    session.reset()
    return session.snapshot()


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(request: Request, session_id: str):
    _get_session(request, session_id)
    get_registry(request).remove(session_id)


# ===== ONE-SHOT =====

@router.post("/convert/{target_format}")
async def convert_upload(
    request: Request,
    target_format: str,
    file: UploadFile = File(...),
    filename: Optional[str] = Form(None)
):
    """
    Convert a single upload and return the converted file.

    The optional ``filename`` form field overrides the upload's file name
    (and so the result name).
    """
    registry = get_registry(request)
    session = registry.create()
    try:
        session.set_target_format(target_format)
        content = await file.read()
        session.select_file(filename or file.filename or "document", content, file.content_type)
        await session.start_conversion()

        if session.status != ConversionStatus.COMPLETED:
            return create_error_response(
                session.error_code or ErrorCode.INTERNAL_ERROR,
                service=SERVICE_NAME,
                details=session.error
            )
        return _result_response(session.result)

    except ConversionError as e:
        return conversion_error_response(e, SERVICE_NAME)
    finally:
        registry.remove(session.id)
