"""
Conversion orchestrator.

A ConversionSession drives one user's conversions through the
``idle -> converting -> completed | error`` state machine:

1. ``select_file()`` stores the source document (legacy binary Office
   formats are refused here and never reach the extractor).
2. ``start_conversion()`` runs an attempt: extractor call (progress 10),
   allowlist enforcement and parsing (50), render and encode for the fixed
   target format, then result storage (100).
3. ``reset()`` drops the document, the result and any in-flight attempt.

Each attempt has its own identifier. Work that resumes after an await only
applies its outcome if the attempt is still current; otherwise anything it
produced is released and dropped.
"""

import asyncio
import time
import uuid
from typing import Any, Callable, Dict, FrozenSet, Optional, Set, Union

from .config import (
    DEFAULT_TARGET_FORMAT,
    PROGRESS_DONE,
    PROGRESS_EXTRACTED,
    PROGRESS_STARTED,
    REJECTED_EXTENSIONS,
    EncoderConfig,
    RenderConfig,
    SessionConfig,
    TargetFormat,
)
from .content.parser import parse_fragment, sanitize_fragment
from .content.serializers import to_html
from .encoders import encode
from .extract.base import ContentExtractor
from .models import ConversionStatus, SourceDocument
from .render.bridge import RenderBridge
from .results import ConversionResult
from .utils.error_handling import (
    ConversionError,
    ErrorCode,
    InputRejectedError,
    InvalidTransitionError,
    describe_failure,
)
from .utils.logging_config import get_logger
from .utils.mime_detector import get_mime_type
from .utils.temp_file_manager import TempFileManager

logger = get_logger()


class ConversionSession:
    """State of one document conversion workflow."""

    def __init__(
        self,
        extractor: ContentExtractor,
        bridge: Optional[RenderBridge] = None,
        encoder_config: Optional[EncoderConfig] = None,
        temp_manager: Optional[TempFileManager] = None,
        session_id: Optional[str] = None
    ):
        self.id = session_id or uuid.uuid4().hex
        self.extractor = extractor
        self.bridge = bridge or RenderBridge()
        self.encoder_config = encoder_config or EncoderConfig()
        self.temp_manager = temp_manager

        self.file: Optional[SourceDocument] = None
        self.target_format: TargetFormat = DEFAULT_TARGET_FORMAT
        self.status = ConversionStatus.IDLE
        self.progress = 0
        self.error: Optional[str] = None
        self.error_code: Optional[ErrorCode] = None
        self.result: Optional[ConversionResult] = None
        self.preview_html: Optional[str] = None

        self._attempt_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self.last_active = time.monotonic()

    # ===== TRANSITIONS =====

    def select_file(self, name: str, content: bytes, declared_mime: Optional[str] = None) -> SourceDocument:
        """
        Make ``name`` the session's source document.

        Any held result is released and an in-flight attempt is superseded.

        Raises:
            InputRejectedError: For legacy binary Office formats. The session
                is left in ``error`` with the guidance message and no file.
        """
        self._discard_attempt()

        document = SourceDocument(
            name=name,
            content=content,
            mime_type=get_mime_type(content, name, declared_mime),
        )

        guidance = REJECTED_EXTENSIONS.get(document.extension)
        if guidance:
            logger.info(f"Session {self.id}: rejected {name} ({document.extension})")
            self.file = None
            self._set_state(ConversionStatus.ERROR, error=guidance, error_code=ErrorCode.INPUT_REJECTED)
            raise InputRejectedError(guidance)

        self.file = document
        self._set_state(ConversionStatus.IDLE)
        logger.info(f"Session {self.id}: selected {name} ({document.mime_type}, {document.size} bytes)")
        return document

    def set_target_format(self, target_format: Union[TargetFormat, str]) -> TargetFormat:
        if self.status == ConversionStatus.CONVERTING:
            raise InvalidTransitionError("The target format cannot be changed while a conversion is running.")

        if not isinstance(target_format, TargetFormat):
            try:
                target_format = TargetFormat.parse(target_format)
            except ValueError as e:
                raise ConversionError(str(e), ErrorCode.INVALID_FORMAT) from e

        self.target_format = target_format
        return target_format

    async def start_conversion(self) -> ConversionStatus:
        """
        Run a conversion attempt for the current file and target format.

        Does nothing without a file. Returns the status once the attempt
        has finished or been superseded.

        Raises:
            InvalidTransitionError: If an attempt is already converting
        """
        attempt_id = self._begin_attempt()
        if attempt_id is not None:
            await self._run_attempt(attempt_id, self.file, self.target_format)
        return self.status

    def schedule_conversion(self) -> bool:
        """Start an attempt in the background. Returns False when there is no file."""
        attempt_id = self._begin_attempt()
        if attempt_id is None:
            return False
        task = asyncio.create_task(self._run_attempt(attempt_id, self.file, self.target_format))
        # Referenced until done, even after the attempt is superseded
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._task = task
        return True

    def reset(self):
        """Back to ``idle`` with no file, no result and no attempt in flight."""
        self._discard_attempt()
        self.file = None
        self._set_state(ConversionStatus.IDLE)
        logger.info(f"Session {self.id}: reset")

    close = reset

    # ===== ATTEMPT =====

    def _begin_attempt(self) -> Optional[str]:
        if self.file is None:
            logger.debug(f"Session {self.id}: no file selected, nothing to convert")
            return None
        if self.status == ConversionStatus.CONVERTING:
            raise InvalidTransitionError("A conversion is already running.")

        self._release_result()
        self._attempt_id = uuid.uuid4().hex
        self._set_state(ConversionStatus.CONVERTING, progress=PROGRESS_STARTED)
        logger.info(
            f"Session {self.id}: attempt {self._attempt_id} converting "
            f"{self.file.name} to {self.target_format.value}"
        )
        return self._attempt_id

    async def _run_attempt(self, attempt_id: str, document: SourceDocument, target_format: TargetFormat):
        try:
            fragment = await self.extractor.reconstruct(document, target_format)
            if not self._is_current(attempt_id):
                return

            blocks = parse_fragment(sanitize_fragment(fragment))
            self.progress = PROGRESS_EXTRACTED

            surface = None
            if target_format.is_raster:
                surface = await self.bridge.render(attempt_id, blocks)
                if not self._is_current(attempt_id):
                    return

            payload = encode(target_format, blocks, surface, self.encoder_config, title=document.name)
            result = ConversionResult.store(
                payload,
                document.result_name(target_format.extension),
                self.temp_manager
            )
            if not self._is_current(attempt_id):
                result.release()
                return

            self.result = result
            self.preview_html = to_html(blocks)
            self._set_state(ConversionStatus.COMPLETED, progress=PROGRESS_DONE, keep_preview=True)
            logger.info(f"Session {self.id}: attempt {attempt_id} completed -> {result.name} ({result.size} bytes)")

        except Exception as e:
            if not self._is_current(attempt_id):
                logger.info(f"Session {self.id}: superseded attempt {attempt_id} failed: {e}")
                return
            if isinstance(e, ConversionError):
                logger.warning(f"Session {self.id}: attempt {attempt_id} failed: {describe_failure(e)}")
            else:
                logger.exception(f"Session {self.id}: attempt {attempt_id} failed unexpectedly")
            error_code = e.error_code if isinstance(e, ConversionError) else ErrorCode.INTERNAL_ERROR
            self._set_state(ConversionStatus.ERROR, error=describe_failure(e), error_code=error_code)

        finally:
            self.bridge.clear(attempt_id)
            if self._attempt_id == attempt_id:
                self._attempt_id = None

    def _is_current(self, attempt_id: str) -> bool:
        return self._attempt_id == attempt_id

    def _discard_attempt(self):
        if self._attempt_id is not None:
            logger.info(f"Session {self.id}: attempt {self._attempt_id} superseded")
        self._attempt_id = None
        self._task = None
        self.bridge.clear()
        self._release_result()

    def _release_result(self):
        if self.result is not None:
            self.result.release()
            self.result = None

    def _set_state(self, status: ConversionStatus, progress: int = 0,
                   error: Optional[str] = None, error_code: Optional[ErrorCode] = None,
                   keep_preview: bool = False):
        self.status = status
        self.progress = progress
        self.error = error
        self.error_code = error_code
        if not keep_preview:
            self.preview_html = None

    # ===== VIEW =====

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def pending_tasks(self) -> FrozenSet[asyncio.Task]:
        """Background attempts still running, superseded ones included."""
        return frozenset(self._tasks)

    @property
    def converting(self) -> bool:
        return self.status == ConversionStatus.CONVERTING

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "target_format": self.target_format.value,
            "error": self.error,
            "error_code": self.error_code.value if self.error_code else None,
            "file": self.file.describe() if self.file else None,
            "result": self.result.describe() if self.result else None,
            "preview_html": self.preview_html,
        }


class SessionRegistry:
    """
    In-memory session store. Sessions do not survive a restart.

    Sessions idle for longer than the configured TTL are evicted, and once
    the store is full the least recently used session makes room for a new
    one. Eviction goes through ``remove()``, so held results are released.
    Sessions with an attempt in flight are never evicted.
    """

    def __init__(
        self,
        extractor: ContentExtractor,
        render_config: Optional[RenderConfig] = None,
        encoder_config: Optional[EncoderConfig] = None,
        temp_manager: Optional[TempFileManager] = None,
        session_config: Optional[SessionConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.extractor = extractor
        self.render_config = render_config or RenderConfig.from_env()
        self.encoder_config = encoder_config or EncoderConfig.from_env()
        self.temp_manager = temp_manager
        self.session_config = session_config or SessionConfig.from_env()
        self.clock = clock
        self._sessions: Dict[str, ConversionSession] = {}

    def create(self) -> ConversionSession:
        self.evict_expired()
        self._make_room()

        session = ConversionSession(
            self.extractor,
            bridge=RenderBridge(self.render_config),
            encoder_config=self.encoder_config,
            temp_manager=self.temp_manager,
        )
        session.last_active = self.clock()
        self._sessions[session.id] = session
        logger.debug(f"Created session {session.id}")
        return session

    def get(self, session_id: str) -> ConversionSession:
        """Raises KeyError for unknown ids."""
        session = self._sessions[session_id]
        session.last_active = self.clock()
        return session

    def remove(self, session_id: str):
        session = self._sessions.pop(session_id)
        session.close()

    def evict_expired(self) -> int:
        """Remove sessions idle for longer than the TTL. Returns how many went."""
        ttl = self.session_config.ttl
        if ttl is None or ttl <= 0:
            return 0

        now = self.clock()
        expired = [
            session_id for session_id, session in self._sessions.items()
            if not session.converting and now - session.last_active > ttl
        ]
        for session_id in expired:
            logger.info(f"Evicting session {session_id} after {ttl:.0f}s idle")
            self.remove(session_id)
        return len(expired)

    def _make_room(self):
        limit = self.session_config.max_sessions
        if not limit or limit <= 0:
            return

        idle = sorted(
            (session for session in self._sessions.values() if not session.converting),
            key=lambda session: session.last_active
        )
        while len(self._sessions) >= limit and idle:
            session = idle.pop(0)
            logger.info(f"Session limit ({limit}) reached, evicting least recently used session {session.id}")
            self.remove(session.id)

    def close_all(self):
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
