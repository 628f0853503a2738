"""Downloadable conversion results backed by managed temporary files."""

from typing import Any, Dict, Optional

from .encoders import EncodedPayload
from .utils.logging_config import get_logger
from .utils.temp_file_manager import TempFileError, TempFileInfo, TempFileManager, get_temp_manager

logger = get_logger()


class ConversionResult:
    """
    The output of a completed attempt.

    The payload lives in a temporary file that stays readable until
    ``release()`` is called. Releasing more than once is harmless.
    """

    def __init__(self, name: str, content_type: str, size: int,
                 temp_file: TempFileInfo, manager: TempFileManager):
        self.name = name
        self.content_type = content_type
        self.size = size
        self._temp_file = temp_file
        self._manager = manager
        self._released = False

    @classmethod
    def store(cls, payload: EncodedPayload, name: str,
              manager: Optional[TempFileManager] = None) -> "ConversionResult":
        manager = manager or get_temp_manager("results")
        temp_file = manager.create_temp_file(
            content=payload.data,
            original_filename=name,
            extension=payload.extension,
            prefix="result"
        )
        logger.debug(f"Stored result {name} at {temp_file.path}")
        return cls(name, payload.content_type, payload.size, temp_file, manager)

    @property
    def released(self) -> bool:
        return self._released

    @property
    def path(self) -> str:
        return self._temp_file.path

    def read(self) -> bytes:
        if self._released:
            raise TempFileError(f"Result {self.name} has been released")
        return self._manager.read_bytes(self._temp_file)

    def release(self):
        if self._released:
            return
        self._released = True
        self._manager.cleanup_file(self._temp_file.path)
        logger.debug(f"Released result {self.name}")

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "content_type": self.content_type,
            "size": self.size,
        }
