"""
Managed temporary storage for downloadable conversion results.

Every ConversionResult keeps its payload in a file created here. The file is
the result's downloadable reference: releasing the result deletes the file,
and the manager removes anything still outstanding when it is closed or
garbage collected.
"""

import os
import time
import uuid
import weakref
from pathlib import Path
from typing import Any, Dict, List, Optional

from .logging_config import get_logger

logger = get_logger()

DEFAULT_TEMP_DIR = os.getenv("OMNICONVERT_TEMP_DIR", "/tmp/omniconvert")


class TempFileError(Exception):
    """Custom exception for temporary file operations."""
    pass


class TempFileInfo:
    """Information about a temporary file."""

    def __init__(self, path: str, service: str = "default", auto_cleanup: bool = True):
        self.path = path
        self.service = service
        self.auto_cleanup = auto_cleanup
        self.metadata: Dict[str, Any] = {}

    @property
    def exists(self) -> bool:
        return os.path.exists(self.path)

    def __str__(self):
        return f"TempFileInfo(path={self.path}, service={self.service})"

    def __repr__(self):
        return self.__str__()


class TempFileManager:
    """
    Temporary file manager with automatic cleanup and consistent naming.

    Files live under ``<base_dir>/<service dir>`` and are tracked until they
    are cleaned up individually or all at once.
    """

    def __init__(self, base_dir: str = DEFAULT_TEMP_DIR, service: str = "default"):
        """
        Initialize the temporary file manager.

        Args:
            base_dir: Base directory for temporary files
            service: Service name for subdirectory organization
        """
        self.base_dir = Path(base_dir)
        self.service = service
        self.service_dir = self.base_dir / service
        self.temp_files: List[TempFileInfo] = []
        self._finalizer = weakref.finalize(self, _cleanup_paths, self.temp_files)

        self.service_dir.mkdir(parents=True, exist_ok=True)

    def generate_filename(
        self,
        original_filename: Optional[str] = None,
        extension: Optional[str] = None,
        prefix: str = "temp"
    ) -> str:
        """
        Generate a unique filename for a temporary file.

        Args:
            original_filename: Original filename to base naming on
            extension: File extension (with or without dot)
            prefix: Filename prefix

        Returns:
            Generated filename
        """
        ext = extension or ""
        if original_filename:
            ext = ext or Path(original_filename).suffix
        if ext and not ext.startswith("."):
            ext = f".{ext}"

        unique = uuid.uuid4().hex[:8]
        if original_filename:
            timestamp = str(int(time.time()))
            return f"{prefix}_{Path(original_filename).stem}_{timestamp}_{unique}{ext}"
        return f"{prefix}_{unique}{ext}"

    def create_temp_file(
        self,
        content: Optional[bytes] = None,
        original_filename: Optional[str] = None,
        extension: Optional[str] = None,
        prefix: str = "temp",
        auto_cleanup: bool = True
    ) -> TempFileInfo:
        """
        Create a temporary file with optional content.

        Args:
            content: File content to write
            original_filename: Name the generated filename is based on
            extension: File extension
            prefix: Filename prefix
            auto_cleanup: Whether to auto-cleanup on manager exit

        Returns:
            TempFileInfo object
        """
        generated_name = self.generate_filename(
            original_filename=original_filename,
            extension=extension,
            prefix=prefix
        )
        temp_path = self.service_dir / generated_name

        try:
            if content is not None:
                with open(temp_path, 'wb') as f:
                    f.write(content)
                logger.debug(f"Created temp file with content: {temp_path}")
            else:
                temp_path.touch()
                logger.debug(f"Created empty temp file: {temp_path}")
        except OSError as e:
            logger.error(f"Failed to create temp file {temp_path}: {e}")
            raise TempFileError(f"Failed to create temp file: {str(e)}")

        temp_file = TempFileInfo(
            path=str(temp_path),
            service=self.service,
            auto_cleanup=auto_cleanup
        )
        if auto_cleanup:
            self.temp_files.append(temp_file)
        return temp_file

    def read_bytes(self, temp_file: TempFileInfo) -> bytes:
        """Read a managed file back; raises TempFileError once it is gone."""
        try:
            with open(temp_file.path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise TempFileError(f"Temp file is no longer available: {temp_file.path}") from e

    def cleanup_file(self, file_path: str):
        """Delete a specific file and stop tracking it."""
        _cleanup_path(file_path)
        self.temp_files[:] = [f for f in self.temp_files if f.path != file_path]

    def cleanup_all(self):
        """Delete every tracked file."""
        _cleanup_paths(self.temp_files)
        self.temp_files.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about managed files."""
        total_size = 0
        for temp_file in self.temp_files:
            if os.path.exists(temp_file.path):
                total_size += os.path.getsize(temp_file.path)

        return {
            "service": self.service,
            "file_count": len(self.temp_files),
            "total_size_bytes": total_size,
            "service_dir": str(self.service_dir),
            "files": [f.path for f in self.temp_files]
        }

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup_all()


def _cleanup_path(file_path: str):
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
            logger.debug(f"Cleaned up temporary file: {file_path}")
    except OSError as e:
        logger.warning(f"Failed to cleanup temp file {file_path}: {e}")


def _cleanup_paths(temp_files: List[TempFileInfo]):
    for temp_file in temp_files:
        if temp_file.auto_cleanup:
            _cleanup_path(temp_file.path)


# Global manager instances
_managers: Dict[str, TempFileManager] = {}


def get_temp_manager(service: str = "default", base_dir: str = DEFAULT_TEMP_DIR) -> TempFileManager:
    """
    Get or create a temporary file manager for a service.

    Args:
        service: Service name
        base_dir: Base directory for temp files

    Returns:
        TempFileManager instance
    """
    key = f"{service}:{base_dir}"
    if key not in _managers:
        _managers[key] = TempFileManager(base_dir=base_dir, service=service)
    return _managers[key]
