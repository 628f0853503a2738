"""Core data types shared by the orchestrator, extractor and API layer."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Dict


class ConversionStatus(str, Enum):
    """Lifecycle of a conversion attempt."""
    IDLE = "idle"
    CONVERTING = "converting"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class SourceDocument:
    """An uploaded file. Immutable; dropped when the session is reset."""

    name: str
    content: bytes = field(repr=False)
    mime_type: str = "application/octet-stream"
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:9])

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return PurePath(self.name).suffix.lower()

    def result_name(self, extension: str) -> str:
        """Source file name with its extension replaced by ``extension``."""
        stem = PurePath(self.name.replace("\\", "/")).stem.strip()
        return f"{stem or 'document'}.{extension}"

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "mime_type": self.mime_type,
        }
