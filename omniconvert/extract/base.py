"""Interface of the content reconstruction service."""

from abc import ABC, abstractmethod

from ..config import TargetFormat
from ..models import SourceDocument


class ContentExtractor(ABC):
    """
    Turns an arbitrary source document into an HTML fragment.

    Implementations raise ExtractionError with a human-readable reason when
    the input is empty or unsupported, or the service cannot be reached. The
    returned fragment is not trusted: callers enforce the tag allowlist.
    """

    name = "extractor"

    @abstractmethod
    async def reconstruct(self, document: SourceDocument, target_format: TargetFormat) -> str:
        """Return the reconstructed HTML fragment for ``document``."""

    async def aclose(self) -> None:
        """Release any resources held by the extractor."""
