import logging
from pathlib import Path

from .base import ExtractionSource

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".json", ".txt", ".chart", ".md"}


class FileSource(ExtractionSource):
    """A payload saved to disk: JSON from an earlier extraction, or plain notation."""

    @classmethod
    def can_handle(cls, location: str) -> bool:
        return Path(location).suffix.lower() in TEXT_SUFFIXES

    def fetch(self, location: str) -> str:
        path = Path(location)
        logger.debug("Reading payload from %s", path)
        return path.read_text(encoding="utf-8")
