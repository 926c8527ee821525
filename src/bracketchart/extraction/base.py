from abc import ABC, abstractmethod

from .payload import ImportedChart, ingest


class ExtractionSource(ABC):
    """Abstract base class for everything that can produce a chart payload."""

    @classmethod
    @abstractmethod
    def can_handle(cls, location: str) -> bool:
        """Return True if this source can read the given location."""

    @abstractmethod
    def fetch(self, location: str) -> str | bytes | dict:
        """Read the location and return a raw extraction payload.

        Raises FetchError on transport or HTTP failures.
        """

    def extract(self, location: str) -> ImportedChart:
        """Convenience method: fetch + ingest.

        Raises ExtractionEmpty if the payload holds no chart content.
        """
        return ingest(self.fetch(location), source=location)
