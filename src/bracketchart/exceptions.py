class BracketChartError(Exception):
    """Base exception for bracketchart."""


class ParseError(BracketChartError):
    """Raised by the strict codec when text cannot round-trip.

    The lenient parser never raises this; it repairs and reports instead.
    """

    def __init__(self, line_number: int, text: str, reason: str):
        self.line_number = line_number
        self.text = text
        self.reason = reason
        super().__init__(f"Line {line_number}: {reason}: {text!r}")


class ValidationError(BracketChartError):
    """Raised when a document mutation would break a model invariant.

    The document is left exactly as it was before the call.
    """

    def __init__(self, reason: str, *, line_id: str | None = None, chord_id: str | None = None):
        self.reason = reason
        self.line_id = line_id
        self.chord_id = chord_id
        super().__init__(reason)


class ExtractionEmpty(BracketChartError):
    """Raised when an extraction payload yields no usable chart content."""

    def __init__(self, reason: str = "No chord chart content could be extracted"):
        self.reason = reason
        super().__init__(reason)


class FetchError(BracketChartError):
    """Raised when an HTTP request to an extraction endpoint fails."""

    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code
        super().__init__(f"HTTP {status_code} fetching {url}")


class UnsupportedSourceError(BracketChartError):
    """Raised when no extraction source matches the given location."""

    def __init__(self, location: str):
        self.location = location
        super().__init__(f"No extraction source found for: {location}")
