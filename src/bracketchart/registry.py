from .exceptions import UnsupportedSourceError
from .extraction.base import ExtractionSource
from .extraction.endpoint import EndpointSource
from .extraction.local import FileSource


def get_source(location: str, endpoint_url: str | None = None, timeout: float = 60.0) -> ExtractionSource:
    """Return an instantiated source for the given location.

    Scans need an extraction endpoint; without one they are unsupported.

    Raises UnsupportedSourceError if no source matches.
    """
    if FileSource.can_handle(location):
        return FileSource()
    if endpoint_url and EndpointSource.can_handle(location):
        return EndpointSource(endpoint_url, timeout=timeout)
    raise UnsupportedSourceError(location)
