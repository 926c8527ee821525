"""Normalise AI-extraction payloads into documents.

An extraction service answers with a JSON object such as::

    {
      "title": "My Number One",
      "metadata": {"key": "G", "tempo": 72, "ccliSongNumber": "1234567"},
      "sections": [
        {"header": "INTRO", "isBarNotation": true, "content": "||:C |C :||"},
        {"header": "VERSE 1", "isBarNotation": false, "content": "[G]First line"}
      ],
      "bracketNotation": "INTRO\\n||:C |C :||\\n\\nVERSE 1\\n[G]First line",
      "confidence": 0.95
    }

Models are not reliable about this shape: the object may be wrapped in
markdown fences, metadata fields may sit at the top level under other
names, and sometimes the answer is not JSON at all.  Everything here
tolerates that and only raises :class:`ExtractionEmpty` when no chart
content can be recovered.
"""

import json
import logging
from dataclasses import dataclass, field

from ..exceptions import ExtractionEmpty
from ..models import Document, Metadata
from ..notation import ParseIssue, parse_lenient, parse_sections, strip_code_fences

logger = logging.getLogger(__name__)

# Confidence assumed for a raw-text answer that was not valid JSON.
RAW_TEXT_CONFIDENCE = 0.5
# Confidence assumed when the service does not report one.
DEFAULT_REPORTED_CONFIDENCE = 0.8

# Metadata field -> payload names, highest priority first.
_METADATA_ALIASES = {
    "songwriters": ("songwriters", "writers"),
    "album": ("album",),
    "recorded_by": ("recordedBy", "artist"),
    "key": ("key",),
    "tempo": ("tempo", "bpm"),
    "time_signature": ("timeSignature", "time"),
    "ccli_song_number": ("ccliSongNumber", "ccli", "ccliNumber"),
    "publisher": ("publisher",),
    "copyright": ("copyright",),
}


@dataclass
class ImportedChart:
    """A document recovered from an extraction payload.

    ``confidence`` is the parser's own measure; ``reported_confidence`` is
    whatever the extraction service claimed.
    """

    document: Document
    confidence: float
    reported_confidence: float
    issues: list[ParseIssue] = field(default_factory=list)
    source: str | None = None


def decode_payload(raw: str | bytes | dict) -> dict:
    """Turn a service response into a payload dict.

    Text that is not a JSON object is treated as bare bracket notation.
    """
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    text = strip_code_fences(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, dict):
        logger.info("Payload is not a JSON object; treating it as bracket notation")
        return {"bracketNotation": text, "confidence": RAW_TEXT_CONFIDENCE}
    return data


def _present(value) -> bool:
    return value is not None and value != "" and value != []


def _lookup(data: dict, names: tuple[str, ...]):
    nested = data.get("metadata") or {}
    if not isinstance(nested, dict):
        nested = {}
    for name in names:
        for scope in (nested, data):
            if _present(scope.get(name)):
                return scope[name]
    return None


def _as_list(value) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split("|") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if _present(item)]
    return [str(value)]


def _as_tempo(value) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring unreadable tempo %r", value)
        return None


def normalize_metadata(data: dict) -> Metadata:
    """Collect song metadata from ``data["metadata"]`` and the top level."""
    metadata = Metadata()
    for attr, names in _METADATA_ALIASES.items():
        value = _lookup(data, names)
        if value is None:
            continue
        if attr == "songwriters":
            value = _as_list(value)
        elif attr == "tempo":
            value = _as_tempo(value)
        else:
            value = str(value).strip()
        setattr(metadata, attr, value)
    title = data.get("title")
    if _present(title):
        metadata.title = str(title).strip()
    return metadata


def _reported_confidence(data: dict) -> float:
    value = data.get("confidence")
    try:
        return float(value) if value is not None else DEFAULT_REPORTED_CONFIDENCE
    except (TypeError, ValueError):
        return DEFAULT_REPORTED_CONFIDENCE


def ingest(payload: str | bytes | dict, source: str | None = None) -> ImportedChart:
    """Build an :class:`ImportedChart` from an extraction payload.

    The structured ``sections`` list is used when it yields content;
    otherwise ``bracketNotation`` is parsed leniently.

    Raises ExtractionEmpty if the service reported failure or neither
    field produced any lines.
    """
    data = decode_payload(payload)
    if data.get("success") is False or _present(data.get("error")):
        raise ExtractionEmpty(str(data.get("error") or "Extraction service reported failure"))

    metadata = normalize_metadata(data)
    result = None
    sections = data.get("sections")
    if isinstance(sections, list) and sections:
        result = parse_sections(sections, title=metadata.title)
        if not any(s.lines for s in result.document.sections):
            logger.info("Sections list held no lines; falling back to bracketNotation")
            result = None

    if result is None:
        notation = data.get("bracketNotation")
        if not isinstance(notation, str) or not notation.strip():
            raise ExtractionEmpty()
        result = parse_lenient(notation, title=metadata.title)

    document = result.document
    if not any(s.lines for s in document.sections):
        raise ExtractionEmpty()

    if metadata.title is None and result.dropped_title:
        metadata.title = result.dropped_title
    document.metadata = metadata

    logger.info(
        "Imported %d section(s) with confidence %.2f (%d issue(s))",
        len(document.sections), result.confidence, len(result.issues),
    )
    return ImportedChart(
        document=document,
        confidence=result.confidence,
        reported_confidence=_reported_confidence(data),
        issues=result.issues,
        source=source,
    )
