"""Bracket notation codec.

Converts between a :class:`~bracketchart.models.Document` and plain text in
which each chord is written in brackets immediately before the syllable it
sounds on::

    VERSE 1
    [G]Amazing [G7]grace how [C]sweet the [G]sound

    INTRO
    ||:C |C |C |C :||

Pipeline:

  1. classify_line()    — BLANK / SECTION / BAR / LYRIC
  2. scan_brackets()    — lyric text + (char_index, chord text) pairs
  3. serialize()        — Document → text
  4. parse()            — text → Document, strict; raises ParseError
  5. parse_lenient()    — untrusted text → LenientResult, never raises
  6. parse_sections()   — structured ``sections`` list → LenientResult

Text format
-----------
Each section is its header line followed by its lines; sections are
separated by one blank line and the text ends with a single newline.  An
unlabelled lead-in section has no header line.  The song title is metadata
and never appears in the text.
Brackets and backslashes that belong to the lyric are escaped as ``\\[``,
``\\]`` and ``\\\\``.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum, auto

from .chords import format_chord, is_chord, parse_chord
from .exceptions import ParseError
from .models import BarNotationLine, ChordLyricsLine, ChordPlacement, Document, Line, Section
from .pitch import Preference

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Regexes
# ---------------------------------------------------------------------------

_HEADER_WORDS = (
    r"Intro|Verse|Chorus|Pre-?Chorus|Bridge|Turnaround|Interlude|Tag|Outro|"
    r"Instrumental|Ending|Coda|Hook|Refrain|Vamp|Solo|Breakdown"
)

# Strict header: a vocabulary word with an optional number ("VERSE 2").
SECTION_HEADER_RE = re.compile(rf"^(?:{_HEADER_WORDS})(?:\s+\d+)?$", re.IGNORECASE)

# Lenient header: also "Chorus 2:", "Verse 1A", "CHORUS (x2)".
LENIENT_HEADER_RE = re.compile(
    rf"^(?:{_HEADER_WORDS})(?:\s*\d+[A-Za-z]?)?(?:\s*\(?x\d+\)?)?\s*:?$", re.IGNORECASE
)

# Wrapped labels: [Solo], <Vamp>
WRAPPED_LABEL_RE = re.compile(r"^(?:\[([^\[\]]+)\]|<([^<>]+)>):?$")

# Unknown all-caps label such as "SPONTANEOUS" or "MUSICAL BREAK:"
CAPS_LABEL_RE = re.compile(r"^[A-Z][A-Z0-9'&\- ]{1,40}:?$")

# A complete bracket token
ANY_BRACKET_RE = re.compile(r"\[([^\[\]]*)\]")

# Non-chord marks allowed in a bar grid: x2, 4x, (x2), N.C.
BAR_ANNOTATION_RE = re.compile(r"^\(?(?:x\d+|\d+x)\)?$|^N\.?C\.?$", re.IGNORECASE)

_BAR_SPLIT_RE = re.compile(r"[\s|:]+")
_FENCE_RE = re.compile(r"^\s*```[\w-]*\s*$")

# Characters render_line escapes with a backslash inside lyric text
_ESCAPABLE = ("[", "]", "\\")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ParseIssue:
    """Something the lenient parser repaired or dropped."""

    line_number: int
    text: str
    reason: str


@dataclass
class LenientResult:
    """Outcome of a lenient parse.

    ``confidence`` is the fraction of non-blank input lines classified
    without repair (0.0 when there were none).
    """

    document: Document
    confidence: float
    issues: list[ParseIssue] = field(default_factory=list)
    dropped_title: str | None = None


# ---------------------------------------------------------------------------
# LineType
# ---------------------------------------------------------------------------


class LineType(Enum):
    BLANK = auto()  # empty or whitespace only
    SECTION = auto()  # header: VERSE 1, [Chorus], <Tag>
    BAR = auto()  # bar grid: ||:C |G :||
    LYRIC = auto()  # lyric text, with or without [chords]


def classify_line(line: str, lenient: bool = False) -> LineType:
    """Classify one line of bracket notation.

    In strict mode only vocabulary headers count as sections; lenient mode
    also accepts wrapped labels and all-caps labels.
    """
    stripped = line.strip()
    if not stripped:
        return LineType.BLANK
    if is_section_header(stripped, lenient):
        return LineType.SECTION
    if is_bar_line(stripped):
        return LineType.BAR
    return LineType.LYRIC


def is_section_header(line: str, lenient: bool = False) -> bool:
    stripped = line.strip()
    if not lenient:
        return bool(SECTION_HEADER_RE.match(stripped))
    if LENIENT_HEADER_RE.match(stripped):
        return True
    m = WRAPPED_LABEL_RE.match(stripped)
    if m:
        return not is_chord(m.group(1) or m.group(2))
    if CAPS_LABEL_RE.match(stripped) and len(stripped.split()) <= 4:
        # "G  D  C" is a chord-only line, not a label
        return not all(is_chord(t) for t in stripped.rstrip(":").split())
    return False


def is_bar_line(line: str) -> bool:
    """True if *line* is a bar grid: it has ``|`` and no lyric words outside brackets."""
    if "|" not in line:
        return False
    unbracketed = ANY_BRACKET_RE.sub(" ", line)
    for token in _BAR_SPLIT_RE.split(unbracketed):
        if not any(ch.isalpha() for ch in token):
            continue
        if not (is_chord(token) or BAR_ANNOTATION_RE.match(token)):
            return False
    return True


def clean_label(line: str) -> str:
    """Return a header label without wrapping brackets or a trailing colon."""
    label = line.strip()
    m = WRAPPED_LABEL_RE.match(label)
    if m:
        label = m.group(1) or m.group(2)
    return label.rstrip(":").strip()


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences an AI model may wrap around its answer."""
    lines = text.strip().splitlines()
    if lines and _FENCE_RE.match(lines[0]):
        lines = lines[1:]
    if lines and _FENCE_RE.match(lines[-1]):
        lines = lines[:-1]
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Bracket scanning
# ---------------------------------------------------------------------------


def scan_brackets(
    line: str, *, strict: bool = True, line_number: int = 0
) -> tuple[str, list[tuple[int, str]], bool]:
    """Split a bracket-notation line into lyric text and anchored chord texts.

    Each chord's index is its offset in the lyric once all bracket tokens are
    removed.  Returns ``(lyric, [(index, chord_text), ...], repaired)``.

    Strict mode raises :class:`ParseError` on an unmatched ``[`` or ``]`` or
    an empty ``[]``.  Lenient mode keeps such characters as literal lyric
    text and reports ``repaired=True``; it also keeps bracketed prose such
    as ``[repeat twice]`` as text rather than inventing a chord.

    In both modes ``\\[``, ``\\]`` and ``\\\\`` stand for one literal
    character of lyric text (see :func:`escape_lyric`).

    Example::

        scan_brackets("[G]Amazing [G7]grace")
        -> ("Amazing grace", [(0, "G"), (8, "G7")], False)
    """
    lyric: list[str] = []
    chords: list[tuple[int, str]] = []
    repaired = False
    length = 0
    i = 0

    while i < len(line):
        ch = line[i]
        if ch == "\\" and line[i + 1 : i + 2] in _ESCAPABLE:
            lyric.append(line[i + 1])
            length += 1
            i += 2
            continue
        if ch == "[":
            close = line.find("]", i + 1)
            reopen = line.find("[", i + 1)
            if close == -1 or (reopen != -1 and reopen < close):
                if strict:
                    raise ParseError(line_number, line, "unmatched '['")
                repaired = True
            else:
                token = line[i + 1 : close]
                if strict and not token.strip():
                    raise ParseError(line_number, line, "empty chord brackets")
                if token.strip() and (strict or is_chord(token) or " " not in token.strip()):
                    chords.append((length, token))
                else:
                    # "[]" or "[repeat twice]": keep the whole run as lyric text
                    repaired = repaired or not token.strip()
                    lyric.append(line[i : close + 1])
                    length += close + 1 - i
                i = close + 1
                continue
        elif ch == "]":
            if strict:
                raise ParseError(line_number, line, "unmatched ']'")
            repaired = True
        lyric.append(ch)
        length += 1
        i += 1

    return "".join(lyric), chords, repaired


def escape_lyric(text: str) -> str:
    """Escape the characters of lyric text that the bracket scanner reads
    as syntax, so literal brackets survive a serialize/parse round trip."""
    return "".join(f"\\{ch}" if ch in _ESCAPABLE else ch for ch in text)


def _lyric_line(lyric: str, chords: list[tuple[int, str]]) -> ChordLyricsLine:
    return ChordLyricsLine(
        lyric_text=lyric,
        placements=[ChordPlacement(symbol=parse_chord(text), char_index=index) for index, text in chords],
    )


def _is_blank(line: Line) -> bool:
    return isinstance(line, ChordLyricsLine) and not line.lyric_text and not line.placements


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


def render_line(line: Line, preference: Preference | str | None = None) -> str:
    """Return one line of bracket notation."""
    if isinstance(line, BarNotationLine):
        return line.raw_content
    parts: list[str] = []
    cursor = 0
    for placement in sorted(line.placements, key=lambda p: p.char_index):
        parts.append(escape_lyric(line.lyric_text[cursor : placement.char_index]))
        parts.append(f"[{format_chord(placement.symbol, preference)}]")
        cursor = placement.char_index
    parts.append(escape_lyric(line.lyric_text[cursor:]))
    return "".join(parts)


def serialize(document: Document, preference: Preference | str | None = None) -> str:
    """Render *document* as bracket notation.

    Chords are written with their own spelling unless *preference* is given.
    """
    blocks: list[str] = []
    for section in document.sections:
        if not section.header and not section.lines:
            continue
        lines = [section.header] if section.header else []
        lines.extend(render_line(line, preference) for line in section.lines)
        blocks.append("\n".join(lines))
    if not blocks:
        return ""
    return "\n\n".join(blocks) + "\n"


# ---------------------------------------------------------------------------
# Strict parse
# ---------------------------------------------------------------------------


def parse(text: str) -> Document:
    """Parse bracket notation produced by :func:`serialize`.

    Raises :class:`ParseError` (with the 1-based line number) for text that
    could not have come from a document: unmatched or empty brackets.
    """
    text = text.replace("\r\n", "\n")
    if text.endswith("\n"):
        text = text[:-1]
    document = Document()
    if not text:
        return document

    current: Section | None = None
    for number, line in enumerate(text.split("\n"), start=1):
        if classify_line(line) == LineType.SECTION:
            if current is not None and current.lines and _is_blank(current.lines[-1]):
                current.lines.pop()  # the blank line separating sections
            current = Section(header=line.strip())
            document.sections.append(current)
            continue

        if current is None:
            if not line.strip():
                continue  # blank lines before any content open nothing
            current = Section(header="")
            document.sections.append(current)

        if is_bar_line(line):
            current.lines.append(BarNotationLine(raw_content=line))
        else:
            lyric, chords, _ = scan_brackets(line, strict=True, line_number=number)
            current.lines.append(_lyric_line(lyric, chords))

    return document


# ---------------------------------------------------------------------------
# Lenient parse
# ---------------------------------------------------------------------------


class _LenientBuilder:
    """Accumulates sections and classification stats for a lenient parse."""

    def __init__(self, title: str | None):
        self.title = title
        self.document = Document()
        self.current: Section | None = None
        self.total = 0
        self.classified = 0
        self.issues: list[ParseIssue] = []
        self.dropped_title: str | None = None

    def open_section(self, header: str) -> None:
        self.current = Section(header=header)
        self.document.sections.append(self.current)

    def add_line(self, line: Line) -> None:
        if self.current is None:
            self.open_section("")
        self.current.lines.append(line)

    def blank(self) -> None:
        if self.current is not None and self.current.lines:
            self.current.lines.append(ChordLyricsLine())

    def body(self, number: int, raw: str, kind: LineType, force_bar: bool = False) -> None:
        self.total += 1
        if kind == LineType.BAR or force_bar:
            self.add_line(BarNotationLine(raw_content=raw.strip()))
            if kind == LineType.BAR:
                self.classified += 1
            else:
                self.issues.append(ParseIssue(number, raw, "marked as bar notation but has lyric words"))
            return
        lyric, chords, repaired = scan_brackets(raw.rstrip(), strict=False)
        self.add_line(_lyric_line(lyric, chords))
        if repaired:
            logger.debug("Line %d: stray bracket kept as text: %r", number, raw)
            self.issues.append(ParseIssue(number, raw, "stray bracket kept as text"))
        else:
            self.classified += 1

    def header(self, raw: str) -> None:
        self.total += 1
        self.classified += 1
        self.open_section(clean_label(raw))

    def drop_title(self, number: int, raw: str) -> None:
        self.total += 1
        self.classified += 1
        self.dropped_title = raw.strip()
        logger.info("Dropped leaked title line %r", self.dropped_title)
        self.issues.append(ParseIssue(number, raw, "title line dropped from chart body"))

    def result(self) -> LenientResult:
        for section in self.document.sections:
            while section.lines and _is_blank(section.lines[-1]):
                section.lines.pop()
        confidence = self.classified / self.total if self.total else 0.0
        return LenientResult(
            document=self.document,
            confidence=round(confidence, 3),
            issues=self.issues,
            dropped_title=self.dropped_title,
        )


def _looks_like_title(line: str, title: str | None) -> bool:
    """Decide whether the first content line is a title that leaked into the body.

    Any first line that is neither a known header, a bracketed/wrapped
    label, bar notation nor a line carrying chords counts, including an
    all-caps title that would otherwise read as an unknown label.
    """
    stripped = line.strip()
    if title and stripped.casefold() == title.strip().casefold():
        return True
    if LENIENT_HEADER_RE.match(stripped) or WRAPPED_LABEL_RE.match(stripped):
        return False
    if classify_line(stripped, lenient=True) == LineType.BAR:
        return False
    if all(is_chord(token) for token in stripped.split()):
        return False  # "G  D  C"
    _, chords, _ = scan_brackets(stripped, strict=False)
    return not chords


def parse_lenient(text: str, title: str | None = None) -> LenientResult:
    """Parse untrusted bracket notation, such as AI extraction output.

    Never raises.  Unknown headers are kept verbatim, a chord-free first
    line is treated as a leaked title and dropped, and malformed brackets
    become literal text.  See :class:`LenientResult` for the confidence
    signal.
    """
    builder = _LenientBuilder(title)
    lines = strip_code_fences(text).splitlines()
    kinds = [classify_line(line, lenient=True) for line in lines]
    content = [i for i, kind in enumerate(kinds) if kind != LineType.BLANK]

    for position, i in enumerate(content):
        raw, kind, number = lines[i], kinds[i], i + 1
        if i > 0 and kinds[i - 1] == LineType.BLANK and position > 0:
            builder.blank()
        if position == 0 and _looks_like_title(raw, title):
            builder.drop_title(number, raw)
            continue
        if kind == LineType.SECTION:
            builder.header(raw)
        else:
            builder.body(number, raw, kind)

    return builder.result()


def parse_sections(sections: list, title: str | None = None) -> LenientResult:
    """Build a document from an extraction ``sections`` list.

    Each entry is a mapping with ``header``, ``isBarNotation`` and
    ``content``.  Entries that are not mappings are reported and skipped.
    Line numbers in issues count header and content lines in order, as if
    the sections had been written out as text.  Content of an entry with no
    header continues the previous section.
    """
    builder = _LenientBuilder(title)
    number = 0
    for entry in sections:
        number += 1
        if not isinstance(entry, dict):
            builder.total += 1
            builder.issues.append(ParseIssue(number, repr(entry), "section entry is not an object"))
            continue

        header = clean_label(str(entry.get("header") or ""))
        content = str(entry.get("content") or "")
        force_bar = bool(entry.get("isBarNotation"))

        if header:
            builder.header(header)
        else:
            number -= 1  # no header line was written
            builder.blank()

        for raw in strip_code_fences(content).splitlines():
            number += 1
            if not raw.strip():
                builder.blank()
                continue
            if (
                builder.current is None
                and title
                and raw.strip().casefold() == title.strip().casefold()
            ):
                builder.drop_title(number, raw)
                continue
            kind = classify_line(raw, lenient=True)
            if kind == LineType.SECTION and not force_bar:
                # A header inside content starts a new section
                builder.header(raw)
                continue
            builder.body(number, raw, kind, force_bar=force_bar)

    return builder.result()
