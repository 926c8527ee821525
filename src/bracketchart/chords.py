"""Chord symbol parser and formatter.

Grammar
-------

::

    chord     := root quality? extension* ("/" bass)?
    root      := [A-G] [#b]?
    bass      := [A-Ga-g] [#b]?
    extension := one of EXTENSIONS, optionally grouped as "(b9,#11)"

The quality token is chosen by longest match against :data:`QUALITY_ALIASES`
(so ``maj7`` wins over ``m``).  Several spellings are accepted for each
quality, but :func:`format_chord` always writes the canonical token, which is
the :class:`Quality` value:

+-------------------+------------------------------------------+
| Canonical         | Also accepted                            |
+===================+==========================================+
| ``m``             | ``min``, ``mi``, ``-``                   |
| ``maj7``          | ``M7``, ``Maj7``, ``ma7``, ``Δ``, ``Δ7`` |
| ``m7``            | ``min7``, ``mi7``, ``-7``                |
| ``m7b5``          | ``min7b5``, ``-7b5``, ``ø``, ``ø7``      |
| ``dim`` / ``dim7``| ``o``, ``°`` / ``o7``, ``°7``            |
| ``aug`` / ``aug7``| ``+`` / ``+7``                           |
| ``sus4``          | ``sus``                                  |
| ``69``            | ``6/9``, ``6add9``                       |
+-------------------+------------------------------------------+

Text outside the grammar (``N.C.``, ``riff``, ``C7alt``) becomes an
:class:`OpaqueSymbol` and is carried verbatim.

Round trip: ``parse_chord(format_chord(c, p)) == c`` for every parsed
:class:`ChordSymbol` and every preference.  Equality is semantic (pitch
classes, quality, extensions), never textual.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from .pitch import Preference, accidental_family, normalize_accidentals, pitch_of, resolve_preference, spell


class Quality(Enum):
    MAJOR = ""
    MINOR = "m"
    DIMINISHED = "dim"
    AUGMENTED = "aug"
    SUS2 = "sus2"
    SUS4 = "sus4"
    POWER = "5"
    DOMINANT7 = "7"
    MAJOR7 = "maj7"
    MINOR7 = "m7"
    DIMINISHED7 = "dim7"
    HALF_DIMINISHED7 = "m7b5"
    AUGMENTED7 = "aug7"
    MINOR_MAJOR7 = "mMaj7"
    SIXTH = "6"
    MINOR6 = "m6"
    SIX_NINE = "69"
    DOMINANT9 = "9"
    MAJOR9 = "maj9"
    MINOR9 = "m9"
    DOMINANT11 = "11"
    MINOR11 = "m11"
    DOMINANT13 = "13"
    MAJOR13 = "maj13"
    MINOR13 = "m13"


MINOR_QUALITIES = frozenset({
    Quality.MINOR,
    Quality.MINOR7,
    Quality.MINOR6,
    Quality.MINOR9,
    Quality.MINOR11,
    Quality.MINOR13,
    Quality.MINOR_MAJOR7,
})

QUALITY_ALIASES: dict[str, Quality] = {q.value: q for q in Quality if q.value}
QUALITY_ALIASES.update({
    "maj": Quality.MAJOR,
    "M": Quality.MAJOR,
    "min": Quality.MINOR,
    "mi": Quality.MINOR,
    "-": Quality.MINOR,
    "o": Quality.DIMINISHED,
    "°": Quality.DIMINISHED,
    "+": Quality.AUGMENTED,
    "sus": Quality.SUS4,
    "dom7": Quality.DOMINANT7,
    "M7": Quality.MAJOR7,
    "Maj7": Quality.MAJOR7,
    "ma7": Quality.MAJOR7,
    "Δ": Quality.MAJOR7,
    "Δ7": Quality.MAJOR7,
    "min7": Quality.MINOR7,
    "mi7": Quality.MINOR7,
    "-7": Quality.MINOR7,
    "o7": Quality.DIMINISHED7,
    "°7": Quality.DIMINISHED7,
    "min7b5": Quality.HALF_DIMINISHED7,
    "-7b5": Quality.HALF_DIMINISHED7,
    "ø": Quality.HALF_DIMINISHED7,
    "ø7": Quality.HALF_DIMINISHED7,
    "+7": Quality.AUGMENTED7,
    "mM7": Quality.MINOR_MAJOR7,
    "mmaj7": Quality.MINOR_MAJOR7,
    "minmaj7": Quality.MINOR_MAJOR7,
    "m(maj7)": Quality.MINOR_MAJOR7,
    "min6": Quality.MINOR6,
    "-6": Quality.MINOR6,
    "6/9": Quality.SIX_NINE,
    "6add9": Quality.SIX_NINE,
    "M9": Quality.MAJOR9,
    "Maj9": Quality.MAJOR9,
    "min9": Quality.MINOR9,
    "-9": Quality.MINOR9,
    "min11": Quality.MINOR11,
    "-11": Quality.MINOR11,
    "M13": Quality.MAJOR13,
    "Maj13": Quality.MAJOR13,
    "min13": Quality.MINOR13,
    "-13": Quality.MINOR13,
})

EXTENSIONS = (
    "add2", "add4", "add9", "add11", "add13",
    "sus2", "sus4",
    "b5", "#5", "b6", "b9", "#9", "#11", "b13",
)

_EXTENSION_ALIASES: dict[str, str] = {e: e for e in EXTENSIONS}
_EXTENSION_ALIASES.update({
    "2": "add2",
    "sus": "sus4",
    "-5": "b5",
    "+5": "#5",
    "-9": "b9",
    "+9": "#9",
    "+11": "#11",
    "-13": "b13",
})

# Longest first, so "maj7" is tried before "m" and "sus4" before "sus".
_QUALITY_TOKENS = sorted(QUALITY_ALIASES, key=len, reverse=True)
_EXTENSION_TOKENS = sorted(_EXTENSION_ALIASES, key=len, reverse=True)

_ROOT_RE = re.compile(r"^([A-G][#b]?)")
_BASS_RE = re.compile(r"/([A-Ga-g][#b]?)$")

# (quality, leading extension) pairs whose concatenation another quality
# token would swallow on re-parse.
_FOLDS = {
    (Quality.MAJOR, "sus2"): Quality.SUS2,
    (Quality.MAJOR, "sus4"): Quality.SUS4,
    (Quality.MINOR7, "b5"): Quality.HALF_DIMINISHED7,
    (Quality.SIXTH, "add9"): Quality.SIX_NINE,
}


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChordSymbol:
    """A parsed chord.  Pitches are semitone classes; names are derived."""

    root: int
    quality: Quality = Quality.MAJOR
    extensions: tuple[str, ...] = ()
    bass: int | None = None
    # Spelling family the chord was written in; used by AUTO formatting.
    spelling: Preference | None = field(default=None, compare=False)

    def __str__(self) -> str:
        return format_chord(self)


@dataclass(frozen=True)
class OpaqueSymbol:
    """Chord text outside the grammar, preserved verbatim."""

    text: str

    def __str__(self) -> str:
        return self.text


Symbol = ChordSymbol | OpaqueSymbol


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_chord(text: str) -> Symbol:
    """Parse chord *text*.  Never raises; unsupported text is returned opaque."""
    working = normalize_accidentals(text.strip())
    if not working:
        return OpaqueSymbol(text)

    bass: int | None = None
    bass_name = ""
    m = _BASS_RE.search(working)
    if m:
        bass_name = m.group(1)[0].upper() + m.group(1)[1:]
        bass = pitch_of(bass_name)
        working = working[: m.start()]

    m = _ROOT_RE.match(working)
    if not m:
        return OpaqueSymbol(text)
    root_name = m.group(1)
    rest = working[m.end():]

    quality, rest = _take_quality(rest)
    extensions = _take_extensions(rest)
    if extensions is None:
        return OpaqueSymbol(text)

    if extensions:
        folded = _FOLDS.get((quality, extensions[0]))
        if folded is not None:
            quality, extensions = folded, extensions[1:]

    return ChordSymbol(
        root=pitch_of(root_name),
        quality=quality,
        extensions=tuple(extensions),
        bass=bass,
        spelling=accidental_family(root_name) or (accidental_family(bass_name) if bass_name else None),
    )


def _take_quality(rest: str) -> tuple[Quality, str]:
    for token in _QUALITY_TOKENS:
        if rest.startswith(token):
            return QUALITY_ALIASES[token], rest[len(token):]
    return Quality.MAJOR, rest


def _take_extensions(rest: str) -> list[str] | None:
    """Split *rest* into canonical extension tags, or None if any text is left over."""
    extensions: list[str] = []
    rest = rest.replace("(", " ").replace(")", " ").replace(",", " ")
    for chunk in rest.split():
        while chunk:
            for token in _EXTENSION_TOKENS:
                if chunk.startswith(token):
                    extensions.append(_EXTENSION_ALIASES[token])
                    chunk = chunk[len(token):]
                    break
            else:
                return None
    return extensions


def is_chord(text: str) -> bool:
    """Return True if *text* parses to a transposable :class:`ChordSymbol`."""
    return isinstance(parse_chord(text), ChordSymbol)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_chord(symbol: Symbol, preference: Preference | str | None = None) -> str:
    """Render *symbol* as text.

    With no *preference* (or AUTO) the chord keeps the spelling family it
    was written in.  Opaque symbols come back unchanged.
    """
    if isinstance(symbol, OpaqueSymbol):
        return symbol.text

    pref = resolve_preference(preference, symbol.spelling)
    parts = [spell(symbol.root, pref), symbol.quality.value]

    extensions = "".join(symbol.extensions)
    # "C" + "b5" would re-read as a C-flat root.
    if symbol.quality is Quality.MAJOR and extensions[:1] in ("b", "#"):
        extensions = f"({','.join(symbol.extensions)})"
    parts.append(extensions)

    if symbol.bass is not None:
        parts.append("/" + spell(symbol.bass, pref))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Validation and suggestions (chord editor input)
# ---------------------------------------------------------------------------

# Suffixes offered while a chord is being typed, most common first
COMMON_SUFFIXES = (
    "", "m", "7", "m7", "maj7", "sus4", "sus2", "add9",
    "9", "dim", "aug", "6", "m6", "7sus4", "m7b5", "dim7",
)

_NO_CHORD_RE = re.compile(r"^N\.?C\.?$", re.IGNORECASE)
_DOUBLE_ACCIDENTAL_RE = re.compile(r"^[A-G][#b]{2}|/[A-Ga-g][#b]{2}")
_INVALID_CHAR_RE = re.compile(r"[^A-Ga-g#bmMijnosupΔø°0-9+\-/(),\s]")


@dataclass(frozen=True)
class ChordCheck:
    """Verdict on chord text typed by a user.

    ``error`` says what is wrong and ``suggestion`` how to fix it; both are
    None when the text is valid.
    """

    is_valid: bool
    error: str | None = None
    suggestion: str | None = None


def validate_chord(text: str) -> ChordCheck:
    """Check chord text before it is committed from the editor.

    Unlike :func:`parse_chord`, which keeps anything it cannot read as an
    :class:`OpaqueSymbol`, this rejects text that is probably a typo.  No-chord
    marks (``N.C.``) are accepted.
    """
    trimmed = normalize_accidentals(text.strip())
    if not trimmed:
        return ChordCheck(False, "Chord cannot be empty")
    if _NO_CHORD_RE.match(trimmed):
        return ChordCheck(True)
    if not _ROOT_RE.match(trimmed):
        return ChordCheck(False, "Invalid root note. Must start with A-G.", "Try: C, D, E, F, G, A, or B")
    if _DOUBLE_ACCIDENTAL_RE.search(trimmed):
        return ChordCheck(False, "Double accidentals are not supported", "Use a single # or b")
    bad = _INVALID_CHAR_RE.search(trimmed)
    if bad:
        return ChordCheck(False, f"Invalid character: {bad.group()}", "Remove special characters")
    if isinstance(parse_chord(trimmed), OpaqueSymbol):
        return ChordCheck(False, "Could not parse chord", "Check chord format")
    return ChordCheck(True)


def chord_suggestions(partial: str) -> list[str]:
    """Complete a partly typed chord from :data:`COMMON_SUFFIXES`.

    Example::

        chord_suggestions("Am7")  -> ["Am7", "Am7b5"]
    """
    typed = normalize_accidentals(partial.strip())
    m = _ROOT_RE.match(typed)
    if not m:
        return []
    root, rest = m.group(1), typed[m.end():].lower()
    return [root + suffix for suffix in COMMON_SUFFIXES if suffix.lower().startswith(rest)]
