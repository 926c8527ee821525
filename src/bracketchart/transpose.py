"""Transposition of chord symbols, bar lines and keys.

Offsets are normalised with ``offset % 12`` to the range ``0..11`` before
use, so ``-1`` and ``11`` are the same shift and twelve ``+1`` steps return
every chord to its starting pitches.

Opaque symbols pass through untouched; that is a documented limitation of
the grammar, not an error.
"""

import logging
import re

from .chords import MINOR_QUALITIES, ChordSymbol, OpaqueSymbol, Symbol, format_chord, parse_chord
from .pitch import Preference, conventional_preference, resolve_preference

logger = logging.getLogger(__name__)

# A chord token inside a bar-notation line: either "[G7]" or a bare word
# starting with a root letter that is not glued to a preceding word.
BAR_CHORD_TOKEN_RE = re.compile(r"\[([^\[\]]+)\]|(?<![\w#/])([A-G][^\s|:\[\]]*)")


def normalize_offset(offset: int) -> int:
    """Map any semitone offset onto ``0..11``."""
    return offset % 12


def transpose(symbol: Symbol, offset: int, preference: Preference | str | None = Preference.AUTO) -> Symbol:
    """Shift *symbol* by *offset* semitones and re-spell it per *preference*.

    Root and bass move together; quality and extensions are unchanged.  The
    returned chord records the spelling family actually used, so formatting
    it later without a preference reproduces the same names.
    """
    if isinstance(symbol, OpaqueSymbol):
        return symbol
    shift = normalize_offset(offset)
    return ChordSymbol(
        root=(symbol.root + shift) % 12,
        quality=symbol.quality,
        extensions=symbol.extensions,
        bass=None if symbol.bass is None else (symbol.bass + shift) % 12,
        spelling=resolve_preference(preference, symbol.spelling),
    )


def transpose_text(text: str, offset: int, preference: Preference | str | None = Preference.AUTO) -> str:
    """Transpose chord *text*; text outside the grammar is returned as-is."""
    symbol = parse_chord(text)
    if isinstance(symbol, OpaqueSymbol):
        return text
    return format_chord(transpose(symbol, offset, preference))


def transpose_bar_line(raw: str, offset: int, preference: Preference | str | None = Preference.AUTO) -> str:
    """Rewrite every chord embedded in a bar-notation line.

    Bar separators, repeat signs, spacing and anything that does not parse
    as a chord (``x2``, ``N.C.``, ``%``) are left exactly as written.
    """

    def _replace(m: re.Match) -> str:
        if m.group(1) is not None:
            return f"[{transpose_text(m.group(1), offset, preference)}]"
        return transpose_text(m.group(2), offset, preference)

    return BAR_CHORD_TOKEN_RE.sub(_replace, raw)


def bar_line_chords(raw: str) -> list[str]:
    """Return the chord texts embedded in a bar-notation line, left to right."""
    return [m.group(1) if m.group(1) is not None else m.group(2) for m in BAR_CHORD_TOKEN_RE.finditer(raw)]


def target_key_preference(key: str | None, offset: int) -> Preference:
    """Spelling family of the key reached by moving *key* by *offset*.

    Falls back to AUTO when there is no readable key.
    """
    symbol = parse_chord(key) if key else None
    if not isinstance(symbol, ChordSymbol):
        return Preference.AUTO
    tonic = (symbol.root + normalize_offset(offset)) % 12
    return conventional_preference(tonic, minor=symbol.quality in MINOR_QUALITIES)


def transpose_key(key: str, offset: int, preference: Preference | str | None = Preference.AUTO) -> str:
    """Transpose a key name such as ``"G"`` or ``"F#m"``.

    Keys are read with the chord grammar, so ``"Am"`` moves like the chord
    Am.  Unreadable key text is returned unchanged and logged.
    """
    symbol = parse_chord(key)
    if isinstance(symbol, OpaqueSymbol):
        logger.debug("Key %r is not transposable; left unchanged", key)
        return key
    return format_chord(transpose(symbol, offset, preference))
