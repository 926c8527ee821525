"""Pitch classes and accidental spelling.

A pitch is a plain ``int`` semitone class in ``0..11`` (C = 0).  Names are
never stored; they are derived on demand by :func:`spell` from a
:class:`Preference` or a key name::

    >>> spell(10, Preference.SHARP)
    'A#'
    >>> spell(10, "F")
    'Bb'

Accidentals are always written in ASCII (``#`` and ``b``).  Unicode ``♯``
and ``♭`` are accepted on input and folded by :func:`normalize_accidentals`.
"""

import re
from enum import Enum

# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

SHARP_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
FLAT_NAMES = ("C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B")

_NATURALS = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}
_ACCIDENTAL_SHIFT = {"": 0, "#": 1, "b": -1}

# Major tonics written with flats: F, Bb, Eb, Ab, Db.
_FLAT_MAJOR_PITCHES = {5, 10, 3, 8, 1}

NOTE_RE = re.compile(r"^([A-G])([#b]?)$")
KEY_RE = re.compile(r"^([A-G])([#b]?)\s*(m|min|minor|maj|major)?$", re.IGNORECASE)


class Preference(Enum):
    SHARP = "sharp"
    FLAT = "flat"
    AUTO = "auto"  # keep the family the chord was written in


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def normalize_accidentals(text: str) -> str:
    """Fold Unicode sharp/flat glyphs to their ASCII forms."""
    return text.replace("♯", "#").replace("♭", "b")


def pitch_of(name: str) -> int:
    """Return the semitone class of a note name such as ``"Bb"`` or ``"C#"``.

    Raises ValueError for anything that is not a single letter A–G with at
    most one accidental.
    """
    m = NOTE_RE.match(normalize_accidentals(name.strip()))
    if not m:
        raise ValueError(f"Not a note name: {name!r}")
    letter, accidental = m.groups()
    return (_NATURALS[letter] + _ACCIDENTAL_SHIFT[accidental]) % 12


def accidental_family(name: str) -> Preference | None:
    """Return SHARP or FLAT for an accidental note name, None for a natural."""
    if "#" in name:
        return Preference.SHARP
    if name[1:2] == "b":
        return Preference.FLAT
    return None


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


def key_preference(key: str) -> Preference:
    """Derive the sharp/flat bias of a key from its conventional signature.

    An accidental written on the tonic decides (``Bb``, ``F#m``).  Natural
    tonics follow the circle of fifths: F major and D/G/C/F minor are flat
    keys, every other natural tonic is a sharp key.  Unrecognised key text
    falls back to SHARP.

    Example::

        key_preference("F")   -> Preference.FLAT   (Bb, not A#)
        key_preference("Em")  -> Preference.SHARP
    """
    m = KEY_RE.match(normalize_accidentals(key.strip()))
    if not m:
        return Preference.SHARP
    letter, accidental, mode = m.groups()
    if accidental == "b":
        return Preference.FLAT
    if accidental == "#":
        return Preference.SHARP
    is_minor = bool(mode) and mode.lower() in ("m", "min", "minor")
    return conventional_preference(_NATURALS[letter.upper()], minor=is_minor)


def conventional_preference(tonic: int, minor: bool = False) -> Preference:
    """Spelling family of the key on *tonic*, choosing the simpler signature.

    Minor keys follow their relative major.  The enharmonic pair F#/Gb
    resolves to sharps.
    """
    major_tonic = (tonic + 3) % 12 if minor else tonic
    return Preference.FLAT if major_tonic in _FLAT_MAJOR_PITCHES else Preference.SHARP


def coerce_preference(value: Preference | str | None) -> Preference | None:
    """Turn user input (enum, ``"sharp"``, ``"#"``, ``"b"``, a key name) into a Preference."""
    if value is None or isinstance(value, Preference):
        return value
    text = value.strip()
    lowered = text.lower()
    if text == "#" or lowered in ("sharp", "sharps"):
        return Preference.SHARP
    if text == "b" or lowered in ("flat", "flats"):
        return Preference.FLAT
    if lowered in ("auto", ""):
        return Preference.AUTO
    return key_preference(text)


def resolve_preference(
    preference: Preference | str | None, hint: Preference | None = None
) -> Preference:
    """Collapse a preference to SHARP or FLAT.

    AUTO and None defer to *hint* (the spelling family a chord was written
    in), then to SHARP.
    """
    pref = coerce_preference(preference)
    if pref in (Preference.SHARP, Preference.FLAT):
        return pref
    if hint in (Preference.SHARP, Preference.FLAT):
        return hint
    return Preference.SHARP


def spell(pitch: int, preference: Preference | str | None = Preference.SHARP) -> str:
    """Return the name of *pitch* under *preference*.

    *preference* may be a :class:`Preference`, a literal such as ``"flat"``,
    or a key name (``"F"``, ``"Ebm"``) whose signature decides the spelling.
    """
    names = FLAT_NAMES if resolve_preference(preference) is Preference.FLAT else SHARP_NAMES
    return names[pitch % 12]
