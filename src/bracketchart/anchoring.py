"""Character-index anchoring rules shared by the document model and editor.

A chord's ``char_index`` names the lyric character it sits immediately
before; ``len(lyric)`` is the slot after the last character.  These helpers
are pure: they compute indices and never touch a document.

  1. clamp_char_index()     — keep an index inside ``0..len(lyric)``
  2. adjust_for_edit()      — follow the lyric when text is inserted/deleted
  3. nearest_free_slot()    — where a displaced ("nudged") chord goes
  4. pixel_to_char_index()  — pointer offset → monospace column
  5. follow_word()          — keep a chord on its word when a lyric is retyped
"""

import math
import re

_WORD_RE = re.compile(r"\S+")


def clamp_char_index(char_index: int, lyric_length: int) -> int:
    return max(0, min(char_index, lyric_length))


def adjust_for_edit(char_index: int, position: int, deleted: int, inserted: int) -> int:
    """Return where *char_index* lands after a lyric splice.

    The splice removes *deleted* characters at *position* and then inserts
    *inserted* characters there.  Anchors after the edit shift with the text,
    anchors inside a replaced run collapse onto *position*, and for a pure
    insertion an anchor sitting exactly at *position* follows the inserted
    text (it stays on the syllable it was written over).

    Example::

        lyric  "Amazing grace"      chord at 8 ("grace")
        insert "so " at 8        -> chord at 11, still before "grace"
    """
    if deleted:
        end = position + deleted
        if char_index >= end:
            return char_index - deleted + inserted
        if char_index >= position:
            return position
        return char_index
    if char_index >= position:
        return char_index + inserted
    return char_index


def nearest_free_slot(
    occupied: set[int], target: int, lyric_length: int, prefer_left: bool = False
) -> int | None:
    """Return the free slot in ``0..lyric_length`` closest to *target*.

    Ties go left when *prefer_left* is set, right otherwise.  Returns None
    when every slot is taken.
    """
    for distance in range(1, lyric_length + 1):
        left, right = target - distance, target + distance
        candidates = (left, right) if prefer_left else (right, left)
        for slot in candidates:
            if 0 <= slot <= lyric_length and slot not in occupied:
                return slot
    return None


def pixel_to_char_index(offset_x: float, char_width: float, max_index: int) -> int:
    """Convert a horizontal pixel offset from the line origin to a column."""
    if char_width <= 0:
        raise ValueError("char_width must be positive")
    # Half-up, so a pointer exactly between two columns takes the right one.
    return clamp_char_index(math.floor(offset_x / char_width + 0.5), max_index)


def char_index_to_pixel(char_index: int, char_width: float) -> float:
    return char_index * char_width


def _word_at(lyric: str, char_index: int) -> tuple[str, int, int] | None:
    """Return ``(word, start, occurrence)`` for the word under *char_index*.

    *occurrence* counts earlier copies of the same word in the line.
    """
    seen: dict[str, int] = {}
    for m in _WORD_RE.finditer(lyric):
        if m.start() <= char_index < m.end():
            return m.group(), m.start(), seen.get(m.group(), 0)
        seen[m.group()] = seen.get(m.group(), 0) + 1
    return None


def _word_start(lyric: str, word: str, occurrence: int) -> int | None:
    count = 0
    for m in _WORD_RE.finditer(lyric):
        if m.group() == word:
            if count == occurrence:
                return m.start()
            count += 1
    return None


def follow_word(char_index: int, old_lyric: str, new_lyric: str) -> int:
    """Return where a chord goes when *old_lyric* is replaced by *new_lyric*.

    A chord over a word stays on the same occurrence of that word, at the
    same offset inside it; failing that, on the word's first occurrence.  A
    chord over whitespace, or over a word that no longer exists, keeps its
    index clamped to the new length.

    Example::

        "Amazing grace how sweet"      chord at 18 ("sweet")
        "Amazing grace, how very sweet" -> chord at 24
    """
    found = _word_at(old_lyric, char_index)
    if found is None:
        return clamp_char_index(char_index, len(new_lyric))
    word, start, occurrence = found
    new_start = _word_start(new_lyric, word, occurrence)
    if new_start is None:
        new_start = _word_start(new_lyric, word, 0)
    if new_start is None:
        return clamp_char_index(char_index, len(new_lyric))
    return clamp_char_index(new_start + char_index - start, len(new_lyric))
