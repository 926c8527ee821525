"""Chord chart document model.

Containment is strict: a :class:`Document` owns its :class:`Section` objects,
a section owns its lines, and a :class:`ChordLyricsLine` owns its
:class:`ChordPlacement` objects.  Nothing holds a back-reference; the host
addresses a chord with a transient :class:`ChordRef` or by id.

Every mutating method on :class:`Document` works on a copy of the object it
changes, checks the invariants, and only then swaps the copy in.  A failed
call raises :class:`~bracketchart.exceptions.ValidationError` and leaves the
document exactly as it was.

Invariants
----------
- ``0 <= placement.char_index <= len(line.lyric_text)``.
- Ids are unique across the whole document.
- A move or insert never leaves two chords on one slot: occupants are
  nudged to the nearest free slot.  Clamping after a lyric edit may stack
  chords on the end slot instead; chords never vanish from a text edit.
- Section headers and lyric text are single lines; chord text holds no
  brackets.

Equality compares chart content only: ids, nudge flags, metadata and the
transposition offset are ignored, so ``parse(serialize(doc)) == doc``.
"""

import copy
import logging
import uuid
from dataclasses import dataclass, field, fields

from .anchoring import adjust_for_edit, clamp_char_index, follow_word, nearest_free_slot
from .chords import OpaqueSymbol, Symbol, format_chord, parse_chord
from .exceptions import ValidationError
from .pitch import Preference
from .transpose import normalize_offset, target_key_preference, transpose, transpose_bar_line, transpose_key

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Lines and placements
# ---------------------------------------------------------------------------


@dataclass
class ChordPlacement:
    """A chord anchored immediately before ``lyric_text[char_index]``."""

    symbol: Symbol
    char_index: int
    id: str = field(default_factory=new_id, compare=False)
    was_nudged: bool = field(default=False, compare=False)

    @property
    def text(self) -> str:
        return format_chord(self.symbol)


@dataclass
class ChordLyricsLine:
    """A lyric line with chords anchored by character index.

    ``placements`` is kept in display order (sorted by ``char_index``; chords
    sharing a slot keep their relative order).
    """

    lyric_text: str = ""
    placements: list[ChordPlacement] = field(default_factory=list)
    id: str = field(default_factory=new_id, compare=False)

    def placement(self, chord_id: str) -> ChordPlacement | None:
        return next((p for p in self.placements if p.id == chord_id), None)

    def occupants(self, char_index: int) -> list[ChordPlacement]:
        return [p for p in self.placements if p.char_index == char_index]

    def _sort(self) -> None:
        self.placements.sort(key=lambda p: p.char_index)


@dataclass
class BarNotationLine:
    """An instrumental bar grid such as ``||:C |G |Am |F :||``, kept verbatim."""

    raw_content: str
    id: str = field(default_factory=new_id, compare=False)


Line = ChordLyricsLine | BarNotationLine


@dataclass
class Section:
    """A labelled block of lines.  An empty header marks an unlabelled lead-in."""

    header: str = ""
    lines: list[Line] = field(default_factory=list)
    id: str = field(default_factory=new_id, compare=False)


@dataclass(frozen=True)
class ChordRef:
    """Transient address of one chord: the owning line and the chord."""

    line_id: str
    chord_id: str


@dataclass
class Metadata:
    """Song details carried alongside the chart; never part of the notation body."""

    title: str | None = None
    songwriters: list[str] = field(default_factory=list)
    album: str | None = None
    recorded_by: str | None = None
    key: str | None = None
    tempo: float | None = None
    time_signature: str | None = None
    ccli_song_number: str | None = None
    publisher: str | None = None
    copyright: str | None = None

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


@dataclass
class Document:
    """An ordered list of sections plus song metadata."""

    sections: list[Section] = field(default_factory=list)
    metadata: Metadata = field(default_factory=Metadata, compare=False)
    transposition_offset: int = field(default=0, compare=False)

    # --- Lookup ---

    def iter_lines(self):
        for section in self.sections:
            yield from section.lines

    def section(self, section_id: str) -> Section:
        for section in self.sections:
            if section.id == section_id:
                return section
        raise ValidationError(f"Unknown section id {section_id!r}")

    def find_line(self, line_id: str) -> tuple[Section, int, Line]:
        """Return ``(section, index, line)`` for *line_id*."""
        for section in self.sections:
            for index, line in enumerate(section.lines):
                if line.id == line_id:
                    return section, index, line
        raise ValidationError(f"Unknown line id {line_id!r}", line_id=line_id)

    def find_placement(self, chord_id: str) -> tuple[ChordLyricsLine, ChordPlacement]:
        for line in self.iter_lines():
            if isinstance(line, ChordLyricsLine):
                placement = line.placement(chord_id)
                if placement is not None:
                    return line, placement
        raise ValidationError(f"Unknown chord id {chord_id!r}", chord_id=chord_id)

    def resolve(self, ref: ChordRef) -> ChordPlacement:
        """Look up a :class:`ChordRef`, checking that the chord lives on that line."""
        line = self._chord_line(ref.line_id)
        placement = line.placement(ref.chord_id)
        if placement is None:
            raise ValidationError(
                f"Chord {ref.chord_id!r} is not on line {ref.line_id!r}",
                line_id=ref.line_id,
                chord_id=ref.chord_id,
            )
        return placement

    def _chord_line(self, line_id: str) -> ChordLyricsLine:
        _, _, line = self.find_line(line_id)
        if not isinstance(line, ChordLyricsLine):
            raise ValidationError("Bar notation lines do not hold placements", line_id=line_id)
        return line

    # --- Placement mutations ---

    def insert_placement(self, line_id: str, char_index: int, symbol_text: str) -> ChordPlacement:
        """Anchor a new chord on *line_id*; an occupant of the slot is nudged aside."""
        line = self._chord_line(line_id)
        _check_symbol_text(symbol_text, line_id=line_id)
        _check_index(char_index, line, line_id=line_id)

        draft = copy.deepcopy(line)
        placement = ChordPlacement(symbol=parse_chord(symbol_text), char_index=char_index)
        draft.placements.append(placement)
        _settle(draft, placement, char_index, origin=None)
        self._commit_line(line_id, draft)
        return placement

    def move_placement(self, chord_id: str, new_char_index: int) -> list[ChordPlacement]:
        """Move a chord to *new_char_index* and return the chords it displaced.

        Displaced chords are flagged ``was_nudged``; flags left over from an
        earlier move on the same line are cleared first.
        """
        line, placement = self.find_placement(chord_id)
        _check_index(new_char_index, line, line_id=line.id, chord_id=chord_id)

        draft = copy.deepcopy(line)
        mover = draft.placement(chord_id)
        displaced = _settle(draft, mover, new_char_index, origin=placement.char_index)
        self._commit_line(line.id, draft)
        return displaced

    def remove_placement(self, chord_id: str) -> ChordPlacement:
        line, placement = self.find_placement(chord_id)
        line.placements = [p for p in line.placements if p.id != chord_id]
        return placement

    def replace_symbol(self, chord_id: str, symbol_text: str) -> ChordPlacement:
        """Swap a chord's symbol, keeping its id and anchor."""
        line, placement = self.find_placement(chord_id)
        _check_symbol_text(symbol_text, line_id=line.id, chord_id=chord_id)
        placement.symbol = parse_chord(symbol_text)
        return placement

    def clear_nudges(self, line_id: str | None = None) -> None:
        """Clear ``was_nudged`` flags on one line, or on every line."""
        for line in self.iter_lines():
            if isinstance(line, ChordLyricsLine) and line_id in (None, line.id):
                for placement in line.placements:
                    placement.was_nudged = False

    # --- Lyric mutations ---

    def set_lyric_text(self, line_id: str, new_text: str, follow_words: bool = True) -> None:
        """Replace a line's lyric.

        Each chord stays on the word it was over when that word is still in
        the new text (see :func:`~bracketchart.anchoring.follow_word`);
        otherwise, or with *follow_words* off, its index is clamped to the
        new length.  No chord is ever dropped.
        """
        line = self._chord_line(line_id)
        _check_single_line(new_text, "Lyric text", line_id=line_id)
        draft = copy.deepcopy(line)
        draft.lyric_text = new_text
        for placement in draft.placements:
            if follow_words:
                placement.char_index = follow_word(placement.char_index, line.lyric_text, new_text)
            else:
                placement.char_index = clamp_char_index(placement.char_index, len(new_text))
        draft._sort()
        self._commit_line(line_id, draft)

    def splice_lyric(self, line_id: str, position: int, deleted: int, inserted: str = "") -> None:
        """Edit a lyric in place, carrying chord anchors along with the text.

        Removes *deleted* characters at *position*, then inserts *inserted*.
        """
        line = self._chord_line(line_id)
        _check_single_line(inserted, "Lyric text", line_id=line_id)
        if position < 0 or deleted < 0 or position + deleted > len(line.lyric_text):
            raise ValidationError(
                f"Edit range {position}+{deleted} outside lyric of length {len(line.lyric_text)}",
                line_id=line_id,
            )
        draft = copy.deepcopy(line)
        draft.lyric_text = line.lyric_text[:position] + inserted + line.lyric_text[position + deleted:]
        for placement in draft.placements:
            placement.char_index = adjust_for_edit(placement.char_index, position, deleted, len(inserted))
        draft._sort()
        self._commit_line(line_id, draft)

    # --- Structure mutations ---

    def insert_section(self, index: int, header: str = "") -> Section:
        _check_single_line(header, "Section header")
        section = Section(header=header)
        self.sections.insert(index, section)
        return section

    def remove_section(self, section_id: str) -> Section:
        section = self.section(section_id)
        self.sections = [s for s in self.sections if s.id != section_id]
        return section

    def reorder_sections(self, section_ids: list[str]) -> None:
        """Reorder sections; *section_ids* must be a permutation of the current ids."""
        by_id = {s.id: s for s in self.sections}
        if sorted(section_ids) != sorted(by_id):
            raise ValidationError("Section order must list every section exactly once")
        self.sections = [by_id[sid] for sid in section_ids]

    def insert_line(self, section_id: str, index: int, line: Line | None = None) -> Line:
        """Insert *line* (a blank lyric line by default) at *index* in a section."""
        section = self.section(section_id)
        line = line if line is not None else ChordLyricsLine()
        _check_line(line)
        taken = {s.id for s in self.sections}
        for existing in self.iter_lines():
            taken.add(existing.id)
            if isinstance(existing, ChordLyricsLine):
                taken.update(p.id for p in existing.placements)
        new_ids = [line.id] + ([p.id for p in line.placements] if isinstance(line, ChordLyricsLine) else [])
        if taken & set(new_ids) or len(set(new_ids)) != len(new_ids):
            raise ValidationError("Line or chord id already in use", line_id=line.id)
        if not 0 <= index <= len(section.lines):
            raise ValidationError(f"Line index {index} out of range", line_id=line.id)
        section.lines.insert(index, line)
        return line

    def remove_line(self, line_id: str) -> Line:
        section, index, line = self.find_line(line_id)
        del section.lines[index]
        return line

    # --- Transposition ---

    def transpose(self, offset: int, preference: Preference | str | None = None) -> list[str]:
        """Transpose every chord in the chart and the metadata key.

        Without a *preference* the spelling follows the key being moved to
        (``key`` metadata), or each chord's own spelling when no key is set.
        The work is done on a copy that is swapped in at the end, so readers
        never see a half-transposed chart.  Returns the texts of chords that
        could not be transposed (opaque symbols), which are left as written.
        """
        shift = normalize_offset(offset)
        if preference is None:
            preference = target_key_preference(self.metadata.key, shift)

        sections = copy.deepcopy(self.sections)
        skipped: list[str] = []
        for section in sections:
            for line in section.lines:
                if isinstance(line, BarNotationLine):
                    line.raw_content = transpose_bar_line(line.raw_content, shift, preference)
                    continue
                for placement in line.placements:
                    if isinstance(placement.symbol, OpaqueSymbol):
                        skipped.append(placement.symbol.text)
                        continue
                    placement.symbol = transpose(placement.symbol, shift, preference)

        if skipped:
            logger.info("Left %d chord(s) untransposed: %s", len(skipped), ", ".join(skipped))

        self.sections = sections
        if self.metadata.key:
            self.metadata.key = transpose_key(self.metadata.key, shift, preference)
        self.transposition_offset = normalize_offset(self.transposition_offset + shift)
        return skipped

    # --- Validation ---

    def validate(self) -> None:
        """Check every invariant; raise ValidationError on the first breach."""
        seen: set[str] = set()
        for section in self.sections:
            _check_single_line(section.header, "Section header")
            for line in section.lines:
                _check_line(line)
                ids = [line.id] + ([p.id for p in line.placements] if isinstance(line, ChordLyricsLine) else [])
                for item_id in ids:
                    if item_id in seen:
                        raise ValidationError(f"Duplicate id {item_id!r}", line_id=line.id)
                    seen.add(item_id)

    def copy(self) -> "Document":
        return copy.deepcopy(self)

    def _commit_line(self, line_id: str, draft: ChordLyricsLine) -> None:
        _check_line(draft)
        section, index, _ = self.find_line(line_id)
        section.lines[index] = draft


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _settle(
    line: ChordLyricsLine, mover: ChordPlacement, target: int, origin: int | None
) -> list[ChordPlacement]:
    """Put *mover* on *target*, nudging any chord already there.

    Occupants go to the nearest free slot, preferring the side the mover
    came from.  Mutates *line*, which must be a draft.
    """
    for placement in line.placements:
        placement.was_nudged = False

    occupants = [p for p in line.occupants(target) if p is not mover]
    mover.char_index = target
    moving = {p.id for p in occupants}
    occupied = {p.char_index for p in line.placements if p.id not in moving}
    prefer_left = origin is not None and origin < target

    for occupant in occupants:
        slot = nearest_free_slot(occupied, target, len(line.lyric_text), prefer_left=prefer_left)
        if slot is None:
            raise ValidationError(
                f"No free slot near {target} for chord {occupant.text!r}",
                line_id=line.id,
                chord_id=occupant.id,
            )
        logger.debug("Nudged %s from %d to %d", occupant.text, target, slot)
        occupant.char_index = slot
        occupant.was_nudged = True
        occupied.add(slot)

    line._sort()
    return occupants


def _check_index(char_index: int, line: ChordLyricsLine, **context) -> None:
    if char_index < 0 or char_index > len(line.lyric_text):
        raise ValidationError(
            f"Character index {char_index} outside 0..{len(line.lyric_text)}", **context
        )


def _check_symbol_text(text: str, **context) -> None:
    if not text.strip():
        raise ValidationError("Chord text cannot be empty", **context)
    if any(ch in text for ch in "[]\n\r"):
        raise ValidationError(f"Chord text {text!r} cannot contain brackets or line breaks", **context)


def _check_single_line(text: str, what: str, **context) -> None:
    if "\n" in text or "\r" in text:
        raise ValidationError(f"{what} must be a single line", **context)


def _check_line(line: Line) -> None:
    if isinstance(line, BarNotationLine):
        _check_single_line(line.raw_content, "Bar notation", line_id=line.id)
        return
    _check_single_line(line.lyric_text, "Lyric text", line_id=line.id)
    for placement in line.placements:
        _check_index(placement.char_index, line, line_id=line.id, chord_id=placement.id)
        _check_symbol_text(placement.text, line_id=line.id, chord_id=placement.id)
