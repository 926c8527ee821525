"""Direct-manipulation editing of chord placements.

The host UI forwards pointer and keyboard events; :class:`PlacementEditor`
turns them into document commands.  It owns no timers or event loop.

Gesture state machine::

    IDLE --begin_drag--> SELECTING --pointer moves > threshold--> DRAGGING
      ^                      |                                       |
      +---- commit/cancel ---+--------------- commit/cancel ---------+

A press that never passes the movement threshold is a selection click and
moves nothing.  While dragging, only a *pending* index is tracked; the
document changes once, on :meth:`PlacementEditor.commit_drag`, so
cancelling always leaves the chord exactly where it started.
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto

from .anchoring import char_index_to_pixel, clamp_char_index, pixel_to_char_index
from .chords import chord_suggestions, validate_chord
from .config import EditorConfig
from .exceptions import ValidationError
from .models import ChordPlacement, ChordRef, Document

logger = logging.getLogger(__name__)


class DragState(Enum):
    IDLE = auto()
    SELECTING = auto()
    DRAGGING = auto()


@dataclass
class _Gesture:
    ref: ChordRef
    start_x: float
    origin_index: int
    pending_index: int
    lyric_length: int


class PlacementEditor:
    """Selection, drag, keyboard nudge and in-place edit for one document."""

    def __init__(self, document: Document, config: EditorConfig | None = None):
        self.document = document
        self.config = config or EditorConfig()
        self.state = DragState.IDLE
        self.selection: set[ChordRef] = set()
        self.editing: ChordRef | None = None
        self._gesture: _Gesture | None = None

    # --- Geometry ---

    def column_at(self, pointer_x: float, lyric_length: int) -> int:
        """Column under *pointer_x*, clamped to ``0..lyric_length``."""
        return pixel_to_char_index(
            pointer_x - self.config.line_origin_x, self.config.char_width, lyric_length
        )

    def chord_x(self, ref: ChordRef) -> float:
        """Pixel offset of a chord from the line origin."""
        return char_index_to_pixel(self.document.resolve(ref).char_index, self.config.char_width)

    # --- Selection ---

    def select(self, ref: ChordRef, additive: bool = False) -> None:
        self.document.resolve(ref)
        if not additive:
            self.selection.clear()
        self.selection.add(ref)

    def toggle(self, ref: ChordRef) -> None:
        if ref in self.selection:
            self.selection.discard(ref)
        else:
            self.select(ref, additive=True)

    def clear_selection(self) -> None:
        self.selection.clear()

    # --- Drag ---

    @property
    def pending_index(self) -> int | None:
        """Column the dragged chord would land on, or None when not dragging."""
        if self.state != DragState.DRAGGING:
            return None
        return self._gesture.pending_index

    def begin_drag(self, ref: ChordRef, pointer_x: float) -> None:
        """Pointer pressed on a chord.  Selects it; no drag starts yet."""
        if self.state != DragState.IDLE:
            self.cancel_drag()
        placement = self.document.resolve(ref)
        _, _, line = self.document.find_line(ref.line_id)
        if ref not in self.selection:
            self.select(ref)
        self._gesture = _Gesture(
            ref=ref,
            start_x=pointer_x,
            origin_index=placement.char_index,
            pending_index=placement.char_index,
            lyric_length=len(line.lyric_text),
        )
        self.state = DragState.SELECTING

    def update_drag(self, pointer_x: float) -> int | None:
        """Pointer moved.  Returns the pending column once dragging."""
        if self.state == DragState.IDLE:
            return None
        gesture = self._gesture
        if self.state == DragState.SELECTING:
            if abs(pointer_x - gesture.start_x) <= self.config.drag_threshold:
                return None
            self.state = DragState.DRAGGING
            logger.debug("Drag started for chord %s", gesture.ref.chord_id)
        gesture.pending_index = self.column_at(pointer_x, gesture.lyric_length)
        return gesture.pending_index

    def commit_drag(self) -> list[ChordPlacement]:
        """Pointer released.  Moves the chord if a drag happened.

        Returns the chords nudged aside by the move.  A ValidationError from
        the move propagates after the gesture is reset; the document is
        unchanged in that case.
        """
        gesture, state = self._gesture, self.state
        self._reset_gesture()
        if state != DragState.DRAGGING:
            return []
        if gesture.pending_index == gesture.origin_index:
            # Dropped where it started: still a completed move for the flags
            self.document.clear_nudges(gesture.ref.line_id)
            return []
        return self.document.move_placement(gesture.ref.chord_id, gesture.pending_index)

    def cancel_drag(self) -> None:
        """Abandon the gesture; the chord stays at its pre-drag index."""
        self._reset_gesture()

    def _reset_gesture(self) -> None:
        self._gesture = None
        self.state = DragState.IDLE

    # --- Keyboard nudge ---

    def nudge_selection(self, direction: int, large: bool = False) -> list[ChordPlacement]:
        """Shift every selected chord left (-1) or right (+1) by one step.

        All chords move or none do.  Returns the chords displaced on the way.
        """
        if not self.selection:
            return []
        step = self.config.large_nudge_step if large else self.config.nudge_step
        delta = step if direction > 0 else -step

        draft = self.document.copy()
        displaced: list[ChordPlacement] = []
        # Lead with the chord furthest in the direction of travel
        refs = sorted(self.selection, key=lambda r: draft.resolve(r).char_index, reverse=delta > 0)
        for ref in refs:
            placement = draft.resolve(ref)
            _, _, line = draft.find_line(ref.line_id)
            target = clamp_char_index(placement.char_index + delta, len(line.lyric_text))
            if target != placement.char_index:
                displaced.extend(draft.move_placement(ref.chord_id, target))

        self.document.sections = draft.sections
        return displaced

    # --- Click to add / in-place edit ---

    def insert_at_pointer(self, line_id: str, pointer_x: float, symbol_text: str) -> ChordPlacement:
        """Add a chord at the column under the pointer."""
        _, _, line = self.document.find_line(line_id)
        length = len(getattr(line, "lyric_text", ""))
        return self.document.insert_placement(line_id, self.column_at(pointer_x, length), symbol_text)

    def begin_edit(self, ref: ChordRef) -> str:
        """Double-click on a chord: returns the text to show in the edit box."""
        placement = self.document.resolve(ref)
        self.editing = ref
        return placement.text

    def edit_suggestions(self, partial: str) -> list[str]:
        """Completions for the chord text typed so far."""
        return chord_suggestions(partial)

    def commit_edit(self, text: str) -> ChordPlacement:
        """Apply edited chord text, keeping the chord's id and anchor.

        Text that :func:`~bracketchart.chords.validate_chord` rejects raises
        ValidationError with the reason and a hint.  On any ValidationError
        the edit stays open so the user can correct it.
        """
        if self.editing is None:
            raise ValidationError("No chord is being edited")
        check = validate_chord(text)
        if not check.is_valid:
            reason = f"{check.error}. {check.suggestion}" if check.suggestion else check.error
            raise ValidationError(reason, line_id=self.editing.line_id, chord_id=self.editing.chord_id)
        placement = self.document.replace_symbol(self.editing.chord_id, text.strip())
        self.editing = None
        return placement

    def cancel_edit(self) -> None:
        self.editing = None
