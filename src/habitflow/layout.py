"""
Dashboard layout engine.

Everything here works on a caller-owned snapshot (a list of Widget) and
returns a new list; nothing holds a module-level layout. Placement failures
come back as None so the caller can keep the last good layout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Sequence

from ._util import _now_ms
from .grid import (
    DEFAULT_GRID,
    GridSpec,
    find_first_available_position,
    find_overlapping_widgets,
    is_valid_position,
    overlapping_pairs,
)
from .models import GridPosition, GridSize, Layout, Tracker, Widget, make_widget

log = logging.getLogger(__name__)

MAX_WIDGETS = 64

SIZE_PRESETS: dict[str, tuple[int, int]] = {
    "small": (2, 2),
    "medium": (3, 2),
    "large": (4, 3),
}
SIZE_CYCLE = ("large", "medium", "medium", "small", "small", "large")


# -------------------------
# Core placement
# -------------------------


def relocate_widgets(
    widgets: Sequence[Widget],
    active_id: str,
    new_x: int,
    new_y: int,
    w: int,
    h: int,
    grid: GridSpec = DEFAULT_GRID,
) -> list[Widget] | None:
    """
    Move ``active_id`` to (new_x, new_y) with size w x h, pushing blockers aside.

    Blockers are taken in snapshot order and each one goes to the first free
    row-major slot of the set as updated so far (so two relocated widgets can
    never land on each other). One level only: a relocated widget is never
    itself treated as a new blocker. If any blocker has nowhere to go the
    whole move fails and None is returned.

    Returns the updated visible widgets; hidden widgets are not included.
    """
    visible = [wd for wd in widgets if wd.visible]
    if not any(wd.id == active_id for wd in visible):
        return None
    if not grid.fits(new_x, new_y, w, h):
        return None

    displaced = find_overlapping_widgets(visible, new_x, new_y, w, h, exclude_id=active_id)

    size = GridSize(w, h)
    pos = GridPosition(new_x, new_y)
    updated = [replace(wd, size=size, position=pos) if wd.id == active_id else wd for wd in visible]
    if not displaced:
        return updated

    for blocker in displaced:
        slot = find_first_available_position(updated, blocker.w, blocker.h, exclude_ids=[blocker.id], grid=grid)
        if slot is None:
            log.debug("no room for displaced widget %s, move of %s rejected", blocker.id, active_id)
            return None
        updated = [wd.moved_to(slot.x, slot.y) if wd.id == blocker.id else wd for wd in updated]

    return updated


def merge_hidden(original: Sequence[Widget], visible_updated: Iterable[Widget]) -> list[Widget]:
    """Fold an updated visible set back into the full list, keeping list order and hidden widgets."""
    by_id = {wd.id: wd for wd in visible_updated}
    return [by_id.get(wd.id, wd) for wd in original]


def resize_widget(
    widgets: Sequence[Widget],
    widget_id: str,
    w: int,
    h: int,
    grid: GridSpec = DEFAULT_GRID,
) -> list[Widget] | None:
    target = next((wd for wd in widgets if wd.id == widget_id and wd.visible), None)
    if target is None:
        return None
    moved = relocate_widgets(widgets, widget_id, target.x, target.y, w, h, grid)
    return merge_hidden(widgets, moved) if moved is not None else None


# -------------------------
# Per-gesture state machine
# -------------------------


class LayoutStateError(RuntimeError):
    """Raised for a call that makes no sense in the current gesture state."""


class GestureState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


@dataclass
class Placement:
    position: GridPosition
    is_valid: bool
    will_displace: bool
    widgets: list[Widget] | None = field(default=None, repr=False)


class LayoutEngine:
    """Idle -> Dragging -> (Committing | Cancelled) -> Idle, one gesture at a time."""

    def __init__(self, widgets: Sequence[Widget], grid: GridSpec = DEFAULT_GRID):
        self.grid = grid
        self.widgets: list[Widget] = list(widgets)
        self.state = GestureState.IDLE
        self.active_id: str | None = None

    @property
    def visible(self) -> list[Widget]:
        return [wd for wd in self.widgets if wd.visible]

    def get(self, widget_id: str) -> Widget | None:
        return next((wd for wd in self.widgets if wd.id == widget_id), None)

    def begin(self, widget_id: str) -> Widget:
        if self.state is not GestureState.IDLE:
            raise LayoutStateError(f"cannot start a drag while {self.state.value}")
        wd = self.get(widget_id)
        if wd is None or not wd.visible:
            raise LayoutStateError(f"no visible widget {widget_id!r}")
        self.state = GestureState.DRAGGING
        self.active_id = widget_id
        return wd

    def _active(self) -> Widget:
        if self.state is not GestureState.DRAGGING or self.active_id is None:
            raise LayoutStateError(f"no drag in progress (state={self.state.value})")
        wd = self.get(self.active_id)
        assert wd is not None
        return wd

    def preview(self, x: int, y: int) -> Placement:
        """Evaluate a drop at (x, y) without touching the layout."""
        wd = self._active()
        pos = GridPosition(x, y)
        if is_valid_position(self.widgets, x, y, wd.w, wd.h, exclude_id=wd.id, grid=self.grid):
            return Placement(pos, True, False)
        moved = relocate_widgets(self.widgets, wd.id, x, y, wd.w, wd.h, self.grid)
        if moved is not None:
            return Placement(pos, True, True, moved)
        return Placement(pos, False, False)

    def commit(self, x: int, y: int) -> list[Widget] | None:
        """
        Apply the drop. On success the new full widget list (hidden widgets
        merged back untouched) is stored and returned; on failure the layout
        is left exactly as it was and None is returned. Either way the
        gesture ends.
        """
        wd = self._active()
        self.state = GestureState.COMMITTING
        try:
            moved = relocate_widgets(self.widgets, wd.id, x, y, wd.w, wd.h, self.grid)
            if moved is None:
                return None
            self.widgets = merge_hidden(self.widgets, moved)
            return list(self.widgets)
        finally:
            self.state = GestureState.IDLE
            self.active_id = None

    def cancel(self) -> None:
        if self.state is not GestureState.DRAGGING:
            raise LayoutStateError(f"nothing to cancel (state={self.state.value})")
        self.state = GestureState.CANCELLED
        self.active_id = None
        self.state = GestureState.IDLE

    def replace_widgets(self, widgets: Sequence[Widget]) -> None:
        if self.state is not GestureState.IDLE:
            raise LayoutStateError("cannot swap layouts in the middle of a drag")
        self.widgets = list(widgets)


# -------------------------
# Default layout + reconciliation
# -------------------------


def tracker_widget_id(tracker_id: int) -> str:
    return f"tracker-{tracker_id}"


def _cycle_size(index: int) -> tuple[int, int]:
    return SIZE_PRESETS[SIZE_CYCLE[index % len(SIZE_CYCLE)]]


def _place_new(placed: list[Widget], widget_id: str, tracker_id: int | None, w: int, h: int, grid: GridSpec) -> Widget:
    slot = find_first_available_position(placed, w, h, grid=grid)
    if slot is None:
        # no room: keep it, hidden, so the user can make space and show it
        return make_widget(widget_id, 0, 0, min(w, grid.cols), min(h, grid.rows), False, tracker_id, "tracker")
    return make_widget(widget_id, slot.x, slot.y, w, h, True, tracker_id, "tracker")


def _active_trackers(trackers: Iterable[Tracker]) -> list[Tracker]:
    return sorted((t for t in trackers if not t.archived), key=lambda t: (t.order, t.id))


def default_layout(trackers: Iterable[Tracker], grid: GridSpec = DEFAULT_GRID) -> list[Widget]:
    placed: list[Widget] = []
    for i, t in enumerate(_active_trackers(trackers)):
        w, h = _cycle_size(i)
        placed.append(_place_new(placed, tracker_widget_id(t.id), t.id, w, h, grid))
    return placed


def normalize_widgets(widgets: Sequence[Widget], grid: GridSpec = DEFAULT_GRID) -> list[Widget]:
    """
    Repair visible widgets that break the bounds/no-overlap invariants.
    Good widgets keep their slot (first come, first served); the rest are
    re-placed by first fit or hidden when there is no room.
    """
    accepted: list[Widget] = []
    broken: list[Widget] = []
    for wd in widgets:
        if not wd.visible:
            continue
        if is_valid_position(accepted, wd.x, wd.y, wd.w, wd.h, grid=grid):
            accepted.append(wd)
        else:
            broken.append(wd)

    fixed: dict[str, Widget] = {}
    for wd in broken:
        w = max(1, min(wd.w, grid.cols))
        h = max(1, min(wd.h, grid.rows))
        slot = find_first_available_position(accepted, w, h, grid=grid)
        if slot is None:
            log.info("widget %s does not fit any more, hiding it", wd.id)
            fixed[wd.id] = replace(wd, size=GridSize(w, h), position=GridPosition(0, 0), visible=False)
        else:
            log.info("widget %s moved to (%d, %d) to repair layout", wd.id, slot.x, slot.y)
            repaired = replace(wd, size=GridSize(w, h), position=slot)
            fixed[wd.id] = repaired
            accepted.append(repaired)

    return [fixed.get(wd.id, wd) for wd in widgets]


def reconcile_layout(
    saved: Layout | None,
    trackers: Iterable[Tracker],
    grid: GridSpec = DEFAULT_GRID,
) -> Layout:
    """
    Bring a stored layout in line with the live tracker list.

    None means "never saved" and yields the default layout. A saved layout,
    even an empty one, is kept: widgets of deleted trackers are dropped,
    archived ones are hidden, broken geometry is repaired, and trackers
    without a widget are appended at the first free slot.
    """
    trackers = list(trackers)
    if saved is None:
        return Layout(default_layout(trackers, grid), grid.cols, grid.rows, _now_ms())

    by_id = {t.id: t for t in trackers}
    kept: list[Widget] = []
    for wd in saved.widgets:
        if wd.tracker_id is None:
            kept.append(wd)
            continue
        t = by_id.get(wd.tracker_id)
        if t is None:
            log.info("dropping widget %s: tracker %s is gone", wd.id, wd.tracker_id)
            continue
        kept.append(wd.with_visible(False) if t.archived else wd)

    kept = normalize_widgets(kept, grid)

    have = {wd.tracker_id for wd in kept if wd.tracker_id is not None}
    n_tracker_widgets = len(have)
    for t in _active_trackers(trackers):
        if t.id in have:
            continue
        w, h = _cycle_size(n_tracker_widgets)
        n_tracker_widgets += 1
        kept.append(_place_new(kept, tracker_widget_id(t.id), t.id, w, h, grid))

    return Layout(kept, grid.cols, grid.rows, saved.updated_at)


# -------------------------
# Other layout operations
# -------------------------


def compact_widgets(widgets: Sequence[Widget], grid: GridSpec = DEFAULT_GRID) -> list[Widget]:
    """
    Re-pack visible widgets top-left in (y, x) order.

    Widgets not yet re-packed keep blocking their current cells, so a widget
    only ever moves into space nobody holds and at worst stays where it is.
    A widget that finds no slot at all (its own cells were already taken in
    an overlapping input) is hidden, as normalize_widgets does.
    """
    pending = sorted((wd for wd in widgets if wd.visible), key=lambda wd: (wd.y, wd.x))
    placed: list[Widget] = []
    hidden: list[Widget] = []
    for i, wd in enumerate(pending):
        occupied = placed + pending[i + 1 :]
        slot = find_first_available_position(occupied, wd.w, wd.h, grid=grid)
        if slot is not None:
            placed.append(wd.moved_to(slot.x, slot.y))
        else:
            log.info("widget %s has no free slot while compacting, hiding it", wd.id)
            hidden.append(wd.with_visible(False))
    return merge_hidden(widgets, placed + hidden)


def set_widget_visibility(
    widgets: Sequence[Widget],
    widget_id: str,
    visible: bool,
    grid: GridSpec = DEFAULT_GRID,
) -> list[Widget] | None:
    target = next((wd for wd in widgets if wd.id == widget_id), None)
    if target is None:
        return None
    if not visible or target.visible:
        return [wd.with_visible(visible) if wd.id == widget_id else wd for wd in widgets]

    if is_valid_position(widgets, target.x, target.y, target.w, target.h, exclude_id=widget_id, grid=grid):
        shown = target.with_visible(True)
    else:
        slot = find_first_available_position(widgets, target.w, target.h, exclude_ids=[widget_id], grid=grid)
        if slot is None:
            return None
        shown = replace(target, position=slot, visible=True)
    return [shown if wd.id == widget_id else wd for wd in widgets]


# -------------------------
# Sortable list (secondary layout)
# -------------------------


@dataclass(frozen=True)
class SortableItem:
    id: str
    size: str
    position: int


def array_move(items: Sequence, from_index: int, to_index: int) -> list:
    out = list(items)
    out.insert(to_index, out.pop(from_index))
    return out


def default_sortable_items(ids: Iterable[str]) -> list[SortableItem]:
    return [SortableItem(i, SIZE_CYCLE[n % len(SIZE_CYCLE)], n) for n, i in enumerate(ids)]


def reorder_items(items: Sequence[SortableItem], active_id: str, over_id: str) -> list[SortableItem]:
    """Move active onto over's slot; every item's position becomes its index."""
    ids = [it.id for it in items]
    if active_id == over_id or active_id not in ids or over_id not in ids:
        return list(items)
    moved = array_move(items, ids.index(active_id), ids.index(over_id))
    return [replace(it, position=n) for n, it in enumerate(moved)]


# -------------------------
# Validation
# -------------------------


@dataclass
class ValidationError:
    field: str
    message: str


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: list[ValidationError] = field(default_factory=list)

    def add_error(self, field_name: str, message: str) -> None:
        self.is_valid = False
        self.errors.append(ValidationError(field=field_name, message=message))


def validate_layout(layout: Layout, grid: GridSpec = DEFAULT_GRID) -> ValidationResult:
    result = ValidationResult()

    if len(layout.widgets) > MAX_WIDGETS:
        result.add_error("widgets", f"Cannot have more than {MAX_WIDGETS} widgets (got {len(layout.widgets)})")

    seen: set[str] = set()
    for wd in layout.widgets:
        if wd.id in seen:
            result.add_error(f"widgets[{wd.id}]", "Duplicate widget id")
        seen.add(wd.id)

        if wd.w < 1 or wd.h < 1:
            result.add_error(f"widgets[{wd.id}].size", f"Size {wd.w}x{wd.h} must be at least 1x1")
        elif wd.w > grid.cols or wd.h > grid.rows:
            result.add_error(f"widgets[{wd.id}].size", f"Size {wd.w}x{wd.h} exceeds grid {grid.cols}x{grid.rows}")
        elif wd.visible and not grid.fits(wd.x, wd.y, wd.w, wd.h):
            result.add_error(f"widgets[{wd.id}].position", f"Position ({wd.x}, {wd.y}) is out of bounds")

    for a, b in overlapping_pairs(layout.widgets):
        result.add_error(f"widgets[{a}]", f"Overlaps widget {b}")

    return result
