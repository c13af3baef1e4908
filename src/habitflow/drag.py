"""
Pointer-gesture driver for the dashboard grid.

Turns raw pointer deltas into grid cells, keeps a live DragState for the
renderer, and hands the final drop to the LayoutEngine. Not thread safe;
call it from the UI event loop only.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Sequence

from ._util import clamp, round_half_up
from .grid import create_occupation_map
from .layout import GestureState, LayoutEngine
from .models import DragState, GridPosition, Widget

log = logging.getLogger(__name__)

ACTIVATION_DISTANCE = 8
CONTAINER_PADDING = 32
MIN_CELL_SIZE = 40
MAX_CELL_SIZE = 80

# cell states for preview_cells()
FREE = "free"
OCCUPIED = "occupied"
PREVIEW_VALID = "preview-valid"
PREVIEW_DISPLACE = "preview-displace"
PREVIEW_INVALID = "preview-invalid"


def compute_cell_size(
    container_w: float,
    container_h: float,
    cols: int,
    rows: int,
    gap: int,
    padding: int = CONTAINER_PADDING,
) -> int:
    avail_w = container_w - padding
    avail_h = container_h - padding
    by_w = (avail_w - (cols - 1) * gap) / cols
    by_h = (avail_h - (rows - 1) * gap) / rows
    return int(clamp(MIN_CELL_SIZE, MAX_CELL_SIZE, math.floor(min(by_w, by_h))))


class DragController:
    def __init__(
        self,
        engine: LayoutEngine,
        gap: int = 8,
        cell_size: int = 60,
        activation_distance: float = ACTIVATION_DISTANCE,
        on_commit: Callable[[list[Widget]], bool] | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self.engine = engine
        self.gap = gap
        self.cell_size = cell_size
        self.activation_distance = activation_distance
        self.on_commit = on_commit
        self.on_error = on_error

        self.drag_state: DragState | None = None
        self._pending: Widget | None = None
        self._active = False

    # -------- geometry --------

    @property
    def pitch(self) -> int:
        return self.cell_size + self.gap

    def resize(self, container_w: float, container_h: float) -> int:
        g = self.engine.grid
        self.cell_size = compute_cell_size(container_w, container_h, g.cols, g.rows, self.gap)
        return self.cell_size

    def grid_pixel_size(self) -> tuple[int, int]:
        g = self.engine.grid
        return g.cols * self.pitch - self.gap, g.rows * self.pitch - self.gap

    def widget_rect_px(self, widget: Widget) -> tuple[int, int, int, int]:
        """(left, top, width, height) in pixels, gaps between spanned cells included."""
        return (
            widget.x * self.pitch,
            widget.y * self.pitch,
            widget.w * self.cell_size + (widget.w - 1) * self.gap,
            widget.h * self.cell_size + (widget.h - 1) * self.gap,
        )

    def pixel_to_grid(self, px: float, py: float, w: int = 1, h: int = 1) -> GridPosition:
        """Nearest cell for a top-left pixel, clamped so a w x h widget stays on the grid."""
        g = self.engine.grid
        gx = round_half_up(px / self.pitch)
        gy = round_half_up(py / self.pitch)
        gx = int(clamp(0, g.cols - 1, gx))
        gy = int(clamp(0, g.rows - 1, gy))
        return GridPosition(int(clamp(0, g.cols - w, gx)), int(clamp(0, g.rows - h, gy)))

    # -------- gesture --------

    @property
    def is_dragging(self) -> bool:
        return self._active

    def pointer_down(self, widget_id: str) -> bool:
        if self._pending is not None or self.engine.state is not GestureState.IDLE:
            return False
        wd = self.engine.get(widget_id)
        if wd is None or not wd.visible:
            return False
        self._pending = wd
        return True

    def pointer_move(self, dx: float, dy: float) -> DragState | None:
        """dx/dy are cumulative since pointer_down."""
        wd = self._pending
        if wd is None:
            return None

        if not self._active:
            if math.hypot(dx, dy) <= self.activation_distance:
                return None
            self.engine.begin(wd.id)
            self._active = True
            self.drag_state = DragState(wd.id)
            log.debug("drag started for %s", wd.id)

        pos = self.pixel_to_grid(wd.x * self.pitch + dx, wd.y * self.pitch + dy, wd.w, wd.h)
        placement = self.engine.preview(pos.x, pos.y)
        self.drag_state = DragState(wd.id, pos, placement.is_valid, placement.will_displace)
        return self.drag_state

    def pointer_up(self) -> list[Widget] | None:
        """End the gesture. Returns the committed widget list, or None if nothing changed."""
        state = self.drag_state
        was_active = self._active
        self._reset()

        if not was_active or state is None:
            return None
        if not state.is_valid_drop or state.preview_position is None:
            self.engine.cancel()
            return None

        pos = state.preview_position
        committed = self.engine.commit(pos.x, pos.y)
        if committed is None:
            log.info("drop of %s at (%d, %d) no longer fits, layout kept", state.active_widget_id, pos.x, pos.y)
            return None
        self._persist(committed)
        return committed

    def cancel(self) -> None:
        if self._active:
            self.engine.cancel()
        self._reset()

    def _reset(self) -> None:
        self._pending = None
        self._active = False
        self.drag_state = None

    def _persist(self, widgets: list[Widget]) -> None:
        if self.on_commit is None:
            return
        if self.on_commit(widgets):
            return
        # the in-memory layout stays; only the save is lost
        log.warning("layout commit could not be saved")
        if self.on_error is not None:
            self.on_error("Could not save the dashboard layout. Your changes are kept for this session.")

    # -------- rendering feedback --------

    def preview_cells(self, widgets: Sequence[Widget] | None = None) -> list[list[str]]:
        """rows x cols cell states for drawing the grid under a drag."""
        g = self.engine.grid
        widgets = self.engine.widgets if widgets is None else widgets
        state = self.drag_state
        active_id = state.active_widget_id if state else None

        occ = create_occupation_map(widgets, exclude_id=active_id, grid=g)
        cells = [[OCCUPIED if occ[y][x] else FREE for x in range(g.cols)] for y in range(g.rows)]

        if state is None or state.preview_position is None:
            return cells
        wd = self.engine.get(state.active_widget_id)
        if wd is None:
            return cells

        if not state.is_valid_drop:
            mark = PREVIEW_INVALID
        elif state.will_displace:
            mark = PREVIEW_DISPLACE
        else:
            mark = PREVIEW_VALID
        p = state.preview_position
        for y in range(p.y, min(g.rows, p.y + wd.h)):
            for x in range(p.x, min(g.cols, p.x + wd.w)):
                cells[y][x] = mark
        return cells
