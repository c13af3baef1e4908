"""
Grid geometry for the dashboard.

Pure functions over a widget snapshot. Hidden widgets never take part in
collision or placement. Bad geometry (out of bounds, size < 1) is an answer,
not an error: these helpers return False / None and never raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import GridPosition, Widget


@dataclass(frozen=True)
class GridSpec:
    cols: int = 10
    rows: int = 8

    def __post_init__(self) -> None:
        if self.cols < 1 or self.rows < 1:
            raise ValueError(f"grid must be at least 1x1, got {self.cols}x{self.rows}")

    def fits(self, x: int, y: int, w: int, h: int) -> bool:
        if w < 1 or h < 1:
            return False
        return x >= 0 and y >= 0 and x + w <= self.cols and y + h <= self.rows


DEFAULT_GRID = GridSpec(10, 8)

Rect = tuple[int, int, int, int]


def rect_of(widget: Widget) -> Rect:
    return (widget.x, widget.y, widget.w, widget.h)


def rects_overlap(a: Rect, b: Rect) -> bool:
    """Touching edges is not overlap."""
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return ax < bx + bw and ax + aw > bx and ay < by + bh and ay + ah > by


def _blockers(widgets: Iterable[Widget], exclude: set[str]) -> list[Widget]:
    return [w for w in widgets if w.visible and w.id not in exclude]


def is_valid_position(
    widgets: Iterable[Widget],
    x: int,
    y: int,
    w: int,
    h: int,
    exclude_id: str | None = None,
    grid: GridSpec = DEFAULT_GRID,
) -> bool:
    if not grid.fits(x, y, w, h):
        return False
    exclude = {exclude_id} if exclude_id is not None else set()
    rect = (x, y, w, h)
    for other in _blockers(widgets, exclude):
        if rects_overlap(rect, rect_of(other)):
            return False
    return True


def find_overlapping_widgets(
    widgets: Iterable[Widget],
    x: int,
    y: int,
    w: int,
    h: int,
    exclude_id: str | None = None,
) -> list[Widget]:
    """Visible widgets hit by the rectangle, in snapshot order."""
    exclude = {exclude_id} if exclude_id is not None else set()
    rect = (x, y, w, h)
    return [o for o in _blockers(widgets, exclude) if rects_overlap(rect, rect_of(o))]


def find_first_available_position(
    widgets: Iterable[Widget],
    w: int,
    h: int,
    exclude_ids: Iterable[str] = (),
    grid: GridSpec = DEFAULT_GRID,
) -> GridPosition | None:
    """
    Row-major first fit: y outer, x inner, from (0, 0).
    The scan order is the tie-break, so results are reproducible.
    """
    if w < 1 or h < 1 or w > grid.cols or h > grid.rows:
        return None

    blockers = [rect_of(o) for o in _blockers(widgets, set(exclude_ids))]
    for y in range(grid.rows - h + 1):
        for x in range(grid.cols - w + 1):
            rect = (x, y, w, h)
            if not any(rects_overlap(rect, b) for b in blockers):
                return GridPosition(x, y)
    return None


def create_occupation_map(
    widgets: Iterable[Widget],
    exclude_id: str | None = None,
    grid: GridSpec = DEFAULT_GRID,
) -> list[list[bool]]:
    """rows x cols bitmap of covered cells. For drawing only, never for placement."""
    occ = [[False] * grid.cols for _ in range(grid.rows)]
    exclude = {exclude_id} if exclude_id is not None else set()
    for o in _blockers(widgets, exclude):
        for yy in range(max(0, o.y), min(grid.rows, o.y + o.h)):
            for xx in range(max(0, o.x), min(grid.cols, o.x + o.w)):
                occ[yy][xx] = True
    return occ


def overlapping_pairs(widgets: Iterable[Widget]) -> list[tuple[str, str]]:
    vis = [w for w in widgets if w.visible]
    out: list[tuple[str, str]] = []
    for i, a in enumerate(vis):
        for b in vis[i + 1 :]:
            if rects_overlap(rect_of(a), rect_of(b)):
                out.append((a.id, b.id))
    return out
