"""
Per-page dashboard configuration.

Every tracking page runs the same layout engine; a page is only its grid
shape and the widgets it starts with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .grid import GridSpec
from .layout import normalize_widgets, reconcile_layout
from .models import Layout, Tracker, Widget, make_widget


@dataclass(frozen=True)
class PageConfig:
    name: str
    cols: int = 10
    rows: int = 8
    gap: int = 8
    initial_widgets: tuple[Widget, ...] = field(default_factory=tuple)
    # the tracker dashboard builds its widgets from the tracker list
    tracker_driven: bool = False

    @property
    def grid(self) -> GridSpec:
        return GridSpec(self.cols, self.rows)


def _w(widget_id: str, w: int, h: int, x: int, y: int) -> Widget:
    return make_widget(widget_id, x, y, w, h)


PAGES: dict[str, PageConfig] = {
    "dashboard": PageConfig("dashboard", tracker_driven=True),
    "mood": PageConfig(
        "mood",
        initial_widgets=(
            _w("current-mood", 2, 2, 0, 0),
            _w("daily-average", 2, 2, 2, 0),
            _w("mood-streak", 2, 2, 4, 0),
            _w("weekly-trend", 4, 3, 6, 0),
            _w("mood-factors", 3, 3, 0, 2),
            _w("mood-history", 3, 3, 3, 2),
        ),
    ),
    "exercise": PageConfig(
        "exercise",
        initial_widgets=(
            _w("todays-workout", 3, 3, 0, 0),
            _w("calories-burned", 2, 2, 3, 0),
            _w("active-minutes", 2, 2, 5, 0),
            _w("weekly-goal", 2, 2, 7, 0),
            _w("workout-streak", 2, 2, 3, 2),
            _w("recent-workouts", 4, 3, 0, 4),
            _w("personal-records", 3, 3, 5, 2),
        ),
    ),
    "gaming": PageConfig(
        "gaming",
        initial_widgets=(
            _w("playtime-today", 2, 2, 0, 0),
            _w("current-game", 3, 3, 2, 0),
            _w("achievements", 2, 2, 5, 0),
            _w("gaming-streak", 2, 2, 7, 0),
            _w("recent-games", 4, 3, 0, 3),
            _w("weekly-stats", 3, 2, 4, 3),
        ),
    ),
    "media": PageConfig(
        "media",
        initial_widgets=(
            _w("total-screen-time", 2, 2, 0, 0),
            _w("daily-limit", 2, 2, 2, 0),
            _w("app-breakdown", 3, 3, 4, 0),
            _w("weekly-comparison", 3, 2, 7, 0),
            _w("most-used", 4, 3, 0, 2),
            _w("productivity-score", 2, 2, 4, 3),
        ),
    ),
    "social": PageConfig(
        "social",
        initial_widgets=(
            _w("interactions-today", 2, 2, 0, 0),
            _w("weekly-summary", 2, 2, 2, 0),
            _w("contact-methods", 3, 3, 4, 0),
            _w("recent-contacts", 3, 3, 7, 0),
            _w("upcoming-plans", 4, 3, 0, 2),
            _w("close-friends", 3, 2, 4, 3),
        ),
    ),
    "weight": PageConfig(
        "weight",
        initial_widgets=(
            _w("current-weight", 2, 2, 0, 0),
            _w("weight-goal", 2, 2, 2, 0),
            _w("weekly-change", 2, 2, 4, 0),
            _w("bmi", 2, 2, 6, 0),
            _w("weight-history", 4, 3, 0, 2),
            _w("body-measurements", 4, 3, 4, 2),
            _w("progress-photos", 2, 2, 8, 0),
        ),
    ),
    "custom": PageConfig(
        "custom",
        initial_widgets=(
            _w("overview", 3, 2, 0, 0),
            _w("today-entries", 2, 2, 3, 0),
            _w("total-entries", 2, 2, 5, 0),
            _w("streak", 2, 2, 7, 0),
            _w("recent-entries", 4, 3, 0, 2),
            _w("weekly-summary", 3, 3, 4, 2),
        ),
    ),
    "inventory": PageConfig("inventory", cols=4, rows=6, gap=4, tracker_driven=True),
}
# tasks shares the tracker dashboard's configuration
PAGES["tasks"] = PAGES["dashboard"]


def get_page(name: str) -> PageConfig:
    try:
        return PAGES[name]
    except KeyError:
        valid = ", ".join(sorted(PAGES))
        raise ValueError(f"Unknown page {name!r} (expected one of: {valid})") from None


def page_layout(page: PageConfig, saved: Layout | None, trackers: Iterable[Tracker] = ()) -> Layout:
    """The layout to show for a page: saved state reconciled, or the page's starting widgets."""
    grid = page.grid
    if page.tracker_driven:
        return reconcile_layout(saved, trackers, grid)
    if saved is None:
        return Layout(list(page.initial_widgets), grid.cols, grid.rows, 0)
    return Layout(normalize_widgets(saved.widgets, grid), grid.cols, grid.rows, saved.updated_at)
