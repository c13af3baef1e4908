"""Tests for page presets and page_layout."""

from __future__ import annotations

import pytest

from habitflow.layout import validate_layout
from habitflow.models import Layout, Tracker, make_widget
from habitflow.pages import PAGES, get_page, page_layout


@pytest.mark.parametrize("name", sorted(PAGES))
def test_presets_are_valid(name):
    page = PAGES[name]
    layout = Layout(list(page.initial_widgets), page.cols, page.rows)
    result = validate_layout(layout, page.grid)
    assert result.is_valid, result.errors


def test_tasks_shares_dashboard_config():
    assert get_page("tasks") is get_page("dashboard")


def test_unknown_page():
    with pytest.raises(ValueError):
        get_page("garden")


def test_fixed_page_without_saved_layout_uses_presets():
    page = PAGES["mood"]
    layout = page_layout(page, None)
    assert [w.id for w in layout.widgets] == [w.id for w in page.initial_widgets]


def test_fixed_page_repairs_saved_layout():
    page = PAGES["weight"]
    saved = Layout([make_widget("bmi", 0, 0, 2, 2), make_widget("bmi-2", 1, 1, 2, 2)])
    layout = page_layout(page, saved)
    assert layout.get("bmi-2").position.x == 2


def test_inventory_is_tracker_driven_on_small_grid():
    page = PAGES["inventory"]
    trackers = [Tracker(1, "a"), Tracker(2, "b")]
    layout = page_layout(page, None, trackers)
    assert (layout.grid_columns, layout.grid_rows) == (4, 6)
    assert [(w.id, w.x, w.y) for w in layout.widgets] == [("tracker-1", 0, 0), ("tracker-2", 0, 3)]
