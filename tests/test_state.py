"""Tests for the injectable AppState."""

from __future__ import annotations

from habitflow.state import AppState


def test_fresh_state_is_independent():
    a = AppState()
    b = AppState()
    a.open_dialog("add-entry")
    assert not b.is_open("add-entry")


def test_notifications_drain_once():
    s = AppState()
    s.notify("could not save")
    s.notify("saved", level="info")
    notes = s.drain_notifications()
    assert [(n.message, n.level) for n in notes] == [("could not save", "error"), ("saved", "info")]
    assert s.drain_notifications() == []


def test_dialogs_open_and_close():
    s = AppState()
    s.open_dialog("settings")
    assert s.is_open("settings")
    s.close_dialog("settings")
    s.close_dialog("settings")
    assert not s.is_open("settings")


def test_selection():
    s = AppState()
    s.select_tracker(4)
    s.select_date("2024-01-02")
    assert (s.active_tracker_id, s.selected_date) == (4, "2024-01-02")
