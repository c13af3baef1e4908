"""Tests for the JSON file helpers, JsonStore and LayoutStore."""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path

import pytest

from habitflow._util import ms_from_datetime
from habitflow.models import Layout, TrackerType, make_widget
from habitflow.storage import JsonStore, LayoutStore, StorageError, load_json, save_json


@pytest.fixture()
def tmp_json(tmp_path: Path) -> Path:
    return tmp_path / "data.json"


@pytest.fixture()
def store(tmp_json: Path) -> JsonStore:
    return JsonStore(tmp_json)


def _ms(y, m, d, h=12):
    return ms_from_datetime(datetime(y, m, d, h))


# ---- save_json ----


def test_save_writes_valid_json(tmp_json):
    save_json(tmp_json, {"a": 1, "b": [1, 2, 3]})
    data = json.loads(tmp_json.read_text())
    assert data == {"a": 1, "b": [1, 2, 3]}


def test_save_creates_parent_dirs(tmp_path):
    deep = tmp_path / "a" / "b" / "c" / "data.json"
    save_json(deep, {"x": 1})
    assert deep.exists()


def test_save_is_atomic_no_tmp_left(tmp_json):
    save_json(tmp_json, {"x": 1})
    tmp = tmp_json.with_name(tmp_json.name + ".tmp")
    assert not tmp.exists()


def test_save_sets_permissions(tmp_json):
    save_json(tmp_json, {})
    mode = oct(os.stat(tmp_json).st_mode & 0o777)
    assert mode == "0o600"


# ---- load_json ----


def test_load_missing_returns_empty_dict(tmp_json):
    assert load_json(tmp_json) == {}
    assert tmp_json.exists()


def test_load_empty_file_returns_empty_dict(tmp_json):
    tmp_json.write_text("", encoding="utf-8")
    assert load_json(tmp_json) == {}


def test_load_corrupt_returns_empty_and_backs_up(tmp_json):
    tmp_json.write_text("not valid json {{{{", encoding="utf-8")
    assert load_json(tmp_json) == {}
    backups = list(tmp_json.parent.glob("*.corrupt-*.json"))
    assert len(backups) == 1


def test_load_non_dict_json_returns_empty(tmp_json):
    tmp_json.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    assert load_json(tmp_json) == {}


# ---- JsonStore: trackers ----


def test_new_store_has_full_document(store, tmp_json):
    on_disk = json.loads(tmp_json.read_text())
    assert on_disk["trackers"] == [] and on_disk["entries"] == []
    assert on_disk["nextIds"] == {"tracker": 1, "entry": 1}


def test_add_tracker_assigns_ids_and_order(store):
    a = store.add_tracker("Run")
    b = store.add_tracker("  Mood ", "rating")
    assert (a.id, b.id) == (1, 2)
    assert (a.order, b.order) == (0, 1)
    assert b.name == "Mood"
    assert b.type is TrackerType.RANGE


def test_add_tracker_rejects_blank_name(store):
    with pytest.raises(ValueError):
        store.add_tracker("   ")


def test_add_tracker_rejects_unknown_type(store):
    with pytest.raises(ValueError):
        store.add_tracker("x", "spreadsheet")


def test_archive_and_list(store):
    a = store.add_tracker("Run")
    store.add_tracker("Read")
    store.archive_tracker(a.id)
    assert [t.name for t in store.list_trackers(include_archived=False)] == ["Read"]
    assert len(store.list_trackers()) == 2


def test_update_unknown_tracker(store):
    with pytest.raises(KeyError):
        store.set_favorite(42)


def test_set_tracker_order(store):
    a = store.add_tracker("a")
    b = store.add_tracker("b")
    store.set_tracker_order([b.id, a.id])
    assert [t.name for t in store.list_trackers()] == ["b", "a"]


def test_delete_tracker_removes_entries(store):
    a = store.add_tracker("a")
    b = store.add_tracker("b")
    store.add_entry(a.id, _ms(2024, 1, 1))
    store.add_entry(b.id, _ms(2024, 1, 1))
    assert store.delete_tracker(a.id)
    assert [e.tracker_id for e in store.list_entries()] == [b.id]
    assert not store.delete_tracker(a.id)


# ---- JsonStore: entries ----


def test_add_entry_derives_date_str(store):
    t = store.add_tracker("Run")
    e = store.add_entry(t.id, _ms(2024, 3, 9, 23), 5.0, "late run")
    assert e.date_str == "2024-03-09"
    assert e.value == 5.0


def test_add_entry_unknown_tracker(store):
    with pytest.raises(KeyError):
        store.add_entry(99, _ms(2024, 1, 1))


def test_add_entry_date_str_mismatch(store):
    t = store.add_tracker("Run")
    with pytest.raises(ValueError):
        store.add_entry(t.id, _ms(2024, 1, 1), date_str="2024-01-02")
    assert store.data["nextIds"]["entry"] == 1


def test_list_entries_newest_first_and_limit(store):
    t = store.add_tracker("Run")
    store.add_entry(t.id, _ms(2024, 1, 1))
    store.add_entry(t.id, _ms(2024, 1, 3))
    store.add_entry(t.id, _ms(2024, 1, 2))
    assert [e.date_str for e in store.list_entries(limit=2)] == ["2024-01-03", "2024-01-02"]


def test_entries_survive_reload(store, tmp_json):
    t = store.add_tracker("Run")
    store.add_entry(t.id, _ms(2024, 1, 1), 3)
    again = JsonStore(tmp_json)
    assert [e.value for e in again.list_entries(tracker_id=t.id)] == [3.0]


def test_delete_entry(store):
    t = store.add_tracker("Run")
    e = store.add_entry(t.id, _ms(2024, 1, 1))
    assert store.delete_entry(e.id)
    assert not store.delete_entry(e.id)


def test_save_failure_is_storage_error(store, tmp_json, monkeypatch):
    def boom(path, data):
        raise OSError("disk full")

    monkeypatch.setattr("habitflow.storage.save_json", boom)
    with pytest.raises(StorageError):
        store.add_tracker("Run")


def test_failed_write_rolls_back_memory(store, monkeypatch):
    t = store.add_tracker("Run")
    store.add_entry(t.id, _ms(2024, 1, 1))
    before = json.loads(json.dumps(store.data))

    def boom(path, data):
        raise OSError("disk full")

    monkeypatch.setattr("habitflow.storage.save_json", boom)
    with pytest.raises(StorageError):
        store.add_entry(t.id, _ms(2024, 1, 2))
    with pytest.raises(StorageError):
        store.add_tracker("Read")
    with pytest.raises(StorageError):
        store.update_tracker(t.id, name="Jog")
    with pytest.raises(StorageError):
        store.set_tracker_order([t.id])
    with pytest.raises(StorageError):
        store.delete_tracker(t.id)
    assert store.data == before

    monkeypatch.undo()
    assert store.add_entry(t.id, _ms(2024, 1, 2)).id == 2


def test_update_tracker_fields_and_aliases(store):
    t = store.add_tracker("Mood", "rating")
    out = store.update_tracker(t.id, name=" Energy ", type="counter", config={"unit": "pts"}, color="#000000", icon="zap")
    assert (out.name, out.type, out.config, out.color, out.icon) == ("Energy", TrackerType.NUMERIC, {"unit": "pts"}, "#000000", "zap")
    assert store.get_tracker(t.id) == out


def test_update_tracker_rejects_bad_input(store):
    t = store.add_tracker("a")
    with pytest.raises(ValueError):
        store.update_tracker(t.id)
    with pytest.raises(ValueError):
        store.update_tracker(t.id, name="  ")
    with pytest.raises(ValueError):
        store.update_tracker(t.id, type="spreadsheet")
    with pytest.raises(KeyError):
        store.update_tracker(99, name="b")


def test_toggle_favorite_and_favorites(store):
    a = store.add_tracker("a")
    b = store.add_tracker("b")
    store.add_tracker("c", is_favorite=True)
    assert store.toggle_favorite(a.id).is_favorite
    store.set_favorite(b.id)
    store.archive_tracker(b.id)
    assert [t.name for t in store.favorite_trackers()] == ["a", "c"]
    assert not store.toggle_favorite(a.id).is_favorite
    with pytest.raises(KeyError):
        store.toggle_favorite(42)


def test_recent_trackers_by_latest_entry(store):
    a = store.add_tracker("a")
    b = store.add_tracker("b")
    c = store.add_tracker("c")
    store.add_tracker("never")
    store.add_entry(a.id, _ms(2024, 1, 5))
    store.add_entry(b.id, _ms(2024, 1, 3))
    store.add_entry(c.id, _ms(2024, 1, 4))
    store.add_entry(b.id, _ms(2024, 1, 6))
    assert [t.name for t in store.recent_trackers()] == ["b", "a", "c"]
    assert [t.name for t in store.recent_trackers(limit=1)] == ["b"]
    store.archive_tracker(b.id)
    assert [t.name for t in store.recent_trackers()] == ["a", "c"]


def test_snapshot_is_detached(store):
    t = store.add_tracker("a")
    store.add_entry(t.id, _ms(2024, 1, 1))
    snap = store.snapshot()
    store.add_entry(t.id, _ms(2024, 1, 2))
    store.update_tracker(t.id, name="b")
    assert len(snap.list_entries(tracker_id=t.id)) == 1
    assert snap.get_tracker(t.id).name == "a"


# ---- LayoutStore ----


def test_layout_never_saved_is_none(store):
    assert LayoutStore(store).load("dashboard") is None


def test_layout_roundtrip_keeps_empty_layout(store):
    layouts = LayoutStore(store)
    assert layouts.save("mood", Layout([]))
    loaded = layouts.load("mood")
    assert loaded is not None and loaded.widgets == []
    assert loaded.updated_at > 0


def test_layout_save_and_load(store):
    layouts = LayoutStore(store)
    w = make_widget("tracker-1", 2, 1, 3, 2, tracker_id=1, kind="tracker")
    layouts.save("dashboard", Layout([w]))
    assert LayoutStore(JsonStore(store.data_path)).load("dashboard").widgets == [w]


def test_unreadable_layout_falls_back(store):
    store.data["layouts"]["dashboard"] = {"widgets": [{"id": "x"}]}
    assert LayoutStore(store).load("dashboard") is None


def test_layout_save_failure_rolls_back(store, monkeypatch):
    layouts = LayoutStore(store)
    layouts.save("dashboard", Layout([make_widget("a", 0, 0, 2, 2)]))

    def boom(path, data):
        raise OSError("read-only")

    monkeypatch.setattr("habitflow.storage.save_json", boom)
    assert not layouts.save("dashboard", Layout([]))
    assert len(store.data["layouts"]["dashboard"]["widgets"]) == 1
    assert not layouts.save("mood", Layout([]))
    assert "mood" not in store.data["layouts"]


def test_layout_clear(store):
    layouts = LayoutStore(store)
    layouts.save("dashboard", Layout([]))
    assert layouts.clear("dashboard")
    assert layouts.load("dashboard") is None
    assert not layouts.clear("dashboard")
