"""Tests for schema checks, additive repair and opt-in reset."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from habitflow.schema import (
    DOCUMENT_DEFAULTS,
    SCHEMA_VERSION,
    SchemaDriftError,
    check_schema,
    ensure_schema,
)


def _doc(**overrides):
    d = json.loads(json.dumps(DOCUMENT_DEFAULTS))
    d.update(overrides)
    return d


# ---- check_schema ----


def test_default_document_is_ok():
    assert check_schema(_doc()).ok


def test_missing_keys_are_repairable():
    rep = check_schema({})
    assert not rep.fatal
    assert len(rep.repairable) == len(DOCUMENT_DEFAULTS)


def test_wrong_container_type_is_fatal():
    rep = check_schema(_doc(entries={}))
    assert rep.fatal


def test_newer_schema_is_fatal():
    rep = check_schema(_doc(schemaVersion=SCHEMA_VERSION + 1))
    assert any("newer" in p for p in rep.fatal)


def test_unknown_tracker_type_is_fatal():
    rep = check_schema(_doc(trackers=[{"id": 1, "name": "x", "type": "spreadsheet"}]))
    assert rep.fatal


def test_entry_without_ids_is_fatal():
    rep = check_schema(_doc(entries=[{"trackerId": 1}]))
    assert rep.fatal


# ---- ensure_schema ----


def test_repair_fills_tracker_fields_and_date_str():
    data = _doc(
        trackers=[{"id": 3, "name": "Run"}],
        entries=[{"id": 7, "trackerId": 3, "timestamp": 1_700_000_000_000}],
        nextIds={"tracker": 1, "entry": 1},
    )
    done = ensure_schema(data)
    assert done
    t = data["trackers"][0]
    assert t["type"] == "numeric" and t["archived"] is False
    assert len(data["entries"][0]["dateStr"]) == 10
    assert data["nextIds"] == {"tracker": 4, "entry": 8}


def test_clean_document_reports_nothing():
    assert ensure_schema(_doc()) == []


def test_drift_raises_without_opt_in(tmp_path: Path):
    data = _doc(trackers="oops")
    with pytest.raises(SchemaDriftError) as exc:
        ensure_schema(data, tmp_path / "data.json")
    assert exc.value.problems
    assert data["trackers"] == "oops"


def test_drift_reset_backs_up(tmp_path: Path):
    path = tmp_path / "data.json"
    path.write_text('{"trackers": "oops"}', encoding="utf-8")
    data = {"trackers": "oops"}
    done = ensure_schema(data, path, reset_on_drift=True)
    assert data == DOCUMENT_DEFAULTS
    assert "backup" in done[0]
    assert len(list(tmp_path.glob("data.drift-*.json"))) == 1
