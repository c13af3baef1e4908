"""
Shape checks for the data file.

Missing pieces that can be filled in without losing anything (new keys,
new tracker fields, a dateStr that can be re-derived) are repaired on load
and logged. Anything else is drift: it blocks startup unless the caller
explicitly opted into a reset, and a reset always backs the file up first.
"""

from __future__ import annotations

import copy
import logging
import shutil
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ._util import date_str_from_ms
from .models import TrackerType

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1

DOCUMENT_DEFAULTS: dict[str, Any] = {
    "schemaVersion": SCHEMA_VERSION,
    "trackers": [],
    "entries": [],
    "layouts": {},
    "settings": {},
    "nextIds": {"tracker": 1, "entry": 1},
}

TRACKER_FIELD_DEFAULTS: dict[str, Any] = {
    "type": "numeric",
    "config": {},
    "color": "#6366f1",
    "icon": "activity",
    "isFavorite": False,
    "isCustom": True,
    "order": 0,
    "archived": False,
    "createdAt": 0,
}


class SchemaDriftError(RuntimeError):
    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


@dataclass
class SchemaReport:
    repairable: list[str] = field(default_factory=list)
    fatal: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.repairable and not self.fatal


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def check_schema(data: dict[str, Any]) -> SchemaReport:
    rep = SchemaReport()

    version = data.get("schemaVersion", SCHEMA_VERSION)
    if not _is_int(version):
        rep.fatal.append(f"schemaVersion is not an integer: {version!r}")
    elif version > SCHEMA_VERSION:
        rep.fatal.append(f"file was written by a newer version (schema {version}, this build reads {SCHEMA_VERSION})")

    for key, default in DOCUMENT_DEFAULTS.items():
        if key not in data:
            rep.repairable.append(f"missing top-level key {key!r}")
        elif not isinstance(data[key], type(default)):
            rep.fatal.append(f"{key!r} should be a {type(default).__name__}, found {type(data[key]).__name__}")
    if rep.fatal:
        return rep

    for n, t in enumerate(data.get("trackers", [])):
        if not isinstance(t, dict) or not _is_int(t.get("id")) or not isinstance(t.get("name"), str):
            rep.fatal.append(f"trackers[{n}] needs an integer id and a name")
            continue
        try:
            TrackerType.parse(t.get("type", "numeric"))
        except ValueError as e:
            rep.fatal.append(f"trackers[{n}]: {e}")
        missing = [k for k in TRACKER_FIELD_DEFAULTS if k not in t]
        if missing:
            rep.repairable.append(f"tracker {t['id']} missing {', '.join(missing)}")

    for n, e in enumerate(data.get("entries", [])):
        if not isinstance(e, dict) or not all(_is_int(e.get(k)) for k in ("id", "trackerId", "timestamp")):
            rep.fatal.append(f"entries[{n}] needs integer id, trackerId and timestamp")
            continue
        if not isinstance(e.get("dateStr"), str):
            rep.repairable.append(f"entry {e['id']} missing dateStr")

    ids = data.get("nextIds", {})
    max_t = max((t["id"] for t in data.get("trackers", []) if isinstance(t, dict) and _is_int(t.get("id"))), default=0)
    max_e = max((e["id"] for e in data.get("entries", []) if isinstance(e, dict) and _is_int(e.get("id"))), default=0)
    if int(ids.get("tracker", 1)) <= max_t or int(ids.get("entry", 1)) <= max_e:
        rep.repairable.append("id counters behind existing records")

    return rep


def _repair(data: dict[str, Any]) -> None:
    for key, default in DOCUMENT_DEFAULTS.items():
        data.setdefault(key, copy.deepcopy(default))

    for t in data["trackers"]:
        for k, default in TRACKER_FIELD_DEFAULTS.items():
            t.setdefault(k, copy.deepcopy(default))

    for e in data["entries"]:
        if not isinstance(e.get("dateStr"), str):
            e["dateStr"] = date_str_from_ms(e["timestamp"])
        e.setdefault("value", None)
        e.setdefault("note", None)
        e.setdefault("metadata", {})

    ids = data["nextIds"]
    max_t = max((t["id"] for t in data["trackers"]), default=0)
    max_e = max((e["id"] for e in data["entries"]), default=0)
    ids["tracker"] = max(int(ids.get("tracker", 1)), max_t + 1)
    ids["entry"] = max(int(ids.get("entry", 1)), max_e + 1)


def backup_file(path: Path, tag: str = "drift") -> Path | None:
    path = Path(path)
    if not path.exists():
        return None
    backup = path.with_suffix(f".{tag}-{int(time.time())}.json")
    shutil.copy2(path, backup)
    return backup


def ensure_schema(
    data: dict[str, Any],
    path: Path | None = None,
    reset_on_drift: bool = False,
) -> list[str]:
    """
    Bring ``data`` (in place) up to the current shape.
    Returns what was done; an empty list means the file was already fine.
    Raises SchemaDriftError for unrepairable drift unless reset_on_drift.
    """
    rep = check_schema(data)

    if rep.fatal:
        if not reset_on_drift:
            raise SchemaDriftError(rep.fatal)
        backup = backup_file(path) if path is not None else None
        log.warning("schema drift (%s); resetting data file, backup at %s", "; ".join(rep.fatal), backup)
        data.clear()
        data.update(copy.deepcopy(DOCUMENT_DEFAULTS))
        return [f"reset after drift (backup: {backup})"]

    if rep.repairable:
        for msg in rep.repairable:
            log.info("schema repair: %s", msg)
        _repair(data)
    return rep.repairable


def exit_on_drift(err: SchemaDriftError, data_path: Path) -> None:
    print("🚫 Data file does not match the expected layout.", file=sys.stderr)
    for p in err.problems:
        print(f"   - {p}", file=sys.stderr)
    print(f"   data_path: {data_path}", file=sys.stderr)
    print(
        "   Fix: repair the file by hand, or rerun with --reset-on-drift "
        "(the current file is backed up first)",
        file=sys.stderr,
    )
    raise SystemExit(2)
