from __future__ import annotations

import copy
import json
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from ._util import _now_ms, date_str_from_ms
from .models import Entry, Layout, Tracker, TrackerType
from .schema import ensure_schema

log = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """The data file could not be read or written."""


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def load_json(path: Path) -> dict[str, Any]:
    """
    Safe load:
    - creates parent dirs
    - if missing/empty -> writes {}
    - if corrupt -> backs up raw text then resets to {}
    Always returns a dict.
    """
    path = Path(path)
    _ensure_parent(path)

    if not path.exists():
        save_json(path, {})
        return {}

    txt = path.read_text(encoding="utf-8").strip()
    if not txt:
        save_json(path, {})
        return {}

    try:
        data = json.loads(txt)
    except json.JSONDecodeError:
        # corruption guard: backup then reset
        backup = path.with_suffix(f".corrupt-{int(time.time())}.json")
        backup.write_text(txt, encoding="utf-8")
        log.warning("data file %s was not valid JSON, saved a copy to %s", path, backup)
        save_json(path, {})
        return {}
    return data if isinstance(data, dict) else {}


def save_json(path: Path, data: Any) -> None:
    """
    Atomic-ish save:
    - write to temp file in same directory
    - flush + fsync
    - os.replace to target
    - chmod 0600 best-effort
    """
    path = Path(path)
    _ensure_parent(path)

    tmp = path.with_name(path.name + ".tmp")
    payload = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    with open(tmp, "w", encoding="utf-8") as f:
        f.write(payload)
        f.flush()
        os.fsync(f.fileno())

    os.replace(tmp, path)

    try:
        os.chmod(path, 0o600)
    except OSError:
        pass


# -------------------------
# Trackers + entries
# -------------------------

RECENT_LIMIT_MAX = 50


class _DocumentQueries:
    """Read-only queries over ``self.data``; shared by the live store and its snapshots."""

    data: dict[str, Any]

    def list_trackers(self, include_archived: bool = True) -> list[Tracker]:
        out = [Tracker.from_dict(t) for t in self.data["trackers"]]
        if not include_archived:
            out = [t for t in out if not t.archived]
        return sorted(out, key=lambda t: (t.order, t.id))

    def get_tracker(self, tracker_id: int) -> Tracker | None:
        for t in self.data["trackers"]:
            if int(t.get("id", -1)) == tracker_id:
                return Tracker.from_dict(t)
        return None

    def favorite_trackers(self) -> list[Tracker]:
        return [t for t in self.list_trackers(include_archived=False) if t.is_favorite]

    def recent_trackers(self, limit: int = 10) -> list[Tracker]:
        """Active trackers that have entries, most recently logged first."""
        latest: dict[int, int] = {}
        for e in self.data["entries"]:
            tid = int(e.get("trackerId", -1))
            latest[tid] = max(latest.get(tid, 0), int(e.get("timestamp", 0)))
        active = {t.id: t for t in self.list_trackers(include_archived=False)}
        ranked = sorted((tid for tid in latest if tid in active), key=lambda tid: latest[tid], reverse=True)
        return [active[tid] for tid in ranked[: max(0, min(limit, RECENT_LIMIT_MAX))]]

    def list_entries(self, tracker_id: int | None = None, limit: int | None = None) -> list[Entry]:
        """Newest first. Callers that care about order should still sort."""
        out = [Entry.from_dict(e) for e in self.data["entries"]]
        if tracker_id is not None:
            out = [e for e in out if e.tracker_id == tracker_id]
        out.sort(key=lambda e: (e.timestamp, e.id), reverse=True)
        return out[:limit] if limit is not None else out


class StoreSnapshot(_DocumentQueries):
    """A frozen copy of the trackers and entries, safe to read from another thread."""

    def __init__(self, data: dict[str, Any]):
        self.data = {
            "trackers": copy.deepcopy(data["trackers"]),
            "entries": copy.deepcopy(data["entries"]),
        }


class JsonStore(_DocumentQueries):
    """
    Trackers, entries, layouts and settings in one JSON document.

    Everything is held in memory; each mutating call writes the whole file.
    If that write fails the in-memory document is put back the way it was
    and StorageError is raised.
    """

    def __init__(self, data_path: Path, reset_on_drift: bool = False):
        self.data_path = Path(data_path)
        self.reset_on_drift = reset_on_drift
        self.data: dict[str, Any] = {}
        self.repairs: list[str] = []
        self.reload()

    def reload(self) -> None:
        try:
            raw = load_json(self.data_path)
        except OSError as e:
            raise StorageError(f"Could not read {self.data_path}: {e}") from e

        self.repairs = ensure_schema(raw, self.data_path, reset_on_drift=self.reset_on_drift)
        self.data = raw
        if self.repairs:
            self.save()

    def save(self) -> None:
        try:
            save_json(self.data_path, self.data)
        except OSError as e:
            raise StorageError(f"Could not write {self.data_path}: {e}") from e

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(self.data)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        before = {key: copy.deepcopy(self.data[key]) for key in ("trackers", "entries", "nextIds")}
        try:
            yield
            self.save()
        except Exception:
            self.data.update(before)
            raise

    def _next_id(self, kind: str) -> int:
        ids = self.data["nextIds"]
        n = int(ids.get(kind, 1))
        ids[kind] = n + 1
        return n

    # -------- trackers --------

    def add_tracker(
        self,
        name: str,
        type: TrackerType | str = TrackerType.NUMERIC,
        config: dict[str, Any] | None = None,
        color: str | None = None,
        icon: str | None = None,
        is_favorite: bool = False,
    ) -> Tracker:
        name = name.strip()
        if not name:
            raise ValueError("Tracker name cannot be empty")
        kind = type if isinstance(type, TrackerType) else TrackerType.parse(type)
        order = max((int(t.get("order", 0)) for t in self.data["trackers"]), default=-1) + 1
        with self._transaction():
            t = Tracker(
                id=self._next_id("tracker"),
                name=name,
                type=kind,
                config=dict(config or {}),
                is_favorite=is_favorite,
                order=order,
                created_at=_now_ms(),
            )
            if color:
                t.color = color
            if icon:
                t.icon = icon
            self.data["trackers"].append(t.to_dict())
        return t

    def _update_tracker(self, tracker_id: int, **changes: Any) -> Tracker:
        for i, raw in enumerate(self.data["trackers"]):
            if int(raw.get("id", -1)) == tracker_id:
                d = Tracker.from_dict(raw).to_dict()
                d.update(changes)
                with self._transaction():
                    self.data["trackers"][i] = d
                return Tracker.from_dict(d)
        raise KeyError(f"No tracker with id {tracker_id}")

    def update_tracker(
        self,
        tracker_id: int,
        name: str | None = None,
        type: TrackerType | str | None = None,
        config: dict[str, Any] | None = None,
        color: str | None = None,
        icon: str | None = None,
    ) -> Tracker:
        """Change any of the given fields; ``type`` accepts the UI aliases (counter, rating, list)."""
        changes: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValueError("Tracker name cannot be empty")
            changes["name"] = name.strip()
        if type is not None:
            changes["type"] = (type if isinstance(type, TrackerType) else TrackerType.parse(type)).value
        if config is not None:
            changes["config"] = dict(config)
        if color is not None:
            changes["color"] = color
        if icon is not None:
            changes["icon"] = icon
        if not changes:
            raise ValueError("Nothing to update")
        return self._update_tracker(tracker_id, **changes)

    def archive_tracker(self, tracker_id: int, archived: bool = True) -> Tracker:
        return self._update_tracker(tracker_id, archived=archived)

    def set_favorite(self, tracker_id: int, favorite: bool = True) -> Tracker:
        return self._update_tracker(tracker_id, isFavorite=favorite)

    def toggle_favorite(self, tracker_id: int) -> Tracker:
        t = self.get_tracker(tracker_id)
        if t is None:
            raise KeyError(f"No tracker with id {tracker_id}")
        return self.set_favorite(tracker_id, not t.is_favorite)

    def set_tracker_order(self, ordered_ids: list[int]) -> None:
        rank = {tid: n for n, tid in enumerate(ordered_ids)}
        with self._transaction():
            for raw in self.data["trackers"]:
                tid = int(raw.get("id", -1))
                if tid in rank:
                    raw["order"] = rank[tid]

    def delete_tracker(self, tracker_id: int) -> bool:
        if self.get_tracker(tracker_id) is None:
            return False
        with self._transaction():
            self.data["trackers"] = [t for t in self.data["trackers"] if int(t.get("id", -1)) != tracker_id]
            self.data["entries"] = [e for e in self.data["entries"] if int(e.get("trackerId", -1)) != tracker_id]
        return True

    # -------- entries --------

    def add_entry(
        self,
        tracker_id: int,
        timestamp: int | None = None,
        value: float | None = None,
        note: str | None = None,
        metadata: dict[str, Any] | None = None,
        date_str: str | None = None,
    ) -> Entry:
        if self.get_tracker(tracker_id) is None:
            raise KeyError(f"No tracker with id {tracker_id}")
        ts = _now_ms() if timestamp is None else int(timestamp)
        if date_str is not None and date_str != date_str_from_ms(ts):
            raise ValueError(f"dateStr {date_str} does not match the entry's local date {date_str_from_ms(ts)}")
        with self._transaction():
            entry = Entry.at(self._next_id("entry"), tracker_id, ts, value, note, metadata)
            self.data["entries"].append(entry.to_dict())
        return entry

    def delete_entry(self, entry_id: int) -> bool:
        if not any(int(e.get("id", -1)) == entry_id for e in self.data["entries"]):
            return False
        with self._transaction():
            self.data["entries"] = [e for e in self.data["entries"] if int(e.get("id", -1)) != entry_id]
        return True


# -------------------------
# Layouts
# -------------------------


class LayoutStore:
    """
    Per-page saved layouts.

    ``load`` gives None when the page was never saved (an empty saved layout
    comes back as an empty Layout). ``save`` writes the whole widget list and
    reports failure as False instead of raising.
    """

    def __init__(self, store: JsonStore):
        self.store = store

    def load(self, page: str = "dashboard") -> Layout | None:
        raw = self.store.data["layouts"].get(page)
        if raw is None:
            return None
        try:
            return Layout.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("saved layout for %r is unreadable (%s), using the default", page, e)
            return None

    def save(self, page: str, layout: Layout) -> bool:
        layout.updated_at = _now_ms()
        previous = self.store.data["layouts"].get(page)
        self.store.data["layouts"][page] = layout.to_dict()
        try:
            self.store.save()
        except StorageError as e:
            log.warning("could not save layout for %r: %s", page, e)
            # keep the in-memory document consistent with what is on disk
            if previous is None:
                self.store.data["layouts"].pop(page, None)
            else:
                self.store.data["layouts"][page] = previous
            return False
        return True

    def clear(self, page: str = "dashboard") -> bool:
        previous = self.store.data["layouts"].pop(page, None)
        if previous is None:
            return False
        try:
            self.store.save()
        except StorageError:
            self.store.data["layouts"][page] = previous
            raise
        return True
