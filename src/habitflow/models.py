"""Plain data records shared by the engines and the JSON store.

Field names are snake_case in Python; the JSON document keeps the camelCase
keys the dashboard has always written (``trackerId``, ``dateStr``...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ._util import date_str_from_ms


class TrackerType(str, Enum):
    NUMERIC = "numeric"
    RANGE = "range"
    BINARY = "binary"
    TEXT = "text"
    COMPOSITE = "composite"

    @classmethod
    def parse(cls, raw: str) -> "TrackerType":
        key = str(raw or "").strip().lower()
        key = TRACKER_TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown tracker type {raw!r} (expected one of: {valid})") from None


# names the dashboard UI uses for the same types
TRACKER_TYPE_ALIASES = {
    "counter": "numeric",
    "rating": "range",
    "list": "text",
}


# -------------------------
# Grid geometry
# -------------------------


@dataclass(frozen=True)
class GridSize:
    width: int
    height: int


@dataclass(frozen=True)
class GridPosition:
    x: int
    y: int


@dataclass(frozen=True)
class Widget:
    id: str
    size: GridSize
    position: GridPosition
    visible: bool = True
    tracker_id: int | None = None
    kind: str = "tracker"

    @property
    def x(self) -> int:
        return self.position.x

    @property
    def y(self) -> int:
        return self.position.y

    @property
    def w(self) -> int:
        return self.size.width

    @property
    def h(self) -> int:
        return self.size.height

    def moved_to(self, x: int, y: int) -> "Widget":
        return replace(self, position=GridPosition(x, y))

    def with_visible(self, visible: bool) -> "Widget":
        return replace(self, visible=visible)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "size": {"width": self.w, "height": self.h},
            "position": {"x": self.x, "y": self.y},
            "visible": self.visible,
            "kind": self.kind,
        }
        if self.tracker_id is not None:
            d["trackerId"] = self.tracker_id
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Widget":
        size = d["size"]
        pos = d["position"]
        tid = d.get("trackerId")
        return cls(
            id=str(d["id"]),
            size=GridSize(int(size["width"]), int(size["height"])),
            position=GridPosition(int(pos["x"]), int(pos["y"])),
            visible=bool(d.get("visible", True)),
            tracker_id=int(tid) if tid is not None else None,
            kind=str(d.get("kind", "tracker")),
        )


def make_widget(
    widget_id: str,
    x: int,
    y: int,
    w: int,
    h: int,
    visible: bool = True,
    tracker_id: int | None = None,
    kind: str = "builtin",
) -> Widget:
    return Widget(widget_id, GridSize(w, h), GridPosition(x, y), visible, tracker_id, kind)


@dataclass
class Layout:
    widgets: list[Widget] = field(default_factory=list)
    grid_columns: int = 10
    grid_rows: int = 8
    updated_at: int = 0

    def visible(self) -> list[Widget]:
        return [w for w in self.widgets if w.visible]

    def hidden(self) -> list[Widget]:
        return [w for w in self.widgets if not w.visible]

    def get(self, widget_id: str) -> Widget | None:
        for w in self.widgets:
            if w.id == widget_id:
                return w
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "widgets": [w.to_dict() for w in self.widgets],
            "gridColumns": self.grid_columns,
            "gridRows": self.grid_rows,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Layout":
        return cls(
            widgets=[Widget.from_dict(w) for w in d.get("widgets", [])],
            grid_columns=int(d.get("gridColumns", 10)),
            grid_rows=int(d.get("gridRows", 8)),
            updated_at=int(d.get("updatedAt", 0)),
        )


# -------------------------
# Trackers + entries
# -------------------------


@dataclass
class Tracker:
    id: int
    name: str
    type: TrackerType = TrackerType.NUMERIC
    config: dict[str, Any] = field(default_factory=dict)
    color: str = "#6366f1"
    icon: str = "activity"
    is_favorite: bool = False
    is_custom: bool = True
    order: int = 0
    archived: bool = False
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "config": dict(self.config),
            "color": self.color,
            "icon": self.icon,
            "isFavorite": self.is_favorite,
            "isCustom": self.is_custom,
            "order": self.order,
            "archived": self.archived,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Tracker":
        return cls(
            id=int(d["id"]),
            name=str(d.get("name", "")),
            type=TrackerType.parse(d.get("type", "numeric")),
            config=dict(d.get("config") or {}),
            color=str(d.get("color", "#6366f1")),
            icon=str(d.get("icon", "activity")),
            is_favorite=bool(d.get("isFavorite", False)),
            is_custom=bool(d.get("isCustom", True)),
            order=int(d.get("order", 0)),
            archived=bool(d.get("archived", False)),
            created_at=int(d.get("createdAt", 0)),
        )


@dataclass
class Entry:
    id: int
    tracker_id: int
    timestamp: int
    date_str: str
    value: float | None = None
    note: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def at(
        cls,
        entry_id: int,
        tracker_id: int,
        timestamp: int,
        value: float | None = None,
        note: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> "Entry":
        # dateStr is fixed here, at write time, in local time
        return cls(entry_id, tracker_id, timestamp, date_str_from_ms(timestamp), value, note, metadata or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trackerId": self.tracker_id,
            "value": self.value,
            "note": self.note,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp,
            "dateStr": self.date_str,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Entry":
        value = d.get("value")
        return cls(
            id=int(d["id"]),
            tracker_id=int(d["trackerId"]),
            timestamp=int(d["timestamp"]),
            date_str=str(d["dateStr"]),
            value=float(value) if value is not None else None,
            note=d.get("note"),
            metadata=dict(d.get("metadata") or {}),
        )


@dataclass
class DragState:
    """Ephemeral, lives only for one pointer gesture."""

    active_widget_id: str
    preview_position: GridPosition | None = None
    is_valid_drop: bool = False
    will_displace: bool = False
