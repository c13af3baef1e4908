"""Application state handed to the views, instead of module-level globals."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ._util import today_str

log = logging.getLogger(__name__)


@dataclass
class Notification:
    message: str
    level: str = "error"


@dataclass
class AppState:
    page: str = "dashboard"
    active_tracker_id: int | None = None
    selected_date: str = field(default_factory=today_str)
    open_dialogs: set[str] = field(default_factory=set)
    notifications: list[Notification] = field(default_factory=list)

    def notify(self, message: str, level: str = "error") -> None:
        """Queue a transient, non-fatal message for the user."""
        log.debug("notify[%s]: %s", level, message)
        self.notifications.append(Notification(message, level))

    def drain_notifications(self) -> list[Notification]:
        out, self.notifications = self.notifications, []
        return out

    def select_tracker(self, tracker_id: int | None) -> None:
        self.active_tracker_id = tracker_id

    def select_date(self, date_str: str) -> None:
        self.selected_date = date_str

    def open_dialog(self, name: str) -> None:
        self.open_dialogs.add(name)

    def close_dialog(self, name: str) -> None:
        self.open_dialogs.discard(name)

    def is_open(self, name: str) -> bool:
        return name in self.open_dialogs
