from __future__ import annotations

import asyncio
import os
import queue
import sys
import threading
import tkinter as tk
from datetime import datetime
from pathlib import Path
from tkinter import messagebox, ttk

from ._util import _fmt_time, ms_from_datetime
from .config import Settings, load_settings
from .correlation import CorrelationResult, CorrelationSession, ImpactService
from .drag import (
    FREE,
    OCCUPIED,
    PREVIEW_DISPLACE,
    PREVIEW_INVALID,
    PREVIEW_VALID,
    DragController,
)
from .layout import LayoutEngine
from .models import Layout, Widget
from .pages import PAGES, PageConfig, page_layout
from .paths import resolve_data_path
from .schema import SchemaDriftError
from .state import AppState
from .stats import dashboard_stats, tracker_stats
from .storage import JsonStore, LayoutStore, StorageError
from .timeparse import parse_ts


# -------------------------
# Colors
# -------------------------

CELL_COLORS = {
    FREE: "#f3f4f6",
    OCCUPIED: "#e5e7eb",
    PREVIEW_VALID: "#bbf7d0",
    PREVIEW_DISPLACE: "#fde68a",
    PREVIEW_INVALID: "#fecaca",
}
WIDGET_FILL = "#ffffff"
WIDGET_OUTLINE = "#6366f1"
DRAG_OUTLINE = "#f59e0b"

IMPACT_POLL_MS = 100


class HabitflowApp(tk.Tk):
    def __init__(self, store: JsonStore, state: AppState | None = None):
        super().__init__()
        self.title("habitflow")
        self.geometry("1000x720")
        self.store = store
        self.layouts = LayoutStore(store)
        self.app_state = state or AppState()
        try:
            self.settings = load_settings(store.data)
        except ValueError as e:
            messagebox.showwarning("Settings", f"{e}\n\nUsing defaults.")
            self.settings = Settings()

        self.page: PageConfig = PAGES[self.app_state.page]
        self.engine = LayoutEngine([], self.page.grid)
        self.drag = DragController(
            self.engine,
            gap=self.page.gap,
            activation_distance=self.settings.activation_distance,
            on_commit=self._persist_layout,
            on_error=self.app_state.notify,
        )
        self._press: tuple[int, int] | None = None
        self._redraw_job: str | None = None

        self.impact = CorrelationSession(on_error=self.app_state.notify)
        # worker threads only put results here; the Tk loop drains it
        self._impact_results: queue.Queue = queue.Queue()

        self._build_header()
        self._build_tabs()
        self._build_status()
        self._load_page(self.page.name)
        self._refresh_all()
        self.after(IMPACT_POLL_MS, self._poll_impact)

    # -------- Crash guard --------

    def report_callback_exception(self, exc, val, tb):  # type: ignore[override]
        import traceback

        traceback.print_exception(exc, val, tb)
        try:
            messagebox.showerror("Crash prevented", f"{exc.__name__}: {val}")
        except Exception:
            pass

    def _safe_cmd(self, fn):
        def wrapped(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                import traceback

                traceback.print_exc()
                try:
                    messagebox.showerror("Crash prevented", f"{type(e).__name__}: {e}")
                except Exception:
                    pass
                return None

        return wrapped

    # -------------------------
    # Header + status
    # -------------------------

    def _build_header(self) -> None:
        frm = ttk.Frame(self, padding=10)
        frm.pack(fill="x")

        ttk.Label(frm, text="habitflow", font=("TkDefaultFont", 16, "bold")).pack(side="left")
        ttk.Label(frm, text=str(self.store.data_path), foreground="#666").pack(side="left", padx=12)

        ttk.Button(frm, text="Open Data Folder", command=self._safe_cmd(self._open_data_folder)).pack(side="right", padx=4)
        ttk.Button(frm, text="Refresh", command=self._safe_cmd(self._refresh_all)).pack(side="right", padx=4)

    def _build_status(self) -> None:
        self.status_var = tk.StringVar(value="")
        ttk.Label(self, textvariable=self.status_var, foreground="#b00020", padding=(10, 2)).pack(fill="x", side="bottom")

    def _flush_notifications(self) -> None:
        notes = self.app_state.drain_notifications()
        if notes:
            self.status_var.set(notes[-1].message)
            self.after(6000, lambda: self.status_var.set(""))

    def _storage_failed(self, err: Exception) -> None:
        self.app_state.notify(f"Not saved: {err}")
        self._flush_notifications()

    def _open_data_folder(self) -> None:
        folder = self.store.data_path.parent
        try:
            if sys.platform.startswith("win"):
                os.startfile(str(folder))  # type: ignore[attr-defined]
                return
            import subprocess

            subprocess.run(["open" if sys.platform == "darwin" else "xdg-open", str(folder)], check=False)
        except OSError:
            messagebox.showinfo("Data location", f"Data file:\n{self.store.data_path}\n\nFolder:\n{folder}")

    # -------------------------
    # Tabs
    # -------------------------

    def _build_tabs(self) -> None:
        self.nb = ttk.Notebook(self)
        self.nb.pack(fill="both", expand=True, padx=10, pady=(0, 6))

        self.tab_dash = ttk.Frame(self.nb, padding=6)
        self.tab_log = ttk.Frame(self.nb, padding=10)
        self.tab_insights = ttk.Frame(self.nb, padding=10)
        self.nb.add(self.tab_dash, text="Dashboard")
        self.nb.add(self.tab_log, text="Log")
        self.nb.add(self.tab_insights, text="Insights")

        self._build_dash_tab()
        self._build_log_tab()
        self._build_insights_tab()

    def _tracker_choices(self) -> list[str]:
        return [f"{t.id}: {t.name}" for t in self.store.list_trackers(include_archived=False)]

    @staticmethod
    def _choice_id(raw: str) -> int | None:
        head = raw.split(":", 1)[0].strip()
        return int(head) if head.isdigit() else None

    def _refresh_all(self) -> None:
        self.store.reload()
        self._load_page(self.page.name)
        choices = self._tracker_choices()
        for combo in (self.log_tracker, self.src_combo, self.tgt_combo):
            combo["values"] = choices
        self._refresh_entry_list()
        self._refresh_summary()
        self._schedule_redraw()

    # -------------------------
    # Dashboard tab
    # -------------------------

    def _build_dash_tab(self) -> None:
        top = ttk.Frame(self.tab_dash)
        top.pack(fill="x")
        ttk.Label(top, text="Page:").pack(side="left")
        self.page_var = tk.StringVar(value=self.page.name)
        combo = ttk.Combobox(top, textvariable=self.page_var, values=sorted(PAGES), state="readonly", width=12)
        combo.pack(side="left", padx=6)
        combo.bind("<<ComboboxSelected>>", lambda _e: self._safe_cmd(self._switch_page)())
        ttk.Button(top, text="Reset layout", command=self._safe_cmd(self._reset_layout)).pack(side="left", padx=6)

        self.summary_var = tk.StringVar(value="")
        ttk.Label(top, textvariable=self.summary_var, foreground="#444").pack(side="right")

        self.canvas = tk.Canvas(self.tab_dash, background="#fafafa", highlightthickness=0)
        self.canvas.pack(fill="both", expand=True, pady=(6, 0))
        self.canvas.bind("<Configure>", self._on_resize)
        self.canvas.bind("<ButtonPress-1>", self._on_press)
        self.canvas.bind("<B1-Motion>", self._on_motion)
        self.canvas.bind("<ButtonRelease-1>", self._on_release)
        self.bind("<Escape>", self._on_escape)

    def _load_page(self, name: str) -> None:
        self.drag.cancel()
        self.page = PAGES[name]
        self.app_state.page = name
        layout = page_layout(self.page, self.layouts.load(name), self.store.list_trackers())
        self.engine.grid = self.page.grid
        self.engine.replace_widgets(layout.widgets)
        self.drag.gap = self.page.gap

    def _switch_page(self) -> None:
        self._load_page(self.page_var.get())
        self._on_resize()

    def _reset_layout(self) -> None:
        if not messagebox.askyesno("Reset layout", f"Forget the saved {self.page.name} layout?"):
            return
        try:
            self.layouts.clear(self.page.name)
        except StorageError as e:
            self._storage_failed(e)
            return
        self._load_page(self.page.name)
        self._schedule_redraw()

    def _persist_layout(self, widgets: list[Widget]) -> bool:
        grid = self.page.grid
        return self.layouts.save(self.page.name, Layout(widgets, grid.cols, grid.rows))

    def _widget_title(self, wd: Widget) -> str:
        if wd.tracker_id is not None:
            t = self.store.get_tracker(wd.tracker_id)
            if t is not None:
                return t.name
        return wd.id.replace("-", " ").title()

    def _widget_body(self, wd: Widget) -> str:
        if wd.tracker_id is None:
            return ""
        s = tracker_stats(self.store.list_entries(tracker_id=wd.tracker_id))
        return f"🔥 {s.current_streak}  best {s.best_streak}\n{s.total_entries} entries · {s.trend}"

    def _on_resize(self, _evt=None) -> None:
        self.drag.resize(max(1, self.canvas.winfo_width()), max(1, self.canvas.winfo_height()))
        self._schedule_redraw()

    def _schedule_redraw(self) -> None:
        if self._redraw_job is not None:
            try:
                self.after_cancel(self._redraw_job)
            except tk.TclError:
                pass
        self._redraw_job = self.after(30, self._draw_grid)

    def _draw_grid(self) -> None:
        self._redraw_job = None
        c = self.canvas
        c.delete("all")
        pad = 16
        pitch = self.drag.pitch
        cell = self.drag.cell_size

        for y, row in enumerate(self.drag.preview_cells()):
            for x, kind in enumerate(row):
                left, top = pad + x * pitch, pad + y * pitch
                c.create_rectangle(left, top, left + cell, top + cell, fill=CELL_COLORS[kind], outline="")

        active = self.drag.drag_state.active_widget_id if self.drag.drag_state else None
        for wd in self.engine.visible:
            left, top, w, h = self.drag.widget_rect_px(wd)
            left += pad
            top += pad
            outline = DRAG_OUTLINE if wd.id == active else WIDGET_OUTLINE
            c.create_rectangle(left, top, left + w, top + h, fill=WIDGET_FILL, outline=outline, width=2)
            c.create_text(left + 8, top + 8, text=self._widget_title(wd), anchor="nw", font=("TkDefaultFont", 10, "bold"))
            body = self._widget_body(wd)
            if body:
                c.create_text(left + 8, top + 28, text=body, anchor="nw", fill="#444", width=max(10, w - 16))

        self._flush_notifications()

    def _widget_at(self, px: int, py: int) -> Widget | None:
        pad = 16
        for wd in self.engine.visible:
            left, top, w, h = self.drag.widget_rect_px(wd)
            if left + pad <= px <= left + pad + w and top + pad <= py <= top + pad + h:
                return wd
        return None

    def _on_press(self, evt) -> None:
        wd = self._widget_at(evt.x, evt.y)
        if wd is None:
            return
        if self.drag.pointer_down(wd.id):
            self._press = (evt.x, evt.y)

    def _on_motion(self, evt) -> None:
        if self._press is None:
            return
        state = self.drag.pointer_move(evt.x - self._press[0], evt.y - self._press[1])
        if state is not None:
            self._draw_grid()

    def _on_release(self, _evt) -> None:
        if self._press is None:
            return
        self._press = None
        self.drag.pointer_up()
        self._draw_grid()

    def _on_escape(self, _evt=None) -> None:
        self._press = None
        self.drag.cancel()
        self._draw_grid()

    def _refresh_summary(self) -> None:
        ds = dashboard_stats(self.store.list_trackers(), self.store.list_entries())
        self.summary_var.set(
            f"🔥 {ds.current_streak} day streak (best {ds.best_streak}) · "
            f"{ds.total_activities} trackers · {ds.total_entries_month} entries this month"
        )

    # -------------------------
    # Log tab
    # -------------------------

    def _build_log_tab(self) -> None:
        form = ttk.Frame(self.tab_log)
        form.pack(side="left", fill="y", padx=(0, 12))

        ttk.Label(form, text="Tracker").pack(anchor="w")
        self.log_tracker = ttk.Combobox(form, state="readonly", width=28)
        self.log_tracker.pack(anchor="w", pady=(0, 8))

        self.log_value = tk.StringVar()
        self.log_note = tk.StringVar()
        self.log_time = tk.StringVar()
        for label, var in (("Value", self.log_value), ("Note", self.log_note), ("Time (blank = now)", self.log_time)):
            ttk.Label(form, text=label).pack(anchor="w")
            ttk.Entry(form, textvariable=var, width=30).pack(anchor="w", pady=(0, 8))

        ttk.Button(form, text="Add entry", command=self._safe_cmd(self._add_entry)).pack(anchor="w")
        ttk.Button(form, text="Delete selected", command=self._safe_cmd(self._delete_entry)).pack(anchor="w", pady=6)

        self.entry_list = tk.Listbox(self.tab_log)
        self.entry_list.pack(side="left", fill="both", expand=True)
        self._entry_ids: list[int] = []

    def _add_entry(self) -> None:
        tid = self._choice_id(self.log_tracker.get())
        if tid is None:
            messagebox.showwarning("Missing tracker", "Pick a tracker first.")
            return
        raw = self.log_value.get().strip()
        try:
            value = float(raw) if raw else None
            ts = ms_from_datetime(parse_ts(self.log_time.get()))
        except ValueError as e:
            messagebox.showerror("Invalid input", str(e))
            return
        try:
            self.store.add_entry(tid, ts, value, self.log_note.get().strip() or None)
        except StorageError as e:
            self._storage_failed(e)
            return
        self.log_value.set("")
        self.log_note.set("")
        self.log_time.set("")
        self._refresh_entry_list()
        self._refresh_summary()
        self._schedule_redraw()

    def _delete_entry(self) -> None:
        sel = self.entry_list.curselection()
        if not sel:
            return
        try:
            deleted = self.store.delete_entry(self._entry_ids[sel[0]])
        except StorageError as e:
            self._storage_failed(e)
            return
        if deleted:
            self._refresh_entry_list()
            self._refresh_summary()
            self._schedule_redraw()

    def _refresh_entry_list(self) -> None:
        names = {t.id: t.name for t in self.store.list_trackers()}
        self.entry_list.delete(0, tk.END)
        self._entry_ids = []
        for e in self.store.list_entries(limit=200):
            dt = datetime.fromtimestamp(e.timestamp / 1000).astimezone()
            value = "" if e.value is None else f"{e.value:g}"
            note = f" — {e.note}" if e.note else ""
            self.entry_list.insert(tk.END, f"{e.date_str} {_fmt_time(dt)}  {names.get(e.tracker_id, '?')} {value}{note}")
            self._entry_ids.append(e.id)

    # -------------------------
    # Insights tab
    # -------------------------

    def _build_insights_tab(self) -> None:
        form = ttk.Frame(self.tab_insights)
        form.pack(fill="x")

        ttk.Label(form, text="When I do").pack(side="left")
        self.src_combo = ttk.Combobox(form, state="readonly", width=22)
        self.src_combo.pack(side="left", padx=4)
        ttk.Label(form, text="what happens to").pack(side="left")
        self.tgt_combo = ttk.Combobox(form, state="readonly", width=22)
        self.tgt_combo.pack(side="left", padx=4)
        ttk.Label(form, text="after days").pack(side="left")
        self.offset_var = tk.IntVar(value=0)
        ttk.Spinbox(form, from_=-30, to=30, textvariable=self.offset_var, width=4).pack(side="left", padx=4)
        ttk.Button(form, text="Calculate", command=self._safe_cmd(self._request_impact)).pack(side="left", padx=8)

        self.impact_out = tk.Text(self.tab_insights, height=16, wrap="word")
        self.impact_out.pack(fill="both", expand=True, pady=(10, 0))

    def _impact_write(self, text: str) -> None:
        self.impact_out.delete("1.0", tk.END)
        self.impact_out.insert(tk.END, text)

    def _request_impact(self) -> None:
        src = self._choice_id(self.src_combo.get())
        tgt = self._choice_id(self.tgt_combo.get())
        if src is None or tgt is None:
            messagebox.showwarning("Missing tracker", "Pick both trackers.")
            return
        offset = int(self.offset_var.get())

        gen = self.impact.begin()
        self._impact_write("Calculating…")
        service = ImpactService(self.store.snapshot(), self.settings.correlation, timeout=self.settings.storage_timeout)

        def work() -> None:
            try:
                res = asyncio.run(service.calculate_impact(src, tgt, offset))
                self._impact_results.put((gen, res, None))
            except Exception as e:
                self._impact_results.put((gen, None, str(e) or type(e).__name__))

        threading.Thread(target=work, daemon=True).start()

    def _poll_impact(self) -> None:
        try:
            while True:
                self._impact_done(*self._impact_results.get_nowait())
        except queue.Empty:
            pass
        finally:
            self.after(IMPACT_POLL_MS, self._poll_impact)

    def _impact_done(self, gen: int, res: CorrelationResult | None, error: str | None) -> None:
        if not self.impact.deliver(gen, res, error):
            return
        if error is not None:
            self._impact_write(f"Could not calculate: {error}")
            self._flush_notifications()
            return
        assert res is not None
        lines = []
        if res.impact_available:
            lines.append(f"Impact: {res.impact:+d}%  ({res.insight_type.replace('_', ' ')})")
        else:
            lines.append("Impact: not available (no baseline to compare against)")
        lines.append(f"Baseline avg {res.baseline_avg:g} over {res.baseline_days} day(s)")
        lines.append(f"With habit  {res.impacted_avg:g} over {res.triggered_days} day(s)")
        lines.append(f"Confidence: {res.user_friendly_confidence} · data quality {res.data_quality}")
        lines.append("")
        lines.extend(f"• {tip}" for tip in res.recommended_actions)
        self._impact_write("\n".join(lines))


# -------------------------
# GUI Entrypoint
# -------------------------


def run_gui(argv=None, data_path: Path | None = None, reset_on_drift: bool = False) -> None:
    data_path = data_path or resolve_data_path(None, None)
    try:
        store = JsonStore(data_path, reset_on_drift=reset_on_drift)
    except SchemaDriftError as e:
        from .schema import exit_on_drift

        exit_on_drift(e, data_path)
        return
    app = HabitflowApp(store)
    app.mainloop()


if __name__ == "__main__":
    run_gui()
