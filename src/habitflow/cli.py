from __future__ import annotations

import argparse
import asyncio
import json
import logging
import stat
from datetime import date, datetime

from ._util import _fmt_time, ms_from_datetime, shift_date_str, today_str
from .config import load_settings
from .correlation import CorrelationSession, ImpactService
from .grid import create_occupation_map
from .layout import (
    LayoutEngine,
    compact_widgets,
    default_sortable_items,
    reorder_items,
    resize_widget,
    set_widget_visibility,
    validate_layout,
)
from .models import Layout, TrackerType
from .pages import PAGES, PageConfig, get_page, page_layout
from .paths import data_path_reason, resolve_data_path
from .schema import SchemaDriftError, check_schema, exit_on_drift
from .stats import calendar_month, daily_values, dashboard_stats, rolling_average, tracker_stats
from .storage import JsonStore, LayoutStore, StorageError
from .timeparse import parse_ts

log = logging.getLogger(__name__)


# -------------------------
# Helpers
# -------------------------


def _open_store(args: argparse.Namespace) -> JsonStore:
    try:
        return JsonStore(args.data_path, reset_on_drift=args.reset_on_drift)
    except SchemaDriftError as e:
        exit_on_drift(e, args.data_path)
    except StorageError as e:
        raise SystemExit(f"❌ {e}") from e


def _write(action, *args, **kwargs):
    """Run a store mutation; a failed write leaves the data untouched and ends the command."""
    try:
        return action(*args, **kwargs)
    except StorageError as e:
        raise SystemExit(f"❌ {e} (nothing was changed)") from e


def _parse_time_ms(value: str | None) -> int:
    try:
        return ms_from_datetime(parse_ts(value))
    except ValueError as e:
        raise SystemExit(str(e)) from e


def _require_tracker(store: JsonStore, tracker_id: int):
    t = store.get_tracker(tracker_id)
    if t is None:
        raise SystemExit(f"No tracker with id {tracker_id} (see `habitflow tracker list`)")
    return t


def _window_start(window: str) -> tuple[str | None, str]:
    if window in ("7", "30"):
        days = int(window)
        return shift_date_str(today_str(), -(days - 1)), f"last {days} days"
    return None, "all time"


def _settings(store: JsonStore):
    try:
        return load_settings(store.data)
    except ValueError as e:
        raise SystemExit(f"❌ {e} (fix the settings object in {store.data_path})") from e


def _fmt_value(v: float | None) -> str:
    if v is None:
        return "—"
    return f"{v:g}"


def _page_and_layout(store: JsonStore, page_name: str) -> tuple[PageConfig, Layout]:
    try:
        page = get_page(page_name)
    except ValueError as e:
        raise SystemExit(str(e)) from e
    saved = LayoutStore(store).load(page.name)
    return page, page_layout(page, saved, store.list_trackers())


def _save_layout(store: JsonStore, page: PageConfig, layout: Layout) -> None:
    if LayoutStore(store).save(page.name, layout):
        print(f"💾 Saved layout for {page.name}")
    else:
        print(f"⚠️ Could not save layout for {page.name} (change kept for this run only)")


def _render_grid(layout: Layout, page: PageConfig) -> str:
    grid = page.grid
    letters = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    visible = layout.visible()
    label = {}
    for n, wd in enumerate(visible):
        label[wd.id] = letters[n % len(letters)]

    cells = [["." for _ in range(grid.cols)] for _ in range(grid.rows)]
    for wd in visible:
        for y in range(max(0, wd.y), min(grid.rows, wd.y + wd.h)):
            for x in range(max(0, wd.x), min(grid.cols, wd.x + wd.w)):
                cells[y][x] = label[wd.id]

    occ = create_occupation_map(layout.widgets, grid=grid)
    used = sum(1 for row in occ for c in row if c)

    lines = [" ".join(row) for row in cells]
    lines.append("")
    for wd in visible:
        lines.append(f"{label[wd.id]}  {wd.id:<22} {wd.w}x{wd.h} @ ({wd.x}, {wd.y})")
    hidden = layout.hidden()
    if hidden:
        lines.append("hidden: " + ", ".join(wd.id for wd in hidden))
    lines.append(f"{used}/{grid.cols * grid.rows} cells used")
    return "\n".join(lines)


# -------------------------
# Commands: setup
# -------------------------


def cmd_init(args: argparse.Namespace) -> None:
    store = _open_store(args)
    _write(store.save)
    print(f"✅ Initialized data file: {args.data_path}")


def cmd_where(args: argparse.Namespace) -> None:
    print(args.data_path)
    print(f"↳ using {data_path_reason(args.data_arg, args.profile)}")


def cmd_doctor(args: argparse.Namespace) -> None:
    print("=== habitflow doctor ===")

    if args.data_path.exists():
        try:
            raw = json.loads(args.data_path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            print("⚠️ JSON unreadable (it will be backed up and reset on next load)")
            raw = None
        if isinstance(raw, dict):
            rep = check_schema(raw)
            if rep.ok:
                print("✅ Schema: OK")
            for msg in rep.repairable:
                print(f"🔧 repairable: {msg}")
            for msg in rep.fatal:
                print(f"🚫 drift: {msg}")
            if rep.fatal and not args.reset_on_drift:
                print("   (rerun with --reset-on-drift to back up and reset)")
                print("=== Done ===")
                return
    else:
        print("⚠️ Data file missing (run `habitflow init`)")
        print("=== Done ===")
        return

    store = _open_store(args)
    for action in store.repairs:
        print(f"🔧 repaired: {action}")

    try:
        load_settings(store.data)
        print("✅ Settings: OK")
    except ValueError as e:
        print(f"⚠️ Settings: {e}")

    layouts = LayoutStore(store)
    for name in sorted(store.data["layouts"]):
        saved = layouts.load(name)
        if saved is None or name not in PAGES:
            print(f"⚠️ Layout {name!r}: unreadable or unknown page")
            continue
        result = validate_layout(saved, PAGES[name].grid)
        if result.is_valid:
            print(f"✅ Layout {name!r}: OK")
        for err in result.errors:
            print(f"⚠️ Layout {name!r}: {err.field}: {err.message}")

    try:
        perms = stat.S_IMODE(args.data_path.stat().st_mode)
        print(f"🔐 File permissions: {oct(perms)} (target 0o600)")
    except FileNotFoundError:
        pass

    print("=== Done ===")


# -------------------------
# Commands: trackers + entries
# -------------------------


def cmd_tracker_add(args: argparse.Namespace) -> None:
    store = _open_store(args)
    config: dict = {}
    for key in ("unit", "goal", "min", "max", "step"):
        v = getattr(args, key, None)
        if v is not None:
            config[key] = v
    if args.options:
        config["options"] = [o.strip() for o in args.options.split(",") if o.strip()]
    try:
        t = _write(store.add_tracker, args.name, args.type, config, args.color, args.icon, args.favorite)
    except ValueError as e:
        raise SystemExit(str(e)) from e
    print(f"✅ Added tracker #{t.id}: {t.name} ({t.type.value})")


def cmd_tracker_list(args: argparse.Namespace) -> None:
    store = _open_store(args)
    trackers = store.list_trackers(include_archived=args.all)
    if not trackers:
        print("No trackers yet.")
        return
    for t in trackers:
        flags = ("★ " if t.is_favorite else "") + ("[archived] " if t.archived else "")
        unit = t.config.get("unit", "")
        print(f"#{t.id:<4} {flags}{t.name} ({t.type.value}{', ' + unit if unit else ''})")


def cmd_tracker_archive(args: argparse.Namespace) -> None:
    store = _open_store(args)
    try:
        t = _write(store.archive_tracker, args.id, archived=not args.undo)
    except KeyError as e:
        raise SystemExit(str(e.args[0])) from e
    print(f"✅ {'Restored' if args.undo else 'Archived'} tracker #{t.id}: {t.name}")


def cmd_tracker_favorite(args: argparse.Namespace) -> None:
    store = _open_store(args)
    try:
        t = _write(store.toggle_favorite, args.id)
    except KeyError as e:
        raise SystemExit(str(e.args[0])) from e
    print(f"{'★ Starred' if t.is_favorite else '☆ Unstarred'} tracker #{t.id}: {t.name}")


def cmd_tracker_update(args: argparse.Namespace) -> None:
    store = _open_store(args)
    current = _require_tracker(store, args.id)
    config = None
    if args.unit is not None or args.goal is not None:
        config = dict(current.config)
        if args.unit is not None:
            config["unit"] = args.unit
        if args.goal is not None:
            config["goal"] = args.goal
    try:
        t = _write(
            store.update_tracker,
            args.id,
            name=args.name,
            type=args.type,
            config=config,
            color=args.color,
            icon=args.icon,
        )
    except ValueError as e:
        raise SystemExit(str(e)) from e
    print(f"✅ Updated tracker #{t.id}: {t.name} ({t.type.value})")


def cmd_tracker_recent(args: argparse.Namespace) -> None:
    store = _open_store(args)
    trackers = store.favorite_trackers() if args.favorites else store.recent_trackers(args.limit)
    if not trackers:
        print("No favorite trackers." if args.favorites else "Nothing logged yet.")
        return
    for t in trackers:
        print(f"#{t.id:<4} {'★ ' if t.is_favorite else ''}{t.name}")


def cmd_tracker_move(args: argparse.Namespace) -> None:
    store = _open_store(args)
    trackers = store.list_trackers()
    items = default_sortable_items(str(t.id) for t in trackers)
    moved = reorder_items(items, str(args.id), str(args.over))
    if moved == items:
        raise SystemExit("Nothing to move (check both tracker ids)")
    _write(store.set_tracker_order, [int(it.id) for it in moved])
    names = {t.id: t.name for t in trackers}
    print("✅ New order: " + ", ".join(names[int(it.id)] for it in moved))


def cmd_tracker_delete(args: argparse.Namespace) -> None:
    if not args.yes:
        raise SystemExit("Refusing to delete without --yes (this also deletes the tracker's entries)")
    store = _open_store(args)
    if not _write(store.delete_tracker, args.id):
        raise SystemExit(f"No tracker with id {args.id}")
    print(f"🗑️ Deleted tracker #{args.id} and its entries")


def cmd_entry_add(args: argparse.Namespace) -> None:
    store = _open_store(args)
    t = _require_tracker(store, args.tracker)
    if t.type is TrackerType.BINARY and args.value is None:
        args.value = 1.0
    ts = _parse_time_ms(args.time)
    e = _write(store.add_entry, t.id, ts, args.value, args.note)
    print(f"✅ Logged {t.name}: {_fmt_value(e.value)} on {e.date_str}")


def cmd_entry_list(args: argparse.Namespace) -> None:
    store = _open_store(args)
    names = {t.id: t.name for t in store.list_trackers()}
    entries = store.list_entries(tracker_id=args.tracker, limit=args.limit)
    if not entries:
        print("No entries yet.")
        return
    for e in entries:
        dt = datetime.fromtimestamp(e.timestamp / 1000).astimezone()
        note = f" — {e.note}" if e.note else ""
        print(f"#{e.id:<5} {e.date_str} {_fmt_time(dt):>8}  {names.get(e.tracker_id, '?')}: {_fmt_value(e.value)}{note}")


def cmd_entry_delete(args: argparse.Namespace) -> None:
    store = _open_store(args)
    if not _write(store.delete_entry, args.id):
        raise SystemExit(f"No entry with id {args.id}")
    print(f"🗑️ Deleted entry #{args.id}")


# -------------------------
# Commands: stats
# -------------------------


def cmd_stats(args: argparse.Namespace) -> None:
    store = _open_store(args)
    start, label = _window_start(args.window)

    if args.tracker is None:
        ds = dashboard_stats(store.list_trackers(), store.list_entries())
        print("=== Dashboard ===")
        print(f"Current streak: {ds.current_streak} day(s)")
        print(f"Best streak:    {ds.best_streak} day(s)")
        print(f"Active trackers: {ds.total_activities}")
        print(f"Entries this month: {ds.total_entries_month}")
        return

    t = _require_tracker(store, args.tracker)
    entries = store.list_entries(tracker_id=t.id)
    s = tracker_stats(entries, start=start)
    print(f"=== {t.name} ({label}) ===")
    print(f"Entries: {s.total_entries}")
    print(f"Avg/day: {s.average_per_day:g} (σ {s.std_deviation:g})")
    print(f"Trend: {s.trend}")
    print(f"Streak: {s.current_streak} (best {s.best_streak})")

    settings = _settings(store)
    series = daily_values([e for e in entries if start is None or e.date_str >= start])
    rolled = rolling_average(list(series.values()), settings.rolling_window)
    if rolled and rolled[-1] is not None:
        print(f"{settings.rolling_window}-day rolling avg: {rolled[-1]:.2f}")


def cmd_streak(args: argparse.Namespace) -> None:
    store = _open_store(args)
    ds = dashboard_stats(store.list_trackers(), store.list_entries())
    print(f"🔥 {ds.current_streak} day streak (best {ds.best_streak})")


def cmd_calendar(args: argparse.Namespace) -> None:
    store = _open_store(args)
    today = date.today()
    year = args.year or today.year
    month = args.month or today.month
    try:
        cal = calendar_month(store.list_entries(), year, month)
    except ValueError as e:
        raise SystemExit(str(e)) from e

    names = {t.id: t.name for t in store.list_trackers()}
    print(f"=== {year}-{month:02d} ===")
    if not cal.active_days:
        print("No entries this month.")
        return
    print("Active days: " + ", ".join(str(d) for d in cal.active_days))
    for day, entries in cal.entries_by_date.items():
        parts = [f"{names.get(e.tracker_id, '?')} {_fmt_value(e.value)}" for e in entries]
        print(f"- {day}: " + "; ".join(parts))


def cmd_impact(args: argparse.Namespace) -> None:
    store = _open_store(args)
    settings = _settings(store)
    service = ImpactService(store, settings.correlation, timeout=settings.storage_timeout)
    session = CorrelationSession(service.calculate_impact)
    asyncio.run(session.request(args.source, args.target, args.offset))
    if session.error:
        raise SystemExit(f"❌ {session.error}")
    r = session.result
    assert r is not None

    if args.json:
        print(json.dumps(r.to_dict(), indent=2))
        return

    src = _require_tracker(store, args.source).name
    tgt = _require_tracker(store, args.target).name
    lag = "same day" if args.offset == 0 else f"{args.offset:+d} day(s)"
    print(f"=== {src} → {tgt} ({lag}) ===")
    if r.impact_available:
        print(f"Impact: {r.impact:+d}%  [{r.insight_type}]")
    else:
        print(f"Impact: n/a (baseline average is 0 or a cohort is empty)  [{r.insight_type}]")
    print(f"Baseline avg: {r.baseline_avg:g} over {r.baseline_days} day(s)")
    print(f"With habit:   {r.impacted_avg:g} over {r.triggered_days} day(s)")
    print(f"Confidence: {r.confidence}% — {r.user_friendly_confidence}, quality {r.data_quality}")
    for tip in r.recommended_actions:
        print(f"• {tip}")


# -------------------------
# Commands: layout
# -------------------------


def cmd_pages(args: argparse.Namespace) -> None:
    for name, page in sorted(PAGES.items()):
        source = "trackers" if page.tracker_driven else f"{len(page.initial_widgets)} widgets"
        print(f"{name:<10} {page.cols}x{page.rows} gap {page.gap}  ({source})")


def cmd_layout_show(args: argparse.Namespace) -> None:
    store = _open_store(args)
    page, layout = _page_and_layout(store, args.page)
    print(f"=== {page.name} layout ===")
    print(_render_grid(layout, page))


def cmd_layout_move(args: argparse.Namespace) -> None:
    store = _open_store(args)
    page, layout = _page_and_layout(store, args.page)
    engine = LayoutEngine(layout.widgets, page.grid)
    wd = engine.get(args.widget)
    if wd is None or not wd.visible:
        raise SystemExit(f"No visible widget {args.widget!r} on {page.name}")

    engine.begin(wd.id)
    preview = engine.preview(args.x, args.y)
    if not preview.is_valid:
        engine.cancel()
        raise SystemExit(f"🚫 No room to move {wd.id} to ({args.x}, {args.y}); layout unchanged")
    widgets = engine.commit(args.x, args.y)
    if widgets is None:
        raise SystemExit(f"🚫 No room to move {wd.id} to ({args.x}, {args.y}); layout unchanged")

    note = " (other widgets moved aside)" if preview.will_displace else ""
    print(f"✅ Moved {wd.id} to ({args.x}, {args.y}){note}")
    layout.widgets = widgets
    _save_layout(store, page, layout)


def cmd_layout_resize(args: argparse.Namespace) -> None:
    store = _open_store(args)
    page, layout = _page_and_layout(store, args.page)
    widgets = resize_widget(layout.widgets, args.widget, args.width, args.height, page.grid)
    if widgets is None:
        raise SystemExit(f"🚫 Cannot resize {args.widget!r} to {args.width}x{args.height}; layout unchanged")
    layout.widgets = widgets
    print(f"✅ Resized {args.widget} to {args.width}x{args.height}")
    _save_layout(store, page, layout)


def _set_visibility(args: argparse.Namespace, visible: bool) -> None:
    store = _open_store(args)
    page, layout = _page_and_layout(store, args.page)
    widgets = set_widget_visibility(layout.widgets, args.widget, visible, page.grid)
    if widgets is None:
        raise SystemExit(f"🚫 Cannot {'show' if visible else 'hide'} {args.widget!r} (unknown widget or no room)")
    layout.widgets = widgets
    print(f"✅ {'Showing' if visible else 'Hid'} {args.widget}")
    _save_layout(store, page, layout)


def cmd_layout_hide(args: argparse.Namespace) -> None:
    _set_visibility(args, False)


def cmd_layout_unhide(args: argparse.Namespace) -> None:
    _set_visibility(args, True)


def cmd_layout_compact(args: argparse.Namespace) -> None:
    store = _open_store(args)
    page, layout = _page_and_layout(store, args.page)
    layout.widgets = compact_widgets(layout.widgets, page.grid)
    print(_render_grid(layout, page))
    _save_layout(store, page, layout)


def cmd_layout_reset(args: argparse.Namespace) -> None:
    store = _open_store(args)
    page, _ = _page_and_layout(store, args.page)
    if _write(LayoutStore(store).clear, page.name):
        print(f"♻️ {page.name} layout reset to default")
    else:
        print(f"{page.name} already uses the default layout")


# -------------------------
# Entrypoint
# -------------------------


def main(argv=None) -> None:
    p = argparse.ArgumentParser(prog="habitflow", description="habitflow habit tracker")
    p.add_argument("--data", default=None, help="Path to data JSON (overrides env/default)")
    p.add_argument("--profile", default=None, help="Profile name (e.g. dev/test)")
    p.add_argument(
        "--reset-on-drift",
        action="store_true",
        help="If the data file has an unrecognised shape, back it up and start fresh",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log engine decisions to stderr")

    sub = p.add_subparsers(dest="cmd", required=True)
    sub.add_parser("init", help="Initialize data store").set_defaults(func=cmd_init)
    sub.add_parser("where", help="Show which data file is active and why").set_defaults(func=cmd_where)
    sub.add_parser("doctor", help="Check file health, schema and saved layouts").set_defaults(func=cmd_doctor)
    sub.add_parser("pages", help="List dashboard pages").set_defaults(func=cmd_pages)

    # ---- tracker ----
    tr = sub.add_parser("tracker", help="Manage trackers")
    tr_sub = tr.add_subparsers(dest="tracker_cmd", required=True)

    tr_add = tr_sub.add_parser("add", help="Create a tracker")
    tr_add.add_argument("--name", required=True)
    tr_add.add_argument("--type", default="numeric", help="numeric|range|binary|text|composite (or counter/rating/list)")
    tr_add.add_argument("--unit", default=None)
    tr_add.add_argument("--goal", type=float, default=None)
    tr_add.add_argument("--min", type=float, default=None)
    tr_add.add_argument("--max", type=float, default=None)
    tr_add.add_argument("--step", type=float, default=None)
    tr_add.add_argument("--options", default=None, help="Comma-separated choices for list trackers")
    tr_add.add_argument("--color", default=None)
    tr_add.add_argument("--icon", default=None)
    tr_add.add_argument("--favorite", action="store_true")
    tr_add.set_defaults(func=cmd_tracker_add)

    tr_list = tr_sub.add_parser("list", help="List trackers")
    tr_list.add_argument("--all", action="store_true", help="Include archived trackers")
    tr_list.set_defaults(func=cmd_tracker_list)

    tr_arch = tr_sub.add_parser("archive", help="Archive (or --undo) a tracker")
    tr_arch.add_argument("id", type=int)
    tr_arch.add_argument("--undo", action="store_true")
    tr_arch.set_defaults(func=cmd_tracker_archive)

    tr_fav = tr_sub.add_parser("favorite", help="Star or unstar a tracker")
    tr_fav.add_argument("id", type=int)
    tr_fav.set_defaults(func=cmd_tracker_favorite)

    tr_upd = tr_sub.add_parser("update", help="Rename or change a tracker")
    tr_upd.add_argument("id", type=int)
    tr_upd.add_argument("--name", default=None)
    tr_upd.add_argument("--type", default=None, help="numeric|range|binary|text|composite (or counter/rating/list)")
    tr_upd.add_argument("--unit", default=None)
    tr_upd.add_argument("--goal", type=float, default=None)
    tr_upd.add_argument("--color", default=None)
    tr_upd.add_argument("--icon", default=None)
    tr_upd.set_defaults(func=cmd_tracker_update)

    tr_recent = tr_sub.add_parser("recent", help="Trackers most recently logged (or --favorites)")
    tr_recent.add_argument("--limit", type=int, default=10)
    tr_recent.add_argument("--favorites", action="store_true")
    tr_recent.set_defaults(func=cmd_tracker_recent)

    tr_move = tr_sub.add_parser("move", help="Move a tracker to another tracker's place in the list")
    tr_move.add_argument("id", type=int)
    tr_move.add_argument("--over", type=int, required=True)
    tr_move.set_defaults(func=cmd_tracker_move)

    tr_del = tr_sub.add_parser("delete", help="Delete a tracker and its entries (requires --yes)")
    tr_del.add_argument("id", type=int)
    tr_del.add_argument("--yes", action="store_true")
    tr_del.set_defaults(func=cmd_tracker_delete)

    # ---- entry ----
    en = sub.add_parser("entry", help="Log and list entries")
    en_sub = en.add_subparsers(dest="entry_cmd", required=True)

    en_add = en_sub.add_parser("add", help="Log an entry")
    en_add.add_argument("--tracker", type=int, required=True)
    en_add.add_argument("--value", type=float, default=None)
    en_add.add_argument("--note", default=None)
    en_add.add_argument("--time", default=None, help="ISO, human, or relative (e.g. yesterday 9am)")
    en_add.set_defaults(func=cmd_entry_add)

    en_list = en_sub.add_parser("list", help="List entries, newest first")
    en_list.add_argument("--tracker", type=int, default=None)
    en_list.add_argument("--limit", type=int, default=50)
    en_list.set_defaults(func=cmd_entry_list)

    en_del = en_sub.add_parser("delete", help="Delete an entry")
    en_del.add_argument("id", type=int)
    en_del.set_defaults(func=cmd_entry_delete)

    # ---- stats ----
    st = sub.add_parser("stats", help="Dashboard stats, or one tracker's stats")
    st.add_argument("--tracker", type=int, default=None)
    st.add_argument("--window", choices=["7", "30", "all"], default="30")
    st.set_defaults(func=cmd_stats)

    sub.add_parser("streak", help="Current and best streak").set_defaults(func=cmd_streak)

    cal = sub.add_parser("calendar", help="Entries for a month")
    cal.add_argument("--year", type=int, default=None)
    cal.add_argument("--month", type=int, default=None, help="1-12")
    cal.set_defaults(func=cmd_calendar)

    imp = sub.add_parser("impact", help="How one habit relates to another tracker")
    imp.add_argument("--source", type=int, required=True)
    imp.add_argument("--target", type=int, required=True)
    imp.add_argument("--offset", type=int, default=0, help="Days between habit and effect (-30..30)")
    imp.add_argument("--json", action="store_true")
    imp.set_defaults(func=cmd_impact)

    # ---- layout ----
    lay = sub.add_parser("layout", help="Dashboard widget layout")
    lay_sub = lay.add_subparsers(dest="layout_cmd", required=True)

    def _layout_cmd(name: str, help_text: str, func) -> argparse.ArgumentParser:
        sp = lay_sub.add_parser(name, help=help_text)
        sp.add_argument("--page", default="dashboard")
        sp.set_defaults(func=func)
        return sp

    _layout_cmd("show", "Print the grid", cmd_layout_show)

    mv = _layout_cmd("move", "Move a widget, pushing blockers aside", cmd_layout_move)
    mv.add_argument("widget")
    mv.add_argument("x", type=int)
    mv.add_argument("y", type=int)

    rs = _layout_cmd("resize", "Resize a widget in place", cmd_layout_resize)
    rs.add_argument("widget")
    rs.add_argument("width", type=int)
    rs.add_argument("height", type=int)

    _layout_cmd("hide", "Hide a widget", cmd_layout_hide).add_argument("widget")
    _layout_cmd("show-widget", "Show a hidden widget", cmd_layout_unhide).add_argument("widget")
    _layout_cmd("compact", "Pack widgets towards the top-left", cmd_layout_compact)
    _layout_cmd("reset", "Forget the saved layout", cmd_layout_reset)

    sub.add_parser("gui", help="Open the dashboard window").set_defaults(func=cmd_gui)

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.data_arg = args.data
    args.data_path = resolve_data_path(args.data, args.profile)
    log.debug("data file: %s (%s)", args.data_path, data_path_reason(args.data, args.profile))
    args.func(args)


def cmd_gui(args: argparse.Namespace) -> None:
    from .gui import run_gui

    run_gui(data_path=args.data_path, reset_on_drift=args.reset_on_drift)


if __name__ == "__main__":
    main()
