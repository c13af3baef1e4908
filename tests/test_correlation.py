"""Tests for the impact engine and request supersession in correlation.py."""

from __future__ import annotations

import asyncio
import math
from datetime import timedelta
from pathlib import Path

import pytest

from habitflow._util import _now_local, ms_from_datetime
from habitflow.config import CorrelationSettings
from habitflow.correlation import (
    DESTRUCTIVE,
    NEUTRAL,
    POSITIVE,
    CorrelationResult,
    CorrelationSession,
    ImpactService,
    assess_data_quality,
    calculate_impact,
    cohort_balance,
    compute_confidence,
    describe_confidence,
    recommend,
    target_aggregate_for,
    validate_request,
)
from habitflow.models import Entry, TrackerType
from habitflow.storage import JsonStore

TODAY = "2024-01-20"


def _entries(tracker_id, values_by_day):
    out = []
    for n, (day, value) in enumerate(sorted(values_by_day.items())):
        out.append(Entry(tracker_id * 1000 + n, tracker_id, n, day, value))
    return out


def _impact(source, target, offset=0, settings=None, how="mean"):
    return calculate_impact(
        _entries(1, source),
        _entries(2, target),
        offset,
        settings,
        how,
        source_tracker_id=1,
        target_tracker_id=2,
        today=TODAY,
    )


# ---- calculate_impact ----


def test_positive_synergy():
    res = _impact(
        {"2024-01-01": 1, "2024-01-02": 1, "2024-01-03": 0},
        {"2024-01-01": 10, "2024-01-02": 10, "2024-01-03": 5, "2024-01-04": 5},
    )
    assert res.impact == 100
    assert res.impact_available
    assert res.insight_type == POSITIVE
    assert (res.triggered_days, res.baseline_days) == (2, 2)
    assert res.baseline_avg == 5.0 and res.impacted_avg == 10.0


def test_destructive_interference():
    res = _impact(
        {"2024-01-01": 1, "2024-01-02": 0},
        {"2024-01-01": 5, "2024-01-02": 10},
    )
    assert res.impact == -50
    assert res.insight_type == DESTRUCTIVE


def test_small_change_is_neutral():
    res = _impact(
        {"2024-01-01": 1, "2024-01-02": 0},
        {"2024-01-01": 10.5, "2024-01-02": 10},
    )
    assert res.impact == 5
    assert res.insight_type == NEUTRAL


def test_zero_baseline_gives_unavailable_impact():
    res = _impact(
        {"2024-01-01": 1, "2024-01-02": 0},
        {"2024-01-01": 5, "2024-01-02": 0},
    )
    assert res.impact == 0
    assert not res.impact_available
    assert not math.isnan(res.confidence)
    assert res.insight_type == NEUTRAL


def test_empty_cohort_gives_unavailable_impact():
    res = _impact({"2024-01-01": 1}, {"2024-01-01": 5})
    assert res.baseline_days == 0
    assert not res.impact_available
    assert res.impact == 0


def test_no_entries_at_all():
    res = calculate_impact([], [], today=TODAY)
    assert res.total_days == 0
    assert not res.impact_available
    assert res.data_quality == "low"


def test_days_without_target_data_are_skipped():
    res = _impact(
        {"2024-01-01": 1, "2024-01-05": 1},
        {"2024-01-01": 8, "2024-01-02": 4},
    )
    # 01-03..01-05 have no target value
    assert res.total_days == 2


def test_offset_pairs_with_later_day():
    res = _impact(
        {"2024-01-01": 1},
        {"2024-01-02": 8, "2024-01-03": 2},
        offset=1,
    )
    assert (res.triggered_days, res.baseline_days) == (1, 1)
    assert res.impact == 300
    assert res.offset_days == 1


def test_max_impact_clamps():
    settings = CorrelationSettings(max_impact=50)
    res = _impact({"2024-01-01": 1}, {"2024-01-02": 8, "2024-01-03": 2}, offset=1, settings=settings)
    assert res.impact == 50


def test_confidence_gate_forces_neutral():
    settings = CorrelationSettings(confidence_gate=50)
    res = _impact(
        {"2024-01-01": 1, "2024-01-02": 0},
        {"2024-01-01": 20, "2024-01-02": 10},
        settings=settings,
    )
    assert res.impact == 100
    assert res.confidence < 50
    assert res.insight_type == NEUTRAL


def test_sum_aggregate_for_counters():
    src = _entries(1, {"2024-01-01": 1, "2024-01-02": 0})
    tgt = [Entry(1, 2, 0, "2024-01-01", 3), Entry(2, 2, 1, "2024-01-01", 3), Entry(3, 2, 2, "2024-01-02", 3)]
    res = calculate_impact(src, tgt, target_aggregate="sum", today=TODAY)
    assert res.impacted_avg == 6.0
    assert res.impact == 100


def test_lookback_excludes_old_entries():
    res = _impact(
        {"2022-01-01": 1, "2024-01-01": 1, "2024-01-02": 0},
        {"2022-01-01": 100, "2024-01-01": 10, "2024-01-02": 5},
    )
    assert res.total_days == 2


def test_result_to_dict_shape():
    res = _impact({"2024-01-01": 1, "2024-01-02": 0}, {"2024-01-01": 2, "2024-01-02": 1})
    d = res.to_dict()
    assert d["sourceTrackerId"] == 1 and d["targetTrackerId"] == 2
    assert d["metadata"]["totalDays"] == 2
    assert d["metadata"]["dataQuality"] == "low"


# ---- validate_request ----


def test_same_tracker_rejected():
    with pytest.raises(ValueError):
        validate_request(3, 3, 0, CorrelationSettings())


@pytest.mark.parametrize("offset", [31, -31, 1.5, True])
def test_bad_offsets_rejected(offset):
    with pytest.raises(ValueError):
        validate_request(1, 2, offset, CorrelationSettings())


# ---- heuristics ----


def test_cohort_balance():
    assert cohort_balance(5, 10) == 0.5
    assert cohort_balance(0, 10) == 0.0


def test_confidence_formula():
    s = CorrelationSettings()
    assert compute_confidence(15, 15, s) == 100
    assert compute_confidence(2, 2, s) == 33
    assert compute_confidence(0, 6, s) == 20


def test_data_quality_tiers():
    s = CorrelationSettings()
    assert assess_data_quality(30, 0.3, s) == "high"
    assert assess_data_quality(30, 0.25, s) == "medium"
    assert assess_data_quality(15, 0.2, s) == "medium"
    assert assess_data_quality(14, 1.0, s) == "low"


def test_describe_confidence():
    assert describe_confidence(85, 40) == "Very High (40 days)"
    assert describe_confidence(10, 3) == "Very Low (3 days)"


def test_recommend_insufficient_data():
    assert recommend(POSITIVE, "high", False) == ["Continue tracking for more reliable insights"]


def test_recommend_low_quality_adds_caveat():
    tips = recommend(NEUTRAL, "low", True)
    assert tips[-1] == "More data needed for reliable conclusions"


def test_target_aggregate_for():
    assert target_aggregate_for(TrackerType.RANGE) == "mean"
    assert target_aggregate_for(TrackerType.NUMERIC) == "sum"


# ---- ImpactService ----


def _noon_days_ago(n):
    return ms_from_datetime(_now_local().replace(hour=12, minute=0, second=0, microsecond=0) - timedelta(days=n))


def test_impact_service_reads_store(tmp_path: Path):
    store = JsonStore(tmp_path / "data.json")
    run = store.add_tracker("Run")
    mood = store.add_tracker("Mood", "rating")
    for n, ran in enumerate([1, 0, 1, 0]):
        store.add_entry(run.id, _noon_days_ago(n + 1), ran)
        store.add_entry(mood.id, _noon_days_ago(n + 1), 8 if ran else 4)

    res = asyncio.run(ImpactService(store).calculate_impact(run.id, mood.id, 0))
    assert res.impact == 100
    assert res.source_tracker_id == run.id


def test_impact_service_over_snapshot_ignores_later_writes(tmp_path: Path):
    store = JsonStore(tmp_path / "data.json")
    run = store.add_tracker("Run")
    mood = store.add_tracker("Mood", "rating")
    for n, ran in enumerate([1, 0, 1, 0]):
        store.add_entry(run.id, _noon_days_ago(n + 1), ran)
        store.add_entry(mood.id, _noon_days_ago(n + 1), 8 if ran else 4)

    service = ImpactService(store.snapshot())
    store.delete_tracker(mood.id)
    res = asyncio.run(service.calculate_impact(run.id, mood.id, 0))
    assert res.impact == 100


def test_impact_service_unknown_tracker(tmp_path: Path):
    store = JsonStore(tmp_path / "data.json")
    t = store.add_tracker("Run")
    with pytest.raises(LookupError):
        asyncio.run(ImpactService(store).calculate_impact(t.id, 99))


# ---- CorrelationSession ----


def _result(source_id, target_id):
    return calculate_impact([], [], source_tracker_id=source_id, target_tracker_id=target_id)


def test_late_result_is_discarded():
    async def scenario():
        release_r1 = asyncio.Event()

        async def compute(source_id, target_id, offset):
            if source_id == 1:
                await release_r1.wait()
            return _result(source_id, target_id)

        session = CorrelationSession(compute)
        r1 = asyncio.create_task(session.request(1, 2))
        await asyncio.sleep(0)
        r2 = await session.request(3, 4)
        release_r1.set()
        late = await r1
        return session, r2, late

    session, r2, late = asyncio.run(scenario())
    assert late is None
    assert r2 is not None
    assert session.result is r2
    assert (session.result.source_tracker_id, session.result.target_tracker_id) == (3, 4)
    assert not session.is_calculating


def test_late_failure_is_discarded():
    errors = []

    async def scenario():
        release_r1 = asyncio.Event()

        async def compute(source_id, target_id, offset):
            if source_id == 1:
                await release_r1.wait()
                raise TimeoutError("slow")
            return _result(source_id, target_id)

        session = CorrelationSession(compute, on_error=errors.append)
        r1 = asyncio.create_task(session.request(1, 2))
        await asyncio.sleep(0)
        await session.request(3, 4)
        release_r1.set()
        await r1
        return session

    session = asyncio.run(scenario())
    assert errors == []
    assert session.error is None
    assert session.result.source_tracker_id == 3


def test_current_failure_is_reported():
    errors = []

    async def compute(source_id, target_id, offset):
        raise LookupError("No tracker with id 9")

    session = CorrelationSession(compute, on_error=errors.append)
    assert asyncio.run(session.request(9, 1)) is None
    assert errors == ["No tracker with id 9"]
    assert session.error == "No tracker with id 9"
    assert not session.is_calculating


def test_deliver_checks_generation():
    session = CorrelationSession()
    g1 = session.begin()
    g2 = session.begin()
    res = _result(1, 2)
    assert not session.deliver(g1, res)
    assert session.result is None
    assert session.deliver(g2, res)
    assert isinstance(session.result, CorrelationResult)


def test_reset_drops_in_flight():
    session = CorrelationSession()
    gen = session.begin()
    session.reset()
    assert not session.deliver(gen, _result(1, 2))
    assert session.result is None


def test_request_without_compute():
    with pytest.raises(RuntimeError):
        asyncio.run(CorrelationSession().request(1, 2))
