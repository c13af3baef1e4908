"""
Two-cohort impact scores between a pair of trackers.

Days are split by the source tracker (habit done that day or not) and the
target tracker's value ``offset_days`` later is averaged per cohort. This is
a mean-difference heuristic, not a significance test.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from ._util import date_range, round_half_up, shift_date_str, today_str
from .config import CorrelationSettings
from .models import Entry, TrackerType
from .stats import daily_values, mean

log = logging.getLogger(__name__)

POSITIVE = "positive_synergy"
DESTRUCTIVE = "destructive_interference"
NEUTRAL = "neutral_correlation"


@dataclass
class CorrelationResult:
    source_tracker_id: int | None
    target_tracker_id: int | None
    offset_days: int
    impact: int
    # False when the baseline average is 0 (or a cohort is empty): impact is then 0
    impact_available: bool
    confidence: int
    baseline_avg: float
    impacted_avg: float
    triggered_days: int
    baseline_days: int
    insight_type: str
    data_quality: str
    has_sufficient_data: bool
    user_friendly_confidence: str
    recommended_actions: list[str] = field(default_factory=list)

    @property
    def total_days(self) -> int:
        return self.triggered_days + self.baseline_days

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        return {
            "sourceTrackerId": d["source_tracker_id"],
            "targetTrackerId": d["target_tracker_id"],
            "offsetDays": d["offset_days"],
            "impact": d["impact"],
            "impactAvailable": d["impact_available"],
            "confidence": d["confidence"],
            "baselineAvg": d["baseline_avg"],
            "impactedAvg": d["impacted_avg"],
            "triggeredDays": d["triggered_days"],
            "baselineDays": d["baseline_days"],
            "insightType": d["insight_type"],
            "userFriendlyConfidence": d["user_friendly_confidence"],
            "metadata": {
                "totalDays": self.total_days,
                "dataQuality": d["data_quality"],
                "hasSufficientData": d["has_sufficient_data"],
                "recommendedActions": d["recommended_actions"],
            },
        }


# -------------------------
# Heuristics
# -------------------------


def cohort_balance(triggered: int, baseline: int) -> float:
    if triggered <= 0 or baseline <= 0:
        return 0.0
    return min(triggered, baseline) / max(triggered, baseline)


def compute_confidence(triggered: int, baseline: int, settings: CorrelationSettings) -> int:
    total = triggered + baseline
    base = min(100.0, total / settings.min_samples_for_confidence * 100)
    bonus = cohort_balance(triggered, baseline) * settings.balance_bonus_factor
    return round_half_up(min(100.0, base + bonus))


def assess_data_quality(total: int, balance: float, settings: CorrelationSettings) -> str:
    if total >= settings.high_quality_samples and balance >= settings.high_quality_balance:
        return "high"
    if total >= settings.medium_quality_samples and balance >= settings.medium_quality_balance:
        return "medium"
    return "low"


def describe_confidence(confidence: int, total: int) -> str:
    if confidence >= 80:
        label = "Very High"
    elif confidence >= 60:
        label = "High"
    elif confidence >= 40:
        label = "Medium"
    elif confidence >= 20:
        label = "Low"
    else:
        label = "Very Low"
    return f"{label} ({total} days)"


def recommend(insight_type: str, quality: str, sufficient: bool) -> list[str]:
    if not sufficient:
        return ["Continue tracking for more reliable insights"]

    out: list[str] = []
    if insight_type == POSITIVE:
        out.append("Consider doing these habits together")
        if quality == "medium":
            out.append("Track more consistently to strengthen this insight")
    elif insight_type == DESTRUCTIVE:
        out.append("Consider separating these habits")
        if quality == "medium":
            out.append("Monitor this relationship closely")
    else:
        out.append("These habits appear independent")
        if quality == "high":
            out.append("Focus on other habit combinations")

    if quality == "low":
        out.append("More data needed for reliable conclusions")
    return out


def classify(impact: int, available: bool, confidence: int, settings: CorrelationSettings) -> str:
    if not available or confidence < settings.confidence_gate:
        return NEUTRAL
    if impact > settings.impact_threshold:
        return POSITIVE
    if impact < -settings.impact_threshold:
        return DESTRUCTIVE
    return NEUTRAL


# -------------------------
# Pure engine
# -------------------------


def validate_request(source_id: int | None, target_id: int | None, offset_days: int, settings: CorrelationSettings) -> None:
    if source_id is not None and source_id == target_id:
        raise ValueError("Source and target trackers must be different")
    if not isinstance(offset_days, int) or isinstance(offset_days, bool):
        raise ValueError(f"offset_days must be an integer, got {offset_days!r}")
    limit = settings.max_offset_days
    if not -limit <= offset_days <= limit:
        raise ValueError(f"offset_days must be between -{limit} and {limit}, got {offset_days}")


def target_aggregate_for(tracker_type: TrackerType) -> str:
    """Ratings average within a day; everything else adds up."""
    return "mean" if tracker_type is TrackerType.RANGE else "sum"


def calculate_impact(
    source_entries: Iterable[Entry],
    target_entries: Iterable[Entry],
    offset_days: int = 0,
    settings: CorrelationSettings | None = None,
    target_aggregate: str = "mean",
    source_tracker_id: int | None = None,
    target_tracker_id: int | None = None,
    today: str | None = None,
) -> CorrelationResult:
    """
    Every calendar day between the first and last entry of either tracker
    (within the lookback window) is either triggered (a source entry with
    value > 0) or baseline. Each day is paired with the target's daily
    aggregate on day + offset_days; days with no target data are left out
    rather than counted as zero.
    """
    settings = settings or CorrelationSettings()
    validate_request(source_tracker_id, target_tracker_id, offset_days, settings)

    cutoff = shift_date_str(today or today_str(), -settings.lookback_days)
    source = [e for e in source_entries if e.date_str >= cutoff]
    target = [e for e in target_entries if e.date_str >= cutoff]

    triggered_on = {e.date_str for e in source if e.value is not None and e.value > 0}
    target_by_day = daily_values(target, how=target_aggregate)

    observed = [e.date_str for e in source] + [e.date_str for e in target]
    impacted_vals: list[float] = []
    baseline_vals: list[float] = []
    if observed:
        for day in date_range(min(observed), max(observed)):
            value = target_by_day.get(shift_date_str(day, offset_days))
            if value is None:
                continue
            if day in triggered_on:
                impacted_vals.append(value)
            else:
                baseline_vals.append(value)

    baseline_avg = mean(baseline_vals)
    impacted_avg = mean(impacted_vals)

    # no baseline (or nothing to compare) means no impact figure
    available = bool(impacted_vals) and bool(baseline_vals) and baseline_avg != 0
    impact = 0
    if available:
        impact = round_half_up((impacted_avg - baseline_avg) / baseline_avg * 100)
        if settings.max_impact is not None:
            cap = int(settings.max_impact)
            impact = max(-cap, min(cap, impact))

    n_trig = len(impacted_vals)
    n_base = len(baseline_vals)
    total = n_trig + n_base
    confidence = compute_confidence(n_trig, n_base, settings)
    quality = assess_data_quality(total, cohort_balance(n_trig, n_base), settings)
    sufficient = total >= settings.sufficient_data_min
    insight = classify(impact, available, confidence, settings)

    return CorrelationResult(
        source_tracker_id=source_tracker_id,
        target_tracker_id=target_tracker_id,
        offset_days=offset_days,
        impact=impact,
        impact_available=available,
        confidence=confidence,
        baseline_avg=round(baseline_avg, 2),
        impacted_avg=round(impacted_avg, 2),
        triggered_days=n_trig,
        baseline_days=n_base,
        insight_type=insight,
        data_quality=quality,
        has_sufficient_data=sufficient,
        user_friendly_confidence=describe_confidence(confidence, total),
        recommended_actions=recommend(insight, quality, sufficient),
    )


# -------------------------
# Async boundary
# -------------------------


class ImpactService:
    """Loads both trackers off the event loop (bounded by a timeout) and runs the engine."""

    def __init__(self, store, settings: CorrelationSettings | None = None, timeout: float = 5.0):
        self.store = store
        self.settings = settings or CorrelationSettings()
        self.timeout = timeout

    def _load(self, source_id: int, target_id: int) -> tuple[list[Entry], list[Entry], str]:
        target = self.store.get_tracker(target_id)
        if self.store.get_tracker(source_id) is None:
            raise LookupError(f"No tracker with id {source_id}")
        if target is None:
            raise LookupError(f"No tracker with id {target_id}")
        return (
            self.store.list_entries(tracker_id=source_id),
            self.store.list_entries(tracker_id=target_id),
            target_aggregate_for(target.type),
        )

    async def calculate_impact(self, source_id: int, target_id: int, offset_days: int = 0) -> CorrelationResult:
        validate_request(source_id, target_id, offset_days, self.settings)
        try:
            src, tgt, how = await asyncio.wait_for(
                asyncio.to_thread(self._load, source_id, target_id),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(f"Loading entries took longer than {self.timeout:g}s") from None
        return calculate_impact(src, tgt, offset_days, self.settings, how, source_id, target_id)


Compute = Callable[[int, int, int], Awaitable[CorrelationResult]]


class CorrelationSession:
    """
    One correlation panel's request state.

    Each request bumps a generation counter; a response (or failure) that
    comes back for an older generation is dropped without a trace. Nothing
    is interrupted, late answers are just ignored.
    """

    def __init__(self, compute: Compute | None = None, on_error: Callable[[str], None] | None = None):
        self.compute = compute
        self.on_error = on_error
        self.generation = 0
        self.result: CorrelationResult | None = None
        self.error: str | None = None
        self.is_calculating = False

    def begin(self) -> int:
        self.generation += 1
        self.is_calculating = True
        self.error = None
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def deliver(self, generation: int, result: CorrelationResult | None = None, error: str | None = None) -> bool:
        """Apply a finished request; returns False (and changes nothing) if it was superseded."""
        if not self.is_current(generation):
            log.debug("dropping superseded correlation result (gen %d, current %d)", generation, self.generation)
            return False
        self.is_calculating = False
        if error is not None:
            self.error = error
            if self.on_error is not None:
                self.on_error(error)
        else:
            self.result = result
        return True

    async def request(self, source_id: int, target_id: int, offset_days: int = 0) -> CorrelationResult | None:
        if self.compute is None:
            raise RuntimeError("CorrelationSession has no compute function")
        gen = self.begin()
        try:
            res = await self.compute(source_id, target_id, offset_days)
        except Exception as e:
            if self.is_current(gen):
                log.warning("correlation %s -> %s failed: %s", source_id, target_id, e)
            self.deliver(gen, error=str(e) or type(e).__name__)
            return None
        return res if self.deliver(gen, result=res) else None

    def reset(self) -> None:
        self.generation += 1
        self.result = None
        self.error = None
        self.is_calculating = False
