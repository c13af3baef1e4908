"""
Tunable settings, read from the ``settings`` object of the data file.

Every key is optional; anything missing falls back to the defaults below.
The correlation thresholds are product choices, not derived statistics,
which is why they live here instead of in the engine.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any


@dataclass
class CorrelationSettings:
    # |impact| above this (percent) counts as synergy / interference
    impact_threshold: float = 10.0
    # classification also needs confidence above this; 0 disables the gate
    confidence_gate: float = 0.0
    # clamp |impact| to this many percent; None = no clamp
    max_impact: float | None = None

    min_samples_for_confidence: int = 30
    balance_bonus_factor: float = 20.0
    sufficient_data_min: int = 14

    high_quality_samples: int = 30
    high_quality_balance: float = 0.3
    medium_quality_samples: int = 15
    medium_quality_balance: float = 0.2

    lookback_days: int = 365
    max_offset_days: int = 30


@dataclass
class Settings:
    correlation: CorrelationSettings = field(default_factory=CorrelationSettings)
    # seconds before a storage read is given up on
    storage_timeout: float = 5.0
    activation_distance: float = 8.0
    rolling_window: int = 7

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coerce(cls: type, raw: dict[str, Any], where: str) -> dict[str, Any]:
    out: dict[str, Any] = {}
    defaults = cls()
    for f in fields(cls):
        if f.name not in raw or f.name == "correlation":
            continue
        value = raw[f.name]
        default = getattr(defaults, f.name)
        if value is None and default is None:
            out[f.name] = None
            continue
        want = type(default) if default is not None else float
        try:
            out[f.name] = want(value)
        except (TypeError, ValueError):
            raise ValueError(f"settings: {where}{f.name} must be a {want.__name__}, got {value!r}") from None
    return out


def load_settings(data: dict[str, Any]) -> Settings:
    raw = data.get("settings") or {}
    if not isinstance(raw, dict):
        raise ValueError("settings must be a JSON object")
    corr_raw = raw.get("correlation") or {}
    if not isinstance(corr_raw, dict):
        raise ValueError("settings.correlation must be a JSON object")

    corr = CorrelationSettings(**_coerce(CorrelationSettings, corr_raw, "correlation."))
    return Settings(correlation=corr, **_coerce(Settings, raw, ""))
