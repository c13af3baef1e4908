"""Tests for config.load_settings."""

from __future__ import annotations

import pytest

from habitflow.config import CorrelationSettings, Settings, load_settings


def test_defaults_when_missing():
    s = load_settings({})
    assert s == Settings()
    assert s.correlation.impact_threshold == 10.0
    assert s.correlation.max_impact is None


def test_overrides_are_coerced():
    s = load_settings(
        {
            "settings": {
                "storage_timeout": "2.5",
                "rolling_window": 14,
                "correlation": {"impact_threshold": 15, "max_impact": 200, "sufficient_data_min": "21"},
            }
        }
    )
    assert s.storage_timeout == 2.5
    assert s.rolling_window == 14
    assert s.correlation.impact_threshold == 15.0
    assert s.correlation.max_impact == 200.0
    assert s.correlation.sufficient_data_min == 21


def test_unknown_keys_are_ignored():
    s = load_settings({"settings": {"theme": "dark"}})
    assert s == Settings()


def test_bad_value_raises():
    with pytest.raises(ValueError, match="correlation.impact_threshold"):
        load_settings({"settings": {"correlation": {"impact_threshold": "lots"}}})


def test_settings_must_be_object():
    with pytest.raises(ValueError):
        load_settings({"settings": [1, 2]})


def test_to_dict_nests_correlation():
    d = Settings(correlation=CorrelationSettings(confidence_gate=40)).to_dict()
    assert d["correlation"]["confidence_gate"] == 40
