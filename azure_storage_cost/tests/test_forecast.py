from datetime import date, datetime, timezone

import pytest

from azure_storage_cost.analysis.forecast import (
    MIN_CONFIDENCE,
    TREND_DECREASING,
    TREND_INCREASING,
    TREND_STABLE,
    confidence_level,
    daily_costs_from_history,
    forecast,
)


def test_flat_series_is_stable_with_max_confidence():
    fc = forecast([10.0] * 30, horizon_days=30, min_samples=7, max_confidence=95)
    assert fc.trend == TREND_STABLE
    assert fc.coefficient_of_variation == pytest.approx(0.0)
    assert fc.confidence_percent == 95
    assert fc.confidence_level == "High"
    assert fc.mid_estimate == pytest.approx(300.0)
    assert fc.low_estimate == pytest.approx(300.0)
    assert fc.high_estimate == pytest.approx(300.0)
    assert fc.risk_factors == ()


def test_increasing_series():
    fc = forecast([10.0 + i for i in range(30)], horizon_days=30, min_samples=7)
    assert fc.trend == TREND_INCREASING
    assert fc.daily_growth_rate_percent > 0
    assert fc.mid_estimate > fc.mean_daily_cost * 30
    assert fc.low_estimate < fc.mid_estimate < fc.high_estimate


def test_decreasing_series():
    fc = forecast([40.0 - i for i in range(30)], horizon_days=30, min_samples=7)
    assert fc.trend == TREND_DECREASING
    assert fc.daily_growth_rate_percent < 0
    assert fc.mid_estimate < fc.mean_daily_cost * 30


def test_short_series_never_reports_a_trend():
    fc = forecast([1.0, 5.0, 20.0], horizon_days=30, min_samples=7)
    assert fc.trend == TREND_STABLE
    assert fc.daily_growth_rate_percent == pytest.approx(9.5 / (26.0 / 3.0) * 100.0)
    assert fc.mid_estimate == pytest.approx(fc.mean_daily_cost * 30)
    assert fc.confidence_percent == 30
    assert fc.sample_count == 3
    assert any("Only 3 daily samples" in r for r in fc.risk_factors)


def test_short_series_reports_its_growth_rate():
    fc = forecast([1.0, 2.0, 3.0, 4.0, 5.0], min_samples=7)
    assert fc.daily_growth_rate_percent == pytest.approx(100.0 / 3.0)
    assert fc.trend == TREND_STABLE
    assert any("growth" in r for r in fc.risk_factors)


def test_short_flat_series_still_has_a_band():
    fc = forecast([5.0, 5.0, 5.0], horizon_days=30, min_samples=7)
    assert fc.mid_estimate == pytest.approx(150.0)
    assert fc.low_estimate == pytest.approx(142.5)
    assert fc.high_estimate == pytest.approx(157.5)


def test_all_zero_history_has_low_confidence():
    fc = forecast([0.0] * 14)
    assert fc.mid_estimate == 0
    assert fc.confidence_percent == MIN_CONFIDENCE
    assert fc.confidence_level == "Low"
    assert any("No cost recorded" in r for r in fc.risk_factors)


def test_empty_history():
    fc = forecast([])
    assert fc.sample_count == 0
    assert fc.mid_estimate == 0
    assert fc.confidence_percent == MIN_CONFIDENCE


def test_volatile_series_is_flagged():
    fc = forecast([1.0, 50.0] * 10, min_samples=7)
    assert fc.coefficient_of_variation > 0.5
    assert any("volatility" in r for r in fc.risk_factors)
    assert fc.confidence_percent < 80


def test_negative_costs_are_clamped_and_input_is_not_mutated():
    history = [-5.0, 10.0]
    fc = forecast(history, min_samples=2)
    assert history == [-5.0, 10.0]
    assert fc.mean_daily_cost == pytest.approx(5.0)
    assert fc.low_estimate >= 0


def test_confidence_never_exceeds_max():
    fc = forecast([10.0, 10.5] * 20, max_confidence=60)
    assert fc.confidence_percent <= 60


@pytest.mark.parametrize("pct,level", [(95, "High"), (80, "High"), (79.9, "Medium"), (50, "Medium"), (49, "Low")])
def test_confidence_level(pct, level):
    assert confidence_level(pct) == level


def test_daily_costs_from_history_sums_and_fills_gaps():
    samples = [
        (date(2024, 4, 1), 2.0),
        (datetime(2024, 4, 1, 18, tzinfo=timezone.utc), 3.0),
        ("2024-04-04T00:00:00Z", 7.0),
    ]
    assert daily_costs_from_history(samples) == [5.0, 0.0, 0.0, 7.0]
    assert daily_costs_from_history(samples, fill_missing=False) == [5.0, 7.0]
    assert daily_costs_from_history([]) == []
