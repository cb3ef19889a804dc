"""
Unit tests -- trend derivation and numeric summaries.
"""
import pytest
from pydantic import ValidationError

from tracklens.pipeline.series import NumericPoint, NumericSummary, Trend, derive_trend


# ── derive_trend ────────────────────────────────────────

def test_increase():
    assert derive_trend([15, 20]) == (Trend.INCREASING, 33.3)


def test_decrease():
    assert derive_trend([20, 15]) == (Trend.DECREASING, -25.0)


def test_flat_is_stable():
    assert derive_trend([10, 10]) == (Trend.STABLE, 0.0)


def test_only_last_two_values_count():
    assert derive_trend([100, 1, 10, 11]) == (Trend.INCREASING, 10.0)


def test_nulls_are_skipped():
    assert derive_trend([10, None, 12, None]) == (Trend.INCREASING, 20.0)


@pytest.mark.parametrize("measures", [[], [5], [None, 7, None], [None, None]])
def test_fewer_than_two_values(measures):
    assert derive_trend(measures) == (Trend.STABLE, None)


def test_zero_baseline_has_no_percentage():
    assert derive_trend([0, 5]) == (Trend.INCREASING, None)
    assert derive_trend([0, -5]) == (Trend.DECREASING, None)
    assert derive_trend([0, 0]) == (Trend.STABLE, None)


def test_negative_baseline_uses_magnitude():
    assert derive_trend([-10, -5]) == (Trend.INCREASING, 50.0)


def test_tiny_change_rounds_to_stable():
    trend, change = derive_trend([1000, 1000.1])
    assert change == 0.0
    assert trend is Trend.STABLE


# ── NumericSummary ──────────────────────────────────────

def test_from_measures_derives_overalls():
    summary = NumericSummary.from_measures([1.111, None, 3.333])
    assert summary.overall_sum == 4.44
    assert summary.overall_min == 1.11
    assert summary.overall_max == 3.33
    assert summary.overall_avg == 2.22
    assert summary.trend is Trend.INCREASING
    assert summary.change_percent == 200.0


def test_from_measures_explicit_overalls_win():
    summary = NumericSummary.from_measures([1, 2], overall_min=-4, total_count=9)
    assert summary.overall_min == -4
    assert summary.overall_max == 2
    assert summary.total_count == 9


def test_from_measures_all_null():
    summary = NumericSummary.from_measures([None, None])
    assert summary.overall_sum is None
    assert summary.overall_avg is None
    assert summary.trend is Trend.STABLE


def test_trend_must_agree_with_change():
    with pytest.raises(ValidationError):
        NumericSummary(trend=Trend.INCREASING, change_percent=-5.0)
    with pytest.raises(ValidationError):
        NumericSummary(trend=Trend.DECREASING, change_percent=0.0)


def test_summary_serialises_trend_as_string():
    data = NumericSummary.from_measures([1, 2]).to_dict()
    assert data["trend"] == "increasing"


# ── Points ──────────────────────────────────────────────

def test_point_hides_measure():
    point = NumericPoint(date="2024-01-01", value=1.0, min=1.0, max=1.0,
                         avg=1.0, sum=1.0, count=1, measure=1.0049)
    assert "measure" not in point.to_dict()
    assert point.measure == 1.0049
