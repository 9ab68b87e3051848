"""
Derived Metric Formula Tests (Unit)
===================================

WHAT: Unit tests for CTR/CPC/CPA/ROAS and the zero-denominator rule.
WHY: Every adapter derives its ratios through these helpers; a NaN or a
ZeroDivisionError here would poison every metric table.

NOTE:
These tests live outside `backend/metrionix/tests/` to avoid loading the
integration-test `conftest.py`, which configures a database and environment
variables not required here.

REFERENCES:
- backend/metrionix/services/metrics.py
"""

import math

import pytest

from metrionix.services.metrics import derive_ad_metrics, safe_ratio


@pytest.mark.parametrize(
    "numerator, denominator, expected",
    [
        (50, 1000, 0.05),
        (0, 10, 0.0),
        (10, 0, 0.0),
        (None, 10, 0.0),
        (10, None, 0.0),
        (None, None, 0.0),
    ],
)
def test_safe_ratio(numerator, denominator, expected) -> None:
    assert safe_ratio(numerator, denominator) == pytest.approx(expected)


def test_derive_ad_metrics_typical_day() -> None:
    """1000 impressions, 50 clicks, $25 spend, 5 conversions, $100 revenue."""
    result = derive_ad_metrics(1000, 50, 25.0, 5, 100.0)

    assert result == {
        "ctr": pytest.approx(0.05),
        "cpc": pytest.approx(0.5),
        "cpa": pytest.approx(5.0),
        "roas": pytest.approx(4.0),
    }


def test_derive_ad_metrics_idle_campaign_is_all_zero() -> None:
    """No delivery at all must not produce NaN or raise."""
    result = derive_ad_metrics(0, 0, 0.0, 0, 0.0)

    assert result == {"ctr": 0.0, "cpc": 0.0, "cpa": 0.0, "roas": 0.0}
    assert not any(math.isnan(value) for value in result.values())


def test_derive_ad_metrics_spend_without_conversions() -> None:
    result = derive_ad_metrics(2000, 40, 30.0, 0, 0.0)

    assert result["cpc"] == pytest.approx(0.75)
    assert result["cpa"] == 0.0
    assert result["roas"] == 0.0
