"""Tests for the Google Ads SDK wrapper (query shape, row mapping, quota)."""

from datetime import date
from types import SimpleNamespace

import pytest

from metrionix.services.google_ads_client import (
    GAdsClient,
    QuotaExhaustedError,
    normalize_customer_id,
)


class _NoWait:
    def acquire(self):
        pass


class _FakeService:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    def search(self, customer_id, query):
        self.calls.append((customer_id, query))
        if self.error:
            raise self.error
        return iter(self.rows)


class _FakeSdk:
    def __init__(self, service):
        self.service = service

    def get_service(self, name):
        assert name == "GoogleAdsService"
        return self.service


def _row(day, cost_micros, clicks=10):
    return SimpleNamespace(
        campaign=SimpleNamespace(id=111, name="Brand", status=SimpleNamespace(name="ENABLED")),
        metrics=SimpleNamespace(
            impressions=500,
            clicks=clicks,
            cost_micros=cost_micros,
            conversions=2.0,
            conversions_value=80.0,
        ),
        segments=SimpleNamespace(date=day),
    )


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("123-456-7890", "1234567890"),
        ("1234567890", "1234567890"),
        ("12345", None),
        (None, None),
        ("google_account", None),
    ],
)
def test_normalize_customer_id(raw, expected):
    assert normalize_customer_id(raw) == expected


def test_campaign_daily_metrics_query_and_mapping():
    service = _FakeService(rows=[_row("2024-01-01", 12_500_000), _row("2024-01-02", 0, clicks=0)])
    client = GAdsClient(_FakeSdk(service), rate_limiter=_NoWait())

    rows = client.fetch_campaign_daily_metrics("1234567890", date(2024, 1, 1), date(2024, 1, 2))

    customer_id, query = service.calls[0]
    assert customer_id == "1234567890"
    assert "FROM campaign" in query
    assert "segments.date BETWEEN '2024-01-01' AND '2024-01-02'" in query
    assert rows[0] == {
        "date": "2024-01-01",
        "campaign_id": "111",
        "campaign_name": "Brand",
        "status": "ENABLED",
        "impressions": 500,
        "clicks": 10,
        "spend": 12.5,
        "conversions": 2.0,
        "revenue": 80.0,
    }
    assert rows[1]["spend"] == 0.0


def test_quota_error_is_not_retried():
    service = _FakeService(error=RuntimeError("RESOURCE_EXHAUSTED: Retry in 723 seconds."))
    client = GAdsClient(_FakeSdk(service), rate_limiter=_NoWait())

    with pytest.raises(QuotaExhaustedError) as exc_info:
        client.fetch_campaign_daily_metrics("1234567890", date(2024, 1, 1), date(2024, 1, 1))

    assert exc_info.value.retry_seconds == 723
    assert len(service.calls) == 1


def test_transient_error_is_retried(monkeypatch):
    monkeypatch.setattr("metrionix.services.google_ads_client.time.sleep", lambda s: None)

    class _Flaky(_FakeService):
        def search(self, customer_id, query):
            self.calls.append((customer_id, query))
            if len(self.calls) == 1:
                raise RuntimeError("503 UNAVAILABLE")
            return iter([_row("2024-01-01", 1_000_000)])

    service = _Flaky()
    client = GAdsClient(_FakeSdk(service), rate_limiter=_NoWait())

    rows = client.fetch_campaign_daily_metrics("1234567890", date(2024, 1, 1), date(2024, 1, 1))

    assert len(service.calls) == 2
    assert rows[0]["spend"] == 1.0


def test_from_refresh_token_requires_developer_token(settings):
    settings = settings.model_copy(update={"GOOGLE_DEVELOPER_TOKEN": ""})
    with pytest.raises(ValueError, match="GOOGLE_DEVELOPER_TOKEN"):
        GAdsClient.from_refresh_token(settings, "1//refresh")
