"""Tests for POST /sync/{platform} (auth, response shape, error rendering)."""

import uuid
from datetime import date, datetime

from metrionix.errors import ExternalApiError, IntegrationNotFound
from metrionix.models import PlatformEnum
from metrionix.routers import sync as sync_router
from metrionix.services.sync_service import SyncResult

COMPLETED_AT = datetime(2024, 1, 31, 12, 0, 0)


def _body(agency_id, **overrides):
    return {"agency_id": str(agency_id), "account_id": "act_111", **overrides}


def test_successful_sync_reports_row_count(client, auth_headers, agency_id, monkeypatch):
    calls = []

    async def fake_run_sync(db, settings, platform, agency, account_id, start_date=None, end_date=None):
        calls.append((platform, agency, account_id, start_date, end_date))
        return SyncResult(
            platform=platform,
            agency_id=agency,
            account_id=account_id,
            rows_synced=372,
            start_date=start_date,
            end_date=end_date,
            completed_at=COMPLETED_AT,
        )

    monkeypatch.setattr(sync_router, "run_sync", fake_run_sync)

    response = client.post(
        "/sync/meta_ads",
        json=_body(agency_id, start_date="2024-01-01", end_date="2024-01-31"),
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["insights_synced"] == 372
    assert body["timestamp"].startswith("2024-01-31T12:00:00")
    assert calls == [(PlatformEnum.meta_ads, agency_id, "act_111", date(2024, 1, 1), date(2024, 1, 31))]


def test_dates_are_optional(client, auth_headers, agency_id, monkeypatch):
    seen = {}

    async def fake_run_sync(db, settings, platform, agency, account_id, start_date=None, end_date=None):
        seen.update(start_date=start_date, end_date=end_date)
        return SyncResult(platform, agency, account_id, 0, date(2024, 1, 1), date(2024, 1, 31), COMPLETED_AT)

    monkeypatch.setattr(sync_router, "run_sync", fake_run_sync)

    response = client.post("/sync/ga4", json=_body(agency_id), headers=auth_headers)

    assert response.status_code == 200
    assert seen == {"start_date": None, "end_date": None}


def test_failure_renders_error_body(client, auth_headers, agency_id, monkeypatch):
    async def failing_run_sync(*args, **kwargs):
        raise IntegrationNotFound("No active meta_ads integration for account act_111", provider="meta_ads")

    monkeypatch.setattr(sync_router, "run_sync", failing_run_sync)

    response = client.post("/sync/meta_ads", json=_body(agency_id), headers=auth_headers)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error_type"] == "integration_not_found"
    assert "act_111" in body["error"]
    assert "timestamp" in body
    assert "insights_synced" not in body


def test_platform_failure_renders_error_body(client, auth_headers, agency_id, monkeypatch):
    async def failing_run_sync(*args, **kwargs):
        raise ExternalApiError("Google Ads API error: 503 UNAVAILABLE", provider="google")

    monkeypatch.setattr(sync_router, "run_sync", failing_run_sync)

    response = client.post("/sync/google_ads", json=_body(agency_id), headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["error_type"] == "external_api_error"


def test_other_agency_is_forbidden(client, auth_headers, monkeypatch):
    async def must_not_run(*args, **kwargs):
        raise AssertionError("sync must not start")

    monkeypatch.setattr(sync_router, "run_sync", must_not_run)

    response = client.post("/sync/meta_ads", json=_body(uuid.uuid4()), headers=auth_headers)

    assert response.status_code == 403


def test_missing_token_is_unauthorized(client, agency_id):
    response = client.post("/sync/meta_ads", json=_body(agency_id))
    assert response.status_code == 401


def test_garbage_token_is_unauthorized(client, agency_id):
    response = client.post("/sync/meta_ads", json=_body(agency_id), headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_unknown_platform_and_bad_body(client, auth_headers, agency_id):
    assert client.post("/sync/tiktok", json=_body(agency_id), headers=auth_headers).status_code == 422
    assert client.post("/sync/meta_ads", json={"agency_id": str(agency_id)}, headers=auth_headers).status_code == 422


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
