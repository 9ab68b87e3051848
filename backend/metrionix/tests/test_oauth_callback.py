"""Tests for the OAuth callback handler (state check, exchange, upsert)."""

import asyncio

import httpx
import pytest

from metrionix.errors import CsrfMismatch, TokenExchangeFailed
from metrionix.models import Integration, IntegrationStatusEnum, PlatformEnum
from metrionix.oauth.callback import OAuthCallbackHandler
from metrionix.oauth.transit import InMemoryTransitStateStore, TransitState
from metrionix.services.token_service import load_credentials


def _transport(routes, calls=None):
    """MockTransport answering by URL path."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        for path, response in routes.items():
            if request.url.path.endswith(path):
                return response(request) if callable(response) else response
        return httpx.Response(404, json={"error": "not_found"})

    return httpx.MockTransport(handler)


def _handle(settings, store, db, routes, calls=None, **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=_transport(routes, calls)) as http:
            return await OAuthCallbackHandler(settings, store, http).handle(db, **kwargs)

    return asyncio.run(run())


def _store_with(agency_id, provider="google", platform="google_ads", account_hint=None, state="state-1"):
    store = InMemoryTransitStateStore()
    store.put(
        TransitState(
            state=state,
            provider=provider,
            platform=platform,
            agency_id=str(agency_id),
            account_hint=account_hint,
        ),
        ttl_seconds=600,
    )
    return store


def _google_tokens(request):
    return httpx.Response(
        200,
        json={"access_token": "ya29.access", "refresh_token": "1//refresh", "expires_in": 3599, "scope": "adwords"},
    )


def test_google_callback_creates_connected_integration(settings, test_db_session, agency_id):
    store = _store_with(agency_id, account_hint="123-456-7890")
    calls = []

    integration = _handle(
        settings, store, test_db_session, {"/token": _google_tokens}, calls,
        code="auth-code", state="state-1", provider="google",
    )

    assert integration.platform == PlatformEnum.google_ads
    assert integration.account_id == "123-456-7890"
    assert integration.status == IntegrationStatusEnum.connected
    assert integration.is_active is True
    assert integration.last_sync is not None
    assert "ya29.access" not in integration.credentials_enc

    credentials = load_credentials(integration)
    assert credentials.access_token == "ya29.access"
    assert credentials.refresh_token == "1//refresh"

    form = dict(httpx.QueryParams(calls[0].content.decode()))
    assert form["grant_type"] == "authorization_code"
    assert form["client_secret"] == settings.GOOGLE_CLIENT_SECRET


def test_google_without_hint_uses_placeholder_account(settings, test_db_session, agency_id):
    store = _store_with(agency_id, platform="ga4")
    integration = _handle(settings, store, test_db_session, {"/token": _google_tokens}, code="c", state="state-1")
    assert integration.account_id == "google_account"


def test_meta_callback_exchanges_long_lived_and_picks_first_account(settings, test_db_session, agency_id):
    store = _store_with(agency_id, provider="meta", platform="meta_ads")

    def access_token(request):
        if request.url.params.get("grant_type") == "fb_exchange_token":
            return httpx.Response(200, json={"access_token": "long-lived", "expires_in": 5184000})
        return httpx.Response(200, json={"access_token": "short-lived", "expires_in": 3600})

    integration = _handle(
        settings, store, test_db_session,
        {
            "/oauth/access_token": access_token,
            "/me/adaccounts": httpx.Response(200, json={"data": [{"id": "act_111"}, {"id": "act_222"}]}),
        },
        code="c", state="state-1", provider="meta",
    )

    assert integration.account_id == "act_111"
    assert load_credentials(integration).access_token == "long-lived"


def test_meta_without_ad_accounts_stores_unknown(settings, test_db_session, agency_id):
    store = _store_with(agency_id, provider="meta", platform="meta_ads")
    integration = _handle(
        settings, store, test_db_session,
        {
            "/oauth/access_token": httpx.Response(200, json={"access_token": "tok"}),
            "/me/adaccounts": httpx.Response(200, json={"data": []}),
        },
        code="c", state="state-1",
    )
    assert integration.account_id == "unknown"


def test_reconnect_updates_existing_row(settings, test_db_session, agency_id, make_integration):
    existing = make_integration(
        platform=PlatformEnum.google_ads,
        account_id="1234567890",
        access_token="old",
        status=IntegrationStatusEnum.error,
    )
    store = _store_with(agency_id, account_hint="1234567890")

    integration = _handle(settings, store, test_db_session, {"/token": _google_tokens}, code="c", state="state-1")

    assert integration.id == existing.id
    assert integration.status == IntegrationStatusEnum.connected
    assert test_db_session.query(Integration).count() == 1


def test_unknown_or_replayed_state_is_rejected(settings, test_db_session, agency_id):
    store = _store_with(agency_id, account_hint="1234567890")
    _handle(settings, store, test_db_session, {"/token": _google_tokens}, code="c", state="state-1")

    with pytest.raises(CsrfMismatch):
        _handle(settings, store, test_db_session, {"/token": _google_tokens}, code="c", state="state-1")
    with pytest.raises(CsrfMismatch):
        _handle(settings, store, test_db_session, {"/token": _google_tokens}, code="c", state=None)


def test_provider_mismatch_is_rejected(settings, test_db_session, agency_id):
    store = _store_with(agency_id)
    with pytest.raises(CsrfMismatch):
        _handle(settings, store, test_db_session, {}, code="c", state="state-1", provider="meta")
    assert test_db_session.query(Integration).count() == 0


def test_foreign_agency_state_is_rejected(settings, test_db_session, agency_id):
    store = _store_with(agency_id)
    with pytest.raises(CsrfMismatch):
        _handle(
            settings, store, test_db_session, {"/token": _google_tokens},
            code="c", state="state-1", agency_id="00000000-0000-0000-0000-000000000001",
        )


def test_provider_error_writes_nothing(settings, test_db_session, agency_id):
    store = _store_with(agency_id)
    with pytest.raises(TokenExchangeFailed, match="access_denied"):
        _handle(settings, store, test_db_session, {}, code=None, state="state-1", error="access_denied")
    assert test_db_session.query(Integration).count() == 0


def test_rejected_code_surfaces_provider_description(settings, test_db_session, agency_id):
    store = _store_with(agency_id)
    rejected = httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad Request"})

    with pytest.raises(TokenExchangeFailed) as exc_info:
        _handle(settings, store, test_db_session, {"/token": rejected}, code="c", state="state-1")

    assert exc_info.value.message == "Bad Request"
    assert exc_info.value.revoked is True
    assert test_db_session.query(Integration).count() == 0
