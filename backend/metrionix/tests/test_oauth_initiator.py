"""Tests for OAuth initiation and the popup flow."""

import asyncio
from urllib.parse import parse_qs, urlparse

import pytest

from metrionix.errors import OAuthCancelled, PopupBlocked, ProviderMisconfigured
from metrionix.models import PlatformEnum
from metrionix.oauth.initiator import OAuthInitiator
from metrionix.oauth.providers import WOOCOMMERCE_SETUP_PATH
from metrionix.oauth.transit import InMemoryTransitStateStore

ORIGIN = "http://localhost:3000"


class _FakePopup:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class _FakeHost:
    """Window environment: records opened popups and dispatches messages."""

    origin = ORIGIN

    def __init__(self, block=False, on_consent=None, block_consent=False):
        self.block = block
        self.block_consent = block_consent
        self.on_consent = on_consent
        self.opened = []
        self.listeners = []

    def open(self, url, name, features):
        self.opened.append((url, name, features))
        if self.block or (url and self.block_consent):
            return None
        popup = _FakePopup()
        if url and self.on_consent:
            asyncio.get_running_loop().call_soon(self.on_consent, self, url, popup)
        return popup

    def add_message_listener(self, listener):
        self.listeners.append(listener)

    def remove_message_listener(self, listener):
        self.listeners.remove(listener)

    def post(self, origin, data):
        for listener in list(self.listeners):
            listener(origin, data)


def _state_from(url):
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.fixture
def fast_settings(settings):
    return settings.model_copy(update={"POPUP_POLL_INTERVAL_SECONDS": 0.01, "OAUTH_FLOW_TIMEOUT_SECONDS": 2.0})


def test_start_google_builds_offline_consent_url(settings, agency_id):
    store = InMemoryTransitStateStore()
    started = OAuthInitiator(settings, store).start(PlatformEnum.ga4, str(agency_id), account_hint="properties/42")

    query = parse_qs(urlparse(started.authorization_url).query)
    assert started.provider == "google"
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["scope"] == ["https://www.googleapis.com/auth/analytics.readonly"]
    assert query["state"] == [started.state]
    assert started.expires_in == settings.OAUTH_STATE_TTL_SECONDS

    record = store.consume(started.state)
    assert record.agency_id == str(agency_id)
    assert record.platform == "ga4"
    assert record.account_hint == "properties/42"


def test_start_meta_uses_graph_version_dialog(settings, agency_id):
    started = OAuthInitiator(settings, InMemoryTransitStateStore()).start(PlatformEnum.meta_ads, str(agency_id))

    assert started.authorization_url.startswith("https://www.facebook.com/v18.0/dialog/oauth?")
    assert parse_qs(urlparse(started.authorization_url).query)["scope"] == ["ads_management,ads_read"]


def test_start_woocommerce_returns_setup_page(settings, agency_id):
    store = InMemoryTransitStateStore()
    started = OAuthInitiator(settings, store).start(PlatformEnum.woocommerce, str(agency_id))

    assert started.setup_path == WOOCOMMERCE_SETUP_PATH
    assert started.state is None
    assert len(store) == 0


def test_misconfigured_provider_fails_before_any_popup(settings, agency_id):
    settings = settings.model_copy(update={"META_APP_SECRET": "your_actual_meta_app_secret_here"})
    host = _FakeHost()
    store = InMemoryTransitStateStore()

    with pytest.raises(ProviderMisconfigured):
        asyncio.run(OAuthInitiator(settings, store).connect(host, PlatformEnum.meta_ads, str(agency_id)))

    assert host.opened == []
    assert len(store) == 0


def test_blocked_popup_raises_and_resets(fast_settings, agency_id):
    initiator = OAuthInitiator(fast_settings, InMemoryTransitStateStore())
    host = _FakeHost(block=True)

    with pytest.raises(PopupBlocked):
        asyncio.run(initiator.connect(host, PlatformEnum.google_ads, str(agency_id)))

    assert initiator.is_connecting is False
    assert len(host.opened) == 1  # probe only


def test_blocked_consent_popup_discards_transit_state(fast_settings, agency_id):
    store = InMemoryTransitStateStore()
    initiator = OAuthInitiator(fast_settings, store)
    host = _FakeHost(block_consent=True)

    with pytest.raises(PopupBlocked):
        asyncio.run(initiator.connect(host, PlatformEnum.meta_ads, str(agency_id)))

    assert len(host.opened) == 2
    assert len(store) == 0
    assert store.consume(_state_from(host.opened[1][0])) is None
    assert initiator.is_connecting is False
    assert host.listeners == []


def test_connect_returns_callback_message(fast_settings, agency_id):
    def approve(host, url, popup):
        host.post(ORIGIN, {"type": "oauth_callback", "code": "auth-code", "state": _state_from(url)})

    host = _FakeHost(on_consent=approve)
    store = InMemoryTransitStateStore()
    initiator = OAuthInitiator(fast_settings, store)

    message = asyncio.run(initiator.connect(host, PlatformEnum.google_ads, str(agency_id)))

    assert message.code == "auth-code"
    assert message.provider == "google"
    assert store.consume(message.state) is not None
    assert host.listeners == []
    assert initiator.is_connecting is False


def test_closed_popup_cancels_flow(fast_settings, agency_id):
    def abandon(host, url, popup):
        popup.close()

    host = _FakeHost(on_consent=abandon)
    initiator = OAuthInitiator(fast_settings, InMemoryTransitStateStore())

    with pytest.raises(OAuthCancelled):
        asyncio.run(initiator.connect(host, PlatformEnum.search_console, str(agency_id)))

    assert initiator.is_connecting is False
    assert host.listeners == []


def test_foreign_origin_and_other_messages_are_ignored(fast_settings, agency_id):
    def spoof(host, url, popup):
        state = _state_from(url)
        host.post("https://evil.example.com", {"type": "oauth_callback", "code": "stolen", "state": state})
        host.post(ORIGIN, {"type": "something_else", "code": "nope"})
        popup.close()

    host = _FakeHost(on_consent=spoof)

    with pytest.raises(OAuthCancelled):
        asyncio.run(OAuthInitiator(fast_settings, InMemoryTransitStateStore()).connect(
            host, PlatformEnum.google_ads, str(agency_id)
        ))


def test_flow_times_out(settings, agency_id):
    settings = settings.model_copy(update={"POPUP_POLL_INTERVAL_SECONDS": 0.01, "OAUTH_FLOW_TIMEOUT_SECONDS": 0.05})
    host = _FakeHost()

    with pytest.raises(OAuthCancelled, match="timed out"):
        asyncio.run(OAuthInitiator(settings, InMemoryTransitStateStore()).connect(
            host, PlatformEnum.google_ads, str(agency_id)
        ))
