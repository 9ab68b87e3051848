"""OAuth initiation.

WHAT:
    `OAuthInitiator.start` validates the provider configuration, records the
    transit state and returns the consent URL. `OAuthInitiator.connect` runs
    the full popup flow against a `PopupHost` and returns the callback message
    for `OAuthCallbackHandler.handle`.

WHY:
    Misconfiguration must surface before anything user-visible happens, and
    an abandoned popup must clear the connecting state instead of hanging.

REFERENCES:
    - metrionix/oauth/callback.py (consumes the state recorded here)
    - metrionix/routers/oauth.py (HTTP surface for `start`)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from ..config import Settings
from ..errors import PopupBlocked
from ..models import PlatformEnum
from .channel import OAuthCallbackMessage, OAuthResultChannel, PopupWindow
from .providers import WOOCOMMERCE_SETUP_PATH, build_authorization_url, provider_for
from .transit import TransitState, TransitStateStore, generate_state

logger = logging.getLogger(__name__)

POPUP_FEATURES = "width=600,height=700,scrollbars=yes,resizable=yes"
PROBE_FEATURES = "width=1,height=1"

MessageListener = Callable[[str, Any], bool]


class PopupHost(Protocol):
    """The window environment that opens popups and receives messages."""

    origin: str

    def open(self, url: str, name: str, features: str) -> Optional[PopupWindow]: ...

    def add_message_listener(self, listener: MessageListener) -> None: ...

    def remove_message_listener(self, listener: MessageListener) -> None: ...


@dataclass(frozen=True)
class OAuthStart:
    provider: str
    platform: PlatformEnum
    state: Optional[str] = None
    authorization_url: Optional[str] = None
    setup_path: Optional[str] = None  # WooCommerce: in-app API key form
    expires_in: Optional[int] = None


class OAuthInitiator:
    """Builds consent URLs and drives the popup flow."""

    def __init__(self, settings: Settings, store: TransitStateStore):
        self.settings = settings
        self.store = store
        self.is_connecting = False

    def start(self, platform, agency_id: str, account_hint: Optional[str] = None) -> OAuthStart:
        """Validate config, persist transit state, return the consent URL.

        Raises:
            ProviderMisconfigured: client id/secret empty or placeholder.
        """
        platform = PlatformEnum(platform)
        provider = provider_for(platform)

        if provider == "woocommerce":
            return OAuthStart(provider=provider, platform=platform, setup_path=WOOCOMMERCE_SETUP_PATH)

        self.settings.require_provider(provider)

        state = generate_state()
        ttl = self.settings.OAUTH_STATE_TTL_SECONDS
        self.store.put(
            TransitState(
                state=state,
                provider=provider,
                platform=platform.value,
                agency_id=str(agency_id),
                account_hint=account_hint,
            ),
            ttl,
        )
        url = build_authorization_url(self.settings, platform, state)
        logger.info("[OAUTH] Started %s flow for agency %s (platform=%s)", provider, agency_id, platform.value)
        return OAuthStart(
            provider=provider,
            platform=platform,
            state=state,
            authorization_url=url,
            expires_in=ttl,
        )

    async def connect(
        self,
        host: PopupHost,
        platform,
        agency_id: str,
        account_hint: Optional[str] = None,
    ) -> OAuthCallbackMessage:
        """Run the popup flow and return the verified callback message.

        Raises:
            ProviderMisconfigured: before any popup is opened.
            PopupBlocked: the probe or consent popup could not be opened.
            OAuthCancelled: popup closed or flow timed out without a callback.
        """
        platform = PlatformEnum(platform)
        provider = provider_for(platform)
        if provider == "woocommerce":
            raise ValueError("WooCommerce connects with API keys, not a popup")

        self.settings.require_provider(provider)

        probe = host.open("", "oauth_probe", PROBE_FEATURES)
        if probe is None or probe.closed:
            raise PopupBlocked("Popups are blocked. Allow popups for this site and try again.", provider=provider)
        probe.close()

        self.is_connecting = True
        popup = None
        channel = OAuthResultChannel(allowed_origins=[host.origin])
        host.add_message_listener(channel.deliver)
        try:
            started = self.start(platform, agency_id, account_hint=account_hint)
            popup = host.open(started.authorization_url, f"{provider}_oauth", POPUP_FEATURES)
            if popup is None:
                self.store.consume(started.state)
                raise PopupBlocked("Popups are blocked. Allow popups for this site and try again.", provider=provider)

            message = await channel.wait(
                popup,
                poll_interval=self.settings.POPUP_POLL_INTERVAL_SECONDS,
                timeout=self.settings.OAUTH_FLOW_TIMEOUT_SECONDS,
            )
            logger.info("[OAUTH] Received %s callback message", provider)
            return OAuthCallbackMessage(
                code=message.code,
                state=message.state,
                error=message.error,
                provider=message.provider or provider,
            )
        finally:
            host.remove_message_listener(channel.deliver)
            if popup is not None and not popup.closed:
                popup.close()
            self.is_connecting = False
