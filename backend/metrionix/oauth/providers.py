"""Provider endpoints, scopes and authorization URL construction.

Platforms map onto OAuth providers: google_ads, ga4 and search_console all
consent through Google with platform-specific scopes; meta_ads through the
Facebook dialog. WooCommerce has no OAuth: it is connected with REST API keys
entered on an in-app setup page.
"""

from typing import Dict, List
from urllib.parse import urlencode

from ..config import Settings
from ..models import PlatformEnum

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
META_GRAPH_BASE = "https://graph.facebook.com"
META_DIALOG_BASE = "https://www.facebook.com"

WOOCOMMERCE_SETUP_PATH = "/dashboard/integrations/woocommerce"

# Placeholder stored when the provider needs a further call to name the account
GOOGLE_PLACEHOLDER_ACCOUNT = "google_account"
META_UNKNOWN_ACCOUNT = "unknown"

PLATFORM_PROVIDER: Dict[PlatformEnum, str] = {
    PlatformEnum.google_ads: "google",
    PlatformEnum.ga4: "google",
    PlatformEnum.search_console: "google",
    PlatformEnum.meta_ads: "meta",
    PlatformEnum.woocommerce: "woocommerce",
}

GOOGLE_SCOPES: Dict[PlatformEnum, List[str]] = {
    PlatformEnum.google_ads: ["https://www.googleapis.com/auth/adwords"],
    PlatformEnum.ga4: ["https://www.googleapis.com/auth/analytics.readonly"],
    PlatformEnum.search_console: ["https://www.googleapis.com/auth/webmasters.readonly"],
}

META_SCOPES = ["ads_management", "ads_read"]

OAUTH_PROVIDERS = ("google", "meta")


def provider_for(platform: PlatformEnum) -> str:
    return PLATFORM_PROVIDER[PlatformEnum(platform)]


def meta_graph_url(settings: Settings, path: str) -> str:
    return f"{META_GRAPH_BASE}/{settings.META_GRAPH_VERSION}/{path.lstrip('/')}"


def build_authorization_url(settings: Settings, platform: PlatformEnum, state: str) -> str:
    """Consent URL for the platform's provider, carrying the CSRF state.

    Raises:
        ValueError: for platforms without an OAuth provider.
    """
    provider = provider_for(platform)
    if provider == "google":
        params = {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "redirect_uri": settings.OAUTH_REDIRECT_URI,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES[platform]),
            "access_type": "offline",  # refresh_token
            "prompt": "consent",  # always return refresh_token, even on reconnect
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    if provider == "meta":
        params = {
            "client_id": settings.META_APP_ID,
            "redirect_uri": settings.OAUTH_REDIRECT_URI,
            "response_type": "code",
            "scope": ",".join(META_SCOPES),
            "state": state,
        }
        return f"{META_DIALOG_BASE}/{settings.META_GRAPH_VERSION}/dialog/oauth?{urlencode(params)}"

    raise ValueError(f"{platform.value} does not use OAuth")
