"""Application settings and configuration validation.

WHAT:
    A single pydantic-settings object holding every environment-driven value
    the OAuth, sync and webhook components consume, plus validation that
    reports missing or placeholder values as a structured list.

WHY:
    OAuth client credentials and webhook secrets are first-class failure
    conditions. They are checked once at startup (core keys fail fast,
    provider keys are logged) and again on use, before any network call
    or popup is attempted.

REFERENCES:
    - metrionix/main.py: startup validation
    - metrionix/oauth/initiator.py: provider pre-flight check
    - metrionix/services/webhooks/receiver.py: per-platform secret lookup
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError, ProviderMisconfigured
from .utils.env import load_env_file

logger = logging.getLogger(__name__)


# Values shipped in .env templates that must never reach a provider
PLACEHOLDER_VALUES = {
    "your_actual_google_client_id_here",
    "your_actual_google_client_secret_here",
    "your_actual_meta_app_id_here",
    "your_actual_meta_app_secret_here",
    "changeme",
    "change-me",
    "placeholder",
}

# Provider -> settings keys that must hold real values before OAuth can start
PROVIDER_KEYS: Dict[str, tuple] = {
    "google": ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET"),
    "meta": ("META_APP_ID", "META_APP_SECRET"),
}

WEBHOOK_SECRET_KEYS: Dict[str, str] = {
    "woocommerce": "WOOCOMMERCE_WEBHOOK_SECRET",
    "meta_ads": "META_WEBHOOK_SECRET",
    "google_ads": "GOOGLE_ADS_WEBHOOK_SECRET",
}

CORE_KEYS = ("DATABASE_URL", "TOKEN_ENCRYPTION_KEY", "AUTH_JWT_SECRET", "OAUTH_REDIRECT_URI", "FRONTEND_URL")


def is_placeholder(value: Optional[str]) -> bool:
    """Return True for empty values and template placeholders."""
    if value is None:
        return True
    cleaned = value.strip()
    if not cleaned:
        return True
    lowered = cleaned.lower()
    if lowered in PLACEHOLDER_VALUES:
        return True
    return lowered.startswith("your_") and lowered.endswith("_here")


@dataclass(frozen=True)
class ConfigIssue:
    """One missing/placeholder/invalid configuration key."""

    key: str
    problem: str  # "missing" | "placeholder" | "invalid"


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    ENVIRONMENT: str = "development"

    # Storage
    DATABASE_URL: str = ""
    REDIS_URL: str = "redis://localhost:6379/0"

    # Security
    TOKEN_ENCRYPTION_KEY: str = ""
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_AUDIENCE: Optional[str] = None

    # OAuth
    FRONTEND_URL: str = "http://localhost:3000"
    OAUTH_REDIRECT_URI: str = "http://localhost:3000/oauth/callback"
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_DEVELOPER_TOKEN: str = ""
    GOOGLE_LOGIN_CUSTOMER_ID: Optional[str] = None
    META_APP_ID: str = ""
    META_APP_SECRET: str = ""
    META_GRAPH_VERSION: str = "v18.0"
    OAUTH_STATE_TTL_SECONDS: int = 600
    OAUTH_FLOW_TIMEOUT_SECONDS: float = 600.0
    POPUP_POLL_INTERVAL_SECONDS: float = 1.0

    # Webhooks
    WOOCOMMERCE_WEBHOOK_SECRET: str = ""
    META_WEBHOOK_SECRET: str = ""
    GOOGLE_ADS_WEBHOOK_SECRET: str = ""

    # Sync
    SYNC_DEFAULT_DAYS: int = 30
    SYNC_BATCH_SIZE: int = 100
    SYNC_LOCK_TTL_SECONDS: int = 1800
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Telemetry
    SENTRY_DSN: Optional[str] = None

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def core_issues(self) -> List[ConfigIssue]:
        """Issues with keys the service cannot start without."""
        issues = []
        for key in CORE_KEYS:
            if is_placeholder(getattr(self, key)):
                issues.append(ConfigIssue(key, "missing" if not getattr(self, key) else "placeholder"))

        if self.TOKEN_ENCRYPTION_KEY and not _is_fernet_key(self.TOKEN_ENCRYPTION_KEY):
            issues.append(ConfigIssue("TOKEN_ENCRYPTION_KEY", "invalid"))
        return issues

    def provider_issues(self, provider: str) -> List[ConfigIssue]:
        """Issues with the OAuth client credentials of one provider."""
        issues = []
        for key in PROVIDER_KEYS.get(provider, ()):
            value = getattr(self, key)
            if is_placeholder(value):
                issues.append(ConfigIssue(key, "missing" if not value else "placeholder"))
        if provider == "google" and is_placeholder(self.GOOGLE_DEVELOPER_TOKEN):
            # Only the Google Ads reporting API needs it; OAuth itself does not
            logger.debug("[CONFIG] GOOGLE_DEVELOPER_TOKEN not set; google_ads sync will fail")
        return issues

    def webhook_issues(self) -> List[ConfigIssue]:
        issues = []
        for key in WEBHOOK_SECRET_KEYS.values():
            if is_placeholder(getattr(self, key)):
                issues.append(ConfigIssue(key, "missing"))
        return issues

    def validate_all(self) -> List[ConfigIssue]:
        """Every issue across core, provider and webhook configuration."""
        issues = self.core_issues()
        for provider in PROVIDER_KEYS:
            issues.extend(self.provider_issues(provider))
        issues.extend(self.webhook_issues())
        return issues

    def require_valid(self) -> None:
        """Fail fast on core issues; log provider and webhook gaps.

        Raises:
            ConfigurationError: listing every core key that is missing or invalid.
        """
        core = self.core_issues()
        if core:
            raise ConfigurationError(core)

        for issue in self.validate_all():
            logger.warning("[CONFIG] %s is %s; dependent features are disabled", issue.key, issue.problem)

    def require_provider(self, provider: str) -> None:
        """Raise ProviderMisconfigured before any network call or popup."""
        issues = self.provider_issues(provider)
        if issues:
            raise ProviderMisconfigured(provider, [issue.key for issue in issues])

    def webhook_secret(self, platform: str) -> Optional[str]:
        """Shared secret for a webhook platform, or None when unset."""
        key = WEBHOOK_SECRET_KEYS.get(platform)
        if not key:
            return None
        value = getattr(self, key)
        return None if is_placeholder(value) else value

    @property
    def frontend_origin(self) -> str:
        """Origin (scheme://host[:port]) allowed to relay OAuth callback messages."""
        parsed = urlparse(self.FRONTEND_URL)
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def redis_endpoint(self) -> str:
        """host:port of REDIS_URL, without credentials, for log lines."""
        parsed = urlparse(self.REDIS_URL)
        return f"{parsed.hostname or 'localhost'}:{parsed.port or 6379}"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


def _is_fernet_key(value: str) -> bool:
    try:
        return len(base64.urlsafe_b64decode(value.encode("utf-8"))) == 32
    except (ValueError, TypeError):
        return False


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    load_env_file()
    return Settings()  # type: ignore[call-arg]
