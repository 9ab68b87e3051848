"""Credential service for encrypting and persisting integration credentials.

WHAT:
    Serializes a `Credentials` blob (access/refresh token, expiry, provider
    extras) into one Fernet ciphertext on the Integration row, restores it for
    sync jobs, and refreshes expired Google access tokens.

WHY:
    - Keeps encryption logic out of routers, the callback handler and adapters.
    - Sync jobs need a single place that decides whether stored credentials
      are usable at all (IntegrationNotFound otherwise).

REFERENCES:
    - metrionix/security.py (encrypt_secret / decrypt_secret)
    - metrionix/oauth/callback.py (writes credentials)
    - metrionix/services/sync_service.py (reads credentials)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import IntegrationNotFound, TokenExchangeFailed
from ..models import Integration, IntegrationStatusEnum, PlatformEnum, utcnow
from ..oauth.exchange import TokenSet, refresh_google_token
from ..oauth.providers import provider_for
from ..security import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)

# Refresh slightly before the provider's expiry
EXPIRY_SKEW = timedelta(seconds=60)


@dataclass
class Credentials:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) + EXPIRY_SKEW >= self.expires_at

    def to_json(self) -> str:
        return json.dumps(
            {
                "access_token": self.access_token,
                "refresh_token": self.refresh_token,
                "expires_at": self.expires_at.isoformat() if self.expires_at else None,
                "extra": self.extra,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "Credentials":
        data = json.loads(raw)
        expires_at = data.get("expires_at")
        return cls(
            access_token=data.get("access_token") or "",
            refresh_token=data.get("refresh_token"),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            extra=data.get("extra") or {},
        )

    @classmethod
    def from_token_set(cls, tokens: TokenSet, extra: Optional[Dict[str, Any]] = None) -> "Credentials":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            extra=dict(extra or {}),
        )


def _label(integration: Integration) -> str:
    return f"{integration.platform.value}:{integration.account_id}"


def store_credentials(integration: Integration, credentials: Credentials) -> None:
    """Encrypt credentials onto the integration (caller commits)."""
    if not credentials.access_token:
        raise ValueError("Refusing to store credentials without an access token")
    integration.credentials_enc = encrypt_secret(credentials.to_json(), context=_label(integration))
    logger.info("[TOKEN_SERVICE] Stored encrypted credentials for %s", _label(integration))


def load_credentials(integration: Integration) -> Credentials:
    """Decrypt an integration's credentials.

    Raises:
        IntegrationNotFound: when nothing is stored, decryption fails, or the
            access token is empty.
    """
    label = _label(integration)
    if not integration.credentials_enc:
        raise IntegrationNotFound(f"No stored credentials for {label}", provider=integration.platform.value)

    try:
        credentials = Credentials.from_json(decrypt_secret(integration.credentials_enc, context=label))
    except (ValueError, TypeError) as exc:
        logger.error("[TOKEN_SERVICE] Unreadable credentials for %s: %s", label, exc)
        raise IntegrationNotFound(f"Stored credentials for {label} are unreadable", provider=integration.platform.value) from exc

    if not credentials.access_token:
        raise IntegrationNotFound(f"Stored credentials for {label} have no access token", provider=integration.platform.value)
    return credentials


async def refresh_integration_token(
    db: Session,
    integration: Integration,
    settings: Settings,
    http: httpx.AsyncClient,
) -> Credentials:
    """Refresh a Google access token and persist it (own commit).

    A revoked refresh token (invalid_grant) flips the integration to `error`
    so the dashboard prompts reconnection.

    Raises:
        TokenExchangeFailed: provider rejected the refresh.
        IntegrationNotFound: no usable credentials or no refresh token.
    """
    credentials = load_credentials(integration)
    provider = provider_for(integration.platform)
    if provider != "google":
        raise TokenExchangeFailed(
            f"{integration.platform.value} tokens cannot be refreshed; reconnect the account",
            provider=provider,
        )
    if not credentials.refresh_token:
        raise IntegrationNotFound(f"No refresh token stored for {_label(integration)}", provider=provider)

    settings.require_provider("google")
    try:
        tokens = await refresh_google_token(http, settings, credentials.refresh_token)
    except TokenExchangeFailed as exc:
        if exc.revoked:
            integration.status = IntegrationStatusEnum.error
            integration.last_sync_error = f"Refresh token revoked: {exc.message}"
            db.commit()
            logger.warning("[TOKEN_SERVICE] Refresh token revoked for %s", _label(integration))
        raise

    refreshed = Credentials.from_token_set(tokens, extra=credentials.extra)
    store_credentials(integration, refreshed)
    integration.status = IntegrationStatusEnum.connected
    db.commit()
    logger.info("[TOKEN_SERVICE] Refreshed access token for %s", _label(integration))
    return refreshed


async def ensure_fresh_credentials(
    db: Session,
    integration: Integration,
    credentials: Credentials,
    settings: Settings,
    http: httpx.AsyncClient,
) -> Credentials:
    """Return usable credentials, refreshing expired Google tokens first.

    google_ads is skipped: the Google Ads SDK refreshes from the refresh token itself.
    """
    if integration.platform in (PlatformEnum.woocommerce, PlatformEnum.google_ads):
        return credentials
    if provider_for(integration.platform) == "google" and credentials.is_expired() and credentials.refresh_token:
        return await refresh_integration_token(db, integration, settings, http)
    return credentials
