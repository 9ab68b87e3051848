"""OAuth callback handling.

WHAT:
    Validates the CSRF state, exchanges the authorization code with the
    provider, resolves the account id and upserts the Integration row.

WHY:
    Both callback paths (HTTP redirect, relayed popup message) must share one
    implementation: consume the state exactly once, and write nothing unless
    every step succeeded.

REFERENCES:
    - metrionix/oauth/transit.py (state store, atomic consume)
    - metrionix/oauth/exchange.py (provider token endpoints)
    - metrionix/routers/oauth.py (HTTP callbacks)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..errors import CsrfMismatch, StorageError, TokenExchangeFailed
from ..models import Integration, IntegrationStatusEnum, PlatformEnum, SyncStatusEnum, utcnow
from ..services.token_service import Credentials, store_credentials
from .exchange import exchange_google_code, exchange_meta_code, exchange_meta_long_lived, fetch_meta_account_id
from .providers import GOOGLE_PLACEHOLDER_ACCOUNT
from .transit import TransitState, TransitStateStore

logger = logging.getLogger(__name__)


class OAuthCallbackHandler:
    """Completes an OAuth flow started by `OAuthInitiator`."""

    def __init__(self, settings: Settings, store: TransitStateStore, http: httpx.AsyncClient):
        self.settings = settings
        self.store = store
        self.http = http

    async def handle(
        self,
        db: Session,
        *,
        code: Optional[str],
        state: Optional[str],
        provider: Optional[str] = None,
        error: Optional[str] = None,
        agency_id: Optional[str] = None,
    ) -> Integration:
        """Validate, exchange and persist.

        Raises:
            CsrfMismatch: unknown/expired/replayed state, provider mismatch, or
                a state recorded for another agency than `agency_id`.
            TokenExchangeFailed: provider reported an error or rejected the code.
            ProviderMisconfigured: client credentials missing.
            StorageError: the upsert failed (rolled back).
        """
        transit = self.store.consume(state) if state else None
        if transit is None:
            logger.warning("[OAUTH] Rejected callback with unknown or already used state")
            raise CsrfMismatch("OAuth state did not match; start the connection again", provider=provider)

        if provider and provider != transit.provider:
            logger.warning("[OAUTH] Callback provider %s does not match initiated %s", provider, transit.provider)
            raise CsrfMismatch("OAuth provider did not match the initiated flow", provider=provider)

        if agency_id is not None and str(agency_id) != transit.agency_id:
            logger.warning("[OAUTH] Callback state belongs to another agency")
            raise CsrfMismatch("OAuth state did not match; start the connection again", provider=transit.provider)

        provider = transit.provider
        if error:
            raise TokenExchangeFailed(error, provider=provider)
        if not code:
            raise TokenExchangeFailed("Authorization code missing from callback", provider=provider)

        self.settings.require_provider(provider)

        if provider == "google":
            tokens = await exchange_google_code(self.http, self.settings, code)
            account_id = transit.account_hint or GOOGLE_PLACEHOLDER_ACCOUNT
        elif provider == "meta":
            tokens = await exchange_meta_code(self.http, self.settings, code)
            tokens = await exchange_meta_long_lived(self.http, self.settings, tokens)
            account_id = transit.account_hint or await fetch_meta_account_id(self.http, self.settings, tokens.access_token)
        else:
            raise CsrfMismatch(f"Unsupported OAuth provider {provider}", provider=provider)

        return self._upsert_integration(db, transit, account_id, Credentials.from_token_set(tokens))

    def _upsert_integration(
        self,
        db: Session,
        transit: TransitState,
        account_id: str,
        credentials: Credentials,
    ) -> Integration:
        agency_id = uuid.UUID(transit.agency_id)
        platform = PlatformEnum(transit.platform)
        try:
            integration = (
                db.query(Integration)
                .filter(
                    Integration.agency_id == agency_id,
                    Integration.platform == platform,
                    Integration.account_id == account_id,
                )
                .first()
            )
            if integration is None:
                integration = Integration(
                    agency_id=agency_id,
                    platform=platform,
                    account_id=account_id,
                    sync_status=SyncStatusEnum.idle,
                )
                db.add(integration)
                logger.info("[OAUTH] Creating %s integration %s for agency %s", platform.value, account_id, agency_id)
            else:
                logger.info("[OAUTH] Reconnecting %s integration %s for agency %s", platform.value, account_id, agency_id)

            store_credentials(integration, credentials)
            integration.is_active = True
            integration.status = IntegrationStatusEnum.connected
            integration.last_sync_error = None
            integration.last_sync = utcnow()
            db.commit()
            db.refresh(integration)
            return integration
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("[OAUTH] Failed to store %s integration", platform.value)
            raise StorageError(f"Could not save {platform.value} connection") from exc
