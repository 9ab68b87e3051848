"""Google Ads adapter: campaign-level daily KPIs via GAQL."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional

from ...config import Settings, is_placeholder
from ...errors import ExternalApiError, IntegrationNotFound, ProviderMisconfigured
from ...models import GoogleAdsCampaignDaily, PlatformEnum
from ...oauth.providers import GOOGLE_PLACEHOLDER_ACCOUNT
from ..google_ads_client import GAdsClient, QuotaExhaustedError, normalize_customer_id
from .base import AccountCredential, DateRange, PlatformAdapter, Row

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings, str, Optional[str]], GAdsClient]

AUTH_ERROR_MARKERS = ("invalid_grant", "UNAUTHENTICATED", "PERMISSION_DENIED", "USER_PERMISSION_DENIED")


class GoogleAdsAdapter(PlatformAdapter):
    platform = PlatformEnum.google_ads
    model = GoogleAdsCampaignDaily

    def __init__(self, settings: Settings, client_factory: Optional[ClientFactory] = None):
        self.settings = settings
        self.client_factory = client_factory or GAdsClient.from_refresh_token

    async def fetch_metrics(self, credential: AccountCredential, date_range: DateRange) -> List[Row]:
        self.settings.require_provider("google")
        if is_placeholder(self.settings.GOOGLE_DEVELOPER_TOKEN):
            raise ProviderMisconfigured("google", ["GOOGLE_DEVELOPER_TOKEN"])

        if not credential.refresh_token:
            raise IntegrationNotFound("Google Ads connection has no refresh token; reconnect", provider="google")

        customer_id = normalize_customer_id(credential.account_id)
        if credential.account_id == GOOGLE_PLACEHOLDER_ACCOUNT or customer_id is None:
            raise ExternalApiError(
                f"Google Ads customer id not selected for this connection ({credential.account_id})",
                provider="google",
            )

        try:
            rows = await asyncio.to_thread(self._fetch, credential, customer_id, date_range)
        except QuotaExhaustedError as exc:
            raise ExternalApiError(str(exc), provider="google", status_code=429) from exc
        except ValueError as exc:
            raise ExternalApiError(str(exc), provider="google") from exc
        except Exception as exc:  # noqa: BLE001 - SDK raises GoogleAdsException / RefreshError
            message = str(exc)
            auth_failure = any(marker in message for marker in AUTH_ERROR_MARKERS)
            logger.error("[SYNC] Google Ads API error for %s: %s", customer_id, message[:200])
            raise ExternalApiError(
                f"Google Ads API error: {message[:300]}",
                provider="google",
                auth_failure=auth_failure,
            ) from exc

        return [
            {
                "entity_id": row["campaign_id"],
                "campaign_name": row.get("campaign_name"),
                "status": row.get("status"),
                "date": date.fromisoformat(row["date"]),
                "impressions": row["impressions"],
                "clicks": row["clicks"],
                "spend": row["spend"],
                "conversions": row["conversions"],
                "revenue": row["revenue"],
            }
            for row in rows
        ]

    def _fetch(self, credential: AccountCredential, customer_id: str, date_range: DateRange) -> List[dict]:
        client = self.client_factory(
            self.settings,
            credential.refresh_token,
            credential.extra("login_customer_id"),
        )
        return client.fetch_campaign_daily_metrics(customer_id, date_range.start, date_range.end)
