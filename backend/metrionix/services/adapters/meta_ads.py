"""Meta Ads adapter: ad-level daily insights via the Facebook Business SDK."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional

from ...config import Settings
from ...errors import ExternalApiError
from ...models import MetaAdsInsightDaily, PlatformEnum
from ...oauth.providers import META_UNKNOWN_ACCOUNT
from ..meta_ads_client import (
    MetaAdsAuthenticationError,
    MetaAdsClient,
    MetaAdsClientError,
    MetaAdsPermissionError,
    action_total,
)
from .base import AccountCredential, DateRange, PlatformAdapter, Row, to_float, to_int

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], MetaAdsClient]


class MetaAdsAdapter(PlatformAdapter):
    platform = PlatformEnum.meta_ads
    model = MetaAdsInsightDaily

    def __init__(self, settings: Settings, client_factory: Optional[ClientFactory] = None):
        self.settings = settings
        self.client_factory = client_factory or self._default_client

    def _default_client(self, access_token: str) -> MetaAdsClient:
        return MetaAdsClient(
            access_token=access_token,
            app_id=self.settings.META_APP_ID or None,
            app_secret=self.settings.META_APP_SECRET or None,
        )

    async def fetch_metrics(self, credential: AccountCredential, date_range: DateRange) -> List[Row]:
        if credential.account_id == META_UNKNOWN_ACCOUNT:
            raise ExternalApiError("No Meta ad account is linked to this connection", provider="meta")

        try:
            # The SDK is blocking; keep the event loop free
            insights = await asyncio.to_thread(self._fetch, credential, date_range)
        except (MetaAdsAuthenticationError, MetaAdsPermissionError) as exc:
            raise ExternalApiError(str(exc), provider="meta", status_code=exc.http_status, auth_failure=True) from exc
        except MetaAdsClientError as exc:
            raise ExternalApiError(str(exc), provider="meta", status_code=exc.http_status) from exc

        return [self._parse(insight) for insight in insights]

    def _fetch(self, credential: AccountCredential, date_range: DateRange) -> List[dict]:
        client = self.client_factory(credential.access_token)
        return client.get_account_insights(
            credential.account_id,
            date_range.start.isoformat(),
            date_range.end.isoformat(),
            level="ad",
        )

    @staticmethod
    def _parse(insight: dict) -> Row:
        return {
            "entity_id": str(insight["ad_id"]),
            "campaign_id": insight.get("campaign_id"),
            "adset_id": insight.get("adset_id"),
            "date": date.fromisoformat(insight["date_start"]),
            "impressions": to_int(insight.get("impressions")),
            "clicks": to_int(insight.get("clicks")),
            "spend": to_float(insight.get("spend")),
            "conversions": action_total(insight.get("actions")),
            "revenue": action_total(insight.get("action_values")),
        }
