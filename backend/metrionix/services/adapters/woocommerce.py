"""WooCommerce adapter: store-level daily sales from the REST reports API."""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List

import httpx

from ...errors import ExternalApiError, IntegrationNotFound
from ...models import PlatformEnum, WooCommerceSalesDaily
from ..metrics import safe_ratio
from .base import AccountCredential, DateRange, PlatformAdapter, Row, request_json, to_float, to_int

logger = logging.getLogger(__name__)


def store_api_url(store_url: str, path: str) -> str:
    return f"{store_url.rstrip('/')}/wp-json/wc/v3/{path.lstrip('/')}"


def _report_day(key: str, store_url: str) -> date:
    """Totals are keyed by day only when the store groups the report daily."""
    try:
        return date.fromisoformat(key)
    except ValueError:
        raise ExternalApiError(
            f"WooCommerce store {store_url} returned totals grouped by {key!r}, expected daily dates",
            provider="woocommerce",
        ) from None


class WooCommerceAdapter(PlatformAdapter):
    """Credentials: access_token = consumer key, extra = consumer_secret, store_url."""

    platform = PlatformEnum.woocommerce
    model = WooCommerceSalesDaily

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def fetch_metrics(self, credential: AccountCredential, date_range: DateRange) -> List[Row]:
        store_url = credential.extra("store_url") or credential.account_id
        consumer_secret = credential.extra("consumer_secret")
        if not consumer_secret:
            raise IntegrationNotFound("WooCommerce connection has no consumer secret", provider="woocommerce")

        body = await request_json(
            self.http,
            "woocommerce",
            "GET",
            store_api_url(store_url, "reports/sales"),
            f"fetching sales report for {store_url}",
            params={
                "date_min": date_range.start.isoformat(),
                "date_max": date_range.end.isoformat(),
                "period": "day",
            },
            auth=(credential.access_token, consumer_secret),
        )
        report = body[0] if isinstance(body, list) and body else {}
        totals: Dict[str, dict] = report.get("totals") or {}

        rows = [
            {
                "entity_id": store_url,
                "date": _report_day(day, store_url),
                "orders": to_int(values.get("orders")),
                "items": to_int(values.get("items")),
                "revenue": to_float(values.get("sales")),
            }
            for day, values in sorted(totals.items())
        ]
        logger.info("[SYNC] WooCommerce %s returned %d daily rows", store_url, len(rows))
        return rows

    def derive_metrics(self, row: Row) -> Dict[str, float]:
        return {"average_order_value": safe_ratio(row.get("revenue"), row.get("orders"))}
