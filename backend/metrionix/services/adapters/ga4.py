"""GA4 adapter: property-level daily traffic via the Analytics Data API."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List

import httpx

from ...errors import IntegrationNotFound
from ...models import Ga4Daily, PlatformEnum
from ...oauth.providers import GOOGLE_PLACEHOLDER_ACCOUNT
from ..metrics import safe_ratio
from .base import AccountCredential, DateRange, PlatformAdapter, Row, request_json, to_float, to_int

logger = logging.getLogger(__name__)

GA4_DATA_API = "https://analyticsdata.googleapis.com/v1beta"

# (API metric name, column) in request order
GA4_METRICS = [
    ("sessions", "sessions"),
    ("totalUsers", "users"),
    ("newUsers", "new_users"),
    ("screenPageViews", "pageviews"),
    ("keyEvents", "conversions"),
    ("totalRevenue", "revenue"),
    ("bounceRate", "bounce_rate"),
]
INTEGER_COLUMNS = {"sessions", "users", "new_users", "pageviews"}


class Ga4Adapter(PlatformAdapter):
    platform = PlatformEnum.ga4
    model = Ga4Daily

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    @staticmethod
    def property_id(credential: AccountCredential) -> str:
        property_id = credential.extra("property_id") or credential.account_id
        if not property_id or property_id == GOOGLE_PLACEHOLDER_ACCOUNT:
            raise IntegrationNotFound("No GA4 property selected for this connection", provider="google")
        return str(property_id).removeprefix("properties/")

    async def fetch_metrics(self, credential: AccountCredential, date_range: DateRange) -> List[Row]:
        property_id = self.property_id(credential)
        body = await request_json(
            self.http,
            "ga4",
            "POST",
            f"{GA4_DATA_API}/properties/{property_id}:runReport",
            f"running report for property {property_id}",
            headers={"Authorization": f"Bearer {credential.access_token}"},
            json={
                "dateRanges": [{"startDate": date_range.start.isoformat(), "endDate": date_range.end.isoformat()}],
                "dimensions": [{"name": "date"}],
                "metrics": [{"name": name} for name, _ in GA4_METRICS],
                "limit": 100000,
            },
        )

        rows = []
        for raw in body.get("rows") or []:
            values: Dict[str, str] = {
                column: metric.get("value")
                for (_, column), metric in zip(GA4_METRICS, raw.get("metricValues") or [])
            }
            row: Row = {
                "entity_id": property_id,
                "date": datetime.strptime(raw["dimensionValues"][0]["value"], "%Y%m%d").date(),
            }
            for _, column in GA4_METRICS:
                convert = to_int if column in INTEGER_COLUMNS else to_float
                row[column] = convert(values.get(column))
            rows.append(row)
        logger.info("[SYNC] GA4 property %s returned %d daily rows", property_id, len(rows))
        return rows

    def derive_metrics(self, row: Row) -> Dict[str, float]:
        return {"conversion_rate": safe_ratio(row.get("conversions"), row.get("sessions"))}
