"""Search Console adapter: page-level daily search performance."""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List
from urllib.parse import quote

import httpx

from ...errors import IntegrationNotFound
from ...models import PlatformEnum, SearchConsolePageDaily
from ...oauth.providers import GOOGLE_PLACEHOLDER_ACCOUNT
from ..metrics import safe_ratio
from .base import AccountCredential, DateRange, PlatformAdapter, Row, request_json, to_float, to_int

logger = logging.getLogger(__name__)

SEARCH_CONSOLE_API = "https://www.googleapis.com/webmasters/v3"
ROW_LIMIT = 25000


class SearchConsoleAdapter(PlatformAdapter):
    platform = PlatformEnum.search_console
    model = SearchConsolePageDaily

    def __init__(self, http: httpx.AsyncClient, row_limit: int = ROW_LIMIT):
        self.http = http
        self.row_limit = row_limit

    @staticmethod
    def site_url(credential: AccountCredential) -> str:
        site_url = credential.extra("site_url") or credential.account_id
        if not site_url or site_url == GOOGLE_PLACEHOLDER_ACCOUNT:
            raise IntegrationNotFound("No Search Console site selected for this connection", provider="google")
        return site_url

    async def fetch_metrics(self, credential: AccountCredential, date_range: DateRange) -> List[Row]:
        site_url = self.site_url(credential)
        url = f"{SEARCH_CONSOLE_API}/sites/{quote(site_url, safe='')}/searchAnalytics/query"

        rows: List[Row] = []
        start_row = 0
        while True:
            body = await request_json(
                self.http,
                "search_console",
                "POST",
                url,
                f"querying search analytics for {site_url}",
                headers={"Authorization": f"Bearer {credential.access_token}"},
                json={
                    "startDate": date_range.start.isoformat(),
                    "endDate": date_range.end.isoformat(),
                    "dimensions": ["date", "page"],
                    "rowLimit": self.row_limit,
                    "startRow": start_row,
                },
            )
            page = body.get("rows") or []
            for raw in page:
                day, page_url = raw["keys"]
                rows.append({
                    "entity_id": page_url,
                    "date": date.fromisoformat(day),
                    "clicks": to_int(raw.get("clicks")),
                    "impressions": to_int(raw.get("impressions")),
                    "position": to_float(raw.get("position")),
                })
            if len(page) < self.row_limit:
                break
            start_row += self.row_limit

        logger.info("[SYNC] Search Console %s returned %d page-day rows", site_url, len(rows))
        return rows

    def derive_metrics(self, row: Row) -> Dict[str, float]:
        return {"ctr": safe_ratio(row.get("clicks"), row.get("impressions"))}
