"""Platform adapter interface for the generic sync job.

Each adapter knows one reporting API: `fetch_metrics` returns normalized rows
(`entity_id`, `date` plus the base measures of its metric table) and
`derive_metrics` computes the ratios the platform does not return. Batching,
upserts, locking and `last_sync` bookkeeping live once in SyncJob.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterator, List, Optional

import httpx

from ...errors import ExternalApiError
from ...models import PlatformEnum
from ..metrics import derive_ad_metrics
from ..token_service import Credentials

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)


@dataclass(frozen=True)
class AccountCredential:
    """Decrypted credentials bound to the account they authorize."""

    account_id: str
    credentials: Credentials

    @property
    def access_token(self) -> str:
        return self.credentials.access_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self.credentials.refresh_token

    def extra(self, key: str, default: Any = None) -> Any:
        return self.credentials.extra.get(key, default)


class PlatformAdapter(ABC):
    """One reporting API feeding one daily metric table."""

    platform: PlatformEnum
    model: type

    @abstractmethod
    async def fetch_metrics(self, credential: AccountCredential, date_range: DateRange) -> List[Row]:
        """Rows for every entity/day in range.

        Raises:
            ExternalApiError: the platform call failed.
        """

    def derive_metrics(self, row: Row) -> Dict[str, float]:
        return derive_ad_metrics(
            row.get("impressions"),
            row.get("clicks"),
            row.get("spend"),
            row.get("conversions"),
            row.get("revenue"),
        )

    def to_record(self, row: Row) -> Row:
        """Row plus derived fields, limited to the metric table's columns."""
        columns = set(self.model.__table__.columns.keys())
        record = {**row, **self.derive_metrics(row)}
        return {key: value for key, value in record.items() if key in columns}


def raise_for_response(provider: str, response: httpx.Response, context: str) -> None:
    """Map a failed reporting API response onto ExternalApiError."""
    if response.status_code < 400:
        return

    try:
        body = response.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = error.get("message") or str(error)
    else:
        message = (body.get("message") if isinstance(body, dict) else None) or error or response.text[:200]

    auth_failure = response.status_code in (401, 403) or error == "invalid_grant"
    logger.error("[SYNC] %s API error while %s: HTTP %s %s", provider, context, response.status_code, message)
    raise ExternalApiError(
        f"{provider} API error while {context}: HTTP {response.status_code} {message}",
        provider=provider,
        status_code=response.status_code,
        auth_failure=auth_failure,
    )


async def request_json(
    http: httpx.AsyncClient,
    provider: str,
    method: str,
    url: str,
    context: str,
    **kwargs,
) -> Any:
    """Perform a reporting API request, translating transport and HTTP failures."""
    try:
        response = await http.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise ExternalApiError(f"{provider} API unreachable while {context}: {exc}", provider=provider) from exc
    raise_for_response(provider, response, context)
    try:
        return response.json()
    except ValueError as exc:
        raise ExternalApiError(f"{provider} API returned invalid JSON while {context}", provider=provider) from exc


def to_float(value: Any) -> float:
    if value in (None, ""):
        return 0.0
    return float(value)


def to_int(value: Any) -> int:
    if value in (None, ""):
        return 0
    return int(float(value))
