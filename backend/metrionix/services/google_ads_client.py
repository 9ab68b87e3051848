"""Google Ads client service abstraction.

WHAT:
    Wraps the Google Ads Python SDK behind a small, testable surface: client
    construction from a stored refresh token, rate-limited GAQL search with
    retries, and the daily campaign metrics query used by sync.

WHY:
    - Keep SDK details out of the sync adapter.
    - Testability: the SDK client is injectable, tests pass a fake.

REFERENCES:
    - metrionix/services/adapters/google_ads.py (consumer)
    - https://developers.google.com/google-ads/api/docs/query/overview
"""

from __future__ import annotations

import logging
import random
import re
import time
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from ..config import Settings, is_placeholder

logger = logging.getLogger(__name__)


class QuotaExhaustedError(Exception):
    """Google Ads API quota is exhausted; ``retry_seconds`` is Google's hint."""

    def __init__(self, message: str, retry_seconds: int = 600):
        super().__init__(message)
        self.retry_seconds = retry_seconds


def _extract_retry_seconds(error_str: str) -> Optional[int]:
    """Parse hints like "Retry in 723 seconds" from quota errors."""
    match = re.search(r'[Rr]etry in (\d+) seconds', error_str)
    if match:
        return int(match.group(1))
    return None


class GoogleAdsRateLimiter:
    """Simple token bucket rate limiter.

    WHAT:
        Guard outgoing requests to honor QPS/quota. Defaults are conservative.
    WHY:
        Avoid RESOURCE_EXHAUSTED errors and smooth out bursts.
    """

    def __init__(self, capacity: int = 15, refill_per_sec: float = 5.0) -> None:
        self.capacity = capacity
        self.tokens = capacity
        self.refill_per_sec = refill_per_sec
        self.last = time.monotonic()

    def acquire(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last
        self.last = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_sec)
        if self.tokens < 1:
            missing = 1 - self.tokens
            time.sleep(max(0.0, missing / self.refill_per_sec))
            self.tokens = 0
        self.tokens = max(0.0, self.tokens - 1)


def _is_quota_error(error_str: str) -> bool:
    return (
        'RESOURCE_EXHAUSTED' in error_str
        or 'Too many requests' in error_str
        or 'quota' in error_str.lower()
    )


def _with_retries(func):
    """Retry transient SDK errors with exponential backoff and jitter.

    Transient = UNAVAILABLE / INTERNAL / RST_STREAM / deadline exceeded. Quota
    exhaustion is not retried; it raises QuotaExhaustedError with Google's hint.
    """

    def wrapper(self, *args, **kwargs):  # type: ignore
        max_attempts = 3
        base = 1.0
        for attempt in range(1, max_attempts + 1):
            try:
                return func(self, *args, **kwargs)
            except Exception as e:  # noqa: BLE001
                error_str = str(e)

                if _is_quota_error(error_str):
                    retry_seconds = _extract_retry_seconds(error_str) or 600
                    logger.warning("[GOOGLE_ADS] Quota exhausted, Google suggests retry in %ds", retry_seconds)
                    raise QuotaExhaustedError(
                        f"Google Ads quota exhausted. Retry in {retry_seconds} seconds.",
                        retry_seconds=retry_seconds,
                    ) from e

                code = None
                if 'GoogleAdsException' in e.__class__.__name__ or e.__class__.__module__.startswith('google'):
                    code = getattr(getattr(e, 'error', None), 'code', None)

                if code:
                    code_str = str(code)
                    transient = 'UNAVAILABLE' in code_str or 'INTERNAL' in code_str
                else:
                    transient = any(k in error_str for k in ('UNAVAILABLE', 'RST_STREAM', 'deadline exceeded'))

                if not transient or attempt == max_attempts:
                    raise

                sleep_s = min(base * (2 ** (attempt - 1)) * (1 + random.random()), 30.0)
                logger.info(
                    "[GOOGLE_ADS] Transient error (attempt %d/%d), retrying in %.1fs: %s",
                    attempt, max_attempts, sleep_s, error_str[:100]
                )
                time.sleep(sleep_s)
    return wrapper


def normalize_customer_id(customer_id: Optional[str]) -> Optional[str]:
    """Digits only ("123-456-7890" -> "1234567890"); None unless 10 digits."""
    if not customer_id:
        return None
    digits = "".join(ch for ch in str(customer_id) if ch.isdigit())
    return digits if len(digits) == 10 else None


class GAdsClient:
    """Testable wrapper around the Google Ads Python SDK."""

    def __init__(self, client: Any, rate_limiter: Optional[GoogleAdsRateLimiter] = None) -> None:
        self._client = client
        self._ga_service = None
        self._rate = rate_limiter or GoogleAdsRateLimiter()

    @classmethod
    def from_refresh_token(
        cls,
        settings: Settings,
        refresh_token: str,
        login_customer_id: Optional[str] = None,
    ) -> "GAdsClient":
        """Build an SDK client from an integration's stored refresh token.

        Raises:
            ValueError: developer token or OAuth client credentials missing or placeholders.
        """
        from google.ads.googleads.client import GoogleAdsClient as _SdkClient

        missing = [
            key for key in ("GOOGLE_DEVELOPER_TOKEN", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET")
            if is_placeholder(getattr(settings, key))
        ]
        if missing:
            raise ValueError(f"Missing required Google Ads settings: {', '.join(missing)}")

        config = {
            "developer_token": settings.GOOGLE_DEVELOPER_TOKEN,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "refresh_token": refresh_token,
            # google-ads >= 21 requires explicit use_proto_plus
            "use_proto_plus": True,
        }
        login_cid = normalize_customer_id(login_customer_id or settings.GOOGLE_LOGIN_CUSTOMER_ID)
        if login_cid:
            config["login_customer_id"] = login_cid
        return cls(_SdkClient.load_from_dict(config))

    def _service(self):
        if self._ga_service is None:
            self._ga_service = self._client.get_service("GoogleAdsService")
        return self._ga_service

    @_with_retries
    def search(self, customer_id: str, query: str) -> Iterable[Any]:
        """GAQL search with rate limit + retries."""
        self._rate.acquire()
        return list(self._service().search(customer_id=customer_id, query=query))

    def fetch_campaign_daily_metrics(self, customer_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        """One row per campaign per day in [start, end].

        Spend is normalized from micros to account currency units.
        """
        q = (
            "SELECT campaign.id, campaign.name, campaign.status, "
            "metrics.impressions, metrics.clicks, metrics.cost_micros, "
            "metrics.conversions, metrics.conversions_value, segments.date "
            "FROM campaign "
            f"WHERE segments.date BETWEEN '{start.isoformat()}' AND '{end.isoformat()}'"
        )
        out: List[Dict[str, Any]] = []
        for r in self.search(customer_id, q):
            m = r.metrics
            status = getattr(r.campaign, "status", None)
            out.append({
                "date": str(r.segments.date),
                "campaign_id": str(getattr(r.campaign, "id", "")),
                "campaign_name": getattr(r.campaign, "name", None),
                "status": getattr(status, "name", None) or (str(status) if status is not None else None),
                "impressions": int(m.impressions or 0),
                "clicks": int(m.clicks or 0),
                "spend": (m.cost_micros or 0) / 1_000_000.0,
                "conversions": float(getattr(m, "conversions", 0.0) or 0.0),
                "revenue": float(getattr(m, "conversions_value", 0.0) or 0.0),
            })
        logger.info("[GOOGLE_ADS] Fetched %d campaign-day rows for %s", len(out), customer_id)
        return out
