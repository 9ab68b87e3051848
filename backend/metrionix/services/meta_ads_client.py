"""Meta Ads API Client Service.

WHAT:
    Wrapper for the Facebook Business SDK providing rate-limited, ad-level
    daily insights for an ad account.

WHY:
    - Rate limiting enforcement (200 calls/hour per account)
    - Translate FacebookRequestError into a small exception hierarchy the
      sync adapter can map onto ExternalApiError (auth vs. other failures)

RATE LIMITS:
    - 200 API calls per hour per ad account
    - Implements decorator: @rate_limit(calls_per_hour=200)

REFERENCES:
    - metrionix/services/adapters/meta_ads.py (consumer)
    - https://developers.facebook.com/docs/marketing-api/insights
"""

import logging
from collections import deque
from functools import wraps
from time import sleep, time
from typing import Any, Dict, List, Optional

import requests
from facebook_business.adobjects.adaccount import AdAccount
from facebook_business.adobjects.adsinsights import AdsInsights
from facebook_business.api import FacebookAdsApi
from facebook_business.exceptions import FacebookRequestError

logger = logging.getLogger(__name__)

# Graph API error code for expired/invalid OAuth access tokens
OAUTH_EXCEPTION_CODE = 190


def rate_limit(calls_per_hour: int):
    """Decorator to enforce rate limiting using a sliding window.

    Tracks call timestamps in a deque and sleeps when the next call would
    exceed `calls_per_hour`.
    """
    call_times = deque(maxlen=calls_per_hour)

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            now = time()
            while call_times and call_times[0] < now - 3600:
                call_times.popleft()

            if len(call_times) >= calls_per_hour:
                sleep_time = 3600 - (now - call_times[0]) + 1
                logger.warning(
                    f"[META_CLIENT] Rate limit reached ({calls_per_hour} calls/hour). "
                    f"Sleeping for {sleep_time:.1f}s"
                )
                sleep(sleep_time)

            call_times.append(now)
            return func(*args, **kwargs)
        return wrapper
    return decorator


class MetaAdsClientError(Exception):
    """Base exception for Meta Ads Client errors."""

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status


class MetaAdsAuthenticationError(MetaAdsClientError):
    """Token expired, revoked or invalid (401 / OAuthException 190)."""


class MetaAdsPermissionError(MetaAdsClientError):
    """Token lacks ads_read/ads_management on the account (403)."""


class MetaAdsValidationError(MetaAdsClientError):
    """Request was malformed (400)."""


INSIGHT_FIELDS = [
    AdsInsights.Field.date_start,
    AdsInsights.Field.campaign_id,
    AdsInsights.Field.adset_id,
    AdsInsights.Field.ad_id,
    AdsInsights.Field.spend,
    AdsInsights.Field.impressions,
    AdsInsights.Field.clicks,
    AdsInsights.Field.actions,
    AdsInsights.Field.action_values,
]


class MetaAdsClient:
    """Client for the Meta Marketing API insights endpoint.

    Usage:
        client = MetaAdsClient(access_token=token, app_id=..., app_secret=...)
        rows = client.get_account_insights("act_123", "2024-01-01", "2024-01-07")
    """

    def __init__(self, access_token: str, app_id: Optional[str] = None, app_secret: Optional[str] = None):
        self.access_token = access_token
        self.api = FacebookAdsApi.init(
            app_id=app_id,
            app_secret=app_secret,
            access_token=access_token,
        )
        logger.info("[META_CLIENT] Initialized with access token")

    @staticmethod
    def normalize_account_id(account_id: str) -> str:
        return account_id if account_id.startswith("act_") else f"act_{account_id}"

    @rate_limit(calls_per_hour=200)
    def get_account_insights(
        self,
        ad_account_id: str,
        start_date: str,
        end_date: str,
        level: str = "ad",
    ) -> List[Dict[str, Any]]:
        """Daily insights for every ad in the account in a single call.

        Returns:
            One dict per ad per day with campaign_id, adset_id, ad_id,
            date_start, spend, impressions, clicks, actions, action_values.

        Raises:
            MetaAdsClientError (or a subclass) on API errors.
        """
        account_id = self.normalize_account_id(ad_account_id)
        try:
            logger.info(
                f"[META_CLIENT] Fetching ACCOUNT-LEVEL insights: {account_id}, "
                f"level={level}, {start_date} to {end_date}"
            )
            account = AdAccount(account_id, api=self.api)
            insights = account.get_insights(
                fields=list(INSIGHT_FIELDS),
                params={
                    "level": level,
                    "time_increment": 1,
                    "time_range": {"since": start_date, "until": end_date},
                },
            )
            result = [dict(insight) for insight in insights]
            logger.info(f"[META_CLIENT] Fetched {len(result)} insights (account-level)")
            return result
        except FacebookRequestError as e:
            self._handle_api_error(e, f"fetching account insights for {account_id}")
        except requests.RequestException as e:
            logger.error(f"[META_CLIENT] Transport error while fetching insights for {account_id}: {e}")
            raise MetaAdsClientError(f"Could not reach the Meta API for {account_id}: {e}") from e

    def _handle_api_error(self, error: FacebookRequestError, context: str) -> None:
        """Translate FacebookRequestError into a specific exception type."""
        error_code = error.api_error_code()
        error_message = error.api_error_message()
        http_status = error.http_status()

        logger.error(
            f"[META_CLIENT] API error while {context}: "
            f"HTTP {http_status}, Code {error_code}, Message: {error_message}"
        )

        if http_status == 401 or error_code == OAUTH_EXCEPTION_CODE:
            raise MetaAdsAuthenticationError(
                f"Authentication failed while {context}. Token may be expired or invalid.",
                http_status=http_status,
            )
        if http_status == 403:
            raise MetaAdsPermissionError(
                f"Permission denied while {context}. Check token permissions.",
                http_status=http_status,
            )
        if http_status == 400:
            raise MetaAdsValidationError(f"Invalid request while {context}: {error_message}", http_status=http_status)
        raise MetaAdsClientError(
            f"API error while {context}: HTTP {http_status}, {error_message}",
            http_status=http_status,
        )


def action_total(actions: Optional[List[Dict[str, Any]]], action_types=("purchase", "omni_purchase")) -> float:
    """Sum the first matching purchase action from an insights actions list.

    Meta reports the same purchase under several action types; the first
    present type in `action_types` wins so purchases are not double counted.
    """
    if not actions:
        return 0.0
    by_type = {a.get("action_type"): a.get("value") for a in actions}
    for action_type in action_types:
        if by_type.get(action_type) is not None:
            return float(by_type[action_type] or 0)
    return 0.0
