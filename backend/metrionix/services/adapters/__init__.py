"""Per-platform reporting adapters and the production registry."""

from typing import Dict

import httpx

from ...config import Settings
from ...models import PlatformEnum
from .base import AccountCredential, DateRange, PlatformAdapter
from .ga4 import Ga4Adapter
from .google_ads import GoogleAdsAdapter
from .meta_ads import MetaAdsAdapter
from .search_console import SearchConsoleAdapter
from .woocommerce import WooCommerceAdapter


def build_adapters(settings: Settings, http: httpx.AsyncClient) -> Dict[PlatformEnum, PlatformAdapter]:
    """Live-API adapters for every platform."""
    return {
        PlatformEnum.meta_ads: MetaAdsAdapter(settings),
        PlatformEnum.google_ads: GoogleAdsAdapter(settings),
        PlatformEnum.ga4: Ga4Adapter(http),
        PlatformEnum.search_console: SearchConsoleAdapter(http),
        PlatformEnum.woocommerce: WooCommerceAdapter(http),
    }


__all__ = [
    "AccountCredential",
    "DateRange",
    "PlatformAdapter",
    "build_adapters",
    "MetaAdsAdapter",
    "GoogleAdsAdapter",
    "Ga4Adapter",
    "SearchConsoleAdapter",
    "WooCommerceAdapter",
]
