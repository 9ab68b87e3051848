"""Derived metric formulas shared by every platform adapter.

A ratio whose denominator is zero (or missing) is 0.0, never NaN and never an
exception: a campaign with no clicks simply has CPC 0.
"""

from typing import Dict, Optional, Union

Number = Union[int, float]


def safe_ratio(numerator: Optional[Number], denominator: Optional[Number]) -> float:
    if not denominator:
        return 0.0
    return float(numerator or 0) / float(denominator)


def derive_ad_metrics(
    impressions: Optional[Number],
    clicks: Optional[Number],
    spend: Optional[Number],
    conversions: Optional[Number],
    revenue: Optional[Number],
) -> Dict[str, float]:
    """CTR, CPC, CPA and ROAS from base ad measures.

    CTR is a fraction (0.05 = 5%), not a percentage.
    """
    return {
        "ctr": safe_ratio(clicks, impressions),
        "cpc": safe_ratio(spend, clicks),
        "cpa": safe_ratio(spend, conversions),
        "roas": safe_ratio(revenue, spend),
    }
