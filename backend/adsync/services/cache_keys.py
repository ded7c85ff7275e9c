"""Cache key builders and TTL policy.

WHAT:
    Deterministic cache keys for credentials and every synced resource, and the
    TTL each resource is cached for.

WHY:
    Keys are namespaced by resource type and scope so any component can write
    any key without collisions. Date-ranged resources carry the range in the key.

    Meta keys are scoped by the Meta object id alone: the payload for a given
    campaign is the same whichever user asks. Google Analytics keys also carry
    the user id because listing calls are filtered by the caller's grants.
"""

from datetime import date
from typing import Union

# Credentials are never cached longer than this, even when the token lives longer.
TOKEN_CACHE_CAP_SECONDS = 3600

# Meta Ads
META_AD_ACCOUNTS_TTL = 60 * 60
META_CAMPAIGNS_TTL = 30 * 60
META_ADSETS_TTL = 30 * 60
META_ADS_TTL = 30 * 60
META_INSIGHTS_TTL = 2 * 60 * 60

# Google Analytics
GA_ACCOUNTS_TTL = 30 * 60
GA_PROPERTIES_TTL = 30 * 60
GA_REPORT_TTL = 60 * 60

DateLike = Union[date, str]


def token_cache_ttl(seconds_to_expiry: float, cap: int = TOKEN_CACHE_CAP_SECONDS) -> int:
    """TTL for a cached access token: min(seconds to expiry, cap), floored at 0.

    A result of 0 means "do not cache".
    """
    return max(0, min(int(seconds_to_expiry), cap))


def _day(value: DateLike) -> str:
    return value.isoformat() if isinstance(value, date) else str(value)


def credential_key(platform: str, user_id: int) -> str:
    return f"cred:{platform}:{user_id}"


def meta_ad_accounts_key(user_id: int) -> str:
    return f"user:{user_id}:ad_accounts"


def meta_campaigns_key(account_id: str) -> str:
    return f"account:{account_id}:campaigns"


def meta_adsets_key(campaign_id: str) -> str:
    return f"campaign:{campaign_id}:adsets"


def meta_ads_key(adset_id: str) -> str:
    return f"adset:{adset_id}:ads"


def meta_insights_key(campaign_id: str, start: DateLike, end: DateLike) -> str:
    return f"campaign:{campaign_id}:insights:{_day(start)}-{_day(end)}"


def ga_accounts_key(user_id: int) -> str:
    return f"google:accounts:{user_id}"


def ga_properties_key(account_id: str, user_id: int) -> str:
    return f"google:properties:{account_id}:{user_id}"


def ga_report_key(property_id: str, start: DateLike, end: DateLike, user_id: int) -> str:
    return f"google:report:{property_id}:{_day(start)}-{_day(end)}:{user_id}"
