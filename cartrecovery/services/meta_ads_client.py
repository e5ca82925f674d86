"""Meta Ads API Client Service.

WHAT:
    Wrapper for the Facebook Business SDK providing rate-limited access to
    campaign-level insights (spend, impressions, clicks, CPC, CTR) and
    campaign statuses for an ad account.

WHY:
    - Single place for Meta API interaction and error translation
    - Rate limiting enforcement (200 calls/hour per account)
    - Converts SDK objects into CampaignInsight records for the ROI math

WHERE USED:
    - cartrecovery/services/roi_service.py (ROI cross-referencing)

DEPENDENCIES:
    - facebook_business SDK

RATE LIMITS:
    - 200 API calls per hour per ad account
    - Implemented by the @rate_limit(calls_per_hour=200) decorator

REFERENCES:
    - https://developers.facebook.com/docs/marketing-api/insights
"""

import logging
from collections import defaultdict, deque
from functools import wraps
from threading import Lock
from time import time, sleep
from typing import List, Dict, Any, Optional

from facebook_business.api import FacebookAdsApi
from facebook_business.session import FacebookSession
from facebook_business.adobjects.adaccount import AdAccount
from facebook_business.adobjects.campaign import Campaign
from facebook_business.adobjects.adsinsights import AdsInsights
from facebook_business.exceptions import FacebookRequestError

from cartrecovery.analytics.records import CampaignInsight

logger = logging.getLogger(__name__)


INSIGHTS_PAGE_LIMIT = 100


def normalize_account_id(account_id: str) -> str:
    """'123' and 'act_123' both become 'act_123'."""
    return f"act_{account_id.replace('act_', '')}"


def _account_key(args, kwargs) -> Optional[str]:
    """Ad account a rate-limited call targets (first argument after self)."""
    account_id = kwargs.get("account_id")
    if account_id is None and len(args) > 1:
        account_id = args[1]
    return normalize_account_id(account_id) if isinstance(account_id, str) else None


def rate_limit(calls_per_hour: int):
    """Decorator to enforce rate limiting using a sliding window per ad account.

    WHAT:
        Tracks call timestamps per ad account in a deque and sleeps when that
        account's hourly limit would be exceeded.

    WHY:
        Meta enforces 200 calls/hour per ad account; exceeding it causes 429s.
        Calls for one tenant's account never wait on another account's calls.

    Args:
        calls_per_hour: Maximum number of calls allowed per hour per account
    """
    windows: Dict[Optional[str], deque] = defaultdict(lambda: deque(maxlen=calls_per_hour))
    lock = Lock()

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            key = _account_key(args, kwargs)
            sleep_time = 0.0

            with lock:
                call_times = windows[key]
                now = time()

                # Drop calls older than 1 hour
                while call_times and call_times[0] < now - 3600:
                    call_times.popleft()

                if len(call_times) >= calls_per_hour:
                    sleep_time = 3600 - (now - call_times[0]) + 1
                call_times.append(now + sleep_time)

            if sleep_time > 0:
                logger.warning(
                    f"[META_CLIENT] Rate limit reached for {key} ({calls_per_hour} calls/hour). "
                    f"Sleeping for {sleep_time:.1f}s"
                )
                sleep(sleep_time)

            return func(*args, **kwargs)
        return wrapper
    return decorator


class MetaAdsClientError(Exception):
    """Base exception for Meta Ads Client errors."""
    pass


class MetaAdsAuthenticationError(MetaAdsClientError):
    """Raised when authentication fails (401)."""
    pass


class MetaAdsPermissionError(MetaAdsClientError):
    """Raised when permissions are insufficient (403)."""
    pass


class MetaAdsValidationError(MetaAdsClientError):
    """Raised when request is malformed (400)."""
    pass


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    try:
        return int(float(value or 0))
    except (TypeError, ValueError):
        return 0


def parse_campaign_insight(row: Dict[str, Any], status: str = "UNKNOWN") -> CampaignInsight:
    """Convert one campaign-level insights row into a CampaignInsight.

    Meta returns numeric fields as strings ("12.34"); missing fields are 0.
    """
    return CampaignInsight(
        campaign_id=str(row.get("campaign_id", "")),
        campaign_name=row.get("campaign_name") or "",
        spend=_to_float(row.get("spend")),
        impressions=_to_int(row.get("impressions")),
        clicks=_to_int(row.get("clicks")),
        cpc=_to_float(row.get("cpc")),
        ctr=_to_float(row.get("ctr")),
        status=status,
    )


class MetaAdsClient:
    """Client for the Meta Marketing API insights used by ROI reporting.

    Usage:
        ```python
        client = MetaAdsClient(access_token="YOUR_TOKEN")
        insights = client.fetch_campaign_insights("act_123456789", "last_30d")
        ```
    """

    def __init__(self, access_token: str, app_id: Optional[str] = None, app_secret: Optional[str] = None):
        """Build an API instance bound to this user's access token.

        The instance is passed to every ad object explicitly and never set as
        the SDK's process-wide default, so concurrent clients for different
        tenants can't pick up each other's token.

        Args:
            access_token: Meta user access token (decrypted)
            app_id: Optional Meta app ID
            app_secret: Optional Meta app secret
        """
        self.access_token = access_token
        self.api = FacebookAdsApi(FacebookSession(app_id=app_id, app_secret=app_secret, access_token=access_token))

        logger.info("[META_CLIENT] Initialized with access token")

    @rate_limit(calls_per_hour=200)
    def get_campaigns(self, account_id: str) -> List[Dict[str, Any]]:
        """Fetch id, name and status of every campaign in an ad account.

        Raises:
            MetaAdsAuthenticationError: Invalid or expired token
            MetaAdsPermissionError: Insufficient permissions for account
            MetaAdsValidationError: Invalid account ID format
            MetaAdsClientError: Other API errors
        """
        account_id = normalize_account_id(account_id)
        try:
            logger.info(f"[META_CLIENT] Fetching campaigns for account: {account_id}")

            account = AdAccount(account_id, api=self.api)
            campaigns = account.get_campaigns(fields=[
                Campaign.Field.id,
                Campaign.Field.name,
                Campaign.Field.status,
            ])

            # SDK iterator handles pagination automatically
            result = [dict(campaign) for campaign in campaigns]

            logger.info(f"[META_CLIENT] Fetched {len(result)} campaigns")
            return result

        except FacebookRequestError as e:
            return self._handle_api_error(e, f"fetching campaigns for {account_id}")

    @rate_limit(calls_per_hour=200)
    def get_campaign_insights(self, account_id: str, date_preset: str) -> List[Dict[str, Any]]:
        """Fetch campaign-level insights for an ad account and date preset.

        Args:
            account_id: Ad account ID, with or without the "act_" prefix
            date_preset: Meta date preset (e.g. "last_7d", "last_30d")

        Returns:
            Raw insight dictionaries with campaign_id, campaign_name, spend,
            impressions, clicks, cpc, ctr (numeric values as strings).

        Raises:
            MetaAdsClientError (or a subclass) on API errors
        """
        account_id = normalize_account_id(account_id)
        try:
            logger.info(
                f"[META_CLIENT] Fetching campaign insights for {account_id}, date_preset={date_preset}"
            )

            account = AdAccount(account_id, api=self.api)
            insights = account.get_insights(
                fields=[
                    AdsInsights.Field.campaign_id,
                    AdsInsights.Field.campaign_name,
                    AdsInsights.Field.spend,
                    AdsInsights.Field.impressions,
                    AdsInsights.Field.clicks,
                    AdsInsights.Field.cpc,
                    AdsInsights.Field.ctr,
                ],
                params={
                    'level': 'campaign',
                    'date_preset': date_preset,
                    'limit': INSIGHTS_PAGE_LIMIT,
                },
            )

            result = [dict(insight) for insight in insights]

            logger.info(f"[META_CLIENT] Fetched {len(result)} campaign insight records")
            return result

        except FacebookRequestError as e:
            return self._handle_api_error(e, f"fetching campaign insights for {account_id}")

    def fetch_campaign_insights(self, account_id: str, date_preset: str) -> List[CampaignInsight]:
        """Campaign insights joined with each campaign's delivery status.

        A failed status lookup leaves statuses as "UNKNOWN" rather than
        failing the insights, which are what ROI actually needs.
        """
        rows = self.get_campaign_insights(account_id, date_preset)
        if not rows:
            return []

        statuses: Dict[str, str] = {}
        try:
            statuses = {str(c.get("id")): c.get("status", "UNKNOWN") for c in self.get_campaigns(account_id)}
        except MetaAdsClientError as e:
            logger.warning(f"[META_CLIENT] Could not fetch campaign statuses for {account_id}: {e}")

        return [
            parse_campaign_insight(row, statuses.get(str(row.get("campaign_id")), "UNKNOWN"))
            for row in rows
        ]

    def _handle_api_error(self, error: FacebookRequestError, context: str) -> None:
        """Translate FacebookRequestError into specific exception types.

        Raises:
            MetaAdsAuthenticationError: For 401 errors
            MetaAdsPermissionError: For 403 errors
            MetaAdsValidationError: For 400 errors
            MetaAdsClientError: For other errors (429, 500, etc.)
        """
        error_code = error.api_error_code()
        error_message = error.api_error_message()
        http_status = error.http_status()

        logger.error(
            f"[META_CLIENT] API error while {context}: "
            f"HTTP {http_status}, Code {error_code}, Message: {error_message}"
        )

        if http_status == 401:
            raise MetaAdsAuthenticationError(
                f"Authentication failed while {context}. Token may be expired or invalid."
            )
        elif http_status == 403:
            raise MetaAdsPermissionError(
                f"Permission denied while {context}. Check token permissions."
            )
        elif http_status == 400:
            raise MetaAdsValidationError(
                f"Invalid request while {context}: {error_message}"
            )
        elif http_status == 429:
            raise MetaAdsClientError(
                f"Rate limit exceeded while {context}."
            )
        else:
            raise MetaAdsClientError(
                f"API error while {context}: HTTP {http_status}, {error_message}"
            )
