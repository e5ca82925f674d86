"""ROI Service.

WHAT:
    I/O side of the ROI calculation: loads the user's Meta credentials,
    fetches campaign insights, selects the user's carts for the preset window
    and hands everything to the pure math in cartrecovery/analytics/roi.py.

WHY:
    The same computation backs the ROI section of the analytics report and
    the standalone GET /meta/roi endpoint.

WHERE USED:
    - cartrecovery/analytics/orchestrator.py
    - cartrecovery/routers/meta_roi.py

ERRORS:
    - RoiUnavailableError (and subclasses): ads side not usable for this user
    - MetaAdsClientError (and subclasses): Meta API call failed
    - sqlalchemy.exc.SQLAlchemyError: database failure
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from cartrecovery.analytics.records import CampaignInsight
from cartrecovery.analytics.roi import calculate_roi, insights_preset_for, resolve_date_range
from cartrecovery.schemas import ROISummaryOut
from cartrecovery.security import TokenCipher
from cartrecovery.services.ads_connection import AdsCredentials, load_ads_credentials
from cartrecovery.services.cart_store import CartStore
from cartrecovery.services.meta_ads_client import MetaAdsClient

logger = logging.getLogger(__name__)


InsightsFetcher = Callable[[AdsCredentials, str], List[CampaignInsight]]


def fetch_meta_insights(
    credentials: AdsCredentials,
    date_preset: str,
    app_id: Optional[str] = None,
    app_secret: Optional[str] = None,
) -> List[CampaignInsight]:
    """Default insights fetcher backed by the Meta Marketing API."""
    client = MetaAdsClient(
        access_token=credentials.access_token,
        app_id=app_id,
        app_secret=app_secret,
    )
    return client.fetch_campaign_insights(credentials.ad_account_id, date_preset)


class RoiService:
    """Cross-references Meta Ads spend with recovered cart revenue.

    Usage:
        ```python
        service = RoiService(SessionLocal, CartStore(SessionLocal), TokenCipher(settings.TOKEN_ENCRYPTION_KEY))
        summary = service.calculate_user_roi("user-1", "last_7d")
        ```
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        store: CartStore,
        cipher: TokenCipher,
        fetch_insights: InsightsFetcher = fetch_meta_insights,
    ):
        self.session_factory = session_factory
        self.store = store
        self.cipher = cipher
        self.fetch_insights = fetch_insights

    def load_credentials(self, user_id: str, now: Optional[datetime] = None) -> AdsCredentials:
        session = self.session_factory()
        try:
            return load_ads_credentials(session, user_id, self.cipher, now)
        finally:
            session.close()

    def fetch_campaign_insights(
        self,
        user_id: str,
        date_preset: str,
        now: Optional[datetime] = None,
    ) -> List[CampaignInsight]:
        """Campaign metrics for the nearest preset the insights API supports."""
        credentials = self.load_credentials(user_id, now)
        meta_preset = insights_preset_for(date_preset).value
        insights = self.fetch_insights(credentials, meta_preset)
        logger.info(f"[ROI] {len(insights)} campaigns for user {user_id} ({meta_preset})")
        return insights

    def calculate_user_roi(
        self,
        user_id: str,
        date_preset: str = "last_30d",
        now: Optional[datetime] = None,
    ) -> Optional[ROISummaryOut]:
        """ROI of every campaign for `user_id` over `date_preset`.

        Returns:
            ROISummaryOut, or None when Meta reports no campaigns.

        Raises:
            RoiUnavailableError: Missing/expired connection or no ad account.
        """
        now = now or datetime.now(timezone.utc)

        insights = self.fetch_campaign_insights(user_id, date_preset, now)
        if not insights:
            return None

        date_start, date_stop = resolve_date_range(date_preset, now)
        carts = self.store.fetch_carts(user_id, since=date_start, until=date_stop)

        summary = calculate_roi(insights, carts, date_start, date_stop)
        if summary is not None:
            logger.info(
                f"[ROI] User {user_id}: spend={summary.total_ad_spend:.2f} "
                f"recovered={summary.total_recovered_value:.2f} roas={summary.overall_roas:.2f}"
            )
        return summary
