"""Analytics Orchestrator.

WHAT:
    Builds the combined recovery analytics report for one user and period:
    cohorts, email funnel, UTM / hour / weekday / value cross-tabs, Meta Ads
    ROI and email-cost ROI.

WHY:
    The three data sources (carts, email actions, Meta Ads) are independent,
    so they are fetched concurrently and a failure in one only empties the
    sections that depend on it.

HOW:
    ```
    build_report(user_id, period)
        ├─ to_thread(fetch_carts)          → cohorts, utm, timeOfDay, cartValue
        ├─ to_thread(fetch_email_actions)  → funnel
        └─ wait_for(to_thread(calculate_user_roi), ROI_TIMEOUT_SECONDS) → roi
       (carts + email actions)             → emailRoi
    ```

    Fetch failures (SQLAlchemyError, MetaAdsClientError) degrade their
    sections: the section is returned empty and named in `degraded`.
    ROI being unavailable (no connection, expired token, timeout) is not a
    failure; `roi` is simply null. Anything else propagates to the router.

REFERENCES:
    - cartrecovery/routers/recovery_analytics.py (HTTP surface)
    - cartrecovery/services/cart_store.py, cartrecovery/services/roi_service.py
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from cartrecovery.analytics.cohorts import analyze_cohorts
from cartrecovery.analytics.crosstab import analyze_by_time, analyze_by_utm, analyze_by_value
from cartrecovery.analytics.funnel import analyze_funnel
from cartrecovery.analytics.roi import analyze_email_roi, preset_for_period
from cartrecovery.schemas import AnalyticsReportOut, ROISummaryOut
from cartrecovery.services.ads_connection import RoiUnavailableError
from cartrecovery.services.cart_store import CartStore
from cartrecovery.services.meta_ads_client import MetaAdsClientError
from cartrecovery.services.roi_service import RoiService
from cartrecovery.telemetry.sentry import capture_exception

logger = logging.getLogger(__name__)


DEFAULT_PERIOD_DAYS = 30
# Ten years; keeps `now - period` far from datetime.min
MAX_PERIOD_DAYS = 3650

# Errors that degrade a section instead of failing the whole report
FETCH_ERRORS = (SQLAlchemyError, MetaAdsClientError)

CART_SECTIONS = ("cohorts", "utm", "timeOfDay", "cartValue")
EMAIL_SECTIONS = ("funnel",)


def parse_period(raw: Any, default: int = DEFAULT_PERIOD_DAYS) -> int:
    """Parse the `period` query value (days).

    Non-numeric, empty or non-positive values fall back to `default`.
    Values above MAX_PERIOD_DAYS are capped to it.

    Examples:
        parse_period("7")       -> 7
        parse_period("abc")     -> 30
        parse_period("-5")      -> 30
        parse_period(None)      -> 30
        parse_period("1000000") -> 3650
    """
    try:
        days = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    if days <= 0:
        return default
    return min(days, MAX_PERIOD_DAYS)


class AnalyticsOrchestrator:
    """Assembles the analytics report from independently fetched sections.

    Usage:
        ```python
        orchestrator = AnalyticsOrchestrator(store, roi_service, tz=ZoneInfo("America/Sao_Paulo"))
        report = await orchestrator.build_report("user-1", period=30)
        ```
    """

    def __init__(
        self,
        store: CartStore,
        roi_service: RoiService,
        *,
        tz: tzinfo = timezone.utc,
        roi_timeout: float = 10.0,
        email_cost: float = 0.10,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.roi_service = roi_service
        self.tz = tz
        self.roi_timeout = roi_timeout
        self.email_cost = email_cost
        self.clock = clock

    async def build_report(self, user_id: str, period: int = DEFAULT_PERIOD_DAYS) -> AnalyticsReportOut:
        """Build the full report for carts abandoned in the last `period` days."""
        started = time.perf_counter()
        now = self.clock()
        start_date = now - timedelta(days=period)

        logger.info(f"[ANALYTICS] Building report for user {user_id}, period={period}d")

        carts, actions, (roi, roi_failed) = await asyncio.gather(
            self._fetch(CART_SECTIONS, self.store.fetch_carts, user_id, start_date),
            self._fetch(EMAIL_SECTIONS, self.store.fetch_email_actions, start_date, user_id),
            self._fetch_roi(user_id, preset_for_period(period).value, now),
        )

        degraded: List[str] = []
        if carts is None:
            degraded.extend(CART_SECTIONS)
        if actions is None:
            degraded.extend(EMAIL_SECTIONS)
        if roi_failed:
            degraded.append("roi")
        if carts is None or actions is None:
            degraded.append("emailRoi")

        carts = carts or []
        actions = actions or []

        report = AnalyticsReportOut(
            success=True,
            period=period,
            start_date=start_date.isoformat(),
            cohorts=analyze_cohorts(carts, self.tz),
            funnel=analyze_funnel(actions),
            utm=analyze_by_utm(carts),
            time_of_day=analyze_by_time(carts, self.tz),
            cart_value=analyze_by_value(carts),
            roi=roi,
            email_roi=analyze_email_roi(carts, actions, self.email_cost),
            degraded=degraded,
        )

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[ANALYTICS] Report ready for user {user_id}: {len(carts)} carts, "
            f"{len(actions)} emails, roi={'yes' if roi else 'no'}, "
            f"degraded={degraded or 'none'} ({elapsed_ms:.0f}ms)"
        )
        return report

    async def _fetch(self, sections: Tuple[str, ...], func: Callable, *args) -> Optional[list]:
        """Run a blocking fetch in a worker thread; None means the fetch failed."""
        try:
            return await asyncio.to_thread(func, *args)
        except FETCH_ERRORS as e:
            logger.error(f"[ANALYTICS] Fetch failed, degrading {', '.join(sections)}: {e}")
            capture_exception(e, extra={"sections": list(sections)})
            return None

    async def _fetch_roi(self, user_id: str, preset: str, now: datetime) -> Tuple[Optional[ROISummaryOut], bool]:
        """ROI section as (summary, failed).

        Unavailable ROI and timeouts give (None, False); fetch errors give
        (None, True) so the section is reported as degraded.
        """
        try:
            summary = await asyncio.wait_for(
                asyncio.to_thread(self.roi_service.calculate_user_roi, user_id, preset, now),
                timeout=self.roi_timeout,
            )
            return summary, False
        except RoiUnavailableError as e:
            logger.info(f"[ANALYTICS] ROI unavailable for user {user_id}: {e}")
            return None, False
        except asyncio.TimeoutError:
            logger.warning(f"[ANALYTICS] ROI timed out after {self.roi_timeout}s for user {user_id}")
            return None, False
        except FETCH_ERRORS as e:
            logger.error(f"[ANALYTICS] ROI fetch failed for user {user_id}: {e}")
            capture_exception(e, extra={"sections": ["roi"], "user_id": user_id})
            return None, True
