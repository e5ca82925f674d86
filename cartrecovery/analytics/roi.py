"""ROI math: Meta Ads spend cross-referenced with recovered cart revenue.

WHAT:
    Pure functions that
      - resolve a date preset into concrete [start, stop] instants,
      - derive the UTM match key for a Meta campaign,
      - compute per-campaign ROI / ROAS / cost per cart / recovery rate,
      - roll campaigns up into an ROISummaryOut,
      - compute the email-cost ROI shown next to the funnel.

WHY:
    Kept free of I/O so every formula can be tested with plain records.
    Fetching connections, insights and carts lives in
    cartrecovery/services/roi_service.py.

FORMULAS (all yield 0 on a zero denominator):
    roi_percentage = (recovered_value - ad_spend) / ad_spend * 100
    roas           = recovered_value / ad_spend
    cost_per_cart  = ad_spend / total_carts
    recovery_rate  = recovered_carts / abandoned_carts * 100

    Overall figures are computed from summed components, never by averaging
    per-campaign percentages.
"""

import enum
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from cartrecovery.analytics.formatting import safe_ratio, to_fixed
from cartrecovery.analytics.records import CampaignInsight, CartRecord, EmailAction, to_local
from cartrecovery.models import ActionType
from cartrecovery.schemas import CampaignROIOut, EmailRoiOut, ROISummaryOut


class DatePreset(str, enum.Enum):
    last_7d = "last_7d"
    last_30d = "last_30d"
    this_month = "this_month"
    last_month = "last_month"


_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# DATE RANGES
# =============================================================================

def resolve_date_range(preset: str, now: datetime) -> Tuple[datetime, datetime]:
    """Map a preset to (date_start, date_stop).

    | preset       | date_start                   | date_stop                    |
    |--------------|------------------------------|------------------------------|
    | last_7d      | now - 7 days                 | now                          |
    | last_30d     | now - 30 days                | now                          |
    | this_month   | 1st of current month         | now                          |
    | last_month   | 1st of previous month        | last day of previous month   |
    | anything else| now - 30 days                | now                          |

    The time of day of `now` is kept on both bounds.
    """
    if preset == DatePreset.last_7d:
        return now - timedelta(days=7), now
    if preset == DatePreset.this_month:
        return now.replace(day=1), now
    if preset == DatePreset.last_month:
        # Day 0 of the current month is the last day of the previous one
        date_stop = now.replace(day=1) - timedelta(days=1)
        return date_stop.replace(day=1), date_stop
    return now - timedelta(days=30), now


def insights_preset_for(preset: str) -> DatePreset:
    """Nearest preset the Meta insights endpoint is queried with."""
    if preset in (DatePreset.this_month, DatePreset.last_month):
        return DatePreset.last_30d
    if preset == DatePreset.last_7d:
        return DatePreset.last_7d
    return DatePreset.last_30d


def preset_for_period(period_days: int) -> DatePreset:
    """Pick the ROI preset that covers an analytics window of `period_days`."""
    return DatePreset.last_7d if period_days <= 7 else DatePreset.last_30d


# =============================================================================
# CAMPAIGN MATCHING
# =============================================================================

def campaign_match_key(campaign_name: str) -> str:
    """'Black Friday  2024' -> 'black-friday-2024'."""
    return _WHITESPACE.sub("-", campaign_name.lower())


def matches_campaign(cart: CartRecord, match_key: str) -> bool:
    """Case-insensitive substring match of the key inside the cart's utm_campaign.

    Substring matching means a short key can claim carts of a longer
    campaign name ("sale" matches "summer-sale-2024").
    """
    if not cart.utm_campaign:
        return False
    return match_key in cart.utm_campaign.lower()


def in_window(cart: CartRecord, date_start: datetime, date_stop: datetime) -> bool:
    """Inclusive on both ends. Bounds must be timezone-aware."""
    return date_start <= to_local(cart.abandoned_at, timezone.utc) <= date_stop


# =============================================================================
# PER-CAMPAIGN / SUMMARY
# =============================================================================

def recovered_amount(cart: CartRecord) -> float:
    """Revenue recovered by a cart; falls back to the full cart value when the
    recovered amount was never recorded."""
    if cart.recovered_value:
        return cart.recovered_value
    return cart.total_value or 0.0


def build_campaign_roi(insight: CampaignInsight, carts: Sequence[CartRecord]) -> CampaignROIOut:
    """Join one campaign's spend with the carts already matched to it."""
    total_carts = len(carts)
    abandoned = sum(1 for cart in carts if cart.is_abandoned)
    recovered = [cart for cart in carts if cart.is_recovered]
    total_cart_value = sum(cart.total_value or 0.0 for cart in carts)
    recovered_value = sum(recovered_amount(cart) for cart in recovered)
    spend = insight.spend

    return CampaignROIOut(
        campaign_name=insight.campaign_name,
        campaign_id=insight.campaign_id,
        utm_campaign=campaign_match_key(insight.campaign_name),
        ad_spend=spend,
        impressions=insight.impressions,
        clicks=insight.clicks,
        cpc=insight.cpc,
        ctr=insight.ctr,
        total_carts=total_carts,
        abandoned_carts=abandoned,
        recovered_carts=len(recovered),
        total_cart_value=total_cart_value,
        recovered_value=recovered_value,
        roi_percentage=safe_ratio(recovered_value - spend, spend) * 100,
        roas=safe_ratio(recovered_value, spend),
        cost_per_cart=safe_ratio(spend, total_carts),
        recovery_rate=safe_ratio(len(recovered), abandoned) * 100,
    )


def summarize_roi(
    campaigns: Iterable[CampaignROIOut],
    date_start: datetime,
    date_stop: datetime,
) -> ROISummaryOut:
    """Roll campaigns up into totals, sorted by recovered value (desc)."""
    campaigns = sorted(campaigns, key=lambda c: c.recovered_value, reverse=True)

    total_ad_spend = sum(c.ad_spend for c in campaigns)
    total_recovered_value = sum(c.recovered_value for c in campaigns)
    total_recovered_carts = sum(c.recovered_carts for c in campaigns)
    total_abandoned_carts = sum(c.abandoned_carts for c in campaigns)

    return ROISummaryOut(
        date_start=date_start.date().isoformat(),
        date_stop=date_stop.date().isoformat(),
        total_ad_spend=total_ad_spend,
        total_recovered_value=total_recovered_value,
        total_carts=sum(c.total_carts for c in campaigns),
        total_recovered_carts=total_recovered_carts,
        overall_roi=safe_ratio(total_recovered_value - total_ad_spend, total_ad_spend) * 100,
        overall_roas=safe_ratio(total_recovered_value, total_ad_spend),
        overall_recovery_rate=safe_ratio(total_recovered_carts, total_abandoned_carts) * 100,
        campaigns=campaigns,
    )


def calculate_roi(
    insights: Sequence[CampaignInsight],
    carts: Sequence[CartRecord],
    date_start: datetime,
    date_stop: datetime,
) -> Optional[ROISummaryOut]:
    """Cross-reference campaign insights with the user's carts.

    Args:
        insights: Campaign metrics for the period.
        carts: The user's carts; only those inside [date_start, date_stop]
            are considered.

    Returns:
        ROISummaryOut, or None when there are no campaigns for the period.
    """
    if not insights:
        return None

    windowed = [cart for cart in carts if in_window(cart, date_start, date_stop)]
    campaigns: List[CampaignROIOut] = []
    for insight in insights:
        key = campaign_match_key(insight.campaign_name)
        matched = [cart for cart in windowed if matches_campaign(cart, key)]
        campaigns.append(build_campaign_roi(insight, matched))

    return summarize_roi(campaigns, date_start, date_stop)


# =============================================================================
# EMAIL COST ROI
# =============================================================================

def analyze_email_roi(
    carts: Sequence[CartRecord],
    actions: Sequence[EmailAction],
    cost_per_email: float,
) -> EmailRoiOut:
    """Recovered revenue versus the estimated sending cost of recovery emails."""
    total_abandoned = sum(cart.total_value for cart in carts)
    total_recovered = sum(cart.recovered_value or 0 for cart in carts)
    emails_sent = sum(1 for action in actions if action.action_type == ActionType.email_sent)
    estimated_cost = emails_sent * cost_per_email

    return EmailRoiOut(
        total_abandoned_value=total_abandoned,
        total_recovered_value=total_recovered,
        emails_sent=emails_sent,
        estimated_cost=estimated_cost,
        roi=to_fixed(total_recovered / estimated_cost * 100, 0) if estimated_cost > 0 else "0",
        revenue_per_email=to_fixed(total_recovered / emails_sent, 2) if emails_sent else "0.00",
    )
