"""Pydantic schemas for analytics and ROI response payloads.

The analytics report is consumed by the dashboard with camelCase keys
(`totalCarts`, `recoveryRate`), while the ROI payload keeps the snake_case
keys of the ads dashboard (`ad_spend`, `roi_percentage`). Both are declared
with snake_case attributes; `ReportModel` adds the camelCase aliases.
"""

from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class ReportModel(BaseModel):
    """Base for analytics report sections (serialized with camelCase aliases)."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# =============================================================================
# COHORTS
# =============================================================================

class CohortOut(ReportModel):
    """Carts abandoned in one calendar week (weeks start on Sunday)."""

    week: str = Field(description="Week start date (YYYY-MM-DD)", examples=["2024-11-24"])
    total_carts: int = 0
    recovered_carts: int = 0
    total_value: float = 0
    recovered_value: float = 0
    recovery_rate: str = Field(default="0.0", description="Recovered / total, percent with one decimal")
    avg_cart_value: str = Field(default="0.00", description="Average cart value with two decimals")


# =============================================================================
# FUNNEL
# =============================================================================

class FunnelOut(ReportModel):
    """Recovery email funnel. Rates are percentages of `sent`, except
    `click_to_conversion`, which uses `clicked` as its denominator."""

    sent: int = 0
    opened: int = 0
    clicked: int = 0
    converted: int = 0
    open_rate: str = "0.0"
    click_rate: str = "0.0"
    conversion_rate: str = "0.0"
    click_to_conversion: str = "0.0"


# =============================================================================
# CROSS-TABULATION
# =============================================================================

class UtmGroupOut(ReportModel):
    name: str
    carts: int = 0
    recovered: int = 0
    total_value: float = 0
    recovered_value: float = 0
    recovery_rate: str = "0.0"


class UtmBreakdownOut(ReportModel):
    sources: List[UtmGroupOut] = Field(default_factory=list)
    mediums: List[UtmGroupOut] = Field(default_factory=list)
    campaigns: List[UtmGroupOut] = Field(default_factory=list)


class HourBucketOut(ReportModel):
    hour: int
    carts: int = 0
    recovered: int = 0
    value: float = 0
    recovery_rate: str = "0.0"


class DayBucketOut(ReportModel):
    day: str
    carts: int = 0
    recovered: int = 0
    value: float = 0
    recovery_rate: str = "0.0"


class TimeOfDayOut(ReportModel):
    by_hour: List[HourBucketOut] = Field(default_factory=list)
    by_day_of_week: List[DayBucketOut] = Field(default_factory=list)


class ValueBracketOut(ReportModel):
    range: str = Field(description="Bracket label", examples=["R$ 100-300"])
    carts: int = 0
    recovered: int = 0
    recovery_rate: str = "0.0"


# =============================================================================
# ROI
# =============================================================================

class CampaignROIOut(BaseModel):
    """One Meta campaign joined with the carts that carry its UTM campaign."""

    campaign_name: str
    campaign_id: Optional[str] = None
    utm_campaign: str = Field(description="Match key derived from the campaign name")

    # Ads data
    ad_spend: float = 0
    impressions: int = 0
    clicks: int = 0
    cpc: float = 0
    ctr: float = 0

    # Cart data
    total_carts: int = 0
    abandoned_carts: int = 0
    recovered_carts: int = 0
    total_cart_value: float = 0
    recovered_value: float = 0

    # Derived
    roi_percentage: float = 0
    roas: float = 0
    cost_per_cart: float = 0
    recovery_rate: float = 0


class ROISummaryOut(BaseModel):
    """ROI across all campaigns. Overall ratios use summed components."""

    date_start: str
    date_stop: str

    total_ad_spend: float = 0
    total_recovered_value: float = 0
    total_carts: int = 0
    total_recovered_carts: int = 0

    overall_roi: float = 0
    overall_roas: float = 0
    overall_recovery_rate: float = 0

    campaigns: List[CampaignROIOut] = Field(default_factory=list)


class EmailRoiOut(ReportModel):
    """Recovered revenue against the estimated cost of the emails sent."""

    total_abandoned_value: float = 0
    total_recovered_value: float = 0
    emails_sent: int = 0
    estimated_cost: float = 0
    roi: str = "0"
    revenue_per_email: str = "0.00"


# =============================================================================
# RESPONSES
# =============================================================================

class AnalyticsReportOut(ReportModel):
    """Full analytics payload returned by GET /recovery/analytics."""

    success: bool = True
    period: int
    start_date: str = Field(description="ISO 8601 start of the window")
    cohorts: List[CohortOut] = Field(default_factory=list)
    funnel: FunnelOut = Field(default_factory=FunnelOut)
    utm: UtmBreakdownOut = Field(default_factory=UtmBreakdownOut)
    time_of_day: TimeOfDayOut = Field(default_factory=TimeOfDayOut)
    cart_value: List[ValueBracketOut] = Field(default_factory=list)
    roi: Optional[ROISummaryOut] = None
    email_roi: EmailRoiOut = Field(default_factory=EmailRoiOut)
    degraded: List[str] = Field(
        default_factory=list,
        description="Sections whose data could not be fetched and are returned empty",
    )


class RoiResponse(BaseModel):
    """Payload returned by GET /meta/roi."""

    success: bool = True
    data: Optional[ROISummaryOut] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])
