"""Cross-tabulation of abandoned carts by UTM, time and cart value.

WHAT:
    Four independent groupings over the same cart set:
      1. UTM source / medium / campaign (top 10 each, by cart count)
      2. Hour of day (24 fixed buckets)
      3. Day of week (7 fixed buckets, Sunday first)
      4. Cart value bracket (5 fixed half-open ranges)

WHY:
    Shows where recoverable revenue comes from and when carts are abandoned,
    so merchants can tune send times and channel spend.

NOTES:
    Fixed-bucket groupings always return every bucket, even with no carts,
    so the dashboard charts keep a stable shape. Rates are '0.0' for empty
    buckets.

REFERENCES:
    - cartrecovery/analytics/orchestrator.py (caller)
    - cartrecovery/schemas.py (UtmGroupOut, HourBucketOut, DayBucketOut, ValueBracketOut)
"""

import math
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Dict, List, Sequence

from cartrecovery.analytics.formatting import percentage
from cartrecovery.analytics.records import CartRecord, to_local
from cartrecovery.schemas import (
    DayBucketOut,
    HourBucketOut,
    TimeOfDayOut,
    UtmBreakdownOut,
    UtmGroupOut,
    ValueBracketOut,
)


DIRECT_TRAFFIC = "(direct)"
TOP_UTM_GROUPS = 10

# Sunday first, matching the cohort week start
DAY_LABELS = ("Dom", "Seg", "Ter", "Qua", "Qui", "Sex", "Sáb")


@dataclass(frozen=True)
class ValueBracket:
    """Half-open range [minimum, maximum) of cart values."""
    minimum: float
    maximum: float
    label: str

    def contains(self, value: float) -> bool:
        return self.minimum <= value < self.maximum


VALUE_BRACKETS = (
    ValueBracket(0, 100, "R$ 0-100"),
    ValueBracket(100, 300, "R$ 100-300"),
    ValueBracket(300, 500, "R$ 300-500"),
    ValueBracket(500, 1000, "R$ 500-1000"),
    ValueBracket(1000, math.inf, "R$ 1000+"),
)


# =============================================================================
# UTM
# =============================================================================

def group_by_utm_field(carts: Sequence[CartRecord], field: str, limit: int = TOP_UTM_GROUPS) -> List[UtmGroupOut]:
    """Group carts by one UTM attribute.

    Missing or empty values are grouped under "(direct)". Groups are sorted by
    cart count (descending, ties keep first-seen order) and truncated to `limit`.
    """
    groups: Dict[str, dict] = {}

    for cart in carts:
        key = getattr(cart, field) or DIRECT_TRAFFIC
        group = groups.get(key)
        if group is None:
            group = groups[key] = {"carts": 0, "recovered": 0, "total_value": 0.0, "recovered_value": 0.0}

        group["carts"] += 1
        group["total_value"] += cart.total_value
        if cart.is_recovered:
            group["recovered"] += 1
            group["recovered_value"] += cart.recovered_value or 0

    rows = [
        UtmGroupOut(
            name=name,
            carts=group["carts"],
            recovered=group["recovered"],
            total_value=group["total_value"],
            recovered_value=group["recovered_value"],
            recovery_rate=percentage(group["recovered"], group["carts"]),
        )
        for name, group in groups.items()
    ]
    rows.sort(key=lambda row: row.carts, reverse=True)
    return rows[:limit]


def analyze_by_utm(carts: Sequence[CartRecord]) -> UtmBreakdownOut:
    return UtmBreakdownOut(
        sources=group_by_utm_field(carts, "utm_source"),
        mediums=group_by_utm_field(carts, "utm_medium"),
        campaigns=group_by_utm_field(carts, "utm_campaign"),
    )


# =============================================================================
# TIME OF DAY
# =============================================================================

def analyze_by_time(carts: Sequence[CartRecord], tz: tzinfo = timezone.utc) -> TimeOfDayOut:
    """Bucket carts by local hour of day and day of week."""
    by_hour = [{"carts": 0, "recovered": 0, "value": 0.0} for _ in range(24)]
    by_day = [{"carts": 0, "recovered": 0, "value": 0.0} for _ in DAY_LABELS]

    for cart in carts:
        local = to_local(cart.abandoned_at, tz)
        # isoweekday(): Monday=1 ... Sunday=7, so % 7 puts Sunday at 0
        for bucket in (by_hour[local.hour], by_day[local.isoweekday() % 7]):
            bucket["carts"] += 1
            bucket["value"] += cart.total_value
            if cart.is_recovered:
                bucket["recovered"] += 1

    return TimeOfDayOut(
        by_hour=[
            HourBucketOut(hour=hour, recovery_rate=percentage(b["recovered"], b["carts"]), **b)
            for hour, b in enumerate(by_hour)
        ],
        by_day_of_week=[
            DayBucketOut(day=label, recovery_rate=percentage(b["recovered"], b["carts"]), **b)
            for label, b in zip(DAY_LABELS, by_day)
        ],
    )


# =============================================================================
# CART VALUE
# =============================================================================

def bracket_for(value: float) -> ValueBracket:
    """Return the single bracket holding `value`.

    Negative values (refund adjustments) fall into the lowest bracket so no
    cart is ever dropped from the breakdown.
    """
    for bracket in VALUE_BRACKETS:
        if bracket.contains(value):
            return bracket
    return VALUE_BRACKETS[0]


def analyze_by_value(carts: Sequence[CartRecord]) -> List[ValueBracketOut]:
    counts = {bracket.label: {"carts": 0, "recovered": 0} for bracket in VALUE_BRACKETS}

    for cart in carts:
        bucket = counts[bracket_for(cart.total_value).label]
        bucket["carts"] += 1
        if cart.is_recovered:
            bucket["recovered"] += 1

    return [
        ValueBracketOut(
            range=label,
            carts=bucket["carts"],
            recovered=bucket["recovered"],
            recovery_rate=percentage(bucket["recovered"], bucket["carts"]),
        )
        for label, bucket in counts.items()
    ]
