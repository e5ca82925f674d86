"""Weekly cohort analysis of abandoned carts.

WHAT:
    Buckets carts by the calendar week they were abandoned (weeks start on
    Sunday in the reporting timezone) and computes per-week totals and rates.

WHY:
    Lets merchants see whether recovery performance is improving week over
    week, independent of how many carts each week produced.

REFERENCES:
    - cartrecovery/analytics/orchestrator.py (caller)
    - cartrecovery/schemas.py::CohortOut
"""

from datetime import date, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List

from cartrecovery.analytics.formatting import percentage, to_fixed
from cartrecovery.analytics.records import CartRecord, to_local
from cartrecovery.schemas import CohortOut


def week_start(day: date) -> date:
    """Sunday on or before `day`."""
    # date.weekday(): Monday=0 ... Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def analyze_cohorts(carts: Iterable[CartRecord], tz: tzinfo = timezone.utc) -> List[CohortOut]:
    """Group carts into weekly cohorts.

    Args:
        carts: Carts already limited to the analysis window by the caller.
        tz: Timezone whose calendar defines the week boundaries.

    Returns:
        One CohortOut per week, in the order each week was first seen.
        The cart store returns rows ordered by `abandoned_at`, so in practice
        this is chronological. Empty input gives an empty list.
    """
    buckets: Dict[str, dict] = {}

    for cart in carts:
        key = week_start(to_local(cart.abandoned_at, tz).date()).isoformat()
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = {
                "total_carts": 0,
                "recovered_carts": 0,
                "total_value": 0.0,
                "recovered_value": 0.0,
            }

        bucket["total_carts"] += 1
        bucket["total_value"] += cart.total_value

        if cart.is_recovered:
            bucket["recovered_carts"] += 1
            bucket["recovered_value"] += cart.recovered_value or 0

    cohorts = []
    for week, bucket in buckets.items():
        total = bucket["total_carts"]
        cohorts.append(
            CohortOut(
                week=week,
                total_carts=total,
                recovered_carts=bucket["recovered_carts"],
                total_value=bucket["total_value"],
                recovered_value=bucket["recovered_value"],
                recovery_rate=percentage(bucket["recovered_carts"], total),
                avg_cart_value=to_fixed(bucket["total_value"] / total, 2) if total else "0.00",
            )
        )
    return cohorts
