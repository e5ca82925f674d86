"""Flat input records consumed by the aggregators.

The aggregators never touch ORM objects or HTTP responses: the cart store and
the Meta client convert their rows into these immutable records first, so
every aggregation is a pure function over a list that cannot change mid-request.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Optional

from cartrecovery.models import ActionType, CartStatus


def to_local(moment: datetime, tz: tzinfo) -> datetime:
    """Convert a timestamp to the reporting timezone.

    Naive datetimes are treated as UTC, which is how the database returns
    them on backends without timezone support.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz)


@dataclass(frozen=True)
class CartRecord:
    id: str
    user_id: str
    abandoned_at: datetime
    status: CartStatus
    total_value: float = 0.0
    recovered_value: Optional[float] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None

    @property
    def is_recovered(self) -> bool:
        return self.status == CartStatus.recovered

    @property
    def is_abandoned(self) -> bool:
        return self.status == CartStatus.abandoned


@dataclass(frozen=True)
class EmailAction:
    id: str
    created_at: datetime
    action_type: ActionType = ActionType.email_sent
    webhook_event_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    opened: bool = False
    opened_at: Optional[datetime] = None
    clicked: bool = False
    clicked_at: Optional[datetime] = None
    converted: bool = False
    converted_at: Optional[datetime] = None
    conversion_value: Optional[float] = None


@dataclass(frozen=True)
class CampaignInsight:
    """Campaign-level metrics for one date range, as reported by Meta."""
    campaign_id: str
    campaign_name: str
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    cpc: float = 0.0
    ctr: float = 0.0
    status: str = "UNKNOWN"
