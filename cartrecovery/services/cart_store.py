"""Cart Store Service.

WHAT:
    Read-only query facade over `abandoned_carts` and `automated_actions`.
    Converts ORM rows into the flat, immutable records the aggregators use.

WHY:
    - The aggregators stay pure (no sessions, no Decimals, no naive datetimes).
    - Each fetch opens and closes its own session, so fetches can run in
      parallel worker threads without sharing a Session.

WHERE USED:
    - cartrecovery/analytics/orchestrator.py (cart and email sections)
    - cartrecovery/services/roi_service.py (carts for the ROI window)

REFERENCES:
    - cartrecovery/models.py (AbandonedCart, AutomatedAction)
    - cartrecovery/analytics/records.py (CartRecord, EmailAction)
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from cartrecovery.analytics.records import CartRecord, EmailAction
from cartrecovery.models import AbandonedCart, ActionType, AutomatedAction

logger = logging.getLogger(__name__)


def _utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime (SQLite hands back naive values)."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def cart_to_record(row: AbandonedCart) -> CartRecord:
    return CartRecord(
        id=row.id,
        user_id=row.user_id,
        abandoned_at=_utc(row.abandoned_at),
        status=row.status,
        total_value=_money(row.total_value) or 0.0,
        recovered_value=_money(row.recovered_value),
        utm_source=row.utm_source,
        utm_medium=row.utm_medium,
        utm_campaign=row.utm_campaign,
        utm_term=row.utm_term,
        utm_content=row.utm_content,
    )


def action_to_record(row: AutomatedAction) -> EmailAction:
    return EmailAction(
        id=row.id,
        action_type=row.action_type,
        webhook_event_id=row.webhook_event_id,
        created_at=_utc(row.created_at),
        sent_at=_utc(row.sent_at),
        opened=bool(row.opened),
        opened_at=_utc(row.opened_at),
        clicked=bool(row.clicked),
        clicked_at=_utc(row.clicked_at),
        converted=bool(row.converted),
        converted_at=_utc(row.converted_at),
        conversion_value=_money(row.conversion_value),
    )


class CartStore:
    """Fetches cart and email-action records for one tenant.

    Usage:
        ```python
        store = CartStore(SessionLocal)
        carts = store.fetch_carts("user-1", since=start)
        ```
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def fetch_carts(
        self,
        user_id: str,
        since: datetime,
        until: Optional[datetime] = None,
    ) -> List[CartRecord]:
        """Carts abandoned in [since, until], oldest first.

        Args:
            user_id: Tenant owner.
            since: Inclusive lower bound on `abandoned_at`.
            until: Optional inclusive upper bound.

        Raises:
            sqlalchemy.exc.SQLAlchemyError: On database failures.
        """
        stmt = (
            select(AbandonedCart)
            .where(AbandonedCart.user_id == user_id)
            .where(AbandonedCart.abandoned_at >= _utc(since))
            .order_by(AbandonedCart.abandoned_at)
        )
        if until is not None:
            stmt = stmt.where(AbandonedCart.abandoned_at <= _utc(until))

        session = self.session_factory()
        try:
            rows = session.execute(stmt).scalars().all()
            records = [cart_to_record(row) for row in rows]
        finally:
            session.close()

        logger.info(f"[CART_STORE] Fetched {len(records)} carts for user {user_id} since {since.isoformat()}")
        return records

    def fetch_email_actions(self, since: datetime, user_id: Optional[str] = None) -> List[EmailAction]:
        """Recovery emails sent since `since`.

        When `user_id` is given, only that tenant's actions are returned.
        """
        stmt = (
            select(AutomatedAction)
            .where(AutomatedAction.action_type == ActionType.email_sent)
            .where(AutomatedAction.created_at >= _utc(since))
            .order_by(AutomatedAction.created_at)
        )
        if user_id is not None:
            stmt = stmt.where(AutomatedAction.user_id == user_id)

        session = self.session_factory()
        try:
            rows = session.execute(stmt).scalars().all()
            records = [action_to_record(row) for row in rows]
        finally:
            session.close()

        logger.info(f"[CART_STORE] Fetched {len(records)} email actions since {since.isoformat()}")
        return records
