"""SQLAlchemy ORM models and enums.

This module defines the rows the analytics engine reads. Rows are written by
the webhook ingest and email jobs; the analytics code treats them as
read-only for the duration of a request.
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Numeric, Boolean, Index
from sqlalchemy.orm import declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class CartStatus(str, enum.Enum):
    """Lifecycle of an abandoned cart. `recovered` is terminal."""
    abandoned = "abandoned"
    recovered = "recovered"


class ActionType(str, enum.Enum):
    email_sent = "email_sent"
    whatsapp_sent = "whatsapp_sent"
    sms_sent = "sms_sent"


class ConnectionStatus(str, enum.Enum):
    connected = "connected"
    disconnected = "disconnected"
    expired = "expired"
    error = "error"


def _enum_column(enum_cls, **kwargs):
    return Column(Enum(enum_cls, values_callable=lambda obj: [e.value for e in obj]), **kwargs)


# Core models ----------------------------------------------------

class AbandonedCart(Base):
    """A checkout that was started but not completed.

    The id is platform scoped (`shopify_<checkout_id>`) so the same checkout
    webhook can be upserted repeatedly. UTM fields are captured once at
    abandonment and never rewritten.
    """
    __tablename__ = "abandoned_carts"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    platform = Column(String, nullable=False, default="shopify")
    customer_email = Column(String, nullable=True)
    abandoned_at = Column(DateTime(timezone=True), nullable=False)
    status = _enum_column(CartStatus, nullable=False, default=CartStatus.abandoned)
    total_value = Column(Numeric(12, 2), nullable=False, default=0)
    recovered_value = Column(Numeric(12, 2), nullable=True)
    recovered_at = Column(DateTime(timezone=True), nullable=True)

    utm_source = Column(String, nullable=True)
    utm_medium = Column(String, nullable=True)
    utm_campaign = Column(String, nullable=True)
    utm_term = Column(String, nullable=True)
    utm_content = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_abandoned_carts_user_abandoned_at", "user_id", "abandoned_at"),
    )

    def __str__(self):
        return self.id


class AutomatedAction(Base):
    """One automated recovery action (email, WhatsApp, SMS) sent for a cart.

    Tracking flags only move false -> true. Click tracking is independent of
    the open pixel, so `clicked` may be set while `opened` is not.
    """
    __tablename__ = "automated_actions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=True, index=True)
    webhook_event_id = Column(String, nullable=True)
    cart_id = Column(String, ForeignKey("abandoned_carts.id"), nullable=True)
    action_type = _enum_column(ActionType, nullable=False, default=ActionType.email_sent)

    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    opened = Column(Boolean, default=False, nullable=False)
    opened_at = Column(DateTime(timezone=True), nullable=True)
    clicked = Column(Boolean, default=False, nullable=False)
    clicked_at = Column(DateTime(timezone=True), nullable=True)
    converted = Column(Boolean, default=False, nullable=False)
    converted_at = Column(DateTime(timezone=True), nullable=True)
    conversion_value = Column(Numeric(12, 2), nullable=True)

    def __str__(self):
        return f"{self.action_type} {self.id}"


class MetaConnection(Base):
    """A user's Meta Ads connection.

    The access token is stored Fernet-encrypted (see cartrecovery/security.py).
    ROI is only computed when the connection is `connected`, the token has
    not expired and a primary ad account has been chosen.
    """
    __tablename__ = "meta_connections"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, unique=True, index=True)
    meta_user_id = Column(String, nullable=True)
    access_token_enc = Column(String, nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    status = _enum_column(ConnectionStatus, nullable=False, default=ConnectionStatus.connected)
    primary_ad_account_id = Column(String, nullable=True)
    connected_at = Column(DateTime, default=datetime.utcnow)

    def __str__(self):
        return f"meta:{self.user_id}"
