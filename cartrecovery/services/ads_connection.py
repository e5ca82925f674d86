"""Ads connection lookup for ROI reporting.

WHAT:
    Loads a user's Meta connection, validates that it can be used for an
    insights call and returns the decrypted credentials.

WHY:
    ROI is an optional section of the analytics report. Every reason the
    ads side can't be queried (no connection, expired token, no ad account)
    is raised as a RoiUnavailableError subclass so callers can tell
    "ROI unavailable" apart from real failures.

REFERENCES:
    - cartrecovery/models.py::MetaConnection
    - cartrecovery/security.py (TokenCipher)
    - cartrecovery/services/roi_service.py (caller)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from cartrecovery.models import ConnectionStatus, MetaConnection
from cartrecovery.security import TokenCipher

logger = logging.getLogger(__name__)


class RoiUnavailableError(Exception):
    """ROI can't be computed for this user right now (recoverable)."""
    pass


class AdsConnectionNotFoundError(RoiUnavailableError):
    """The user never connected Meta Ads."""
    pass


class AdsConnectionExpiredError(RoiUnavailableError):
    """Token expired, or the connection is no longer active."""
    pass


class AdAccountNotConfiguredError(RoiUnavailableError):
    """Connected, but no primary ad account has been selected."""
    pass


@dataclass(frozen=True)
class AdsCredentials:
    """Everything needed to query campaign insights for one user."""
    user_id: str
    access_token: str
    ad_account_id: str

    def __repr__(self) -> str:
        # Never leak the token through logs or tracebacks
        return f"AdsCredentials(user_id={self.user_id!r}, ad_account_id={self.ad_account_id!r})"


def _is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    """A missing expiry means a long-lived token."""
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < now


def load_ads_credentials(
    db: Session,
    user_id: str,
    cipher: TokenCipher,
    now: Optional[datetime] = None,
) -> AdsCredentials:
    """Return usable Meta credentials for `user_id`.

    Checks, in order: connection exists, token not expired and status is
    `connected`, primary ad account configured, token decrypts.

    Raises:
        AdsConnectionNotFoundError: No meta_connections row for the user
        AdsConnectionExpiredError: Expired token or inactive connection
        AdAccountNotConfiguredError: No primary ad account chosen
        RoiUnavailableError: Stored token cannot be decrypted
    """
    now = now or datetime.now(timezone.utc)

    connection = db.execute(
        select(MetaConnection).where(MetaConnection.user_id == user_id)
    ).scalar_one_or_none()

    if connection is None:
        raise AdsConnectionNotFoundError("Meta connection not found")

    if _is_expired(connection.token_expires_at, now) or connection.status != ConnectionStatus.connected:
        raise AdsConnectionExpiredError("Token expired or connection not active")

    if not connection.primary_ad_account_id:
        raise AdAccountNotConfiguredError("No ad account configured")

    try:
        access_token = cipher.decrypt(connection.access_token_enc, context=f"meta:{user_id}")
    except ValueError as exc:
        logger.error("[ROI] Stored Meta token for user %s could not be decrypted", user_id)
        raise RoiUnavailableError("Stored Meta token could not be decrypted") from exc

    return AdsCredentials(
        user_id=user_id,
        access_token=access_token,
        ad_account_id=connection.primary_ad_account_id,
    )
