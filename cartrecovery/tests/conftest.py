"""Pytest configuration for cart recovery analytics tests

WHAT: Shared fixtures for aggregator unit tests, store/service tests and HTTP tests
WHY: Consistent test setup, per-test database isolation and record factories
REFERENCES:
    - cartrecovery/main.py: FastAPI application
    - cartrecovery/database.py: Database configuration
    - cartrecovery/deps.py: Dependency injection
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment (DATABASE_URL is read at import time, keys by Settings)
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
# Must be a URL-safe base64-encoded 32-byte string (Fernet key)
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")


# Fixed clock used across tests: Saturday 2024-11-30 15:00 UTC
NOW = datetime(2024, 11, 30, 15, 0, tzinfo=timezone.utc)
TEST_USER_ID = "test-user-123"


# ============================================================================
# Record Factories
# ============================================================================

@pytest.fixture
def make_cart() -> Callable:
    """Build CartRecord instances with sensible defaults."""
    from cartrecovery.analytics.records import CartRecord
    from cartrecovery.models import CartStatus

    counter = {"n": 0}

    def _make(
        total_value=100.0,
        status=CartStatus.abandoned,
        recovered_value=None,
        abandoned_at=None,
        user_id=TEST_USER_ID,
        **utm,
    ):
        counter["n"] += 1
        return CartRecord(
            id=f"shopify_{counter['n']}",
            user_id=user_id,
            abandoned_at=abandoned_at or NOW - timedelta(days=1),
            status=CartStatus(status),
            total_value=total_value,
            recovered_value=recovered_value,
            **utm,
        )

    return _make


@pytest.fixture
def make_action() -> Callable:
    """Build EmailAction instances with sensible defaults."""
    from cartrecovery.analytics.records import EmailAction

    counter = {"n": 0}

    def _make(opened=False, clicked=False, converted=False, created_at=None, **kwargs):
        counter["n"] += 1
        return EmailAction(
            id=f"action-{counter['n']}",
            created_at=created_at or NOW - timedelta(days=1),
            opened=opened,
            clicked=clicked,
            converted=converted,
            **kwargs,
        )

    return _make


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine(tmp_path):
    """File-backed SQLite engine, so worker threads each get their own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'analytics.db'}",
        connect_args={"check_same_thread": False},
    )

    from cartrecovery.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return sessionmaker(bind=test_db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def test_db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def add_cart(test_db_session) -> Callable:
    """Persist an AbandonedCart row."""
    from cartrecovery.models import AbandonedCart, CartStatus

    counter = {"n": 0}

    def _add(total_value=100, status=CartStatus.abandoned, abandoned_at=None, user_id=TEST_USER_ID, **fields):
        counter["n"] += 1
        cart = AbandonedCart(
            id=fields.pop("id", f"shopify_{counter['n']}"),
            user_id=user_id,
            abandoned_at=abandoned_at or NOW - timedelta(days=1),
            status=CartStatus(status),
            total_value=total_value,
            **fields,
        )
        test_db_session.add(cart)
        test_db_session.commit()
        return cart

    return _add


@pytest.fixture
def add_action(test_db_session) -> Callable:
    """Persist an AutomatedAction row."""
    from cartrecovery.models import ActionType, AutomatedAction

    def _add(user_id=TEST_USER_ID, action_type=ActionType.email_sent, created_at=None, **fields):
        action = AutomatedAction(
            user_id=user_id,
            action_type=action_type,
            created_at=created_at or NOW - timedelta(days=1),
            **fields,
        )
        test_db_session.add(action)
        test_db_session.commit()
        return action

    return _add


@pytest.fixture
def add_meta_connection(test_db_session) -> Callable:
    """Persist a MetaConnection with an access token encrypted the way the
    connection service stores it."""
    from cryptography.fernet import Fernet
    from cartrecovery.models import ConnectionStatus, MetaConnection

    fernet = Fernet(os.environ["TOKEN_ENCRYPTION_KEY"])

    def _add(
        user_id=TEST_USER_ID,
        access_token="meta-token",
        status=ConnectionStatus.connected,
        token_expires_at=None,
        primary_ad_account_id="act_123",
    ):
        connection = MetaConnection(
            user_id=user_id,
            access_token_enc=fernet.encrypt(access_token.encode("utf-8")).decode("utf-8"),
            status=status,
            token_expires_at=token_expires_at or datetime.now(timezone.utc) + timedelta(days=60),
            primary_ad_account_id=primary_ad_account_id,
        )
        test_db_session.add(connection)
        test_db_session.commit()
        return connection

    return _add


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def cart_store(session_factory):
    from cartrecovery.services.cart_store import CartStore
    return CartStore(session_factory)


@pytest.fixture
def insights():
    """Mutable list of CampaignInsight returned by the fake insights fetcher."""
    return []


@pytest.fixture
def fetched_presets():
    return []


@pytest.fixture
def token_cipher():
    from cartrecovery.security import TokenCipher
    return TokenCipher(os.environ["TOKEN_ENCRYPTION_KEY"])


@pytest.fixture
def roi_service(session_factory, cart_store, token_cipher, insights, fetched_presets):
    """RoiService whose Meta side is replaced by the `insights` list."""
    from cartrecovery.services.roi_service import RoiService

    def fake_fetch(credentials, date_preset):
        fetched_presets.append((credentials.ad_account_id, date_preset))
        return list(insights)

    return RoiService(session_factory, cart_store, token_cipher, fake_fetch)


@pytest.fixture
def orchestrator(cart_store, roi_service):
    from cartrecovery.analytics.orchestrator import AnalyticsOrchestrator
    return AnalyticsOrchestrator(cart_store, roi_service, roi_timeout=5.0, clock=lambda: NOW)


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(cart_store, roi_service, orchestrator):
    """FastAPI test application wired to the per-test database."""
    from cartrecovery.main import create_app
    from cartrecovery.deps import get_analytics_orchestrator, get_cart_store, get_roi_service

    test_app = create_app()
    test_app.dependency_overrides[get_cart_store] = lambda: cart_store
    test_app.dependency_overrides[get_roi_service] = lambda: roi_service
    test_app.dependency_overrides[get_analytics_orchestrator] = lambda: orchestrator
    return test_app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def make_session_token() -> Callable:
    """Mint session JWTs the way the auth service does."""
    from jose import jwt

    def _make(subject=TEST_USER_ID, expires_in=timedelta(hours=1), secret=None, **claims):
        issued = datetime.now(timezone.utc)
        payload = {"iat": int(issued.timestamp()), "exp": int((issued + expires_in).timestamp()), **claims}
        if subject is not None:
            payload["sub"] = subject
        return jwt.encode(payload, secret or os.environ["JWT_SECRET"], algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_session_token):
    """Authorization header carrying a session JWT for TEST_USER_ID."""
    return {"Authorization": f"Bearer {make_session_token()}"}
