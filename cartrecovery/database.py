"""Database engine and session configuration.

WHAT:
    Provides the SQLAlchemy engine and the session factory for reading cart
    recovery data.

WHY:
    - Analytics reads run in worker threads (one session per fetch), so the
      session factory is handed to the cart store explicitly instead of being
      imported deep inside the analytics code.
    - SQLite (tests, local dev) and PostgreSQL (production) share one setup.

USAGE:
    from cartrecovery.database import SessionLocal
    from cartrecovery.services.cart_store import CartStore

    store = CartStore(SessionLocal)

REFERENCES:
    - cartrecovery/services/cart_store.py (consumer of SessionLocal)
    - cartrecovery/deps.py (wires SessionLocal into the services)
"""

import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """DATABASE_URL from the environment, falling back to a local .env.

    Variables already exported by the deployment are never overwritten.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        load_dotenv(override=False)
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Export it or add it to .env.")

    return database_url


DATABASE_URL = _get_database_url()


# =============================================================================
# ENGINE
# =============================================================================

# Pool configuration for production:
# - pool_size / max_overflow: 10 persistent, up to 30 under load
# - pool_recycle: recreate connections hourly to avoid stale sockets
# - pool_pre_ping: validate connections before use
#
# NOTE: SQLite engines do not support pool_size/max_overflow. In-memory SQLite
# must share a single connection across threads, hence StaticPool.
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in DATABASE_URL:
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(DATABASE_URL, **engine_kwargs)
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


# Base is defined in cartrecovery.models to keep a single registry
from .models import Base  # noqa: E402


