"""Dependency providers and settings management."""

from functools import lru_cache, partial
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Cookie, Depends, Header, HTTPException, status
from pydantic_settings import BaseSettings, SettingsConfigDict

from .analytics.orchestrator import AnalyticsOrchestrator
from .database import SessionLocal
from .security import InvalidSessionError, TokenCipher, verify_session_token
from .services.cart_store import CartStore
from .services.roi_service import RoiService, fetch_meta_insights


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # Session JWTs are issued by the auth service; this service only verifies them
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    # Fernet key for the Meta tokens stored in meta_connections
    TOKEN_ENCRYPTION_KEY: str

    # Reporting
    # Hour-of-day, day-of-week and cohort weeks are bucketed in this timezone
    REPORT_TIMEZONE: str = "America/Sao_Paulo"
    DEFAULT_PERIOD_DAYS: int = 30
    ROI_TIMEOUT_SECONDS: float = 10.0
    EMAIL_COST_PER_SEND: float = 0.10

    # Meta Marketing API (optional for long-lived user tokens)
    META_APP_ID: Optional[str] = None
    META_APP_SECRET: Optional[str] = None

    # Error tracking
    SENTRY_DSN: Optional[str] = None
    ENVIRONMENT: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_current_user_id(
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """Resolve the tenant id from the session JWT.

    The token is read from the `access_token` cookie ("Bearer <jwt>") or the
    Authorization header. Issuing tokens is the auth service's job; here we
    only verify them.
    """
    raw = access_token or authorization
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    # Remove optional "Bearer " prefix
    if raw.startswith("Bearer "):
        token = raw[len("Bearer "):]
    else:
        token = raw

    try:
        return verify_session_token(token, settings.JWT_SECRET, [settings.JWT_ALGORITHM])
    except InvalidSessionError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


@lru_cache()
def get_token_cipher() -> TokenCipher:
    """Cipher for stored provider tokens, built once from TOKEN_ENCRYPTION_KEY."""
    return TokenCipher(get_settings().TOKEN_ENCRYPTION_KEY)


def get_cart_store() -> CartStore:
    return CartStore(SessionLocal)


def get_roi_service(
    store: CartStore = Depends(get_cart_store),
    settings: Settings = Depends(get_settings),
    cipher: TokenCipher = Depends(get_token_cipher),
) -> RoiService:
    fetcher = partial(fetch_meta_insights, app_id=settings.META_APP_ID, app_secret=settings.META_APP_SECRET)
    return RoiService(SessionLocal, store, cipher, fetcher)


def get_analytics_orchestrator(
    store: CartStore = Depends(get_cart_store),
    roi_service: RoiService = Depends(get_roi_service),
    settings: Settings = Depends(get_settings),
) -> AnalyticsOrchestrator:
    return AnalyticsOrchestrator(
        store,
        roi_service,
        tz=ZoneInfo(settings.REPORT_TIMEZONE),
        roi_timeout=settings.ROI_TIMEOUT_SECONDS,
        email_cost=settings.EMAIL_COST_PER_SEND,
    )
