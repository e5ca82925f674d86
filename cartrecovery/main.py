"""FastAPI application entrypoint.

Configures logging, Sentry and CORS, includes routers, and exposes a
healthcheck endpoint.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings, get_token_cipher  # noqa: E402
from .routers import meta_roi as meta_roi_router  # noqa: E402
from .routers import recovery_analytics as recovery_analytics_router  # noqa: E402
from .schemas import HealthResponse  # noqa: E402
from .telemetry.sentry import init_sentry  # noqa: E402


def create_app() -> FastAPI:
    # Fail fast on missing secrets or a malformed encryption key
    settings = get_settings()
    get_token_cipher()
    init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)

    app = FastAPI(
        title="Cart Recovery Analytics API",
        description="""
        Analytics for abandoned-cart recovery.

        This API provides endpoints for:
        - Weekly cohorts and the recovery email funnel
        - Cart breakdowns by UTM, hour of day, weekday and cart value
        - Meta Ads ROI against recovered revenue
        - CSV and PDF exports of the report

        ## Authentication

        Endpoints expect the session JWT (cookie `access_token` or
        `Authorization: Bearer <jwt>`); its subject is the tenant id.
        """,
        version="1.0.0",
    )

    # BACKEND_CORS_ORIGINS can be a comma-separated list
    allowed_origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]
    logger.info(f"[CORS] Allowed origins: {allowed_origins}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(recovery_analytics_router.router)
    app.include_router(meta_roi_router.router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"], summary="Health check")
    def health():
        return HealthResponse(status="ok")

    return app


app = create_app()
