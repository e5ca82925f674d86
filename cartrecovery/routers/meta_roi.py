"""
Meta ROI router
---------------
Purpose:
- GET /meta/roi: Meta Ads spend versus revenue recovered from the carts each
  campaign brought in, for one date preset.
Design choices:
- Invalid presets are rejected (400) before any I/O.
- Connection problems (missing, expired, rejected token) are 401 so the
  dashboard can prompt a reconnect.
- "No campaigns" is a successful response with data = null.
- The Meta call is bounded by ROI_TIMEOUT_SECONDS; running over is a 504.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from cartrecovery.analytics.roi import DatePreset
from cartrecovery.deps import Settings, get_current_user_id, get_roi_service, get_settings
from cartrecovery.schemas import RoiResponse
from cartrecovery.services.ads_connection import AdAccountNotConfiguredError, RoiUnavailableError
from cartrecovery.services.meta_ads_client import MetaAdsAuthenticationError, MetaAdsClientError
from cartrecovery.services.roi_service import RoiService
from cartrecovery.telemetry.sentry import capture_exception, set_user_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meta", tags=["meta-roi"])

VALID_PRESETS = [preset.value for preset in DatePreset]


@router.get(
    "/roi",
    response_model=RoiResponse,
    summary="ROI of Meta Ads campaigns",
    responses={
        400: {"description": "Invalid date_preset, or no ad account selected"},
        401: {"description": "Meta connection missing, expired or rejected"},
        502: {"description": "Meta API error"},
        504: {"description": "Meta API did not answer within ROI_TIMEOUT_SECONDS"},
    },
)
async def get_meta_roi(
    date_preset: str = Query("last_30d", description=f"One of: {', '.join(VALID_PRESETS)}"),
    user_id: str = Depends(get_current_user_id),
    roi_service: RoiService = Depends(get_roi_service),
    settings: Settings = Depends(get_settings),
):
    if date_preset not in VALID_PRESETS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid date_preset. Must be one of: {', '.join(VALID_PRESETS)}",
        )

    set_user_context(user_id)

    try:
        summary = await asyncio.wait_for(
            asyncio.to_thread(roi_service.calculate_user_roi, user_id, date_preset),
            timeout=settings.ROI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as exc:
        logger.warning(f"[ROI] Timed out after {settings.ROI_TIMEOUT_SECONDS}s for user {user_id}")
        raise HTTPException(status_code=504, detail="Meta Ads did not respond in time") from exc
    except AdAccountNotConfiguredError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (RoiUnavailableError, MetaAdsAuthenticationError) as exc:
        logger.info(f"[ROI] Unavailable for user {user_id}: {exc}")
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except MetaAdsClientError as exc:
        logger.error(f"[ROI] Meta API error for user {user_id}: {exc}")
        capture_exception(exc, extra={"user_id": user_id, "date_preset": date_preset})
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception(f"[ROI] Failed to calculate ROI for user {user_id}: {exc}")
        capture_exception(exc, extra={"user_id": user_id, "date_preset": date_preset})
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or "Failed to calculate ROI"})

    if summary is None:
        return RoiResponse(success=True, data=None, message="No campaigns found for this period")

    return RoiResponse(success=True, data=summary)
