"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Request

from stockchart.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check, no external calls."""
    return {"status": "ok", "service": "stockchart-api", "commit": settings.git_sha}


@router.get("/health")
async def health(request: Request) -> dict:
    """Report refresh state without calling upstream."""
    controller = request.app.state.controller
    result = {
        "status": "ok",
        "service": "stockchart-api",
        "commit": settings.git_sha,
        "symbol": controller.config.symbol,
        "range": controller.range.value,
        "api_key_configured": bool(controller.config.rapidapi_key),
        "last_updated": controller.last_updated,
    }
    if controller.last_error:
        result["status"] = "degraded"
        result["last_error"] = controller.last_error
    return result
