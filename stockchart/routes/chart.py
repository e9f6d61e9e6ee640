"""Chart data routes polled and driven by the display surface."""

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel

from stockchart.services.refresh import RefreshController
from stockchart.services.stock_history import QUERY_PARAMS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chart")


class RangeChange(BaseModel):
    range: str


def _controller(request: Request) -> RefreshController:
    return request.app.state.controller


@router.get("")
async def chart(request: Request) -> dict:
    """Currently displayed points for the active range."""
    return _controller(request).snapshot()


@router.put("/range")
async def change_range(change: RangeChange, request: Request) -> dict:
    controller = _controller(request)
    controller.set_range(change.range)
    return controller.snapshot()


@router.get("/ranges")
async def ranges() -> dict:
    return {
        "ranges": [
            {"range": r.value, "interval": p.interval, "period": p.period}
            for r, p in QUERY_PARAMS.items()
        ]
    }


@router.post("/refresh")
async def refresh_now(request: Request) -> dict:
    """Refresh the active range now; /chart reflects the result."""
    controller = _controller(request)
    active = controller.range
    points = await controller.refresh_active()
    return {"symbol": controller.config.symbol, "range": active.value, "points": points}
