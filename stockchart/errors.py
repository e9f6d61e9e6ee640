"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StockChartError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class FetchError(StockChartError):
    """Upstream price history request did not succeed.

    ``status`` is the upstream HTTP status, or 0 when no response arrived.
    """

    def __init__(self, status: int, status_text: str):
        super().__init__(f"API Error: {status} {status_text}", status_code=502)
        self.status = status
        self.status_text = status_text


class TransformError(StockChartError):
    def __init__(self, message: str):
        super().__init__(f"Malformed price history: {message}", status_code=502)


class UnsupportedRangeError(StockChartError):
    def __init__(self, value: str, supported: list[str]):
        super().__init__(
            f"Unsupported range: {value}. Supported: {supported}",
            status_code=400,
        )


class CacheReadError(StockChartError):
    pass


class CacheWriteError(StockChartError):
    pass


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(FetchError)
    async def handle_fetch_error(_request: Request, exc: FetchError):
        return JSONResponse(
            {"error": str(exc), "status": exc.status},
            status_code=exc.status_code,
        )

    @app.exception_handler(StockChartError)
    async def handle_stockchart_error(_request: Request, exc: StockChartError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
