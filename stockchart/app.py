"""FastAPI application entry point for the stock chart API."""

import logging
import sys

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from stockchart.config import Settings, settings
from stockchart.errors import register_error_handlers
from stockchart.services.cache import build_cache_store
from stockchart.services.refresh import RefreshController

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(config: Settings = settings) -> FastAPI:
    app = FastAPI(title="Stock Chart API", version="1.0.0")

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if config.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from stockchart.routes.chart import router as chart_router
    from stockchart.routes.health import router as health_router

    app.include_router(health_router)
    app.include_router(chart_router)

    @app.on_event("startup")
    async def _start_refresh() -> None:
        missing = config.validate()
        if missing:
            logger.warning("Missing env vars (upstream requests will be rejected): %s", ", ".join(missing))

        client = httpx.AsyncClient(timeout=config.request_timeout_seconds)
        controller = RefreshController(build_cache_store(config), client, config)
        app.state.controller = controller
        controller.start()

    @app.on_event("shutdown")
    async def _stop_refresh() -> None:
        controller: RefreshController = app.state.controller
        await controller.stop()
        await controller.client.aclose()

    return app


app = create_app()
