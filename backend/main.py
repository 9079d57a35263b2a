"""
Realtime Call Bridge - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn main:app --app-dir backend
      or: python backend/main.py
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from callbridge import __version__
from callbridge.api import health, routes
from callbridge.config import Settings, get_settings
from callbridge.core.exceptions import CallBridgeError
from callbridge.core.lifecycle import CallResultsReporter, SessionLifecycleManager
from callbridge.core.logging import setup_structured_logging
from callbridge.realtime.client import RealtimeConnect
from callbridge.services.results_reporter import create_results_reporter
from callbridge.telephony import router as telephony
from callbridge.telephony.session_store import SessionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Create the session registry
        - Create the shared HTTP client and results reporter
        - Start the lifecycle manager's stale-session sweep

    Shutdown:
        - Stop the sweep and wait for in-flight results reports
        - Drop sessions still held in the registry
        - Close the HTTP client
    """
    # === Startup ===
    settings: Settings = app.state.settings
    logger.info("Realtime Call Bridge starting in %s mode", settings.app_env)

    registry = SessionRegistry(
        default_prompt=settings.default_prompt,
        default_voice_id=settings.default_voice_id,
        default_language=settings.default_language,
    )

    http_client = httpx.AsyncClient(timeout=settings.results_timeout_seconds)

    reporter: Optional[CallResultsReporter] = app.state.results_reporter_override
    if reporter is None:
        reporter = create_results_reporter(settings, http_client)

    lifecycle = SessionLifecycleManager.from_settings(registry, settings, reporter=reporter)

    app.state.registry = registry
    app.state.lifecycle = lifecycle
    app.state.http_client = http_client

    await lifecycle.start()

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; calls will have no AI leg")

    logger.info(
        "Ready: results_reporting=%s, grace=%ss, max_age=%ss",
        reporter is not None,
        settings.session_grace_period_seconds,
        settings.session_max_age_seconds,
    )

    yield

    # === Shutdown ===
    logger.info("Realtime Call Bridge shutting down")
    await lifecycle.stop()
    discarded = await registry.clear()
    if discarded:
        logger.info("Discarded %d sessions still held at shutdown", discarded)
    await http_client.aclose()
    logger.info("Shutdown complete")


async def call_bridge_error_handler(request: Request, exc: CallBridgeError) -> JSONResponse:
    """Translate CallBridgeError into a structured JSON error response."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    settings: Optional[Settings] = None,
    realtime_connect: Optional[RealtimeConnect] = None,
    results_reporter: Optional[CallResultsReporter] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings override (defaults to environment settings)
        realtime_connect: AI-leg connection factory override
        results_reporter: Results reporter override
    """
    settings = settings or get_settings()

    setup_structured_logging(
        level=settings.app_log_level,
        json_format=settings.log_json_format or settings.is_production,
    )

    app = FastAPI(
        title="Realtime Call Bridge",
        description="Bridges telephony media streams to a realtime conversational AI",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.realtime_connect = realtime_connect
    app.state.results_reporter_override = results_reporter

    app.add_exception_handler(CallBridgeError, call_bridge_error_handler)

    # --- Routes ---
    app.include_router(health.router)
    app.include_router(routes.router)
    app.include_router(telephony.router)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.app_log_level.lower(),
    )
