"""
AstroAsk Backend — FastAPI Application

Architecture:
  - Astrology data: Prokerala API (OAuth2 client-credentials, token reused until expiry)
  - Explanations: OpenAI chat completions, prompt per chart / dasha / yearly
  - Cache: every successful upstream response stored under a SHA-256 fingerprint
    of the request (file or Redis backend, 24h freshness)
  - Sweep: APScheduler job purging expired cache entries
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from app.api.routes import router
from app.cache.store import build_cache_store
from app.services.astro_api import ProkeralaAPI
from app.services.errors import AstroAskError
from app.services.explanation_service import ExplanationService
from app.services.orchestrator import RequestOrchestrator
from app.services.scheduler import start_scheduler, stop_scheduler
from app.services.token_broker import TokenBroker

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, client: httpx.AsyncClient) -> RequestOrchestrator:
    token_broker = TokenBroker(settings, client)
    return RequestOrchestrator(
        settings,
        cache=build_cache_store(settings),
        astro_api=ProkeralaAPI(settings, client, token_broker),
        explainer=ExplanationService(settings, client),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    settings: Settings = app.state.settings
    logger.info("=" * 60)
    logger.info("AstroAsk backend starting...")
    logger.info("=" * 60)

    # 1. Upstream HTTP client + services (unless injected)
    client: Optional[httpx.AsyncClient] = None
    if app.state.orchestrator is None:
        client = httpx.AsyncClient(timeout=settings.UPSTREAM_TIMEOUT_SECONDS)
        app.state.orchestrator = build_orchestrator(settings, client)
    orchestrator: RequestOrchestrator = app.state.orchestrator

    # 2. Cache backend
    if await orchestrator.cache.ping():
        logger.info(f"Cache ({orchestrator.cache.backend}): available")
    else:
        logger.warning(f"Cache ({orchestrator.cache.backend}): NOT available — every request will miss")

    # 3. Expired-entry sweep
    scheduler = None
    if settings.CACHE_SWEEP_ENABLED:
        scheduler = start_scheduler(orchestrator.cache, settings.CACHE_SWEEP_INTERVAL_MINUTES)

    logger.info("Backend ready.")
    yield

    # ── Shutdown ──────────────────────────────────────────────────
    stop_scheduler(scheduler)
    await orchestrator.drain()
    await orchestrator.cache.close()
    if client is not None:
        await client.aclose()
    logger.info("Backend shut down cleanly.")


# ─────────────────────────────────────────────
# Error handlers — every error body is {"error": ...}
# ─────────────────────────────────────────────

async def astroask_error_handler(request: Request, exc: AstroAskError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


BIRTH_FIELDS = {"dob", "time", "latitude", "longitude", "timezone"}


async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.info(f"{request.method} {request.url.path} invalid body: {exc.errors()}")
    if any(BIRTH_FIELDS.intersection(map(str, err.get("loc", ()))) for err in exc.errors()):
        message = "Missing birth details"
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message})


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": message})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} crashed")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[RequestOrchestrator] = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="AstroAsk Backend",
        description=(
            "Caching proxy for the AstroAsk mobile app.\n\n"
            "**Astrology**: Prokerala v2 (kundli, dasha, yearly forecast; Lahiri ayanamsa)\n"
            "**Explanations**: OpenAI chat completions, English or Hindi\n"
            "**Cache**: fingerprinted responses, 24h freshness, file or Redis backend"
        ),
        version="2.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_exception_handler(AstroAskError, astroask_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "service": "AstroAsk Backend",
            "version": "2.0.0",
            "docs": "/docs",
            "health": "/api/health",
        }

    return app


_settings = get_settings()

logging.basicConfig(
    level=_settings.LOG_LEVEL.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = create_app(_settings)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=_settings.PORT)
