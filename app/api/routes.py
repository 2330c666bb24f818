"""
API routes for the AstroAsk backend.

Endpoint groups:

  /health            — Service health + cache backend status
  /kundli            — Birth chart        (Prokerala, cached)
  /dasha             — Vimshottari dasha  (Prokerala, cached)
  /yearly            — Yearly forecast    (Prokerala, cached)
  /explain/{kind}    — AI explanation of chart / dasha / yearly data (OpenAI, cached)

Errors are raised as AstroAskError subclasses and rendered as
{"error": ...} by the handlers registered in main.py.
"""
import logging
from datetime import datetime, timezone, timedelta

from fastapi import APIRouter, Depends, Request

from app.models.astrology import AstrologyRequest, ExplanationRequest, OperationKind, YearlyRequest
from app.models.responses import DataResponse, ExplanationResponse, HealthResponse
from app.services.orchestrator import RequestOrchestrator

logger = logging.getLogger(__name__)

IST = timezone(timedelta(hours=5, minutes=30))
router = APIRouter()


def get_orchestrator(request: Request) -> RequestOrchestrator:
    return request.app.state.orchestrator


# ─────────────────────────────────────────────
# Health
# ─────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse)
async def health_check(orchestrator: RequestOrchestrator = Depends(get_orchestrator)):
    cache = orchestrator.cache
    return HealthResponse(
        timestamp=datetime.now(IST),
        cache={"backend": cache.backend, "available": await cache.ping()},
    )


# ─────────────────────────────────────────────
# Astrology data
# ─────────────────────────────────────────────

@router.post("/kundli", response_model=DataResponse)
async def kundli(
    body: AstrologyRequest,
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
):
    """Birth chart for the given birth details. Served from cache for 24h."""
    return await orchestrator.kundli(body)


@router.post("/dasha", response_model=DataResponse)
async def dasha(
    body: AstrologyRequest,
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
):
    """Vimshottari dasha periods for the given birth details."""
    return await orchestrator.dasha(body)


@router.post("/yearly", response_model=DataResponse)
async def yearly(
    body: YearlyRequest,
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.yearly(body)


# ─────────────────────────────────────────────
# AI explanations
# ─────────────────────────────────────────────

@router.post("/explain/chart", response_model=ExplanationResponse)
async def explain_chart(
    body: ExplanationRequest,
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.explain(OperationKind.CHART, body)


@router.post("/explain/dasha", response_model=ExplanationResponse)
async def explain_dasha(
    body: ExplanationRequest,
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.explain(OperationKind.DASHA, body)


@router.post("/explain/yearly", response_model=ExplanationResponse)
async def explain_yearly(
    body: ExplanationRequest,
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
):
    """
    AI yearly forecast narrative.

    `data` is whatever the client holds for the user (usually the /yearly
    response); it is passed to the model verbatim.
    """
    return await orchestrator.explain(OperationKind.YEARLY, body)
