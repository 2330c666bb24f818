"""
Request orchestrator — cache in front of the astrology and AI gateways.

Per request:
  RECEIVED → validate → fingerprint → cache lookup
    HIT  → return stored response body (no upstream call)
    MISS → gateway call → store → return
           gateway failure → error propagates, nothing is stored

The miss path runs in its own task and is awaited through asyncio.shield,
so a client disconnect does not abort the upstream call or the cache write.
With SINGLE_FLIGHT_ENABLED, concurrent misses on one key share that task.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Set, Tuple

from app.cache.fingerprint import cache_key
from app.cache.store import CacheStore
from app.models.astrology import (
    AstrologyRequest,
    ExplanationRequest,
    OperationKind,
    YearlyRequest,
)
from app.services.astro_api import ProkeralaAPI
from app.services.explanation_service import ExplanationService
from config import Settings

logger = logging.getLogger(__name__)

# Produces (response body, cacheable)
Producer = Callable[[], Awaitable[Tuple[Dict[str, Any], bool]]]


class RequestOrchestrator:
    def __init__(
        self,
        settings: Settings,
        cache: CacheStore,
        astro_api: ProkeralaAPI,
        explainer: ExplanationService,
    ):
        self.cache = cache
        self.astro_api = astro_api
        self.explainer = explainer
        self.single_flight = settings.SINGLE_FLIGHT_ENABLED
        self.placeholder = settings.NO_EXPLANATION_PLACEHOLDER
        self._inflight: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ─────────────────────────────────────────────
    # Astrology data
    # ─────────────────────────────────────────────

    async def kundli(self, request: AstrologyRequest) -> Dict[str, Any]:
        birth = request.birth_details()

        async def produce():
            return {"data": await self.astro_api.fetch_chart(request)}, True

        return await self._cached("chart", birth.fingerprint_params(), produce)

    async def dasha(self, request: AstrologyRequest) -> Dict[str, Any]:
        birth = request.birth_details()

        async def produce():
            return {"data": await self.astro_api.fetch_dasha(request)}, True

        return await self._cached("dasha", birth.fingerprint_params(), produce)

    async def yearly(self, request: YearlyRequest) -> Dict[str, Any]:
        birth = request.birth_details()
        params = dict(birth.fingerprint_params(), language=request.language)

        async def produce():
            return {"data": await self.astro_api.fetch_yearly(request, request.language)}, True

        return await self._cached("yearly", params, produce)

    # ─────────────────────────────────────────────
    # AI explanations
    # ─────────────────────────────────────────────

    async def explain(self, kind: OperationKind, request: ExplanationRequest) -> Dict[str, Any]:
        data = request.validated_data()
        params = {"data": data, "language": request.language}

        async def produce():
            text = await self.explainer.complete(kind, data, request.language)
            if text is None:
                # Placeholder answers are served but never stored.
                return {"explanation": self.placeholder}, False
            return {"explanation": text}, True

        return await self._cached(f"explain-{kind.value}", params, produce)

    # ─────────────────────────────────────────────
    # Cache plumbing
    # ─────────────────────────────────────────────

    async def _cached(self, tag: str, params: Dict[str, Any], produce: Producer) -> Dict[str, Any]:
        key = cache_key(tag, params)

        cached = await self.cache.get(key)
        if cached is not None:
            logger.info(f"Cache HIT {tag} {key[-12:]}")
            return cached
        logger.info(f"Cache MISS {tag} {key[-12:]}")

        task = self._inflight.get(key) if self.single_flight else None
        if task is None:
            task = asyncio.ensure_future(self._fill(key, produce))
            self._track(key, task)
        else:
            logger.debug(f"Joining in-flight request for {key[-12:]}")
        return await asyncio.shield(task)

    async def _fill(self, key: str, produce: Producer) -> Dict[str, Any]:
        body, cacheable = await produce()
        if cacheable:
            await self.cache.set(key, body)
        return body

    def _track(self, key: str, task: asyncio.Task) -> None:
        self._tasks.add(task)
        if self.single_flight:
            self._inflight[key] = task

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if self._inflight.get(key) is t:
                del self._inflight[key]
            if not t.cancelled() and t.exception() is not None:
                logger.debug(f"Upstream fill for {key[-12:]} failed: {t.exception()!r}")

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for detached fills (client gone) to finish before shutdown."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
