# tests/conftest.py
"""
Shared fixtures: isolated settings, a scripted Prokerala/OpenAI stand-in
built on httpx.MockTransport, and stand-in gateways with call counters.
"""
import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from app.cache.store import FileCacheStore
from app.services.astro_api import ProkeralaAPI
from app.services.errors import UpstreamUnavailableError
from app.services.explanation_service import ExplanationService
from app.services.orchestrator import RequestOrchestrator
from app.services.token_broker import TokenBroker
from config import Settings

BIRTH = {
    "dob": "2001-04-23",
    "time": "12:53",
    "latitude": 28.6139,
    "longitude": 77.2090,
    "timezone": "+05:30",
}

CHART_BODY = {"status": "ok", "data": {"nakshatra_details": {"nakshatra": {"name": "Rohini"}}}}
DASHA_BODY = {"status": "ok", "data": {"dasha_periods": [{"name": "Jupiter"}]}}
YEARLY_BODY = {"status": "ok", "data": [{"month": "January", "summary": "Steady progress."}]}


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        PROKERALA_CLIENT_ID="client-id",
        PROKERALA_CLIENT_SECRET="client-secret",
        OPENAI_API_KEY="sk-test",
        CACHE_DIR=str(tmp_path / "cache"),
        UPSTREAM_RETRY_BACKOFF_SECONDS=0,
        CACHE_SWEEP_ENABLED=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


# ─────────────────────────────────────────────
# Upstream stand-in (HTTP level)
# ─────────────────────────────────────────────

class Upstream:
    """
    Scripted Prokerala + OpenAI.

    Override a route by assigning a callable to `routes[path]`; every
    request is recorded in `requests`.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_counter = 0
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {
            "/token": self._token,
            "/v2/astrology/kundli": lambda r: httpx.Response(200, json=CHART_BODY),
            "/v2/astrology/dasha-periods": lambda r: httpx.Response(200, json=DASHA_BODY),
            "/v2/astrology/yearly-forecast": lambda r: httpx.Response(200, json=YEARLY_BODY),
            "/v1/chat/completions": lambda r: httpx.Response(
                200, json={"choices": [{"message": {"role": "assistant", "content": "Your chart shows..."}}]}
            ),
        }

    def _token(self, request: httpx.Request) -> httpx.Response:
        self.token_counter += 1
        return httpx.Response(
            200,
            json={"access_token": f"tok-{self.token_counter}", "token_type": "Bearer", "expires_in": 3600},
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def count(self, path: str) -> int:
        return self.paths().count(path)


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


def build_orchestrator(settings: Settings, upstream: Upstream, cache=None) -> RequestOrchestrator:
    client = upstream.client()
    broker = TokenBroker(settings, client)
    return RequestOrchestrator(
        settings,
        cache=cache or FileCacheStore(settings.CACHE_DIR, settings.CACHE_TTL_SECONDS),
        astro_api=ProkeralaAPI(settings, client, broker),
        explainer=ExplanationService(settings, client),
    )


# ─────────────────────────────────────────────
# Gateway stand-ins (object level)
# ─────────────────────────────────────────────

class FakeAstroAPI:
    def __init__(self, body: Optional[dict] = None, error: Optional[Exception] = None):
        self.body = body if body is not None else CHART_BODY
        self.error = error
        self.calls: List[str] = []

    async def _answer(self, kind: str) -> dict:
        self.calls.append(kind)
        if self.error is not None:
            raise self.error
        return self.body

    async def fetch_chart(self, request):
        return await self._answer("chart")

    async def fetch_dasha(self, request):
        return await self._answer("dasha")

    async def fetch_yearly(self, request, language="en"):
        return await self._answer(f"yearly:{language}")


class FakeExplainer:
    def __init__(self, text: Optional[str] = "An explanation."):
        self.text = text
        self.calls: List[tuple] = []

    async def complete(self, kind, data, language):
        self.calls.append((kind, json.dumps(data, sort_keys=True), language))
        return self.text


def unavailable() -> UpstreamUnavailableError:
    return UpstreamUnavailableError("Prokerala returned HTTP 503", public_message="Astrology provider unavailable")
