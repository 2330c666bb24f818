"""
Prokerala astrology API client (async).

Translates birth details into Prokerala's query format, attaches a bearer
token from the TokenBroker and returns the parsed JSON body. No caching
here: the orchestrator decides what to cache.

Lookups are GET requests and therefore retried with exponential backoff on
network errors, timeouts, 429 and 5xx; other 4xx answers fail at once.
A 401 invalidates the broker's token and repeats the call once with a
fresh one.
"""
import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.models.astrology import AstrologyRequest, BirthDetails, Language
from app.services.errors import UpstreamMalformedResponseError, UpstreamUnavailableError
from app.services.token_broker import TokenBroker
from config import Settings

logger = logging.getLogger(__name__)

_RAW_BODY_LOG_LIMIT = 500


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, UpstreamUnavailableError) and error.transient


class ProkeralaAPI:
    """Prokerala v2 astrology client."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient, token_broker: TokenBroker):
        self._client = client
        self._tokens = token_broker
        self.base_url = settings.PROKERALA_BASE_URL.rstrip("/")
        self.kundli_path = settings.PROKERALA_KUNDLI_PATH
        self.dasha_path = settings.PROKERALA_DASHA_PATH
        self.yearly_path = settings.PROKERALA_YEARLY_PATH
        self.ayanamsa = settings.PROKERALA_AYANAMSA
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS
        self.max_retries = settings.UPSTREAM_MAX_RETRIES
        self.retry_backoff = settings.UPSTREAM_RETRY_BACKOFF_SECONDS

    def _make_params(self, birth: BirthDetails, language: Optional[str] = None) -> Dict[str, Any]:
        params = {
            "datetime": birth.iso_datetime,
            "coordinates": birth.coordinates,
            "ayanamsa": self.ayanamsa,
        }
        if language:
            params["la"] = language
        return params

    async def _fetch_once(self, path: str, params: Dict[str, Any]) -> Dict:
        url = f"{self.base_url}{path}"
        response = await self._get(url, params, await self._tokens.get_access_token())

        if response.status_code == 401 and self._tokens.cache_enabled:
            logger.info(f"Prokerala rejected cached token for {path}; refreshing")
            self._tokens.invalidate()
            response = await self._get(url, params, await self._tokens.get_access_token())

        if not response.is_success:
            logger.error(f"Prokerala {path} returned HTTP {response.status_code}: {response.text[:_RAW_BODY_LOG_LIMIT]}")
            raise UpstreamUnavailableError(
                f"Prokerala {path} returned HTTP {response.status_code}",
                public_message="Astrology provider unavailable",
                upstream_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Prokerala {path} returned non-JSON body: {response.text[:_RAW_BODY_LOG_LIMIT]!r}")
            raise UpstreamMalformedResponseError(f"Prokerala {path} returned non-JSON body") from e

        if not isinstance(body, dict):
            logger.error(f"Prokerala {path} returned unexpected JSON: {response.text[:_RAW_BODY_LOG_LIMIT]!r}")
            raise UpstreamMalformedResponseError(f"Prokerala {path} returned {type(body).__name__}, expected object")
        return body

    async def _get(self, url: str, params: Dict[str, Any], token) -> httpx.Response:
        try:
            return await self._client.get(
                url,
                params=params,
                headers={"Authorization": f"{token.token_type} {token.value}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Prokerala request timed out: {url}")
            raise UpstreamUnavailableError(
                f"Prokerala request timed out: {url}",
                public_message="Astrology provider timed out",
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Prokerala request failed: {url}: {e}")
            raise UpstreamUnavailableError(
                f"Prokerala request failed: {e}",
                public_message="Astrology provider unavailable",
            ) from e

    async def _fetch(self, path: str, params: Dict[str, Any]) -> Dict:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._fetch_once(path, params)

    async def fetch_chart(self, request: AstrologyRequest) -> Dict:
        """Fetch the kundli (birth chart)."""
        birth = request.birth_details()
        return await self._fetch(self.kundli_path, self._make_params(birth))

    async def fetch_dasha(self, request: AstrologyRequest) -> Dict:
        """Fetch Vimshottari dasha periods."""
        birth = request.birth_details()
        return await self._fetch(self.dasha_path, self._make_params(birth))

    async def fetch_yearly(self, request: AstrologyRequest, language: Language = "en") -> Dict:
        """Fetch the yearly forecast in the requested language."""
        birth = request.birth_details()
        return await self._fetch(self.yearly_path, self._make_params(birth, language=language))
