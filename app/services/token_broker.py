"""
OAuth2 client-credentials broker for the Prokerala API.

With TOKEN_CACHE_ENABLED the last token is kept until its stated expiry
minus TOKEN_EXPIRY_MARGIN_SECONDS; otherwise every call exchanges the
credentials again. Callers that get a 401 downstream call invalidate().
"""
import asyncio
import logging
import time
from typing import Callable

import httpx
from cachetools import TLRUCache

from app.models.astrology import AccessToken
from app.services.errors import UpstreamAuthError
from config import Settings

logger = logging.getLogger(__name__)

_TOKEN_KEY = "prokerala"


class TokenBroker:
    """Hands out bearer tokens for the astrology provider."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._client_id = settings.PROKERALA_CLIENT_ID
        self._client_secret = settings.PROKERALA_CLIENT_SECRET
        self._token_url = settings.PROKERALA_BASE_URL.rstrip("/") + settings.PROKERALA_TOKEN_PATH
        self._timeout = settings.UPSTREAM_TIMEOUT_SECONDS
        self.cache_enabled = settings.TOKEN_CACHE_ENABLED
        margin = settings.TOKEN_EXPIRY_MARGIN_SECONDS
        self._tokens: TLRUCache = TLRUCache(
            maxsize=1,
            ttu=lambda _key, token, now: now + max(token.expires_in - margin, 0),
            timer=timer,
        )
        self._lock = asyncio.Lock()

    async def get_access_token(self) -> AccessToken:
        if not self.cache_enabled:
            return await self._exchange()

        async with self._lock:
            token = self._tokens.get(_TOKEN_KEY)
            if token is not None:
                return token
            token = await self._exchange()
            self._tokens[_TOKEN_KEY] = token
            return token

    def invalidate(self) -> None:
        self._tokens.pop(_TOKEN_KEY, None)

    async def _exchange(self) -> AccessToken:
        if not self._client_id or not self._client_secret:
            raise UpstreamAuthError("Prokerala client credentials are not configured")

        try:
            response = await self._client.post(
                self._token_url,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Token exchange failed: {type(e).__name__}: {e}")
            raise UpstreamAuthError(f"Token exchange failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Token exchange rejected: HTTP {response.status_code}")
            raise UpstreamAuthError(f"Token endpoint returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Token endpoint returned non-JSON body: {response.text[:200]!r}")
            raise UpstreamAuthError("Token endpoint returned non-JSON body") from e

        value = body.get("access_token") if isinstance(body, dict) else None
        if not value:
            raise UpstreamAuthError("Token endpoint response has no access_token")

        try:
            token = AccessToken(
                value=value,
                token_type=body.get("token_type") or "Bearer",
                expires_in=int(body.get("expires_in") or 3600),
            )
        except (TypeError, ValueError) as e:
            logger.error(f"Token endpoint returned unusable token fields: expires_in={body.get('expires_in')!r}")
            raise UpstreamAuthError("Token endpoint response has invalid token fields") from e
        logger.info(f"Obtained Prokerala access token (expires in {token.expires_in}s)")
        return token
