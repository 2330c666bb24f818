"""
AI explanation service — OpenAI chat completions.

Flow:
  1. Pick the system prompt for the operation kind + language
  2. Send the astrology data as the user message
  3. Return the first completion's text

A response without completion text is not an error: explain() falls back to
NO_EXPLANATION_PLACEHOLDER. A failed call (network, timeout, non-2xx) is.
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.models.astrology import Language, OperationKind
from app.services.errors import UpstreamMalformedResponseError, UpstreamUnavailableError
from config import Settings
from templates.prompt_templates import get_system_prompt

logger = logging.getLogger(__name__)


def build_messages(kind: OperationKind, data: Any, language: Language) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": get_system_prompt(kind, language)},
        {"role": "user", "content": json.dumps(data, ensure_ascii=False)},
    ]


def _first_completion_text(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    choices = body.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message") or {}
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str) and content.strip():
        return content
    return None


class ExplanationService:
    """Chat-completion client producing natural-language explanations."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self._client = client
        self._api_key = settings.OPENAI_API_KEY
        self.url = settings.OPENAI_BASE_URL.rstrip("/") + "/chat/completions"
        self.model = settings.OPENAI_MODEL
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS
        self.placeholder = settings.NO_EXPLANATION_PLACEHOLDER

    async def complete(self, kind: OperationKind, data: Any, language: Language) -> Optional[str]:
        """Return the completion text, or None when the model produced none."""
        payload = {"model": self.model, "messages": build_messages(kind, data, language)}
        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"{kind.value} AI request timed out")
            raise UpstreamUnavailableError(
                f"{kind.value} AI request timed out",
                public_message="Failed to get explanation",
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"{kind.value} AI request failed: {e}")
            raise UpstreamUnavailableError(
                f"{kind.value} AI request failed: {e}",
                public_message="Failed to get explanation",
            ) from e

        if not response.is_success:
            logger.error(f"{kind.value} AI error: HTTP {response.status_code}: {response.text[:500]}")
            raise UpstreamUnavailableError(
                f"LLM provider returned HTTP {response.status_code}",
                public_message="Failed to get explanation",
            )

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"{kind.value} AI returned non-JSON body: {response.text[:500]!r}")
            raise UpstreamMalformedResponseError("LLM provider returned non-JSON body") from e

        text = _first_completion_text(body)
        if text is None:
            logger.warning(f"{kind.value} AI response had no completion text")
        return text

    async def explain(self, kind: OperationKind, data: Any, language: Language = "en") -> str:
        text = await self.complete(kind, data, language)
        return text if text is not None else self.placeholder
