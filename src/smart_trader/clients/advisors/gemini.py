"""Google Gemini ``generateContent`` adapter with Search grounding."""

import logging
from typing import Any

from smart_trader.clients.advisors._http import HttpProvider
from smart_trader.clients.advisors.models import STRICT_RISK_PROFILE, Completion

logger = logging.getLogger(__name__)

_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
_BLOCKED_FINISH_REASONS = frozenset({"SAFETY", "RECITATION"})
_SYSTEM_INSTRUCTION = (
    "You are an expert prediction market analyst with access to Google Search. "
    "You are a skeptical, conservative analyst: most markets are efficiently priced. "
    "Search for every market you analyze and only recommend a bet when several "
    "independent sources contradict the market price. Reply with JSON only."
)


class GeminiProvider(HttpProvider):
    """Call Gemini models; their recommendations use the strict risk profile."""

    NAME = "google"
    RISK_PROFILE = STRICT_RISK_PROFILE

    def __init__(self, api_key: str, model: str, *, base_url: str = _BASE_URL, **kwargs: Any) -> None:
        """Initialize the adapter.

        Args:
            api_key: Google AI Studio API key.
            model: Gemini model identifier.
            base_url: Models endpoint prefix.
            **kwargs: Forwarded to ``HttpProvider``.

        """
        super().__init__(api_key, model, **kwargs)
        self._base_url = base_url.rstrip("/")

    async def complete(self, prompt: str) -> Completion:
        """Send the prompt with the system instruction and Search tool.

        Args:
            prompt: Full user prompt.

        Returns:
            Completion with token usage and grounding query count.

        Raises:
            AdvisoryAPIError: On API failure. Empty or blocked replies are
                returned with empty text so their billed tokens are still recorded.

        """
        payload = {
            "system_instruction": {"parts": [{"text": _SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [{"google_search": {}}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_tokens,
            },
        }
        url = f"{self._base_url}/{self._model}:generateContent"
        data = await self._post(url, payload, params={"key": self._api_key})

        candidates: list[Any] = data.get("candidates") or []
        candidate: dict[str, Any] = candidates[0] if candidates else {}
        parts: list[Any] = (candidate.get("content") or {}).get("parts") or []
        text = "\n".join(str(p.get("text", "")) for p in parts if isinstance(p, dict)).strip()
        finish_reason = str(candidate.get("finishReason") or "UNKNOWN")
        if finish_reason in _BLOCKED_FINISH_REASONS:
            logger.warning("gemini reply blocked (finishReason=%s); discarding text", finish_reason)
            text = ""
        elif not text:
            logger.warning("gemini returned an empty response (finishReason=%s)", finish_reason)

        queries = (candidate.get("groundingMetadata") or {}).get("webSearchQueries") or []
        if not queries:
            logger.info("gemini answered without Search grounding")
        usage = data.get("usageMetadata") or {}
        return Completion(
            text=text,
            input_tokens=int(usage.get("promptTokenCount") or 0),
            output_tokens=int(usage.get("candidatesTokenCount") or 0),
            web_searches=len(queries),
        )
