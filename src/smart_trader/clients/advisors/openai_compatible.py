"""Adapter for OpenAI-compatible chat completion APIs (OpenAI, xAI, DeepSeek)."""

import logging
from typing import Any

from smart_trader.clients.advisors._http import HttpProvider
from smart_trader.clients.advisors.models import Completion

logger = logging.getLogger(__name__)

CHAT_URLS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "xai": "https://api.x.ai/v1/chat/completions",
    "deepseek": "https://api.deepseek.com/chat/completions",
}

_NO_WEB_NOTE = "NOTE: you have no web search access. Use your training data.\n\n"


class OpenAICompatibleProvider(HttpProvider):
    """Call any chat completions endpoint speaking the OpenAI wire format.

    Args:
        provider: One of ``CHAT_URLS`` keys.
        api_key: Bearer token.
        model: Model identifier.
        url: Endpoint override; defaults to the provider's public URL.
        **kwargs: Forwarded to ``HttpProvider``.

    Raises:
        ValueError: If the provider is unknown and no URL is given.

    """

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str,
        *,
        url: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the adapter."""
        super().__init__(api_key, model, **kwargs)
        if url is None:
            if provider not in CHAT_URLS:
                msg = f"Unknown chat completions provider: {provider}"
                raise ValueError(msg)
            url = CHAT_URLS[provider]
        self.NAME = provider
        self.HAS_WEB_SEARCH = provider != "deepseek"
        self._url = url

    async def complete(self, prompt: str) -> Completion:
        """Send the prompt as a single user message.

        Args:
            prompt: Full user prompt.

        Returns:
            Completion with token usage.

        Raises:
            AdvisoryAPIError: On API failure. An empty reply is returned with
                empty text so its billed tokens are still recorded.

        """
        if not self.HAS_WEB_SEARCH:
            prompt = _NO_WEB_NOTE + prompt
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        if self.NAME == "xai":
            payload["search"] = {"mode": "auto"}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        data = await self._post(self._url, payload, headers=headers)

        choices: list[Any] = data.get("choices") or []
        message: dict[str, Any] = (choices[0].get("message") or {}) if choices else {}
        text = str(message.get("content") or "").strip()
        if not text:
            logger.warning("%s returned no content", self.NAME)

        usage = data.get("usage") or {}
        return Completion(
            text=text,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )
