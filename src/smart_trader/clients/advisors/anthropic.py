"""Anthropic Messages API adapter with the server-side web search tool."""

import logging
from typing import Any

from smart_trader.clients.advisors._http import HttpProvider
from smart_trader.clients.advisors.models import Completion

logger = logging.getLogger(__name__)

_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
_ANTHROPIC_VERSION = "2023-06-01"
_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search"}


class AnthropicProvider(HttpProvider):
    """Call Claude models through the Messages API."""

    NAME = "anthropic"

    def __init__(self, api_key: str, model: str, *, url: str = _MESSAGES_URL, **kwargs: Any) -> None:
        """Initialize the adapter.

        Args:
            api_key: Anthropic API key.
            model: Claude model identifier.
            url: Messages endpoint, overridable for proxies.
            **kwargs: Forwarded to ``HttpProvider``.

        """
        super().__init__(api_key, model, **kwargs)
        self._url = url

    async def complete(self, prompt: str) -> Completion:
        """Send the prompt and join the text blocks of the reply.

        Args:
            prompt: Full user prompt.

        Returns:
            Completion with token usage and the number of web searches run.

        Raises:
            AdvisoryAPIError: On API failure. An empty reply is returned with
                empty text so its billed tokens are still recorded.

        """
        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": [{"role": "user", "content": prompt}],
            "tools": [_WEB_SEARCH_TOOL],
        }
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": _ANTHROPIC_VERSION,
        }
        data = await self._post(self._url, payload, headers=headers)

        blocks: list[dict[str, Any]] = [b for b in data.get("content") or [] if isinstance(b, dict)]
        text = "\n".join(str(b.get("text", "")) for b in blocks if b.get("type") == "text").strip()
        searches = sum(
            1 for b in blocks if b.get("type") == "server_tool_use" and b.get("name") == "web_search"
        )
        usage = data.get("usage") or {}
        if not text:
            logger.warning("anthropic returned no text content (stop_reason=%s)", data.get("stop_reason"))
        logger.debug("anthropic reply: %d chars, %d web searches", len(text), searches)
        return Completion(
            text=text,
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
            web_searches=searches,
        )
