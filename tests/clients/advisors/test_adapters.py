"""Tests for the advisory provider adapters."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from smart_trader.clients.advisors.anthropic import AnthropicProvider
from smart_trader.clients.advisors.exceptions import AdvisoryAPIError
from smart_trader.clients.advisors.gemini import GeminiProvider
from smart_trader.clients.advisors.models import DEFAULT_RISK_PROFILE, STRICT_RISK_PROFILE
from smart_trader.clients.advisors.openai_compatible import OpenAICompatibleProvider
from smart_trader.clients.advisors.protocols import AdvisoryProvider

_STATUS_OK = 200
_STATUS_RATE_LIMITED = 429
_INPUT_TOKENS = 1200
_OUTPUT_TOKENS = 340


def _response(status: int, body: Any) -> MagicMock:
    """Build a mock httpx response."""
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body
    response.text = str(body)
    return response


class TestAnthropicProvider:
    """Tests for AnthropicProvider."""

    @pytest.fixture
    def provider(self) -> AnthropicProvider:
        """Create an Anthropic adapter."""
        return AnthropicProvider("sk-test", "claude-sonnet-4-5", max_tokens=1000)

    def test_satisfies_protocol(self, provider: AnthropicProvider) -> None:
        """The adapter is structurally an AdvisoryProvider."""
        assert isinstance(provider, AdvisoryProvider)
        assert provider.name == "anthropic"
        assert provider.has_web_search
        assert provider.risk_profile == DEFAULT_RISK_PROFILE

    @pytest.mark.asyncio
    async def test_complete_joins_text_and_counts_searches(self, provider: AnthropicProvider) -> None:
        """Text blocks are joined and web search tool uses counted."""
        body = {
            "content": [
                {"type": "server_tool_use", "name": "web_search", "input": {"query": "x"}},
                {"type": "web_search_tool_result", "content": []},
                {"type": "text", "text": '{"recommendations": []'},
                {"type": "text", "text": "}"},
            ],
            "usage": {"input_tokens": _INPUT_TOKENS, "output_tokens": _OUTPUT_TOKENS},
        }
        mock_request = AsyncMock(return_value=_response(_STATUS_OK, body))

        with patch.object(provider._http_client, "request", new=mock_request):
            completion = await provider.complete("prompt")

        assert completion.text == '{"recommendations": []\n}'
        assert completion.input_tokens == _INPUT_TOKENS
        assert completion.output_tokens == _OUTPUT_TOKENS
        assert completion.web_searches == 1
        sent = mock_request.call_args.kwargs
        assert sent["headers"]["x-api-key"] == "sk-test"
        assert sent["json"]["tools"][0]["name"] == "web_search"
        assert sent["json"]["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_empty_reply_keeps_usage(self, provider: AnthropicProvider) -> None:
        """A reply with no text blocks returns empty text with its billed tokens."""
        body = {"content": [], "usage": {"input_tokens": _INPUT_TOKENS, "output_tokens": _OUTPUT_TOKENS}}

        with patch.object(
            provider._http_client, "request", new=AsyncMock(return_value=_response(_STATUS_OK, body))
        ):
            completion = await provider.complete("prompt")

        assert completion.text == ""
        assert completion.input_tokens == _INPUT_TOKENS
        assert completion.output_tokens == _OUTPUT_TOKENS

    @pytest.mark.asyncio
    async def test_http_error_status(self, provider: AnthropicProvider) -> None:
        """A 429 raises with the status code preserved."""
        with (
            patch.object(
                provider._http_client,
                "request",
                new=AsyncMock(return_value=_response(_STATUS_RATE_LIMITED, {"error": "slow down"})),
            ),
            pytest.raises(AdvisoryAPIError) as exc_info,
        ):
            await provider.complete("prompt")

        assert exc_info.value.status_code == _STATUS_RATE_LIMITED

    @pytest.mark.asyncio
    async def test_transport_error(self, provider: AnthropicProvider) -> None:
        """A timeout is wrapped in AdvisoryAPIError with status 0."""
        with (
            patch.object(
                provider._http_client,
                "request",
                new=AsyncMock(side_effect=httpx.ConnectTimeout("timeout")),
            ),
            pytest.raises(AdvisoryAPIError, match="request failed") as exc_info,
        ):
            await provider.complete("prompt")

        assert exc_info.value.status_code == 0


class TestGeminiProvider:
    """Tests for GeminiProvider."""

    @pytest.fixture
    def provider(self) -> GeminiProvider:
        """Create a Gemini adapter."""
        return GeminiProvider("g-key", "gemini-2.5-flash")

    def test_strict_risk_profile(self, provider: GeminiProvider) -> None:
        """Gemini recommendations use the strict gates."""
        assert provider.risk_profile == STRICT_RISK_PROFILE

    @pytest.mark.asyncio
    async def test_complete(self, provider: GeminiProvider) -> None:
        """Parts are joined and grounding queries counted."""
        body = {
            "candidates": [
                {
                    "content": {"parts": [{"text": "{}"}]},
                    "finishReason": "STOP",
                    "groundingMetadata": {"webSearchQueries": ["a", "b"]},
                }
            ],
            "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 5},
        }
        mock_request = AsyncMock(return_value=_response(_STATUS_OK, body))

        with patch.object(provider._http_client, "request", new=mock_request):
            completion = await provider.complete("prompt")

        assert completion.text == "{}"
        assert completion.web_searches == 2
        assert mock_request.call_args.kwargs["params"] == {"key": "g-key"}
        assert mock_request.call_args.args[1].endswith("/gemini-2.5-flash:generateContent")

    @pytest.mark.asyncio
    async def test_safety_block_discards_text(self, provider: GeminiProvider) -> None:
        """A SAFETY finish reason discards the text but keeps the token counts."""
        body = {
            "candidates": [{"content": {"parts": [{"text": "x"}]}, "finishReason": "SAFETY"}],
            "usageMetadata": {"promptTokenCount": _INPUT_TOKENS, "candidatesTokenCount": _OUTPUT_TOKENS},
        }

        with patch.object(
            provider._http_client, "request", new=AsyncMock(return_value=_response(_STATUS_OK, body))
        ):
            completion = await provider.complete("prompt")

        assert completion.text == ""
        assert completion.input_tokens == _INPUT_TOKENS
        assert completion.output_tokens == _OUTPUT_TOKENS


class TestOpenAICompatibleProvider:
    """Tests for OpenAICompatibleProvider."""

    def test_unknown_provider_raises(self) -> None:
        """An unknown provider without a URL is rejected."""
        with pytest.raises(ValueError, match="Unknown chat completions provider"):
            OpenAICompatibleProvider("acme", "k", "m")

    def test_deepseek_has_no_web_search(self) -> None:
        """DeepSeek is flagged as lacking web search."""
        assert not OpenAICompatibleProvider("deepseek", "k", "deepseek-chat").has_web_search
        assert OpenAICompatibleProvider("openai", "k", "gpt-4o").has_web_search

    @pytest.mark.asyncio
    async def test_complete(self) -> None:
        """The first choice's content is returned with usage."""
        provider = OpenAICompatibleProvider("openai", "k", "gpt-4o")
        body = {
            "choices": [{"message": {"content": "  {}  "}}],
            "usage": {"prompt_tokens": 7, "completion_tokens": 3},
        }
        mock_request = AsyncMock(return_value=_response(_STATUS_OK, body))

        with patch.object(provider._http_client, "request", new=mock_request):
            completion = await provider.complete("prompt")

        assert completion.text == "{}"
        assert completion.input_tokens == 7
        assert mock_request.call_args.kwargs["headers"]["Authorization"] == "Bearer k"

    @pytest.mark.asyncio
    async def test_deepseek_prompt_gets_no_web_note(self) -> None:
        """Providers without web search get a note prepended to the prompt."""
        provider = OpenAICompatibleProvider("deepseek", "k", "deepseek-chat")
        body = {"choices": [{"message": {"content": "{}"}}]}
        mock_request = AsyncMock(return_value=_response(_STATUS_OK, body))

        with patch.object(provider._http_client, "request", new=mock_request):
            await provider.complete("prompt")

        content = mock_request.call_args.kwargs["json"]["messages"][0]["content"]
        assert content.startswith("NOTE: you have no web search access")
        assert content.endswith("prompt")

    @pytest.mark.asyncio
    async def test_xai_enables_search(self) -> None:
        """xAI requests carry live search parameters."""
        provider = OpenAICompatibleProvider("xai", "k", "grok-3")
        body = {"choices": [{"message": {"content": "{}"}}]}
        mock_request = AsyncMock(return_value=_response(_STATUS_OK, body))

        with patch.object(provider._http_client, "request", new=mock_request):
            await provider.complete("prompt")

        assert mock_request.call_args.kwargs["json"]["search"] == {"mode": "auto"}

    @pytest.mark.asyncio
    async def test_empty_choices_keeps_usage(self) -> None:
        """No choices returns empty text with the billed tokens."""
        provider = OpenAICompatibleProvider("openai", "k", "gpt-4o")
        body = {
            "choices": [],
            "usage": {"prompt_tokens": _INPUT_TOKENS, "completion_tokens": _OUTPUT_TOKENS},
        }

        with patch.object(
            provider._http_client, "request", new=AsyncMock(return_value=_response(_STATUS_OK, body))
        ):
            completion = await provider.complete("prompt")

        assert completion.text == ""
        assert completion.input_tokens == _INPUT_TOKENS
        assert completion.output_tokens == _OUTPUT_TOKENS

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        """Closing releases the HTTP client."""
        provider = OpenAICompatibleProvider("openai", "k", "gpt-4o")

        with patch.object(provider._http_client, "aclose", new=AsyncMock()) as mock_close:
            await provider.close()
            mock_close.assert_called_once()
