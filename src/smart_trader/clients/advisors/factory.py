"""Provider registry and factory for advisory services.

Map provider identifiers to adapter classes and pick a usable provider
when the configured one has no credential.
"""

import logging
from collections.abc import Mapping
from typing import Any

from smart_trader.clients.advisors.anthropic import AnthropicProvider
from smart_trader.clients.advisors.exceptions import AdvisoryError
from smart_trader.clients.advisors.gemini import GeminiProvider
from smart_trader.clients.advisors.openai_compatible import CHAT_URLS, OpenAICompatibleProvider
from smart_trader.clients.advisors.protocols import AdvisoryProvider

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ("anthropic", "google", "openai", "xai", "deepseek")


def build_provider(name: str, api_key: str, model: str, **kwargs: Any) -> AdvisoryProvider:
    """Build an advisory provider from its identifier.

    Args:
        name: Provider identifier (must be one of ``PROVIDER_NAMES``).
        api_key: Provider API key.
        model: Model identifier.
        **kwargs: Adapter options (``timeout``, ``max_tokens``, ``temperature``).

    Returns:
        A configured provider instance.

    Raises:
        AdvisoryError: If the provider name is not recognised.

    """
    if name == "anthropic":
        return AnthropicProvider(api_key, model, **kwargs)
    if name == "google":
        return GeminiProvider(api_key, model, **kwargs)
    if name in CHAT_URLS:
        return OpenAICompatibleProvider(name, api_key, model, **kwargs)
    msg = f"Unknown advisory provider: {name!r}. Choose from {', '.join(PROVIDER_NAMES)}"
    raise AdvisoryError(msg)


def select_provider(
    preferred: str,
    credentials: Mapping[str, tuple[str, str]],
    **kwargs: Any,
) -> AdvisoryProvider:
    """Build the preferred provider, falling back to any with a key.

    Args:
        preferred: Configured provider identifier.
        credentials: ``{provider: (api_key, model)}`` for every known provider.
        **kwargs: Adapter options forwarded to ``build_provider``.

    Returns:
        The first provider that has an API key, preferred one first.

    Raises:
        AdvisoryError: If no provider has an API key.

    """
    order = [preferred, *(name for name in PROVIDER_NAMES if name != preferred)]
    for name in order:
        api_key, model = credentials.get(name, ("", ""))
        if api_key:
            if name != preferred:
                logger.warning("No API key for %s, falling back to %s", preferred, name)
            return build_provider(name, api_key, model, **kwargs)
    msg = "No advisory provider API key configured"
    raise AdvisoryError(msg)
