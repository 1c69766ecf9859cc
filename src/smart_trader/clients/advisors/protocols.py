"""Structural protocol for pluggable advisory providers.

Any class whose shape matches ``AdvisoryProvider`` can drive the trading
cycle without explicit inheritance (structural subtyping).
"""

from typing import Protocol, runtime_checkable

from smart_trader.clients.advisors.models import Completion, RiskProfile


@runtime_checkable
class AdvisoryProvider(Protocol):
    """Async language-model service that turns a prompt into text.

    Implementors send a single prompt and return the text plus token
    usage. They raise ``AdvisoryError`` on any transport or API failure.
    """

    @property
    def name(self) -> str:
        """Return the provider identifier (e.g. ``"anthropic"``)."""
        ...

    @property
    def model(self) -> str:
        """Return the model identifier used for calls and pricing."""
        ...

    @property
    def risk_profile(self) -> RiskProfile:
        """Return the sizing gates for this provider's recommendations."""
        ...

    @property
    def has_web_search(self) -> bool:
        """Return whether the provider can search the web while answering."""
        ...

    async def complete(self, prompt: str) -> Completion:
        """Send the prompt and return the completion."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
