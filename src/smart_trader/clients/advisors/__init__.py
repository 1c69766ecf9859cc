"""Pluggable language-model advisory providers."""

from smart_trader.clients.advisors.exceptions import AdvisoryAPIError, AdvisoryError
from smart_trader.clients.advisors.factory import PROVIDER_NAMES, build_provider, select_provider
from smart_trader.clients.advisors.models import Completion, RiskProfile
from smart_trader.clients.advisors.protocols import AdvisoryProvider

__all__ = [
    "PROVIDER_NAMES",
    "AdvisoryAPIError",
    "AdvisoryError",
    "AdvisoryProvider",
    "Completion",
    "RiskProfile",
    "build_provider",
    "select_provider",
]
