"""Value objects exchanged with advisory providers."""

from dataclasses import dataclass
from decimal import Decimal

_DEFAULT_MIN_CONFIDENCE = 60
_DEFAULT_MIN_EDGE = Decimal("0.06")
_DEFAULT_MAX_BET_FRACTION = Decimal("0.10")


@dataclass(frozen=True)
class Completion:
    """Raw text completion plus token accounting from one provider call.

    Args:
        text: Concatenated text output.
        input_tokens: Prompt tokens billed.
        output_tokens: Completion tokens billed.
        web_searches: Number of web searches the provider ran.

    """

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    web_searches: int = 0


@dataclass(frozen=True)
class RiskProfile:
    """Per-provider gates applied by the position sizer.

    Some providers are more prone to overconfident output, so their
    recommendations must clear stricter thresholds before a bet is placed.

    Args:
        min_confidence: Minimum advisory confidence (0-100).
        min_edge: Minimum net edge after advisory cost.
        max_bet_fraction: Hard cap on stake as a fraction of bankroll.

    """

    min_confidence: int = _DEFAULT_MIN_CONFIDENCE
    min_edge: Decimal = _DEFAULT_MIN_EDGE
    max_bet_fraction: Decimal = _DEFAULT_MAX_BET_FRACTION


DEFAULT_RISK_PROFILE = RiskProfile()
STRICT_RISK_PROFILE = RiskProfile(
    min_confidence=75,
    min_edge=Decimal("0.12"),
    max_bet_fraction=Decimal("0.07"),
)
