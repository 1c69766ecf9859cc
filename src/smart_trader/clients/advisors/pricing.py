"""Token pricing table for advisory models.

Prices are USD per one million tokens. Unknown models fall back to the
``default`` entry so cost is never silently reported as zero.
"""

from decimal import Decimal

_PER_MILLION = Decimal(1_000_000)

MODEL_PRICING: dict[str, tuple[Decimal, Decimal]] = {
    "claude-opus-4-6": (Decimal(5), Decimal(25)),
    "claude-opus-4-5": (Decimal(5), Decimal(25)),
    "claude-opus-4-20250514": (Decimal(15), Decimal(75)),
    "claude-sonnet-4-5": (Decimal(3), Decimal(15)),
    "claude-sonnet-4-5-20250929": (Decimal(3), Decimal(15)),
    "claude-sonnet-4-20250514": (Decimal(3), Decimal(15)),
    "claude-haiku-4-5": (Decimal(1), Decimal(5)),
    "claude-haiku-4-5-20251001": (Decimal(1), Decimal(5)),
    "claude-3-5-haiku-20241022": (Decimal("0.80"), Decimal(4)),
    "gemini-2.0-flash": (Decimal("0.10"), Decimal("0.40")),
    "gemini-2.5-flash": (Decimal("0.15"), Decimal("0.60")),
    "gemini-2.5-pro": (Decimal("1.25"), Decimal(10)),
    "gpt-4o-mini": (Decimal("0.15"), Decimal("0.60")),
    "gpt-4.1-mini": (Decimal("0.40"), Decimal("1.60")),
    "gpt-4o": (Decimal("2.50"), Decimal(10)),
    "gpt-4.1": (Decimal(2), Decimal(8)),
    "o4-mini": (Decimal("1.10"), Decimal("4.40")),
    "o3": (Decimal(10), Decimal(40)),
    "grok-3-mini": (Decimal("0.30"), Decimal("0.50")),
    "grok-3": (Decimal(3), Decimal(15)),
    "deepseek-chat": (Decimal("0.27"), Decimal("1.10")),
    "deepseek-reasoner": (Decimal("0.55"), Decimal("2.19")),
    "default": (Decimal(3), Decimal(15)),
}


def model_pricing(model: str) -> tuple[Decimal, Decimal]:
    """Return ``(input, output)`` USD per million tokens for a model."""
    return MODEL_PRICING.get(model, MODEL_PRICING["default"])


def token_cost(input_tokens: int, output_tokens: int, model: str) -> Decimal:
    """Return the USD cost of one call.

    Args:
        input_tokens: Prompt tokens billed.
        output_tokens: Completion tokens billed.
        model: Model identifier.

    Returns:
        Cost in USD.

    """
    input_price, output_price = model_pricing(model)
    return (Decimal(input_tokens) * input_price + Decimal(output_tokens) * output_price) / _PER_MILLION
