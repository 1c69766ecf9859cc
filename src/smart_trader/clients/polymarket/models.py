"""Typed data models for Polymarket prediction market data.

Provide a frozen dataclass that insulates the rest of the codebase from the
untyped dictionaries returned by the Gamma API. All prices and dollar
amounts use ``Decimal`` for precision.
"""

from dataclasses import dataclass
from decimal import Decimal

from smart_trader.core.models import ZERO

_UMA_RESOLVED = "resolved"


@dataclass(frozen=True)
class Market:
    """Typed representation of a Polymarket prediction market.

    Args:
        id: Gamma market identifier, used for lookups and order references.
        question: The prediction question text.
        condition_id: On-chain condition identifier.
        slug: URL slug of the market.
        outcomes: Outcome labels, typically ``("Yes", "No")``.
        outcome_prices: Prices parallel to ``outcomes``, each in (0, 1).
        volume: Total trading volume in USD.
        liquidity: Current available liquidity in USD.
        end_date: ISO-8601 string when the market closes, empty if unknown.
        end_ts: ``end_date`` parsed to Unix seconds, ``None`` if unknown.
        active: Whether the market is open for trading.
        closed: Whether trading has stopped.
        resolved: Whether the market carries an explicit resolved flag.
        uma_resolution_status: Oracle resolution status string, if any.
        category: Coarse category derived from tags (``"sports"``, ...).
        description: Free-text resolution rules.

    """

    id: str
    question: str
    condition_id: str = ""
    slug: str = ""
    outcomes: tuple[str, ...] = ("Yes", "No")
    outcome_prices: tuple[Decimal, ...] = (Decimal("0.5"), Decimal("0.5"))
    volume: Decimal = ZERO
    liquidity: Decimal = ZERO
    end_date: str = ""
    end_ts: int | None = None
    active: bool = True
    closed: bool = False
    resolved: bool = False
    uma_resolution_status: str = ""
    category: str = ""
    description: str = ""

    @property
    def yes_price(self) -> Decimal:
        """Return the price of the first outcome."""
        return self.price_of(0)

    def price_of(self, index: int) -> Decimal:
        """Return the price of the outcome at ``index``.

        Args:
            index: Outcome index.

        Returns:
            The outcome price, or ``ZERO`` when the index is out of range.

        """
        if 0 <= index < len(self.outcome_prices):
            return self.outcome_prices[index]
        return ZERO

    def outcome_name(self, index: int) -> str:
        """Return the label of the outcome at ``index`` (``"Yes"``/``"No"`` fallback)."""
        if 0 <= index < len(self.outcomes):
            return self.outcomes[index]
        return "No" if index == 1 else "Yes"

    @property
    def is_settled(self) -> bool:
        """Return whether the market has been explicitly resolved.

        A closed market is not settled until the oracle resolves it.
        """
        return self.resolved or self.uma_resolution_status.lower() == _UMA_RESOLVED
