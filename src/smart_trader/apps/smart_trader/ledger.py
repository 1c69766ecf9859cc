"""Simulated order ledger.

Open and close paper positions against the account held by
``TraderRepository``. Placement inserts the order and debits its cost in
one transaction; cancellation refunds it exactly once. Loading the
portfolio re-derives the balance from the order history and corrects any
drift, so a crash between writes can never leave cash permanently wrong.
"""

import logging
import secrets
from decimal import Decimal
from typing import Any

from smart_trader.apps.smart_trader.exceptions import OrderNotFoundError
from smart_trader.apps.smart_trader.models import (
    ActivityType,
    Order,
    OrderStatus,
    PlaceResult,
    Portfolio,
)
from smart_trader.apps.smart_trader.repository import TraderRepository
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import ZERO

logger = logging.getLogger(__name__)

_MIN_FILL_PRICE = Decimal("0.03")
_DRIFT_TOLERANCE = Decimal("0.02")
_QUANTITY_PRECISION = Decimal("0.000001")


def generate_order_id(now: int) -> str:
    """Return a new ``paper_<ms>_<suffix>`` order identifier."""
    return f"paper_{now * 1000}_{secrets.token_hex(4)}"


class OrderLedger:
    """Place, cancel and reconcile simulated orders.

    Args:
        repository: Persistent store of the account.
        activity_retention: Activity log rows kept when appending.

    """

    def __init__(self, repository: TraderRepository, activity_retention: int = 500) -> None:
        """Initialize the ledger."""
        self._repo = repository
        self._activity_retention = activity_retention

    async def place(
        self,
        market: Market,
        outcome_index: int,
        quantity: Decimal,
        now: int,
        *,
        side: str = "BUY",
        reasoning: dict[str, Any] | None = None,
    ) -> PlaceResult:
        """Buy ``quantity`` shares of one outcome at its current price.

        Args:
            market: Market with freshly fetched prices.
            outcome_index: Outcome to buy.
            quantity: Shares to buy.
            now: Current time, Unix seconds.
            side: Order side label.
            reasoning: Advisory and sizing context stored with the order.

        Returns:
            The placed order and updated portfolio, or ``order=None`` and
            an ``error`` when the price is too low or cash is insufficient.

        """
        price = market.price_of(outcome_index)
        portfolio = await self._repo.get_portfolio()
        if price < _MIN_FILL_PRICE:
            return PlaceResult(
                order=None,
                portfolio=portfolio,
                error=f"Price {price * 100:.1f}c is below the {_MIN_FILL_PRICE * 100:.0f}c minimum",
            )

        quantity = quantity.quantize(_QUANTITY_PRECISION)
        total_cost = (quantity * price).quantize(_QUANTITY_PRECISION)
        if total_cost > portfolio.balance:
            return PlaceResult(
                order=None,
                portfolio=portfolio,
                error=f"Insufficient cash: need ${total_cost:.2f}, have ${portfolio.balance:.2f}",
            )

        order = Order(
            id=generate_order_id(now),
            market_id=market.id,
            condition_id=market.condition_id,
            market_question=market.question,
            market_slug=market.slug,
            outcome=market.outcome_name(outcome_index),
            outcome_index=outcome_index,
            side=side,
            price=price,
            quantity=quantity,
            total_cost=total_cost,
            potential_payout=quantity,
            status=OrderStatus.FILLED,
            created_at=now,
            end_ts=market.end_ts,
            reasoning=reasoning,
        )
        if not await self._repo.insert_order_and_debit(order, now):
            return PlaceResult(
                order=None,
                portfolio=await self._repo.get_portfolio(),
                error=f"Insufficient cash: need ${total_cost:.2f}",
            )
        logger.info(
            "Placed %s: %s %s @ %s x %s ($%s)",
            order.id,
            order.outcome,
            market.id,
            price,
            quantity,
            total_cost,
        )
        return PlaceResult(order=order, portfolio=await self._repo.get_portfolio())

    async def cancel(self, order_id: str, now: int) -> Order:
        """Cancel an open order and refund its full cost.

        Args:
            order_id: Order to cancel.
            now: Current time, Unix seconds.

        Returns:
            The order as it was before cancellation.

        Raises:
            OrderNotFoundError: If no open order has this ID.

        """
        order = await self._repo.get_order(order_id)
        if order is None or not order.is_open:
            msg = f"No open order with ID {order_id!r}"
            raise OrderNotFoundError(msg)
        closed = await self._repo.close_order(
            order_id,
            status=OrderStatus.CANCELLED,
            pnl=ZERO,
            credit=order.total_cost,
            now=now,
        )
        if not closed:
            msg = f"Order {order_id!r} was settled concurrently"
            raise OrderNotFoundError(msg)
        await self._repo.add_activity(
            f'Cancelled {order.outcome} "{order.market_question[:40]}", refunded ${order.total_cost:.2f}',
            ActivityType.ORDER,
            now,
            self._activity_retention,
        )
        logger.info("Cancelled %s, refunded %s", order_id, order.total_cost)
        return order

    async def load_portfolio(self, now: int) -> Portfolio:
        """Load the portfolio, correcting balance drift first.

        The balance must equal the initial balance minus open cost plus
        realized pnl. Drift beyond two cents is overwritten and logged.

        Args:
            now: Current time, Unix seconds.

        Returns:
            The (possibly corrected) portfolio with its open orders.

        """
        initial, open_cost, realized = await self._repo.get_balance_components()
        expected = initial - open_cost + realized
        portfolio = await self._repo.get_portfolio()
        drift = portfolio.balance - expected
        if abs(drift) <= _DRIFT_TOLERANCE:
            return portfolio

        logger.warning(
            "Balance drift %s: stored %s, expected %s; correcting",
            drift,
            portfolio.balance,
            expected,
        )
        await self._repo.set_balance(expected, now)
        await self._repo.add_activity(
            f"Balance corrected from ${portfolio.balance:.2f} to ${expected:.2f}",
            ActivityType.WARNING,
            now,
            self._activity_retention,
        )
        return await self._repo.get_portfolio()

    async def reset(self, initial_balance: Decimal, now: int) -> Portfolio:
        """Delete all orders and logs and start over with ``initial_balance``."""
        await self._repo.reset(initial_balance, now)
        await self._repo.add_activity(
            f"Portfolio reset to ${initial_balance:.2f}",
            ActivityType.INFO,
            now,
            self._activity_retention,
        )
        return await self._repo.get_portfolio()
