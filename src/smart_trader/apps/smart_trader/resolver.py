"""Resolution engine for simulated orders.

Poll the markets behind expired open orders and settle the orders once
the oracle has resolved them. Each order is polled at most once per
cooldown, failures are isolated to the order, and settlement is a
conditional update so running two sweeps over the same order credits the
account at most once.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from smart_trader.apps.smart_trader.catalog import MarketCatalog
from smart_trader.apps.smart_trader.config import ResolutionConfig
from smart_trader.apps.smart_trader.models import (
    ActivityType,
    Order,
    OrderStatus,
    ResolutionOutcome,
    ResolutionReport,
)
from smart_trader.apps.smart_trader.repository import TraderRepository
from smart_trader.clients.polymarket.exceptions import PolymarketError
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import ZERO
from smart_trader.core.timestamps import SECONDS_PER_DAY, now_ts

logger = logging.getLogger(__name__)


def winning_index(market: Market, threshold: Decimal) -> int | None:
    """Return the index of the winning outcome of a settled market.

    The first outcome priced at or above ``threshold`` wins; otherwise the
    highest-priced outcome does. Evenly priced outcomes have no winner.

    Args:
        market: A settled market.
        threshold: Price that marks an outcome as the winner.

    Returns:
        The winning outcome index, or ``None`` if the market has no prices
        or every price is the same.

    """
    prices = market.outcome_prices
    if not prices:
        return None
    for index, price in enumerate(prices):
        if price >= threshold:
            return index
    if len(set(prices)) == 1:
        return None
    return max(range(len(prices)), key=lambda i: prices[i])


class ResolutionEngine:
    """Settle open orders whose markets have resolved.

    Args:
        repository: Persistent store of the account.
        catalog: Source of live market data.
        config: Polling and settlement parameters.
        activity_retention: Activity log rows kept when appending.
        sleep: Coroutine used to wait before a retry.

    """

    def __init__(
        self,
        repository: TraderRepository,
        catalog: MarketCatalog,
        config: ResolutionConfig,
        activity_retention: int = 500,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the engine."""
        self._repo = repository
        self._catalog = catalog
        self._config = config
        self._activity_retention = activity_retention
        self._sleep = sleep

    async def sweep(self, now: int | None = None) -> ResolutionReport:
        """Check every expired open order once.

        Candidates are open orders whose market end time has passed, plus
        open orders with no end time older than ``zombie_age_days``.

        Args:
            now: Current time, Unix seconds. Defaults to the wall clock.

        Returns:
            Counts of checked, resolved, skipped and still-open orders, plus
            per-order error messages.

        """
        now = now_ts() if now is None else now
        report = ResolutionReport()
        zombie_cutoff = now - self._config.zombie_age_days * SECONDS_PER_DAY
        candidates = await self._repo.get_resolution_candidates(now, zombie_cutoff)
        logger.info("Resolution sweep: %d candidate orders", len(candidates))

        for order in candidates:
            if order.last_checked_at is not None and now - order.last_checked_at < self._config.cooldown_seconds:
                report.skipped_cooldown += 1
                continue
            report.checked += 1
            try:
                await self._repo.mark_checked(order.id, now)
                market = await self._fetch_market(order.market_id)
                if not market.is_settled:
                    report.still_open += 1
                    continue
                outcome = await self._settle(order, market, now)
            except (PolymarketError, SQLAlchemyError) as exc:
                logger.warning("Resolution of %s failed: %s", order.id, exc)
                report.errors.append(f"{order.id}: {exc}")
                continue
            if outcome is None:
                report.still_open += 1
            else:
                report.resolved.append(outcome)

        logger.info(
            "Resolution sweep done: %d checked, %d resolved, %d cooling down, %d errors",
            report.checked,
            len(report.resolved),
            report.skipped_cooldown,
            len(report.errors),
        )
        return report

    async def _fetch_market(self, market_id: str) -> Market:
        """Fetch a market, retrying once after ``retry_delay_seconds``."""
        try:
            return await self._catalog.get_market(market_id)
        except PolymarketError as exc:
            logger.debug("Retrying market %s after error: %s", market_id, exc)
            await self._sleep(self._config.retry_delay_seconds)
            return await self._catalog.get_market(market_id)

    async def _settle(self, order: Order, market: Market, now: int) -> ResolutionOutcome | None:
        """Settle one order against a resolved market.

        Returns:
            The outcome, or ``None`` if the market has no prices or the order
            was settled by a concurrent sweep.

        """
        winner = winning_index(market, self._config.winner_threshold)
        if winner is None:
            logger.warning("Market %s resolved without prices; leaving %s open", market.id, order.id)
            return None

        if order.status is OrderStatus.PENDING:
            status, pnl, credit = OrderStatus.CANCELLED, ZERO, order.total_cost
        elif order.outcome_index == winner:
            status, pnl, credit = OrderStatus.WON, order.potential_payout - order.total_cost, order.potential_payout
        else:
            status, pnl, credit = OrderStatus.LOST, -order.total_cost, ZERO

        closed = await self._repo.close_order(
            order.id,
            status=status,
            pnl=pnl,
            credit=credit,
            now=now,
            resolution_price=market.price_of(order.outcome_index),
        )
        if not closed:
            logger.info("Order %s already settled", order.id)
            return None

        winning_outcome = market.outcome_name(winner)
        await self._repo.add_activity(
            f'{status.value.upper()}: {order.outcome} "{order.market_question[:40]}" '
            f"(winner {winning_outcome}) pnl ${pnl:+.2f}",
            ActivityType.RESOLVED,
            now,
            self._activity_retention,
        )
        logger.info("Settled %s as %s, pnl %s", order.id, status.value, pnl)
        return ResolutionOutcome(
            order_id=order.id,
            market_question=order.market_question,
            status=status,
            pnl=pnl,
            winning_outcome=winning_outcome,
        )
