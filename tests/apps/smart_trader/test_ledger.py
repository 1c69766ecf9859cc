"""Tests for the simulated order ledger."""

from decimal import Decimal

import pytest

from smart_trader.apps.smart_trader.exceptions import OrderNotFoundError
from smart_trader.apps.smart_trader.ledger import OrderLedger, generate_order_id
from smart_trader.apps.smart_trader.models import OrderStatus
from smart_trader.apps.smart_trader.repository import TraderRepository
from smart_trader.clients.polymarket.models import Market

_NOW = 1_700_000_000
_END = _NOW + 86_400


def _market(yes: str = "0.40", market_id: str = "m1") -> Market:
    """Build a binary market at a given YES price."""
    yes_price = Decimal(yes)
    return Market(
        id=market_id,
        question="Will the Senate pass the budget?",
        condition_id="0xabc",
        outcome_prices=(yes_price, Decimal(1) - yes_price),
        end_ts=_END,
    )


def test_generate_order_id() -> None:
    """Order IDs carry the millisecond timestamp and a random suffix."""
    first = generate_order_id(_NOW)
    second = generate_order_id(_NOW)

    assert first.startswith(f"paper_{_NOW * 1000}_")
    assert first != second


class TestPlace:
    """Tests for OrderLedger.place."""

    @pytest.mark.asyncio
    async def test_place_fills_at_market_price(self, repo: TraderRepository) -> None:
        """A placed order fills at the current price and debits cash."""
        ledger = OrderLedger(repo)

        result = await ledger.place(_market(), 0, Decimal(25), _NOW, reasoning={"edge": "0.2"})

        assert result.error is None
        order = result.order
        assert order is not None
        assert order.status is OrderStatus.FILLED
        assert order.price == Decimal("0.40")
        assert order.total_cost == Decimal(10)
        assert order.potential_payout == order.quantity
        assert order.outcome == "Yes"
        assert order.end_ts == _END
        assert result.portfolio.balance == Decimal(90)

        stored = await repo.get_order(order.id)
        assert stored is not None
        assert stored.reasoning == {"edge": "0.2"}

    @pytest.mark.asyncio
    async def test_place_no_side(self, repo: TraderRepository) -> None:
        """Buying outcome 1 uses the NO price and label."""
        ledger = OrderLedger(repo)

        result = await ledger.place(_market("0.70"), 1, Decimal(10), _NOW)

        assert result.order is not None
        assert result.order.outcome == "No"
        assert result.order.price == Decimal("0.30")
        assert result.order.total_cost == Decimal(3)

    @pytest.mark.asyncio
    async def test_price_below_minimum_rejected(self, repo: TraderRepository) -> None:
        """Outcomes priced under three cents are not filled."""
        ledger = OrderLedger(repo)

        result = await ledger.place(_market("0.98"), 1, Decimal(10), _NOW)

        assert result.order is None
        assert result.error is not None
        assert "minimum" in result.error
        assert result.portfolio.balance == Decimal(100)

    @pytest.mark.asyncio
    async def test_insufficient_cash_rejected(self, repo: TraderRepository) -> None:
        """An order costing more than the balance is rejected."""
        ledger = OrderLedger(repo)

        result = await ledger.place(_market("0.50"), 0, Decimal(500), _NOW)

        assert result.order is None
        assert result.error is not None
        assert "Insufficient cash" in result.error
        assert await repo.get_orders() == []

    @pytest.mark.asyncio
    async def test_balance_invariant_holds(self, repo: TraderRepository) -> None:
        """Balance equals initial minus open cost plus realized pnl after trading."""
        ledger = OrderLedger(repo)
        await ledger.place(_market("0.40", "m1"), 0, Decimal(10), _NOW)
        placed = await ledger.place(_market("0.25", "m2"), 0, Decimal(8), _NOW)
        assert placed.order is not None
        await ledger.cancel(placed.order.id, _NOW + 1)

        initial, open_cost, realized = await repo.get_balance_components()
        portfolio = await ledger.load_portfolio(_NOW + 2)

        assert portfolio.balance == initial - open_cost + realized
        assert portfolio.balance == Decimal(96)


class TestCancel:
    """Tests for OrderLedger.cancel."""

    @pytest.mark.asyncio
    async def test_cancel_refunds(self, repo: TraderRepository) -> None:
        """Cancelling an open order refunds its full cost."""
        ledger = OrderLedger(repo)
        placed = await ledger.place(_market(), 0, Decimal(25), _NOW)
        assert placed.order is not None

        cancelled = await ledger.cancel(placed.order.id, _NOW + 1)

        assert cancelled.total_cost == Decimal(10)
        portfolio = await repo.get_portfolio()
        assert portfolio.balance == Decimal(100)
        assert portfolio.open_orders == ()
        stored = await repo.get_order(placed.order.id)
        assert stored is not None
        assert stored.status is OrderStatus.CANCELLED
        assert stored.pnl == Decimal(0)

    @pytest.mark.asyncio
    async def test_cancel_unknown_order(self, repo: TraderRepository) -> None:
        """Cancelling an unknown ID raises OrderNotFoundError."""
        ledger = OrderLedger(repo)

        with pytest.raises(OrderNotFoundError, match="missing"):
            await ledger.cancel("missing", _NOW)

    @pytest.mark.asyncio
    async def test_cancel_twice_refunds_once(self, repo: TraderRepository) -> None:
        """A second cancel is rejected and does not refund again."""
        ledger = OrderLedger(repo)
        placed = await ledger.place(_market(), 0, Decimal(25), _NOW)
        assert placed.order is not None
        await ledger.cancel(placed.order.id, _NOW + 1)

        with pytest.raises(OrderNotFoundError):
            await ledger.cancel(placed.order.id, _NOW + 2)

        portfolio = await repo.get_portfolio()
        assert portfolio.balance == Decimal(100)


class TestLoadPortfolio:
    """Tests for balance self-healing."""

    @pytest.mark.asyncio
    async def test_no_drift_untouched(self, repo: TraderRepository) -> None:
        """A consistent balance is returned without a warning."""
        ledger = OrderLedger(repo)
        await ledger.place(_market(), 0, Decimal(25), _NOW)

        portfolio = await ledger.load_portfolio(_NOW)

        assert portfolio.balance == Decimal(90)
        kinds = [kind for _, kind, _ in await repo.get_activities()]
        assert "Warning" not in kinds

    @pytest.mark.asyncio
    async def test_drift_corrected(self, repo: TraderRepository) -> None:
        """A drifted balance is rewritten and a warning is logged."""
        ledger = OrderLedger(repo)
        await ledger.place(_market(), 0, Decimal(25), _NOW)
        await repo.set_balance(Decimal(42), _NOW)

        portfolio = await ledger.load_portfolio(_NOW + 1)

        assert portfolio.balance == Decimal(90)
        activities = await repo.get_activities()
        assert activities[0][1] == "Warning"
        assert "Balance corrected" in activities[0][2]

    @pytest.mark.asyncio
    async def test_small_drift_tolerated(self, repo: TraderRepository) -> None:
        """Drift within two cents is left alone."""
        ledger = OrderLedger(repo)
        await repo.set_balance(Decimal("100.01"), _NOW)

        portfolio = await ledger.load_portfolio(_NOW)

        assert portfolio.balance == Decimal("100.01")


class TestReset:
    """Tests for OrderLedger.reset."""

    @pytest.mark.asyncio
    async def test_reset_keeps_lock(self, repo: TraderRepository) -> None:
        """Reset restores the balance but leaves a held cycle lock in place."""
        ledger = OrderLedger(repo)
        await ledger.place(_market(), 0, Decimal(25), _NOW)
        assert await repo.try_acquire_lock(_NOW, 300)

        portfolio = await ledger.reset(Decimal(50), _NOW + 1)

        assert portfolio.balance == Decimal(50)
        assert portfolio.open_orders == ()
        assert await repo.get_lock_acquired_at() == _NOW
        activities = await repo.get_activities()
        assert "reset" in activities[0][2]
