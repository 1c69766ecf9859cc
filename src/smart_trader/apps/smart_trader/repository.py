"""Async repository for the simulated account and bot state.

Wrap SQLAlchemy async engine and session management. Every balance change
is a SQL-side increment inside the same transaction as the order row it
belongs to, so concurrent invocations never lose an update through a
read-modify-write race. Order status changes are conditional updates on
the open statuses, which makes settlement and cancellation idempotent.
"""

import dataclasses
import json
import logging
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from smart_trader.apps.smart_trader.db_models import (
    SINGLETON_ID,
    ActivityRow,
    Base,
    BotKVRow,
    BotStateRow,
    CostTrackerRow,
    CycleLogRow,
    OrderRow,
    PortfolioRow,
    UsageHistoryRow,
)
from smart_trader.apps.smart_trader.models import (
    OPEN_STATUSES,
    ActivityType,
    AdvisoryUsage,
    Order,
    OrderStatus,
    PerformanceHistory,
    Portfolio,
    SchedulerState,
)
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import ZERO

logger = logging.getLogger(__name__)

_MICRO = Decimal("0.000001")
_LOCK_KEY = "cycle_lock"
_LOCK_HELD = "held"
_LAST_CALL_KEY = "last_call_at"
_ANALYZED_KEY = "analyzed_map"
_CATALOG_KEY = "catalog_snapshot"


def _money(value: float | None) -> Decimal:
    """Convert a float column to ``Decimal`` with micro-dollar precision."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(_MICRO)


class TraderRepository:
    """Async repository for portfolio, orders, logs and scheduler state.

    Args:
        db_url: SQLAlchemy async connection string
            (e.g. ``sqlite+aiosqlite:///smart_trader.db``).

    """

    def __init__(self, db_url: str) -> None:
        """Initialize the repository with an async database engine.

        Args:
            db_url: SQLAlchemy async connection string.

        """
        self._engine: AsyncEngine = create_async_engine(db_url, echo=False)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init_db(self, initial_balance: Decimal, now: int = 0) -> None:
        """Create all tables and seed the singleton rows if missing.

        Idempotent, safe to call on every startup.

        Args:
            initial_balance: Starting cash for a fresh portfolio.
            now: Current time, epoch seconds.

        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with self._session_factory() as session, session.begin():
            if await session.get(PortfolioRow, SINGLETON_ID) is None:
                session.add(
                    PortfolioRow(
                        id=SINGLETON_ID,
                        balance=float(initial_balance),
                        initial_balance=float(initial_balance),
                        total_pnl=0.0,
                        last_updated=now,
                    )
                )
            if await session.get(CostTrackerRow, SINGLETON_ID) is None:
                session.add(CostTrackerRow(id=SINGLETON_ID, last_updated=now))
            if await session.get(BotStateRow, SINGLETON_ID) is None:
                session.add(BotStateRow(id=SINGLETON_ID))
            if await session.get(BotKVRow, _LOCK_KEY) is None:
                session.add(BotKVRow(key=_LOCK_KEY, value="", updated_at=0))
        logger.info("Database tables initialised")

    # -- portfolio -----------------------------------------------------------

    async def get_portfolio(self) -> Portfolio:
        """Return the portfolio singleton with its open orders.

        Returns:
            Current portfolio snapshot.

        """
        async with self._session_factory() as session:
            row = await session.get(PortfolioRow, SINGLETON_ID)
            if row is None:
                msg = "Portfolio not initialised; call init_db() first"
                raise RuntimeError(msg)
            result = await session.execute(
                select(OrderRow)
                .where(OrderRow.status.in_(OPEN_STATUSES))
                .order_by(OrderRow.created_at)
            )
            open_orders = tuple(_to_order(r) for r in result.scalars().all())
        return Portfolio(
            balance=_money(row.balance),
            initial_balance=_money(row.initial_balance),
            total_pnl=_money(row.total_pnl),
            last_updated=row.last_updated,
            open_orders=open_orders,
        )

    async def get_balance_components(self) -> tuple[Decimal, Decimal, Decimal]:
        """Return the inputs of the balance invariant.

        Returns:
            ``(initial_balance, open_cost, realized_pnl)`` where
            ``open_cost`` sums open orders and ``realized_pnl`` sums the
            pnl of every closed order.

        """
        async with self._session_factory() as session:
            row = await session.get(PortfolioRow, SINGLETON_ID)
            initial = _money(row.initial_balance if row else None)
            open_cost = await session.scalar(
                select(func.coalesce(func.sum(OrderRow.total_cost), 0.0)).where(
                    OrderRow.status.in_(OPEN_STATUSES)
                )
            )
            realized = await session.scalar(
                select(func.coalesce(func.sum(OrderRow.pnl), 0.0)).where(
                    OrderRow.status.not_in(OPEN_STATUSES), OrderRow.pnl.is_not(None)
                )
            )
        return initial, _money(open_cost), _money(realized)

    async def set_balance(self, balance: Decimal, now: int) -> None:
        """Overwrite the cash balance (used only by the self-heal check).

        Args:
            balance: Corrected cash balance.
            now: Current time, epoch seconds.

        """
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(PortfolioRow)
                .where(PortfolioRow.id == SINGLETON_ID)
                .values(balance=float(balance), last_updated=now)
                .execution_options(synchronize_session=False)
            )

    async def reset(self, initial_balance: Decimal, now: int) -> None:
        """Delete all orders and logs and restart the account from scratch.

        Args:
            initial_balance: New starting cash.
            now: Current time, epoch seconds.

        """
        async with self._session_factory() as session, session.begin():
            for table in (OrderRow, ActivityRow, CycleLogRow, UsageHistoryRow):
                await session.execute(delete(table))
            await session.execute(delete(BotKVRow).where(BotKVRow.key != _LOCK_KEY))
            await session.execute(
                update(PortfolioRow)
                .where(PortfolioRow.id == SINGLETON_ID)
                .values(
                    balance=float(initial_balance),
                    initial_balance=float(initial_balance),
                    total_pnl=0.0,
                    last_updated=now,
                )
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                update(CostTrackerRow)
                .where(CostTrackerRow.id == SINGLETON_ID)
                .values(
                    total_calls=0,
                    total_input_tokens=0,
                    total_output_tokens=0,
                    total_cost_usd=0.0,
                    last_updated=now,
                )
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                update(BotStateRow)
                .where(BotStateRow.id == SINGLETON_ID)
                .values(analyzing=False, cycle_count=0, last_cycle_at=None, last_error=None)
                .execution_options(synchronize_session=False)
            )
        logger.warning("Portfolio reset to %s", initial_balance)

    # -- orders --------------------------------------------------------------

    async def insert_order_and_debit(self, order: Order, now: int) -> bool:
        """Insert a filled order and debit its cost in one transaction.

        The debit is conditional on sufficient cash, so two racing
        placements can never overdraw the account.

        Args:
            order: Order to insert.
            now: Current time, epoch seconds.

        Returns:
            ``True`` if inserted, ``False`` if cash was insufficient.

        """
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(PortfolioRow)
                .where(
                    PortfolioRow.id == SINGLETON_ID,
                    PortfolioRow.balance >= float(order.total_cost),
                )
                .values(
                    balance=PortfolioRow.balance - float(order.total_cost),
                    last_updated=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:  # pyright: ignore[reportAttributeAccessIssue]
                return False
            session.add(_to_row(order))
        return True

    async def get_order(self, order_id: str) -> Order | None:
        """Return one order by ID, or ``None``."""
        async with self._session_factory() as session:
            row = await session.get(OrderRow, order_id)
            return _to_order(row) if row else None

    async def get_orders(self, status: str | None = None, limit: int = 100) -> list[Order]:
        """Return the most recent orders, optionally filtered by status.

        Args:
            status: Status value to filter on.
            limit: Maximum rows to return.

        Returns:
            Orders, newest first.

        """
        stmt = select(OrderRow).order_by(OrderRow.created_at.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(OrderRow.status == status)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_order(r) for r in result.scalars().all()]

    async def get_resolution_candidates(self, now: int, zombie_cutoff: int) -> list[Order]:
        """Return open orders whose market should have ended.

        Args:
            now: Current time, epoch seconds.
            zombie_cutoff: Open orders with no end time created before this
                are also returned.

        Returns:
            Candidate orders, oldest end time first.

        """
        stmt = (
            select(OrderRow)
            .where(
                OrderRow.status.in_(OPEN_STATUSES),
                (OrderRow.end_ts < now)
                | (OrderRow.end_ts.is_(None) & (OrderRow.created_at < zombie_cutoff)),
            )
            .order_by(OrderRow.end_ts)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_order(r) for r in result.scalars().all()]

    async def mark_checked(self, order_id: str, now: int) -> None:
        """Stamp the last resolution poll time of an order."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id)
                .values(last_checked_at=now)
                .execution_options(synchronize_session=False)
            )

    async def close_order(
        self,
        order_id: str,
        *,
        status: OrderStatus,
        pnl: Decimal,
        credit: Decimal,
        now: int,
        resolution_price: Decimal | None = None,
    ) -> bool:
        """Move an open order to a closed status and settle cash atomically.

        Only an order still in an open status is updated, so calling this
        twice for the same order credits the account at most once.

        Args:
            order_id: Order to close.
            status: Target status (won, lost or cancelled).
            pnl: Realized profit or loss to record.
            credit: Cash to add back to the balance.
            now: Current time, epoch seconds.
            resolution_price: Price of the held outcome at settlement.

        Returns:
            ``True`` if this call closed the order, ``False`` if it was
            already closed.

        """
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(OrderRow)
                .where(OrderRow.id == order_id, OrderRow.status.in_(OPEN_STATUSES))
                .values(
                    status=status.value,
                    pnl=float(pnl),
                    resolved_at=now,
                    resolution_price=None if resolution_price is None else float(resolution_price),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:  # pyright: ignore[reportAttributeAccessIssue]
                return False
            await session.execute(
                update(PortfolioRow)
                .where(PortfolioRow.id == SINGLETON_ID)
                .values(
                    balance=PortfolioRow.balance + float(credit),
                    total_pnl=PortfolioRow.total_pnl + float(pnl),
                    last_updated=now,
                )
                .execution_options(synchronize_session=False)
            )
        return True

    async def get_performance(self) -> PerformanceHistory:
        """Return win/loss counts and realized pnl of settled orders."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    OrderRow.status,
                    func.count(),
                    func.coalesce(func.sum(OrderRow.pnl), 0.0),
                )
                .where(OrderRow.status.in_((OrderStatus.WON.value, OrderStatus.LOST.value)))
                .group_by(OrderRow.status)
            )
            rows = result.all()
        counts = {status: (count, pnl) for status, count, pnl in rows}
        wins, won_pnl = counts.get(OrderStatus.WON.value, (0, 0.0))
        losses, lost_pnl = counts.get(OrderStatus.LOST.value, (0, 0.0))
        return PerformanceHistory(
            wins=wins,
            losses=losses,
            total_pnl=_money(won_pnl) + _money(lost_pnl),
        )

    # -- activity and cycle logs ----------------------------------------------

    async def add_activity(
        self,
        message: str,
        entry_type: ActivityType,
        now: int,
        retention: int = 500,
    ) -> None:
        """Append an activity entry and prune the log to ``retention`` rows.

        Args:
            message: Operator-facing message.
            entry_type: Activity category.
            now: Current time, epoch seconds.
            retention: Number of most recent entries to keep.

        """
        async with self._session_factory() as session, session.begin():
            session.add(ActivityRow(timestamp=now, message=message, entry_type=entry_type.value))
            await session.flush()
            await _prune(session, ActivityRow, retention)

    async def get_activities(self, limit: int = 50) -> list[tuple[int, str, str]]:
        """Return recent activities as ``(timestamp, entry_type, message)``, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ActivityRow.timestamp, ActivityRow.entry_type, ActivityRow.message)
                .order_by(ActivityRow.id.desc())
                .limit(limit)
            )
            return [(ts, kind, msg) for ts, kind, msg in result.all()]

    async def add_cycle_log(self, retention: int = 50, **values: Any) -> None:
        """Insert a cycle log row and prune to ``retention`` rows.

        Args:
            retention: Number of most recent cycle logs to keep.
            **values: ``CycleLogRow`` column values.

        """
        async with self._session_factory() as session, session.begin():
            session.add(CycleLogRow(**values))
            await session.flush()
            await _prune(session, CycleLogRow, retention)

    async def count_cycle_logs_since(self, since: int, *, manual: bool | None = None) -> int:
        """Return how many cycle logs were written at or after ``since``.

        Args:
            since: Lower bound, epoch seconds.
            manual: Restrict to manual (``True``) or automatic (``False``) cycles.

        Returns:
            Row count.

        """
        stmt = select(func.count()).select_from(CycleLogRow).where(CycleLogRow.created_at >= since)
        if manual is not None:
            stmt = stmt.where(CycleLogRow.manual == manual)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one()

    # -- advisory cost ledger ---------------------------------------------------

    async def record_usage(
        self,
        usage: AdvisoryUsage,
        now: int,
        *,
        recommendations: int = 0,
        summary: str = "",
    ) -> None:
        """Add one advisory call to the running totals and the history.

        Args:
            usage: Token usage and cost of the call.
            now: Current time, epoch seconds.
            recommendations: Recommendations the call produced.
            summary: Advisory summary line.

        """
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(CostTrackerRow)
                .where(CostTrackerRow.id == SINGLETON_ID)
                .values(
                    total_calls=CostTrackerRow.total_calls + 1,
                    total_input_tokens=CostTrackerRow.total_input_tokens + usage.input_tokens,
                    total_output_tokens=CostTrackerRow.total_output_tokens + usage.output_tokens,
                    total_cost_usd=CostTrackerRow.total_cost_usd + float(usage.cost_usd),
                    last_updated=now,
                )
                .execution_options(synchronize_session=False)
            )
            session.add(
                UsageHistoryRow(
                    timestamp=now,
                    provider=usage.provider,
                    model=usage.model,
                    input_tokens=usage.input_tokens,
                    output_tokens=usage.output_tokens,
                    cost_usd=float(usage.cost_usd),
                    response_time_ms=usage.response_time_ms,
                    web_searches=usage.web_searches,
                    recommendations=recommendations,
                    summary=summary,
                )
            )

    async def get_cost_totals(self) -> tuple[int, Decimal]:
        """Return ``(total_calls, total_cost_usd)`` of the advisory ledger."""
        async with self._session_factory() as session:
            row = await session.get(CostTrackerRow, SINGLETON_ID)
        if row is None:
            return 0, ZERO
        return row.total_calls, _money(row.total_cost_usd)

    # -- bot state ---------------------------------------------------------------

    async def get_bot_state(self) -> BotStateRow:
        """Return the bot status singleton (detached)."""
        async with self._session_factory() as session:
            row = await session.get(BotStateRow, SINGLETON_ID)
        if row is None:
            return BotStateRow(id=SINGLETON_ID, analyzing=False, cycle_count=0)
        return row

    async def update_bot_state(self, **values: Any) -> None:
        """Update columns of the bot status singleton."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(BotStateRow)
                .where(BotStateRow.id == SINGLETON_ID)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    async def record_cycle(self, now: int, error: str | None = None) -> None:
        """Increment the cycle counter and stamp the last cycle time."""
        await self.update_bot_state(
            cycle_count=BotStateRow.cycle_count + 1,
            last_cycle_at=now,
            last_error=error,
        )

    # -- cycle lock ----------------------------------------------------------------

    async def try_acquire_lock(self, now: int, expiry_seconds: int) -> bool:
        """Acquire the cycle lock with a single compare-and-swap update.

        The lock row is taken only if it is free or was taken more than
        ``expiry_seconds`` ago, so of two racing invocations at most one
        sees an updated row.

        Args:
            now: Current time, epoch seconds.
            expiry_seconds: Age after which a held lock counts as abandoned.

        Returns:
            ``True`` if this call now holds the lock.

        """
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(BotKVRow)
                .where(
                    BotKVRow.key == _LOCK_KEY,
                    (BotKVRow.value != _LOCK_HELD) | (BotKVRow.updated_at < now - expiry_seconds),
                )
                .values(value=_LOCK_HELD, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1  # pyright: ignore[reportAttributeAccessIssue]

    async def release_lock(self) -> None:
        """Release the cycle lock unconditionally."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(BotKVRow)
                .where(BotKVRow.key == _LOCK_KEY)
                .values(value="")
                .execution_options(synchronize_session=False)
            )

    async def get_lock_acquired_at(self) -> int | None:
        """Return when the cycle lock was taken, or ``None`` if it is free."""
        async with self._session_factory() as session:
            row = await session.get(BotKVRow, _LOCK_KEY)
        if row is None or row.value != _LOCK_HELD:
            return None
        return row.updated_at

    # -- scheduler state -------------------------------------------------------------

    async def load_scheduler_state(self) -> SchedulerState:
        """Load the throttle timestamp and analyzed-market map."""
        async with self._session_factory() as session:
            last_call = await session.get(BotKVRow, _LAST_CALL_KEY)
            analyzed = await session.get(BotKVRow, _ANALYZED_KEY)
        analyzed_map: dict[str, int] = {}
        if analyzed is not None and analyzed.value:
            try:
                raw = json.loads(analyzed.value)
            except json.JSONDecodeError:
                logger.warning("Discarding corrupt analyzed map")
                raw = {}
            if isinstance(raw, dict):
                analyzed_map = {str(k): int(v) for k, v in raw.items()}  # pyright: ignore[reportUnknownArgumentType, reportUnknownVariableType]
        last_call_at = int(last_call.value) if last_call is not None and last_call.value else None
        return SchedulerState(last_call_at=last_call_at, analyzed=analyzed_map)

    async def save_scheduler_state(self, state: SchedulerState, now: int) -> None:
        """Persist the throttle timestamp and analyzed-market map."""
        last_call = "" if state.last_call_at is None else str(state.last_call_at)
        async with self._session_factory() as session, session.begin():
            await session.merge(BotKVRow(key=_LAST_CALL_KEY, value=last_call, updated_at=now))
            await session.merge(
                BotKVRow(key=_ANALYZED_KEY, value=json.dumps(state.analyzed), updated_at=now)
            )

    # -- catalog snapshot ------------------------------------------------------------

    async def load_catalog_snapshot(self) -> tuple[list[Market], int] | None:
        """Load the last good market catalog.

        Returns:
            ``(markets, fetched_at)``, or ``None`` if no snapshot was saved
            or the stored one cannot be decoded.

        """
        async with self._session_factory() as session:
            row = await session.get(BotKVRow, _CATALOG_KEY)
        if row is None or not row.value:
            return None
        try:
            markets = [_market_from_json(item) for item in json.loads(row.value)]
        except (json.JSONDecodeError, TypeError, KeyError, ArithmeticError) as exc:
            logger.warning("Discarding corrupt catalog snapshot: %s", exc)
            return None
        return markets, row.updated_at

    async def save_catalog_snapshot(self, markets: Sequence[Market], fetched_at: int) -> None:
        """Replace the stored catalog with ``markets`` fetched at ``fetched_at``."""
        value = json.dumps([_market_to_json(m) for m in markets])
        async with self._session_factory() as session, session.begin():
            await session.merge(BotKVRow(key=_CATALOG_KEY, value=value, updated_at=fetched_at))
        logger.debug("Saved catalog snapshot of %d markets", len(markets))

    async def close(self) -> None:
        """Dispose the async engine and release all connections."""
        await self._engine.dispose()
        logger.info("Database engine disposed")


async def _prune(session: AsyncSession, table: type[ActivityRow] | type[CycleLogRow], keep: int) -> None:
    """Delete all but the ``keep`` highest-ID rows of an append-only table."""
    cutoff = await session.scalar(
        select(table.id).order_by(table.id.desc()).offset(keep - 1).limit(1)
    )
    if cutoff is not None:
        await session.execute(delete(table).where(table.id < cutoff))


def _market_to_json(market: Market) -> dict[str, Any]:
    """Convert a market into a JSON-safe dict with amounts as strings."""
    fields = dataclasses.asdict(market)
    fields["outcomes"] = list(market.outcomes)
    fields["outcome_prices"] = [str(p) for p in market.outcome_prices]
    fields["volume"] = str(market.volume)
    fields["liquidity"] = str(market.liquidity)
    return fields


def _market_from_json(fields: dict[str, Any]) -> Market:
    """Rebuild a market stored by ``_market_to_json``."""
    return Market(
        **{
            **fields,
            "outcomes": tuple(fields["outcomes"]),
            "outcome_prices": tuple(Decimal(p) for p in fields["outcome_prices"]),
            "volume": Decimal(fields["volume"]),
            "liquidity": Decimal(fields["liquidity"]),
        }
    )


def _to_row(order: Order) -> OrderRow:
    """Convert a domain order into an ORM row."""
    return OrderRow(
        id=order.id,
        market_id=order.market_id,
        condition_id=order.condition_id,
        market_question=order.market_question,
        market_slug=order.market_slug,
        outcome=order.outcome,
        outcome_index=order.outcome_index,
        side=order.side,
        price=float(order.price),
        quantity=float(order.quantity),
        total_cost=float(order.total_cost),
        potential_payout=float(order.potential_payout),
        status=order.status.value,
        created_at=order.created_at,
        end_ts=order.end_ts,
        resolved_at=order.resolved_at,
        pnl=None if order.pnl is None else float(order.pnl),
        resolution_price=None if order.resolution_price is None else float(order.resolution_price),
        last_checked_at=order.last_checked_at,
        reasoning=order.reasoning,
    )


def _to_order(row: OrderRow) -> Order:
    """Convert an ORM row into a domain order."""
    return Order(
        id=row.id,
        market_id=row.market_id,
        condition_id=row.condition_id,
        market_question=row.market_question,
        market_slug=row.market_slug,
        outcome=row.outcome,
        outcome_index=row.outcome_index,
        side=row.side,
        price=_money(row.price),
        quantity=_money(row.quantity),
        total_cost=_money(row.total_cost),
        potential_payout=_money(row.potential_payout),
        status=OrderStatus(row.status),
        created_at=row.created_at,
        end_ts=row.end_ts,
        resolved_at=row.resolved_at,
        pnl=None if row.pnl is None else _money(row.pnl),
        resolution_price=None if row.resolution_price is None else _money(row.resolution_price),
        last_checked_at=row.last_checked_at,
        reasoning=row.reasoning,
    )
