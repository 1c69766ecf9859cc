"""Trading cycle orchestrator.

Run one short-lived trading cycle: take the cycle lock, apply the
throttle and daily cap, load and reconcile the portfolio, build the
candidate pool, send exactly one batch to the advisory, size and place
the resulting bets, and persist the scheduler state. Every exit path
releases the lock and clears the manual "analyzing" flag.

State is never held between invocations in memory; it is read from and
written back to the repository through ``SchedulerState``.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from decimal import Decimal
from typing import Any

from smart_trader.apps.smart_trader.catalog import MarketCatalog
from smart_trader.apps.smart_trader.clustering import (
    dedupe,
    dedupe_recommendations,
    diversify,
    drop_open_conflicts,
)
from smart_trader.apps.smart_trader.config import TraderConfig
from smart_trader.apps.smart_trader.kelly import size_position
from smart_trader.apps.smart_trader.ledger import OrderLedger
from smart_trader.apps.smart_trader.models import (
    ActivityType,
    AdvisoryResult,
    CycleResult,
    KellyResult,
    Order,
    Recommendation,
)
from smart_trader.apps.smart_trader.pool import build_pool, filter_label
from smart_trader.apps.smart_trader.repository import TraderRepository
from smart_trader.apps.smart_trader.router import AdvisoryRouter
from smart_trader.clients.advisors.exceptions import AdvisoryError
from smart_trader.clients.advisors.pricing import model_pricing
from smart_trader.clients.advisors.protocols import AdvisoryProvider
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import ONE, ZERO, BetSide
from smart_trader.core.timestamps import SECONDS_PER_HOUR, SECONDS_PER_MINUTE, now_ts, start_of_utc_day

logger = logging.getLogger(__name__)

_PER_MILLION = Decimal(1_000_000)
_QUESTION_MATCH_CHARS = 40
_SHORTLIST_LOG_SIZE = 20


def locate_market(rec: Recommendation, pool: Sequence[Market]) -> Market | None:
    """Find the market a recommendation refers to.

    Match by ID, then by exact question, then by 40-character prefix
    containment in either direction.

    Args:
        rec: Advisory recommendation.
        pool: Markets the advisory could have seen.

    Returns:
        The matching market, or ``None``.

    """
    for market in pool:
        if market.id == rec.market_id:
            return market
    question = rec.question.lower().strip()
    if not question:
        return None
    for market in pool:
        if market.question.lower().strip() == question:
            return market
    prefix = question[:_QUESTION_MATCH_CHARS]
    for market in pool:
        candidate = market.question.lower()
        if prefix in candidate or candidate[:_QUESTION_MATCH_CHARS] in question:
            return market
    return None


class CycleOrchestrator:
    """Drive one trading cycle per invocation.

    Args:
        config: Trader configuration.
        repository: Persistent store for the account and scheduler state.
        catalog: Market catalog snapshot source.
        provider_factory: Builds the advisory provider; raises
            ``AdvisoryError`` when no credential is configured.

    """

    def __init__(
        self,
        config: TraderConfig,
        repository: TraderRepository,
        catalog: MarketCatalog,
        provider_factory: Callable[[], AdvisoryProvider],
    ) -> None:
        """Initialize the orchestrator."""
        self._config = config
        self._repo = repository
        self._catalog = catalog
        self._provider_factory = provider_factory
        self._ledger = OrderLedger(repository, config.cycle.activity_retention)

    @property
    def ledger(self) -> OrderLedger:
        """Return the order ledger used for placements."""
        return self._ledger

    async def run(self, *, manual: bool = False, chain: bool = False, now: int | None = None) -> CycleResult:
        """Run one trading cycle.

        Args:
            manual: Operator-triggered run; bypasses throttle and daily cap.
            chain: Follow-up call in a manual chain; keeps the analyzed cache
                and leaves the analyzing flag set on success.
            now: Current time, Unix seconds. Defaults to the wall clock.

        Returns:
            The cycle summary. Advisory failures are reported as
            ``partial=True`` rather than raised.

        """
        now = now_ts() if now is None else now
        keep_analyzing = False
        try:
            if manual:
                await self._start_manual(chain, now)
            try:
                provider = self._provider_factory()
            except AdvisoryError as exc:
                return await self._abort("no_credentials", f"Setup failed: {exc}", now, ok=False)

            try:
                if not await self._repo.try_acquire_lock(now, self._config.cycle.lock_expiry_seconds):
                    return await self._abort("locked", "Cycle lock held by another run", now, ok=False)
                try:
                    result = await self._run_locked(provider, manual=manual, now=now)
                finally:
                    await self._repo.release_lock()
            finally:
                await provider.close()
            keep_analyzing = chain and result.ok and result.error is None and result.has_more_markets
            return result
        except Exception as exc:
            logger.exception("Cycle failed")
            await self._repo.add_activity(
                f"Cycle failed: {str(exc)[:200]}",
                ActivityType.ERROR,
                now,
                self._config.cycle.activity_retention,
            )
            await self._repo.update_bot_state(last_error=str(exc)[:500])
            raise
        finally:
            if manual and not keep_analyzing:
                await self._repo.update_bot_state(analyzing=False, last_cycle_at=now)

    async def stop(self, now: int | None = None) -> None:
        """Operator stop: clear the analyzing flag and release the lock."""
        now = now_ts() if now is None else now
        await self._repo.update_bot_state(analyzing=False, last_error="Stopped by operator")
        await self._repo.release_lock()
        await self._activity("Stopped by operator", ActivityType.WARNING, now)
        logger.info("Stopped by operator")

    async def _start_manual(self, chain: bool, now: int) -> None:
        """Flag a manual run and reset the throttle (and cache unless chained)."""
        await self._repo.update_bot_state(analyzing=True, last_error=None, last_cycle_at=now)
        state = await self._repo.load_scheduler_state()
        state.last_call_at = None
        if not chain:
            state.analyzed = {}
        await self._repo.save_scheduler_state(state, now)

    async def _run_locked(self, provider: AdvisoryProvider, *, manual: bool, now: int) -> CycleResult:
        """Run the cycle body while holding the lock."""
        cycle_cfg = self._config.cycle
        state = await self._repo.load_scheduler_state()

        if not manual and state.last_call_at is not None:
            elapsed = now - state.last_call_at
            if elapsed < cycle_cfg.min_interval_seconds:
                wait = cycle_cfg.min_interval_seconds - elapsed
                return await self._abort("throttled", f"Throttle: next analysis in {wait}s", now)

        if not manual:
            today = await self._repo.count_cycle_logs_since(start_of_utc_day(now), manual=False)
            if today >= cycle_cfg.max_auto_cycles_per_day:
                return await self._abort(
                    "daily_cap",
                    f"Daily limit reached: {today}/{cycle_cfg.max_auto_cycles_per_day} automatic cycles today",
                    now,
                )

        portfolio = await self._ledger.load_portfolio(now)
        min_bet = self._config.kelly.min_bet_usd
        if portfolio.balance < min_bet:
            return await self._abort(
                "below_min_bet",
                f"Bankroll ${portfolio.balance:.2f} below minimum bet ${min_bet:.2f}",
                now,
                entry_type=ActivityType.WARNING,
            )
        mode = "Manual" if manual else "Automatic"
        await self._activity(f"{mode} cycle started, bankroll ${portfolio.balance:.2f}", ActivityType.INFO, now)

        snapshot = await self._catalog.snapshot(cycle_cfg.max_total_markets, now)
        if not snapshot.markets:
            return await self._abort(
                "no_markets", "Market catalog returned no markets", now, ok=False, entry_type=ActivityType.ERROR
            )
        if snapshot.stale:
            await self._activity("Market fetch failed, using previous snapshot", ActivityType.WARNING, now)

        open_orders = portfolio.open_orders
        pool, breakdown = build_pool(
            snapshot.markets,
            (o.market_id for o in open_orders),
            now,
            portfolio.balance,
            self._config.pool,
        )
        deduped = dedupe(pool)
        breakdown.cluster_merged = len(pool) - len(deduped)
        pool = drop_open_conflicts(deduped, open_orders)
        breakdown.broad_conflict = len(deduped) - len(pool)
        total_markets = len(snapshot.markets)
        await self._activity(
            f"Pool: {len(pool)} markets [{filter_label(breakdown.filter_level)}] "
            f"({breakdown.junk} junk, {breakdown.sports} sports, {breakdown.low_liquidity} low liquidity)",
            ActivityType.MARKET,
            now,
        )

        if not pool:
            message = "No eligible markets in timeframe"
            await self._repo.add_cycle_log(
                cycle_cfg.cycle_log_retention,
                created_at=now,
                manual=manual,
                total_markets=total_markets,
                breakdown=breakdown.as_dict(),
                shortlist=[],
                summary=message,
                error=message,
            )
            return await self._abort("empty_pool", message, now, total_markets=total_markets)

        analyzed = state.fresh_analyzed(now, cycle_cfg.analyzed_ttl_hours * SECONDS_PER_HOUR)
        state.analyzed = analyzed
        fresh = [m for m in pool if m.id not in analyzed]
        if not fresh and not manual:
            return await self._abort(
                "all_analyzed",
                f"All pool markets already analyzed ({len(analyzed)} cached)",
                now,
                pool_size=len(pool),
                total_markets=total_markets,
            )
        candidates = fresh or pool

        shortlist = diversify(candidates, min(len(candidates), self._config.pool.shortlist_size))
        batch = shortlist[: cycle_cfg.batch_size]
        batch_ids = {m.id for m in batch}
        has_more = any(m.id not in batch_ids for m in fresh)

        input_price, _ = model_pricing(provider.model)
        estimate = Decimal(cycle_cfg.estimated_tokens_per_batch) * input_price / _PER_MILLION
        if estimate > portfolio.balance * cycle_cfg.max_cost_fraction:
            return await self._abort(
                "cost_estimate",
                f"Advisory cost estimate ${estimate:.2f} exceeds "
                f"{cycle_cfg.max_cost_fraction * 100:.0f}% of bankroll",
                now,
                entry_type=ActivityType.WARNING,
                pool_size=len(pool),
                total_markets=total_markets,
            )

        history = await self._repo.get_performance()
        await self._activity(
            f"Sending {len(batch)} markets to {provider.name}", ActivityType.INFERENCE, now
        )

        router = AdvisoryRouter(provider, self._repo, cycle_cfg.max_edge)
        advice: AdvisoryResult | None = None
        error: str | None = None
        try:
            advice = await router.ask(batch, open_orders, portfolio.balance, history, now)
        except AdvisoryError as exc:
            error = str(exc)
            logger.warning("Advisory batch failed: %s", exc)
            await self._activity(f"Advisory batch failed: {error[:100]}", ActivityType.ERROR, now)

        bets = 0
        balance = portfolio.balance
        results: list[dict[str, Any]] = []
        if advice is not None:
            for market in batch:
                state.analyzed[market.id] = now
            await self._activity(
                f"{len(advice.recommendations)} recommendations for ${advice.usage.cost_usd:.4f}",
                ActivityType.INFERENCE,
                now,
            )
            bets, balance = await self._place_bets(advice, pool, balance, provider, results, now)

        if not manual:
            state.last_call_at = now
        await self._repo.save_scheduler_state(state, now)
        await self._write_cycle_log(
            manual=manual,
            now=now,
            total_markets=total_markets,
            pool_size=len(pool),
            breakdown=breakdown.as_dict(),
            shortlist=shortlist,
            advice=advice,
            bets=bets,
            results=results,
            error=error,
        )

        recs = len(advice.recommendations) if advice else 0
        cost = advice.usage.cost_usd if advice else ZERO
        if bets:
            await self._activity(f"{bets} bets placed, balance ${balance:.2f}", ActivityType.INFO, now)
        elif advice is not None:
            reason = "advisory found no mispricing" if recs == 0 else "sizer rejected every recommendation"
            await self._activity(f"0 bets from {recs} recommendations: {reason}", ActivityType.INFO, now)
        await self._repo.record_cycle(now, error)

        logger.info(
            "Cycle done: %d bets / %d recommendations / %d in pool, cost $%.4f%s",
            bets,
            recs,
            len(pool),
            cost,
            ", more markets remain" if has_more and error is None else "",
        )
        return CycleResult(
            ok=True,
            reason="done",
            bets_placed=bets,
            recommendations=recs,
            pool_size=len(pool),
            total_markets=total_markets,
            cost_usd=cost,
            balance=balance,
            has_more_markets=has_more and error is None,
            error=error,
            partial=error is not None,
        )

    async def _place_bets(
        self,
        advice: AdvisoryResult,
        pool: Sequence[Market],
        balance: Decimal,
        provider: AdvisoryProvider,
        results: list[dict[str, Any]],
        now: int,
    ) -> tuple[int, Decimal]:
        """Size and place each recommendation in turn.

        Later recommendations are sized against the cash left by earlier ones.

        Returns:
            ``(bets_placed, balance_after)``.

        """
        max_expiry = self._config.pool.max_expiry_hours * SECONDS_PER_HOUR
        max_edge = self._config.cycle.max_edge
        recs_in_batch = max(1, len(advice.recommendations))
        bets = 0

        for rec in dedupe_recommendations(advice.recommendations):
            market = locate_market(rec, pool)
            if market is None:
                logger.info("Recommendation for unknown market %s skipped", rec.market_id)
                results.append({"market_id": rec.market_id, "result": "market not found"})
                continue

            yes_price = market.yes_price
            no_price = market.price_of(1) if len(market.outcome_prices) > 1 else ONE - yes_price
            if rec.side is BetSide.YES:
                side_price, side_edge = yes_price, rec.p_real - yes_price
            else:
                side_price, side_edge = no_price, (ONE - rec.p_real) - no_price
            enriched = replace(rec, market_id=market.id, p_market=side_price, edge=side_edge)

            if side_edge <= ZERO:
                results.append({"market_id": market.id, "result": f"non-positive edge {side_edge:.3f}"})
                continue
            if side_edge > max_edge:
                results.append({"market_id": market.id, "result": f"edge {side_edge:.3f} above ceiling"})
                continue
            if market.end_ts is None or market.end_ts - now > max_expiry:
                results.append({"market_id": market.id, "result": "beyond max expiry"})
                continue

            kelly = size_position(
                enriched,
                market,
                balance,
                advice.usage.cost_usd,
                recs_in_batch,
                provider.risk_profile,
                self._config.kelly,
            )
            if not kelly.accepted:
                results.append({"market_id": market.id, "result": kelly.reason})
                continue

            placed = await self._ledger.place(
                market,
                kelly.outcome_index,
                kelly.stake / kelly.price,
                now,
                reasoning=_reasoning_blob(enriched, kelly, advice, provider, recs_in_batch, now),
            )
            if placed.order is None:
                results.append({"market_id": market.id, "result": placed.error or "order failed"})
                continue

            bets += 1
            balance = placed.portfolio.balance
            results.append({"market_id": market.id, "result": "placed", "order_id": placed.order.id})
            await self._activity(_bet_message(placed.order, kelly, market, now), ActivityType.ORDER, now)
        return bets, balance

    async def _write_cycle_log(
        self,
        *,
        manual: bool,
        now: int,
        total_markets: int,
        pool_size: int,
        breakdown: dict[str, int],
        shortlist: Sequence[Market],
        advice: AdvisoryResult | None,
        bets: int,
        results: list[dict[str, Any]],
        error: str | None,
    ) -> None:
        """Persist the diagnostics of one productive cycle."""
        usage = advice.usage if advice else None
        await self._repo.add_cycle_log(
            self._config.cycle.cycle_log_retention,
            created_at=now,
            manual=manual,
            total_markets=total_markets,
            pool_size=pool_size,
            breakdown=breakdown,
            shortlist=[
                {
                    "id": m.id,
                    "question": m.question,
                    "end_ts": m.end_ts,
                    "volume": str(m.volume),
                    "yes_price": str(m.yes_price),
                }
                for m in shortlist[:_SHORTLIST_LOG_SIZE]
            ],
            prompt=advice.prompt if advice else "",
            raw_response=advice.raw_response if advice else "",
            summary=advice.summary if advice else "",
            provider=usage.provider if usage else "",
            model=usage.model if usage else "",
            input_tokens=usage.input_tokens if usage else 0,
            output_tokens=usage.output_tokens if usage else 0,
            cost_usd=float(usage.cost_usd) if usage else 0.0,
            response_time_ms=usage.response_time_ms if usage else 0,
            recommendations=len(advice.recommendations) if advice else 0,
            bets_placed=bets,
            results=results,
            error=error,
        )

    async def _abort(
        self,
        reason: str,
        message: str,
        now: int,
        *,
        ok: bool = True,
        entry_type: ActivityType = ActivityType.INFO,
        pool_size: int = 0,
        total_markets: int = 0,
    ) -> CycleResult:
        """Record an early exit and build its result."""
        logger.info("Cycle aborted (%s): %s", reason, message)
        await self._activity(message, entry_type, now)
        if not ok:
            await self._repo.update_bot_state(last_error=message[:500])
        return CycleResult(
            ok=ok,
            reason=reason,
            pool_size=pool_size,
            total_markets=total_markets,
            error=None if ok else message,
        )

    async def _activity(self, message: str, entry_type: ActivityType, now: int) -> None:
        await self._repo.add_activity(message, entry_type, now, self._config.cycle.activity_retention)


def _reasoning_blob(
    rec: Recommendation,
    kelly: KellyResult,
    advice: AdvisoryResult,
    provider: AdvisoryProvider,
    recs_in_batch: int,
    now: int,
) -> dict[str, Any]:
    """Build the JSON context stored with an order."""
    return {
        "advisory": {
            "p_market": str(rec.p_market),
            "p_real": str(rec.p_real),
            "p_low": str(rec.p_low),
            "p_high": str(rec.p_high),
            "edge": str(rec.edge),
            "confidence": rec.confidence,
            "side": rec.side.value,
            "reasoning": rec.reasoning,
            "sources": list(rec.sources),
            "risks": rec.risks,
            "resolution_criteria": rec.resolution_criteria,
            "cluster_id": rec.cluster_id,
            "ev_net": None if rec.ev_net is None else str(rec.ev_net),
            "max_entry_price": None if rec.max_entry_price is None else str(rec.max_entry_price),
            "size_usd": None if rec.size_usd is None else str(rec.size_usd),
            "order_type": rec.order_type,
            "category": rec.category,
        },
        "kelly": kelly.as_dict(),
        "provider": provider.name,
        "model": provider.model,
        "cost_usd": str(advice.usage.cost_usd / recs_in_batch),
        "timestamp": now,
    }


def _bet_message(order: Order, kelly: KellyResult, market: Market, now: int) -> str:
    minutes_left = max(0, ((market.end_ts or now) - now) // SECONDS_PER_MINUTE)
    return (
        f'Bet {order.outcome} "{market.question[:40]}" @ {order.price * 100:.0f}c '
        f"| ${kelly.stake:.2f} | edge {kelly.edge * 100:.1f}% | {minutes_left}min left"
    )
