"""Candidate pool builder.

Filter the market catalog down to markets worth showing the advisory:
ending soon but not too soon, liquid enough to fill a bet, priced away
from the extremes, and not trivia or social-media counters. Every
rejection increments one named counter of the ``PoolBreakdown``.
"""

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal

from smart_trader.apps.smart_trader.categories import is_crypto, is_junk, is_stock, is_weather
from smart_trader.apps.smart_trader.config import PoolConfig
from smart_trader.apps.smart_trader.models import PoolBreakdown
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.timestamps import SECONDS_PER_HOUR, SECONDS_PER_MINUTE

logger = logging.getLogger(__name__)

FILTER_LEVEL_LABELS = ("Strict", "+Crypto", "+Crypto+Stocks")

_SPREAD_TABLE: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal(50_000), Decimal("0.01")),
    (Decimal(10_000), Decimal("0.025")),
    (Decimal(2_000), Decimal("0.045")),
    (Decimal(1_000), Decimal("0.06")),
)
_WIDEST_SPREAD = Decimal("0.08")


def estimate_spread(liquidity: Decimal) -> Decimal:
    """Estimate the bid-ask spread of a market from its liquidity.

    Args:
        liquidity: Market liquidity in USD.

    Returns:
        Estimated spread as a fraction of price.

    """
    for threshold, spread in _SPREAD_TABLE:
        if liquidity >= threshold:
            return spread
    return _WIDEST_SPREAD


def min_liquidity(bankroll: Decimal, config: PoolConfig) -> Decimal:
    """Return the liquidity floor for the current bankroll.

    Liquidity must cover ``liquidity_bankroll_multiple`` typical bets,
    clamped between ``liquidity_floor`` and ``liquidity_cap``.

    Args:
        bankroll: Available cash.
        config: Pool filter settings.

    Returns:
        Minimum liquidity in USD.

    """
    typical_bet = bankroll * config.liquidity_bet_fraction
    raw = max(config.liquidity_floor, config.liquidity_bankroll_multiple * typical_bet)
    return min(raw, config.liquidity_cap)


def filter_label(level: int) -> str:
    """Return the human-readable name of a pool filter level."""
    if 0 <= level < len(FILTER_LEVEL_LABELS):
        return FILTER_LEVEL_LABELS[level]
    return "?"


def build_pool(
    markets: Sequence[Market],
    open_market_ids: Iterable[str],
    now: int,
    bankroll: Decimal,
    config: PoolConfig,
) -> tuple[list[Market], PoolBreakdown]:
    """Filter the catalog down to biddable markets.

    Crypto and stock/macro markets are held back in fallback buckets that
    join the pool only while it has fewer than ``min_pool_target`` markets.
    Sports markets are always excluded.

    Args:
        markets: Catalog snapshot.
        open_market_ids: Market IDs already held by open orders.
        now: Current time, Unix seconds.
        bankroll: Available cash, used for the liquidity floor.
        config: Pool filter settings.

    Returns:
        ``(pool, breakdown)`` with the pool sorted by volume descending.

    """
    held = set(open_market_ids)
    breakdown = PoolBreakdown(total=len(markets))
    liquidity_floor = min_liquidity(bankroll, config)
    max_seconds = config.max_expiry_hours * SECONDS_PER_HOUR
    buffer_seconds = config.min_buffer_minutes * SECONDS_PER_MINUTE
    weather_seconds = config.weather_min_hours * SECONDS_PER_HOUR

    clean: list[Market] = []
    crypto_bucket: list[Market] = []
    stock_bucket: list[Market] = []

    for market in markets:
        if market.end_ts is None:
            breakdown.no_end_date += 1
            continue
        time_left = market.end_ts - now
        if time_left <= 0:
            breakdown.expired += 1
            continue
        if market.is_settled or market.closed or not market.active:
            breakdown.resolved += 1
            continue
        if time_left > max_seconds:
            breakdown.too_far_out += 1
            continue
        if time_left <= buffer_seconds:
            breakdown.too_close += 1
            continue

        question = market.question.lower()
        relaxed = is_weather(question) and time_left > weather_seconds
        liquidity_min = config.weather_min_liquidity if relaxed else liquidity_floor
        volume_min = config.weather_min_volume if relaxed else config.min_volume
        if market.liquidity < liquidity_min or market.volume < volume_min:
            breakdown.low_liquidity += 1
            continue
        if not relaxed and estimate_spread(market.liquidity) > config.max_spread:
            breakdown.wide_spread += 1
            continue

        yes_price = market.yes_price
        if yes_price <= config.price_floor or yes_price >= config.price_ceiling:
            breakdown.extreme_price += 1
            continue
        if is_junk(question):
            breakdown.junk += 1
            continue
        if market.id in held:
            breakdown.duplicate_open += 1
            continue

        if market.category == "sports":
            breakdown.sports += 1
        elif is_crypto(question):
            crypto_bucket.append(market)
        elif is_stock(question):
            stock_bucket.append(market)
        else:
            clean.append(market)

    pool = clean
    breakdown.crypto = len(crypto_bucket)
    breakdown.stocks = len(stock_bucket)
    if len(pool) < config.min_pool_target and crypto_bucket:
        pool.extend(crypto_bucket)
        breakdown.crypto = 0
        breakdown.filter_level = 1
    if len(pool) < config.min_pool_target and stock_bucket:
        pool.extend(stock_bucket)
        breakdown.stocks = 0
        breakdown.filter_level = 2

    pool.sort(key=lambda m: m.volume, reverse=True)
    breakdown.passed = len(pool)
    logger.info(
        "Pool: %d of %d markets passed [%s]",
        breakdown.passed,
        breakdown.total,
        filter_label(breakdown.filter_level),
    )
    return pool, breakdown
