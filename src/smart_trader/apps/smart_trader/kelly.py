"""Kelly criterion position sizer for binary outcome markets.

Turn a normalized recommendation into a stake in USD. The bankroll is the
available cash right now, so each bet placed shrinks the next one. Half
Kelly is the default, capped by the provider's risk profile, with extra
gates for lottery-priced outcomes and narrow temperature bins where
forecast noise swamps any edge.
"""

import logging
import re
from decimal import Decimal

from smart_trader.apps.smart_trader.config import KellyConfig
from smart_trader.apps.smart_trader.models import KellyResult, Recommendation
from smart_trader.clients.advisors.models import RiskProfile
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import ONE, ZERO, BetSide, floor_cents

logger = logging.getLogger(__name__)

_NARROW_BIN_RE = re.compile(
    r"\d+(?:\.\d+)?\s*(?:°\s*[cf])?\s*(?:to|and|-|–)\s*\d+(?:\.\d+)?\s*°\s*[cf]",
    re.IGNORECASE,
)
_EV_PRECISION = Decimal("0.000001")


def kelly_fraction(
    estimated_prob: Decimal,
    market_price: Decimal,
    *,
    fractional: Decimal = ONE,
) -> Decimal:
    """Return the recommended fraction of bankroll to wager.

    Compute the Kelly criterion for buying an outcome at ``market_price``,
    where a winning share pays ``b = 1 / market_price - 1`` per dollar:

        kelly = (p * b - q) / b = (p - market_price) / (1 - market_price)

    Args:
        estimated_prob: Estimated probability the bought outcome wins (0-1).
        market_price: Price of the bought outcome (0-1).
        fractional: Kelly fraction multiplier (e.g. 0.5 for half-Kelly).

    Returns:
        Fraction of bankroll to wager, ``ZERO`` when there is no edge.

    """
    if market_price <= ZERO or market_price >= ONE:
        return ZERO
    edge = estimated_prob - market_price
    if edge <= ZERO:
        return ZERO
    return edge / (ONE - market_price) * fractional


def is_narrow_bin(question: str) -> bool:
    """Return whether a question asks about a narrow temperature range like ``41-42°F``."""
    return _NARROW_BIN_RE.search(question) is not None


def size_position(
    rec: Recommendation,
    market: Market,
    bankroll: Decimal,
    batch_cost: Decimal,
    recs_in_batch: int,
    profile: RiskProfile,
    config: KellyConfig,
) -> KellyResult:
    """Size one recommendation against the current bankroll.

    Args:
        rec: Normalized recommendation; ``p_real`` is P(YES).
        market: The market with freshly fetched prices.
        bankroll: Available cash.
        batch_cost: Advisory cost of the batch that produced ``rec``.
        recs_in_batch: Recommendations sharing that cost.
        profile: Provider-specific confidence, edge and size gates.
        config: Shared sizing parameters.

    Returns:
        A ``KellyResult``; ``stake`` is zero and ``reason`` explains why when
        the bet is rejected.

    """
    cost_per_bet = batch_cost / max(1, recs_in_batch)
    outcome_index = rec.side.outcome_index
    yes_price = market.yes_price
    no_price = market.price_of(1) if len(market.outcome_prices) > 1 else ONE - yes_price
    price = no_price if rec.side is BetSide.NO else yes_price
    p_win = ONE - rec.p_real if rec.side is BetSide.NO else rec.p_real

    def reject(reason: str, edge: Decimal = ZERO, raw: Decimal = ZERO) -> KellyResult:
        logger.debug("Kelly reject %s: %s", market.id, reason)
        return KellyResult(
            market_id=market.id,
            edge=edge,
            raw_kelly=raw,
            fractional_kelly=ZERO,
            stake=ZERO,
            outcome_index=outcome_index,
            outcome_name=market.outcome_name(outcome_index),
            price=price,
            expected_value=ZERO,
            advisory_cost_per_bet=cost_per_bet,
            confidence=rec.confidence,
            reason=reason,
        )

    if rec.side is BetSide.SKIP:
        return reject("Advisory recommends SKIP")
    if bankroll < config.min_bet_usd:
        return reject(f"Bankroll ${bankroll:.2f} below minimum bet ${config.min_bet_usd:.2f}")
    if rec.confidence < profile.min_confidence:
        return reject(f"Confidence {rec.confidence} below minimum {profile.min_confidence}")
    if price < config.min_price:
        return reject(f"Price {price * 100:.1f}c below minimum {config.min_price * 100:.0f}c")
    if price > config.max_price:
        return reject(f"Price {price * 100:.1f}c above maximum {config.max_price * 100:.0f}c")
    lottery = price < config.lottery_price
    if lottery and rec.confidence < config.lottery_min_confidence:
        return reject(
            f"Lottery zone: price {price * 100:.1f}c needs confidence "
            f">= {config.lottery_min_confidence}, got {rec.confidence}"
        )

    gross_edge = p_win - price
    if is_narrow_bin(market.question):
        if rec.confidence < config.narrow_bin_min_confidence:
            return reject(
                f"Narrow bin: confidence {rec.confidence} below {config.narrow_bin_min_confidence}",
                gross_edge,
            )
        if gross_edge < config.narrow_bin_min_edge:
            return reject(
                f"Narrow bin: edge {gross_edge * 100:.1f}% below {config.narrow_bin_min_edge * 100:.0f}%",
                gross_edge,
            )

    raw = kelly_fraction(p_win, price)
    capped = min(raw * config.fraction, profile.max_bet_fraction)
    stake = bankroll * capped
    if lottery:
        stake = min(stake, bankroll * config.lottery_max_fraction)

    if stake < config.min_bet_usd:
        return reject(f"Stake ${stake:.2f} below minimum ${config.min_bet_usd:.2f}", gross_edge, raw)

    net_edge = gross_edge - cost_per_bet / stake
    if net_edge < profile.min_edge:
        return reject(
            f"Net edge {net_edge * 100:.1f}% below {profile.min_edge * 100:.1f}% after advisory cost",
            gross_edge,
            raw,
        )

    implied_return = (ONE - price) / price
    if implied_return < config.min_return:
        return reject(
            f"Return {implied_return * 100:.1f}% below {config.min_return * 100:.0f}%",
            gross_edge,
            raw,
        )

    stake = floor_cents(min(stake, bankroll * profile.max_bet_fraction))
    odds = ONE / price - ONE
    expected_value = (p_win * stake * odds - (ONE - p_win) * stake - cost_per_bet).quantize(_EV_PRECISION)

    logger.info(
        "Kelly %s %s @ %.3f: raw %.3f -> $%s (edge %.3f, EV $%s)",
        market.id,
        market.outcome_name(outcome_index),
        price,
        raw,
        stake,
        gross_edge,
        expected_value,
    )
    return KellyResult(
        market_id=market.id,
        edge=gross_edge,
        raw_kelly=raw,
        fractional_kelly=capped,
        stake=stake,
        outcome_index=outcome_index,
        outcome_name=market.outcome_name(outcome_index),
        price=price,
        expected_value=expected_value,
        advisory_cost_per_bet=cost_per_bet,
        confidence=rec.confidence,
        reason=f"Edge {gross_edge * 100:.1f}% | Kelly {capped * 100:.1f}% | EV ${expected_value:.3f}",
    )
