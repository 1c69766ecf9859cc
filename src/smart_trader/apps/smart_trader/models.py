"""Data models for the smart trader pipeline.

Define the value objects that flow through one trading cycle: advisory
recommendations and usage, Kelly sizing results, simulated orders and the
portfolio snapshot, the persisted scheduler state, and the summaries each
cycle and resolution sweep return to the caller.
"""

from dataclasses import dataclass, field, fields
from decimal import Decimal
from enum import Enum
from typing import Any

from smart_trader.core.models import ZERO, BetSide


class OrderStatus(Enum):
    """Lifecycle state of a simulated order."""

    PENDING = "pending"
    FILLED = "filled"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"
    RESOLVED = "resolved"


OPEN_STATUSES: tuple[str, ...] = (OrderStatus.PENDING.value, OrderStatus.FILLED.value)
SETTLED_STATUSES: tuple[str, ...] = (OrderStatus.WON.value, OrderStatus.LOST.value)


class ActivityType(Enum):
    """Category of an operator-facing activity log entry."""

    INFO = "Info"
    MARKET = "Market"
    INFERENCE = "Inference"
    ORDER = "Order"
    RESOLVED = "Resolved"
    WARNING = "Warning"
    ERROR = "Error"


@dataclass
class PoolBreakdown:
    """Per-reason rejection counters from one pool build.

    Used only for diagnostics and the cycle log; never drives decisions.
    """

    total: int = 0
    no_end_date: int = 0
    expired: int = 0
    resolved: int = 0
    too_far_out: int = 0
    too_close: int = 0
    low_liquidity: int = 0
    wide_spread: int = 0
    extreme_price: int = 0
    junk: int = 0
    duplicate_open: int = 0
    sports: int = 0
    crypto: int = 0
    stocks: int = 0
    passed: int = 0
    filter_level: int = 0
    cluster_merged: int = 0
    broad_conflict: int = 0

    def as_dict(self) -> dict[str, int]:
        """Return the counters as a plain dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class Recommendation:
    """One normalized advisory recommendation on a binary market.

    ``p_real`` is always the probability of the first outcome (YES) after
    normalization, and ``side`` agrees with ``p_real`` versus ``p_market``.

    Args:
        market_id: Gamma market ID as echoed by the advisory.
        question: Market question as echoed by the advisory.
        p_real: Advisory probability of YES.
        p_market: Market YES price the advisory saw.
        p_low: Lower bound of the credible interval.
        p_high: Upper bound of the credible interval.
        edge: ``|p_real - p_market|``.
        confidence: Advisory confidence, 0-100.
        side: Recommended side.
        reasoning: Free-text justification.
        sources: Cited sources.
        risks: Free-text risks.
        resolution_criteria: How the market resolves, per the advisory.
        cluster_id: Advisory-assigned cluster of mutually exclusive markets.
        ev_net: Advisory estimate of net expected value.
        max_entry_price: Advisory limit price hint.
        size_usd: Advisory stake hint.
        order_type: Advisory order type hint.
        category: Advisory category label.

    """

    market_id: str
    question: str
    p_real: Decimal
    p_market: Decimal
    side: BetSide
    confidence: int
    edge: Decimal = ZERO
    p_low: Decimal = ZERO
    p_high: Decimal = ZERO
    reasoning: str = ""
    sources: tuple[str, ...] = ()
    risks: str = ""
    resolution_criteria: str = ""
    cluster_id: str | None = None
    ev_net: Decimal | None = None
    max_entry_price: Decimal | None = None
    size_usd: Decimal | None = None
    order_type: str | None = None
    category: str | None = None


@dataclass(frozen=True)
class SkippedMarket:
    """A market the advisory explicitly declined, with its reason."""

    market_id: str
    question: str
    reason: str


@dataclass(frozen=True)
class AdvisoryUsage:
    """Token usage and cost of one advisory call."""

    provider: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: Decimal = ZERO
    response_time_ms: int = 0
    web_searches: int = 0


@dataclass(frozen=True)
class AdvisoryResult:
    """Parsed outcome of one advisory call.

    Args:
        recommendations: Normalized, guard-passing recommendations.
        skipped: Markets the advisory declined.
        usage: Token usage and cost.
        summary: Advisory's own summary line.
        prompt: Prompt sent.
        raw_response: Raw text received.
        dropped: Recommendations discarded by parsing guards.

    """

    recommendations: tuple[Recommendation, ...]
    skipped: tuple[SkippedMarket, ...]
    usage: AdvisoryUsage
    summary: str = ""
    prompt: str = ""
    raw_response: str = ""
    dropped: int = 0


@dataclass(frozen=True)
class KellyResult:
    """Outcome of sizing one recommendation.

    A ``stake`` of zero means the bet was rejected and ``reason`` says why.
    """

    market_id: str
    edge: Decimal
    raw_kelly: Decimal
    fractional_kelly: Decimal
    stake: Decimal
    outcome_index: int
    outcome_name: str
    price: Decimal
    expected_value: Decimal
    advisory_cost_per_bet: Decimal
    confidence: int
    reason: str

    @property
    def accepted(self) -> bool:
        """Return whether the sizer produced a positive stake."""
        return self.stake > ZERO

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly dictionary for the order reasoning blob."""
        return {
            "market_id": self.market_id,
            "edge": str(self.edge),
            "raw_kelly": str(self.raw_kelly),
            "fractional_kelly": str(self.fractional_kelly),
            "stake": str(self.stake),
            "outcome_index": self.outcome_index,
            "outcome_name": self.outcome_name,
            "price": str(self.price),
            "expected_value": str(self.expected_value),
            "advisory_cost_per_bet": str(self.advisory_cost_per_bet),
            "confidence": self.confidence,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Order:
    """A simulated position.

    Args:
        id: Order identifier (``paper_<ms>_<suffix>``).
        market_id: Gamma market ID.
        condition_id: Market condition ID.
        market_question: Market question at fill time.
        market_slug: Market slug.
        outcome: Outcome label bought.
        outcome_index: Index of the outcome bought.
        side: ``"BUY"``; positions are only ever opened long one outcome.
        price: Fill price per share.
        quantity: Shares bought.
        total_cost: Cash debited.
        potential_payout: Cash credited on a win (equals ``quantity``).
        status: Lifecycle state.
        created_at: Fill time, Unix seconds.
        end_ts: Market end time, Unix seconds, if known.
        resolved_at: Settlement time, Unix seconds.
        pnl: Realized profit or loss once settled.
        resolution_price: Price of the held outcome at settlement.
        last_checked_at: Last resolution poll, Unix seconds.
        reasoning: Advisory and sizing context.

    """

    id: str
    market_id: str
    market_question: str
    outcome: str
    outcome_index: int
    price: Decimal
    quantity: Decimal
    total_cost: Decimal
    potential_payout: Decimal
    status: OrderStatus
    created_at: int
    condition_id: str = ""
    market_slug: str = ""
    side: str = "BUY"
    end_ts: int | None = None
    resolved_at: int | None = None
    pnl: Decimal | None = None
    resolution_price: Decimal | None = None
    last_checked_at: int | None = None
    reasoning: dict[str, Any] | None = None

    @property
    def is_open(self) -> bool:
        """Return whether the order still awaits settlement."""
        return self.status.value in OPEN_STATUSES


def _empty_orders() -> tuple[Order, ...]:
    """Create an empty order tuple."""
    return ()


@dataclass(frozen=True)
class Portfolio:
    """Snapshot of the simulated account.

    Args:
        balance: Available cash.
        initial_balance: Cash the account started with.
        total_pnl: Sum of realized profit and loss.
        last_updated: Last mutation time, Unix seconds.
        open_orders: Orders still awaiting settlement.

    """

    balance: Decimal
    initial_balance: Decimal
    total_pnl: Decimal = ZERO
    last_updated: int = 0
    open_orders: tuple[Order, ...] = field(default_factory=_empty_orders)

    @property
    def open_exposure(self) -> Decimal:
        """Return cash currently tied up in open orders."""
        return sum((o.total_cost for o in self.open_orders), ZERO)


@dataclass(frozen=True)
class PlaceResult:
    """Outcome of an order placement attempt."""

    order: Order | None
    portfolio: Portfolio
    error: str | None = None


@dataclass(frozen=True)
class PerformanceHistory:
    """Settled-trade statistics included in the advisory prompt."""

    wins: int = 0
    losses: int = 0
    total_pnl: Decimal = ZERO

    @property
    def total_trades(self) -> int:
        """Return the number of settled trades."""
        return self.wins + self.losses

    @property
    def win_rate(self) -> Decimal:
        """Return the win percentage, 0-100."""
        if self.total_trades == 0:
            return ZERO
        return Decimal(self.wins * 100) / Decimal(self.total_trades)


def _empty_analyzed() -> dict[str, int]:
    """Create an empty analyzed-market map."""
    return {}


@dataclass
class SchedulerState:
    """Throttle state persisted between cycle invocations.

    Attributes:
        last_call_at: Time of the last automatic advisory call, Unix seconds.
        analyzed: ``{market_id: analyzed_at}`` for recently analyzed markets.

    """

    last_call_at: int | None = None
    analyzed: dict[str, int] = field(default_factory=_empty_analyzed)

    def fresh_analyzed(self, now: int, ttl_seconds: int) -> dict[str, int]:
        """Return the analyzed entries younger than the TTL."""
        return {mid: ts for mid, ts in self.analyzed.items() if now - ts < ttl_seconds}


@dataclass(frozen=True)
class CycleResult:
    """Summary returned by one trading cycle invocation.

    Args:
        ok: ``False`` for fatal setup failures and lock contention; routine
            skips (throttle, daily cap, empty pool) are ``True``.
        reason: Short machine-friendly reason for an abort, or ``"done"``.
        bets_placed: Orders placed in this invocation.
        recommendations: Recommendations received from the advisory.
        pool_size: Markets left after filtering and diversification.
        total_markets: Markets in the fetched catalog.
        cost_usd: Advisory cost of this invocation.
        balance: Cash after the cycle.
        has_more_markets: Whether fresh markets remain for a chained call.
        error: Error message when a batch failed.
        partial: Whether the batch failed after the cycle began.

    """

    ok: bool
    reason: str
    bets_placed: int = 0
    recommendations: int = 0
    pool_size: int = 0
    total_markets: int = 0
    cost_usd: Decimal = ZERO
    balance: Decimal | None = None
    has_more_markets: bool = False
    error: str | None = None
    partial: bool = False


@dataclass(frozen=True)
class ResolutionOutcome:
    """Settlement of one order."""

    order_id: str
    market_question: str
    status: OrderStatus
    pnl: Decimal
    winning_outcome: str


@dataclass
class ResolutionReport:
    """Summary of one resolution sweep."""

    checked: int = 0
    resolved: list[ResolutionOutcome] = field(default_factory=list)
    skipped_cooldown: int = 0
    still_open: int = 0
    errors: list[str] = field(default_factory=list)
