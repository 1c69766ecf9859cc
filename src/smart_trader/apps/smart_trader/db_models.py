"""SQLAlchemy ORM models for the smart trader database.

Define the tables behind the simulated account: the portfolio singleton,
orders, the operator activity log, per-cycle logs, advisory cost ledger,
bot status flags and the key-value store holding scheduler state and the
cycle lock. Money columns are floats; the repository converts them to
``Decimal`` on the way out.
"""

from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

SINGLETON_ID = 1


class Base(DeclarativeBase):
    """Declarative base class for all smart trader ORM models."""


class PortfolioRow(Base):
    """Singleton row holding the simulated account balance.

    Attributes:
        id: Always ``SINGLETON_ID``.
        balance: Available cash in USD.
        initial_balance: Cash the account started with.
        total_pnl: Sum of realized profit and loss.
        last_updated: Last mutation, epoch seconds.

    """

    __tablename__ = "portfolio"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    balance: Mapped[float] = mapped_column(Float)
    initial_balance: Mapped[float] = mapped_column(Float)
    total_pnl: Mapped[float] = mapped_column(Float, default=0.0)
    last_updated: Mapped[int] = mapped_column(BigInteger, default=0)


class OrderRow(Base):
    """A simulated position.

    Attributes:
        id: Order identifier (``paper_<ms>_<suffix>``).
        market_id: Gamma market ID (indexed).
        status: Lifecycle state (indexed).
        end_ts: Market end time, epoch seconds.
        last_checked_at: Last resolution poll, epoch seconds.
        reasoning: Advisory and sizing context as JSON.

    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    market_id: Mapped[str] = mapped_column(String, index=True)
    condition_id: Mapped[str] = mapped_column(String, default="")
    market_question: Mapped[str] = mapped_column(Text)
    market_slug: Mapped[str] = mapped_column(String, default="")
    outcome: Mapped[str] = mapped_column(String)
    outcome_index: Mapped[int] = mapped_column(Integer)
    side: Mapped[str] = mapped_column(String, default="BUY")
    price: Mapped[float] = mapped_column(Float)
    quantity: Mapped[float] = mapped_column(Float)
    total_cost: Mapped[float] = mapped_column(Float)
    potential_payout: Mapped[float] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[int] = mapped_column(BigInteger)
    end_ts: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    resolved_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    pnl: Mapped[float | None] = mapped_column(Float, nullable=True)
    resolution_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_checked_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    reasoning: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (Index("ix_orders_status_end", "status", "end_ts"),)


class ActivityRow(Base):
    """One operator-facing activity log entry."""

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, index=True)
    message: Mapped[str] = mapped_column(Text)
    entry_type: Mapped[str] = mapped_column(String)


class CycleLogRow(Base):
    """Diagnostics of one trading cycle that reached the pool stage."""

    __tablename__ = "cycle_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[int] = mapped_column(BigInteger, index=True)
    manual: Mapped[bool] = mapped_column(Boolean, default=False)
    total_markets: Mapped[int] = mapped_column(Integer, default=0)
    pool_size: Mapped[int] = mapped_column(Integer, default=0)
    breakdown: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    shortlist: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    prompt: Mapped[str] = mapped_column(Text, default="")
    raw_response: Mapped[str] = mapped_column(Text, default="")
    summary: Mapped[str] = mapped_column(Text, default="")
    provider: Mapped[str] = mapped_column(String, default="")
    model: Mapped[str] = mapped_column(String, default="")
    input_tokens: Mapped[int] = mapped_column(Integer, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    response_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    recommendations: Mapped[int] = mapped_column(Integer, default=0)
    bets_placed: Mapped[int] = mapped_column(Integer, default=0)
    results: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


class CostTrackerRow(Base):
    """Singleton row of running advisory cost totals."""

    __tablename__ = "ai_cost_tracker"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    total_calls: Mapped[int] = mapped_column(Integer, default=0)
    total_input_tokens: Mapped[int] = mapped_column(BigInteger, default=0)
    total_output_tokens: Mapped[int] = mapped_column(BigInteger, default=0)
    total_cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    last_updated: Mapped[int] = mapped_column(BigInteger, default=0)


class UsageHistoryRow(Base):
    """Token usage of one advisory call."""

    __tablename__ = "ai_usage_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, index=True)
    provider: Mapped[str] = mapped_column(String)
    model: Mapped[str] = mapped_column(String)
    input_tokens: Mapped[int] = mapped_column(Integer)
    output_tokens: Mapped[int] = mapped_column(Integer)
    cost_usd: Mapped[float] = mapped_column(Float)
    response_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    web_searches: Mapped[int] = mapped_column(Integer, default=0)
    recommendations: Mapped[int] = mapped_column(Integer, default=0)
    summary: Mapped[str] = mapped_column(Text, default="")


class BotStateRow(Base):
    """Singleton row of operator-visible bot status flags."""

    __tablename__ = "bot_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    analyzing: Mapped[bool] = mapped_column(Boolean, default=False)
    cycle_count: Mapped[int] = mapped_column(Integer, default=0)
    last_cycle_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)


class BotKVRow(Base):
    """Key-value entry for scheduler state and the cycle lock."""

    __tablename__ = "bot_kv"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, default="")
    updated_at: Mapped[int] = mapped_column(BigInteger, default=0)
