"""Configuration dataclasses for the smart trader.

Hold every tuneable threshold of the trading cycle in immutable records so
a single invocation cannot mutate them mid-run. ``load_trader_config``
builds them from the YAML settings, falling back to the defaults below
for any missing key.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, TypeVar

from smart_trader.core.config import ConfigError, ConfigLoader, get_config

_DEFAULT_DB_URL = "sqlite+aiosqlite:///smart_trader.db"
_DEFAULT_GAMMA_URL = "https://gamma-api.polymarket.com"
_DEFAULT_INITIAL_BALANCE = Decimal(100)

_ConfigT = TypeVar("_ConfigT")


@dataclass(frozen=True)
class PoolConfig:
    """Filters applied when building the candidate pool.

    Attributes:
        max_expiry_hours: Reject markets ending further out than this.
        min_buffer_minutes: Reject markets ending within this many minutes.
        min_volume: Volume floor in USD.
        liquidity_floor: Lower bound of the bankroll-scaled liquidity floor.
        liquidity_cap: Upper bound of the bankroll-scaled liquidity floor.
        liquidity_bankroll_multiple: Liquidity must cover this many
            max-size bets (``bankroll * liquidity_bet_fraction``).
        liquidity_bet_fraction: Bankroll fraction of a typical bet.
        weather_min_hours: Weather relaxation applies only beyond this horizon.
        weather_min_liquidity: Relaxed liquidity floor for weather markets.
        weather_min_volume: Relaxed volume floor for weather markets.
        max_spread: Maximum estimated spread.
        price_floor: Reject YES prices at or below this.
        price_ceiling: Reject YES prices at or above this.
        min_pool_target: Below this size the crypto and stock buckets are added.
        shortlist_size: Maximum markets kept after diversification.

    """

    max_expiry_hours: int = 120
    min_buffer_minutes: int = 10
    min_volume: Decimal = Decimal(300)
    liquidity_floor: Decimal = Decimal(1500)
    liquidity_cap: Decimal = Decimal(10000)
    liquidity_bankroll_multiple: Decimal = Decimal(50)
    liquidity_bet_fraction: Decimal = Decimal("0.025")
    weather_min_hours: int = 12
    weather_min_liquidity: Decimal = Decimal(500)
    weather_min_volume: Decimal = Decimal(300)
    max_spread: Decimal = Decimal("0.08")
    price_floor: Decimal = Decimal("0.05")
    price_ceiling: Decimal = Decimal("0.95")
    min_pool_target: int = 15
    shortlist_size: int = 50


@dataclass(frozen=True)
class KellyConfig:
    """Sizing parameters shared by every provider.

    Per-provider confidence, edge and bet-fraction gates live in
    ``RiskProfile``; these apply on top of them.
    """

    fraction: Decimal = Decimal("0.5")
    min_bet_usd: Decimal = Decimal(1)
    min_price: Decimal = Decimal("0.02")
    max_price: Decimal = Decimal("0.98")
    min_return: Decimal = Decimal("0.03")
    lottery_price: Decimal = Decimal("0.20")
    lottery_min_confidence: int = 70
    lottery_max_fraction: Decimal = Decimal("0.03")
    narrow_bin_min_confidence: int = 75
    narrow_bin_min_edge: Decimal = Decimal("0.12")


@dataclass(frozen=True)
class CycleConfig:
    """Scheduling, batching and guard parameters of the trading cycle."""

    min_interval_seconds: int = 180
    analyzed_ttl_hours: int = 12
    batch_size: int = 5
    max_auto_cycles_per_day: int = 5
    lock_expiry_seconds: int = 300
    max_edge: Decimal = Decimal("0.40")
    estimated_tokens_per_batch: int = 220_000
    max_cost_fraction: Decimal = Decimal("0.05")
    cycle_log_retention: int = 50
    activity_retention: int = 500
    max_total_markets: int = 3000


@dataclass(frozen=True)
class ResolutionConfig:
    """Settlement polling parameters."""

    cooldown_seconds: int = 300
    retry_delay_seconds: float = 2.0
    zombie_age_days: int = 7
    winner_threshold: Decimal = Decimal("0.95")


def _empty_credentials() -> dict[str, tuple[str, str]]:
    """Create an empty credentials mapping."""
    return {}


@dataclass(frozen=True)
class AdvisoryConfig:
    """Advisory provider selection and call options.

    Attributes:
        provider: Preferred provider identifier.
        credentials: ``{provider: (api_key, model)}``.
        timeout_seconds: Per-call timeout.
        max_tokens: Maximum completion tokens.
        temperature: Sampling temperature.

    """

    provider: str = "anthropic"
    credentials: dict[str, tuple[str, str]] = field(default_factory=_empty_credentials)
    timeout_seconds: float = 120.0
    max_tokens: int = 8192
    temperature: float = 0.3


@dataclass(frozen=True)
class TraderConfig:
    """Top-level configuration of one smart trader deployment."""

    db_url: str = _DEFAULT_DB_URL
    gamma_url: str = _DEFAULT_GAMMA_URL
    page_size: int = 500
    http_timeout_seconds: float = 15.0
    initial_balance: Decimal = _DEFAULT_INITIAL_BALANCE
    pool: PoolConfig = field(default_factory=PoolConfig)
    kelly: KellyConfig = field(default_factory=KellyConfig)
    cycle: CycleConfig = field(default_factory=CycleConfig)
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    advisory: AdvisoryConfig = field(default_factory=AdvisoryConfig)


def load_trader_config(loader: ConfigLoader | None = None) -> TraderConfig:
    """Build a ``TraderConfig`` from YAML settings.

    Args:
        loader: Config loader to read from. Defaults to the global singleton.

    Returns:
        The assembled configuration.

    Raises:
        ConfigError: If a value cannot be converted to its field type.

    """
    cfg = loader or get_config()
    polymarket = cfg.get_section("polymarket")
    advisory = cfg.get_section("advisory")
    providers: dict[str, Any] = advisory.get("providers") or {}
    credentials = {
        name: (str(entry.get("api_key") or ""), str(entry.get("model") or ""))
        for name, entry in providers.items()
        if isinstance(entry, dict)
    }
    return TraderConfig(
        db_url=str(cfg.get("database.url", _DEFAULT_DB_URL)),
        gamma_url=str(polymarket.get("gamma_url", _DEFAULT_GAMMA_URL)),
        page_size=int(polymarket.get("page_size", 500)),
        http_timeout_seconds=float(polymarket.get("timeout_seconds", 15)),
        initial_balance=_decimal(cfg.get("portfolio.initial_balance", _DEFAULT_INITIAL_BALANCE)),
        pool=_build(PoolConfig, cfg.get_section("pool")),
        kelly=_build(KellyConfig, cfg.get_section("kelly")),
        cycle=_build(
            CycleConfig,
            {**cfg.get_section("cycle"), "max_total_markets": polymarket.get("max_total", 3000)},
        ),
        resolution=_build(ResolutionConfig, cfg.get_section("resolution")),
        advisory=AdvisoryConfig(
            provider=str(advisory.get("provider") or "anthropic"),
            credentials=credentials,
            timeout_seconds=float(advisory.get("timeout_seconds", 120)),
            max_tokens=int(advisory.get("max_tokens", 8192)),
            temperature=float(advisory.get("temperature", 0.3)),
        ),
    )


def _build(cls: type[_ConfigT], section: dict[str, Any]) -> _ConfigT:
    """Instantiate a config dataclass, coercing values to each field's default type.

    Unknown keys are ignored so settings files can carry extra entries.

    Args:
        cls: Frozen config dataclass.
        section: Raw YAML section.

    Returns:
        The populated dataclass.

    Raises:
        ConfigError: If a value cannot be converted.

    """
    defaults = cls()
    kwargs: dict[str, Any] = {}
    for name, raw in section.items():
        if not hasattr(defaults, name) or raw is None:
            continue
        current = getattr(defaults, name)
        try:
            if isinstance(current, Decimal):
                kwargs[name] = _decimal(raw)
            elif isinstance(current, bool):
                kwargs[name] = bool(raw)
            else:
                kwargs[name] = type(current)(raw)
        except (TypeError, ValueError) as exc:
            msg = f"Invalid value for {cls.__name__}.{name}: {raw!r}"
            raise ConfigError(msg) from exc
    return cls(**kwargs)


def _decimal(value: Any) -> Decimal:
    """Convert a YAML scalar to ``Decimal`` via ``str``.

    Raises:
        ValueError: If the value is not numeric.

    """
    try:
        return Decimal(str(value))
    except ArithmeticError as exc:
        msg = f"Not a number: {value!r}"
        raise ValueError(msg) from exc
