"""Shared helpers for smart trader CLI commands.

Centralise verbose logging setup, configuration loading, and construction
of the repository, market catalog and advisory provider that every command
needs.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import typer

from smart_trader.apps.smart_trader.catalog import MarketCatalog
from smart_trader.apps.smart_trader.config import TraderConfig, load_trader_config
from smart_trader.apps.smart_trader.orchestrator import CycleOrchestrator
from smart_trader.apps.smart_trader.repository import TraderRepository
from smart_trader.clients.advisors.factory import select_provider
from smart_trader.clients.advisors.protocols import AdvisoryProvider
from smart_trader.clients.polymarket.client import PolymarketClient
from smart_trader.core.config import ConfigError
from smart_trader.core.timestamps import now_ts

MAX_QUESTION_LEN = 58


def configure_verbose_logging() -> None:
    """Enable INFO-level logging for cycle and sweep output."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(message)s",
        datefmt="%H:%M:%S",
    )


def load_config_or_exit() -> TraderConfig:
    """Load the trader configuration, aborting the command on bad settings."""
    try:
        return load_trader_config()
    except ConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def provider_factory(config: TraderConfig) -> Callable[[], AdvisoryProvider]:
    """Return a zero-argument callable that builds the configured provider.

    Args:
        config: Trader configuration holding advisory credentials.

    Returns:
        Callable that raises ``AdvisoryError`` when no provider has a key.

    """
    advisory = config.advisory

    def build() -> AdvisoryProvider:
        return select_provider(
            advisory.provider,
            advisory.credentials,
            timeout=advisory.timeout_seconds,
            max_tokens=advisory.max_tokens,
            temperature=advisory.temperature,
        )

    return build


@dataclass(frozen=True)
class Services:
    """Collaborators wired for one CLI invocation."""

    config: TraderConfig
    repository: TraderRepository
    catalog: MarketCatalog
    orchestrator: CycleOrchestrator


@asynccontextmanager
async def open_services(config: TraderConfig) -> AsyncIterator[Services]:
    """Open the database and market client for one command.

    The database schema is created on first use and the portfolio seeded
    with the configured initial balance.

    Args:
        config: Trader configuration.

    Yields:
        Wired services; the database engine and HTTP client are closed on exit.

    """
    repository = TraderRepository(config.db_url)
    client = PolymarketClient(
        base_url=config.gamma_url,
        timeout=config.http_timeout_seconds,
        page_size=config.page_size,
    )
    try:
        await repository.init_db(config.initial_balance, now_ts())
        catalog = MarketCatalog(client, repository)
        orchestrator = CycleOrchestrator(config, repository, catalog, provider_factory(config))
        yield Services(
            config=config,
            repository=repository,
            catalog=catalog,
            orchestrator=orchestrator,
        )
    finally:
        await client.close()
        await repository.close()


def truncate(text: str, length: int = MAX_QUESTION_LEN) -> str:
    """Shorten ``text`` to ``length`` characters for tabular output."""
    return text[:length] if len(text) > length else text
