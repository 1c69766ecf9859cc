"""Shared fixtures for smart trader application tests."""

from collections.abc import AsyncIterator
from decimal import Decimal

import pytest_asyncio

from smart_trader.apps.smart_trader.repository import TraderRepository

INITIAL_BALANCE = Decimal(100)


@pytest_asyncio.fixture
async def repo() -> AsyncIterator[TraderRepository]:
    """Create an in-memory SQLite repository seeded with a $100 portfolio.

    Yields:
        Initialised TraderRepository with an in-memory database.

    """
    repository = TraderRepository("sqlite+aiosqlite:///:memory:")
    await repository.init_db(INITIAL_BALANCE, now=0)
    yield repository
    await repository.close()
