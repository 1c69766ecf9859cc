"""Shared test configuration and fixtures."""

import os
from collections.abc import Iterator
from unittest.mock import patch

import pytest

_PROVIDER_KEY_VARS = (
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "XAI_API_KEY",
    "DEEPSEEK_API_KEY",
)


@pytest.fixture(autouse=True)
def _clear_provider_keys() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    """Hide real advisory API keys from the test run.

    ``settings.yaml`` reads every provider key from the environment, so a
    developer machine with a key exported would otherwise let a test build
    a live provider. Tests that need a key set it explicitly.
    """
    with patch.dict(os.environ, {}, clear=False):
        for var in _PROVIDER_KEY_VARS:
            os.environ.pop(var, None)
        yield
