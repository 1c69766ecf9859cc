"""Paper trading bot for prediction markets driven by language-model advisories."""

__version__ = "0.1.0"
