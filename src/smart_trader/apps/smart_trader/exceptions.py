"""Exceptions raised by the smart trader application."""


class TraderError(Exception):
    """Base exception for smart trader failures."""


class OrderNotFoundError(TraderError):
    """Raised when an operator action names an unknown order."""
