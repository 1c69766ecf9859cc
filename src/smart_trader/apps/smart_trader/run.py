"""CLI entry point for the smart trader app.

All command logic lives in the cli subpackage.
"""

from smart_trader.apps.smart_trader.cli import app

__all__ = ["app", "main"]


def main() -> None:
    """Run the smart trader CLI application."""
    app()


if __name__ == "__main__":
    main()
