"""Application entry point for notification-relay.

Architecture:
- No provider-specific code or references (maintains plugin isolation)
- The CLI builds an ``ApplicationRunner`` which loads providers from configuration
"""

from __future__ import annotations

from notification_relay.app.cli import cli

__all__ = ["main"]


def main() -> None:
    """Run the ``notification-relay`` command-line interface."""
    cli(prog_name="notification-relay")


if __name__ == "__main__":
    main()
