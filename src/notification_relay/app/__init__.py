"""Application module for notification-relay."""

from __future__ import annotations

from notification_relay.app.cli import cli
from notification_relay.app.runner import ApplicationRunner

__all__ = [
    "ApplicationRunner",
    "cli",
]
