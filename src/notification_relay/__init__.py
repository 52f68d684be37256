"""notification-relay - push notification delivery with provider failover.

This package dispatches notifications through a plugin-based set of delivery
providers tried in priority order, and schedules notifications for a time of
day (once or daily) with an in-process scheduler.
"""

from notification_relay.__main__ import main

__all__ = ["main"]
