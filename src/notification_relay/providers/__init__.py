"""Provider capability abstraction and retry behaviour."""

from notification_relay.providers.base import BaseProvider
from notification_relay.providers.retry import backoff_delay, retry_with_linear_backoff

__all__ = [
    "BaseProvider",
    "backoff_delay",
    "retry_with_linear_backoff",
]
