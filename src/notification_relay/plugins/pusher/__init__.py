"""Pusher Channels provider plugin metadata registration."""

import re
from typing import Final

from notification_relay.plugins import PluginMetadata, register_plugin
from notification_relay.utils.sanitization import REDACTED, register_sanitization_pattern

# Signed request query parameters
_SIGNED_QUERY_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"([?&]auth_(?:key|signature)=)([^&\s]+)",
    re.IGNORECASE,
)

register_plugin(
    PluginMetadata(
        identifier="pusher",
        name="Pusher",
        package=__name__,
        version="0.1.0",
        default_priority=3,
        description="Broadcasts notifications as events on Pusher Channels.",
    )
)

register_sanitization_pattern(_SIGNED_QUERY_PATTERN, rf"\1{REDACTED}")
