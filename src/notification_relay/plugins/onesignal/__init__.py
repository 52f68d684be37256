"""OneSignal provider plugin metadata registration."""

import re
from typing import Final

from notification_relay.plugins import PluginMetadata, register_plugin
from notification_relay.utils.sanitization import REDACTED, register_sanitization_pattern

# REST API keys travel as "Authorization: Basic <key>"
_BASIC_AUTH_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\bBasic\s+)[A-Za-z0-9+/=._-]+")

register_plugin(
    PluginMetadata(
        identifier="onesignal",
        name="OneSignal",
        package=__name__,
        version="0.1.0",
        default_priority=2,
        description="Delivers push notifications to OneSignal players and segments.",
    )
)

register_sanitization_pattern(_BASIC_AUTH_PATTERN, rf"\1{REDACTED}")
