"""Firebase Cloud Messaging provider plugin metadata registration."""

import re
from typing import Final

from notification_relay.plugins import PluginMetadata, register_plugin
from notification_relay.utils.sanitization import REDACTED, register_sanitization_pattern

# Google OAuth2 access tokens (ya29.<opaque>)
_ACCESS_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\bya29\.)[A-Za-z0-9._-]+")

# Signed JWT assertions exchanged for access tokens
_JWT_PATTERN: Final[re.Pattern[str]] = re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")

register_plugin(
    PluginMetadata(
        identifier="firebase",
        name="Firebase",
        package=__name__,
        version="0.1.0",
        default_priority=1,
        description="Delivers push notifications to device tokens and topics through FCM HTTP v1.",
    )
)

# Register at import time so sanitization works before any provider is built
register_sanitization_pattern(_ACCESS_TOKEN_PATTERN, rf"\1{REDACTED}")
register_sanitization_pattern(_JWT_PATTERN, REDACTED)
