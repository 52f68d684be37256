"""Shared utility modules.

This package provides:
- Logging configuration with correlation IDs and secret redaction
- Secret sanitization helpers used by logging and provider error messages
- The aiohttp-backed HTTP client used by provider transports

No utility contains provider-specific logic; provider plugins register their
own redaction patterns through ``register_sanitization_pattern``.
"""

from notification_relay.utils.sanitization import (
    REDACTED,
    register_sanitization_pattern,
    sanitize_exception,
    sanitize_url,
    sanitize_value,
)

__all__ = [
    "REDACTED",
    "register_sanitization_pattern",
    "sanitize_exception",
    "sanitize_url",
    "sanitize_value",
]
