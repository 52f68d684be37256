"""Secret sanitization utilities for logging and error messages.

This module provides utilities to sanitize sensitive information (API keys,
bearer tokens, service-account private keys, signed query parameters) from
strings, URLs, and structured data before logging or displaying in error
messages.

Provider plugins register their own patterns at import time through
``register_sanitization_pattern`` so that this module stays provider-agnostic.

Examples:
    >>> sanitize_url("https://api.example.com/data?token=secret123")
    'https://api.example.com/data?token=<REDACTED>'

    >>> sanitize_value({"api_key": "abc", "count": 42})
    {'api_key': '<REDACTED>', 'count': 42}
"""

from __future__ import annotations

import re
import threading
from collections.abc import Mapping, Sequence
from typing import TypeIs

# Redaction marker for sanitized values
REDACTED = "<REDACTED>"

# Authorization header values embedded in error text
_BEARER_PATTERN = re.compile(r"(\bBearer\s+)([A-Za-z0-9._~+/=-]+)", re.IGNORECASE)

# PEM encoded private keys (service-account credentials)
_PRIVATE_KEY_PATTERN = re.compile(
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
    re.DOTALL,
)

# Pattern for URLs with tokens in path segments
_GENERIC_TOKEN_IN_PATH = re.compile(
    r"(/(?:token|api[-_]?key|auth|secret|bearer)[=/])([^/?#]+)",
    re.IGNORECASE,
)

# Pattern for URLs with tokens in query parameters
_GENERIC_TOKEN_IN_QUERY = re.compile(
    r"([?&](?:token|api[-_]?key|auth|secret|bearer)=)([^&\s]+)",
    re.IGNORECASE,
)

# Sensitive field name patterns (case-insensitive)
_SENSITIVE_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in [
        r".*token.*",
        r".*key.*",
        r".*secret.*",
        r".*password.*",
        r".*credential.*",
        r".*authorization.*",
        r".*bearer.*",
        r".*assertion.*",
    ]
]

_registered_patterns: list[tuple[re.Pattern[str], str]] = []
_registered_lock = threading.Lock()


def register_sanitization_pattern(pattern: re.Pattern[str], replacement: str) -> None:
    """Register an additional redaction pattern applied by ``sanitize_url``.

    Args:
        pattern: Compiled pattern matching the secret-bearing text
        replacement: Substitution string (may use group references)
    """
    with _registered_lock:
        if any(existing.pattern == pattern.pattern for existing, _ in _registered_patterns):
            return
        _registered_patterns.append((pattern, replacement))


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Args:
        field_name: The field name to check (e.g., "rest_api_key", "private_key")

    Returns:
        True if the field name matches sensitive patterns

    Examples:
        >>> is_sensitive_field("rest_api_key")
        True
        >>> is_sensitive_field("provider")
        False
    """
    return any(pattern.match(field_name) for pattern in _SENSITIVE_FIELD_PATTERNS)


def sanitize_url(url: str) -> str:
    """Sanitize sensitive tokens from URLs and free text while preserving structure.

    Registered provider patterns are applied first (most specific), then
    the generic bearer, private-key, path and query patterns.

    Args:
        url: The URL or message text to sanitize

    Returns:
        Sanitized text with secrets replaced by REDACTED marker
    """
    if not url or not isinstance(url, str):  # pyright: ignore[reportUnnecessaryIsInstance]
        return url

    with _registered_lock:
        patterns = tuple(_registered_patterns)

    sanitized = url
    for pattern, replacement in patterns:
        sanitized = pattern.sub(replacement, sanitized)

    sanitized = _PRIVATE_KEY_PATTERN.sub(REDACTED, sanitized)
    sanitized = _BEARER_PATTERN.sub(rf"\1{REDACTED}", sanitized)
    sanitized = _GENERIC_TOKEN_IN_PATH.sub(rf"\1{REDACTED}", sanitized)
    sanitized = _GENERIC_TOKEN_IN_QUERY.sub(rf"\1{REDACTED}", sanitized)

    return sanitized


def _is_primitive(value: object) -> TypeIs[str | int | float | bool | None]:
    return isinstance(value, (str, int, float, bool, type(None)))


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeIs[Sequence[object]]:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def sanitize_value(
    value: object,
    *,
    field_name: str | None = None,
) -> object:
    """Recursively sanitize sensitive values from structured data.

    This function walks through nested data structures (dicts, lists, tuples)
    and sanitizes sensitive values based on:
    1. Field name patterns (e.g., "api_key", "secret", "private_key")
    2. URL and text patterns in string values
    3. Recursive processing of nested structures

    Args:
        value: The value to sanitize (can be any type)
        field_name: Optional field name for context-aware sanitization

    Returns:
        Sanitized value with secrets replaced by REDACTED marker

    Examples:
        >>> sanitize_value({"secret": "s3cr3t", "count": 42})
        {'secret': '<REDACTED>', 'count': 42}

        >>> sanitize_value(["Bearer abc.def", "ok"])
        ['Bearer <REDACTED>', 'ok']
    """
    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if _is_primitive(value):
        if type(value) is str:
            return sanitize_url(value)
        return value

    if _is_mapping(value):
        sanitized_dict: dict[str, object] = {
            key: sanitize_value(val, field_name=str(key)) for key, val in value.items()
        }
        return sanitized_dict

    if _is_sequence(value):
        sanitized_items: list[object] = [sanitize_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(sanitized_items)
        return sanitized_items

    # Fail-safe for unexpected types
    return sanitize_url(str(value))


def sanitize_exception(exc: BaseException) -> str:
    """Sanitize exception messages to remove sensitive information.

    Args:
        exc: The exception to sanitize

    Returns:
        Sanitized exception message safe for logging

    Examples:
        >>> sanitize_exception(ValueError("rejected: Bearer abc123"))
        'ValueError: rejected: Bearer <REDACTED>'
    """
    exc_type = type(exc).__name__
    sanitized_message = sanitize_url(str(exc))
    return f"{exc_type}: {sanitized_message}"


def sanitize_args(args: tuple[object, ...]) -> tuple[object, ...]:
    """Sanitize a tuple of logging arguments."""
    return tuple(sanitize_value(arg) for arg in args)


def sanitize_mapping(
    data: Mapping[str, object],
) -> dict[str, object]:
    """Sanitize a mapping (e.g., logging extra dict) for safe output."""
    return {key: sanitize_value(val, field_name=key) for key, val in data.items()}
