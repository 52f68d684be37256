"""Provider registry for managing delivery providers.

The registry stores provider instances keyed by their identifier and returns
them in failover order: ascending priority, ties broken by identifier. All
access is guarded by a re-entrant lock so that registration may run from
any thread while dispatches iterate a snapshot.
"""

from __future__ import annotations

import re
import threading

from notification_relay.types import DeliveryProvider

__all__ = ["ProviderRegistry"]

_IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class ProviderRegistry[T: DeliveryProvider]:
    """Registry for delivery providers ordered by failover priority."""

    def __init__(self) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._entries: dict[str, T] = {}

    def register(self, provider: T) -> None:
        """Register a provider instance under its identifier.

        Raises:
            ValueError: If the identifier is malformed or already registered
        """
        slug = self._normalize_identifier(provider.identifier)
        with self._lock:
            if slug in self._entries:
                msg = f"Provider {slug!r} already registered"
                raise ValueError(msg)
            self._entries[slug] = provider

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, identifier: str) -> T | None:
        """Return the provider matching ``identifier`` case-insensitively."""
        with self._lock:
            return self._entries.get(self._lookup_key(identifier))

    def get_all(self) -> tuple[T, ...]:
        """Return a snapshot of all providers in failover order."""
        with self._lock:
            providers = tuple(self._entries.values())
        return tuple(sorted(providers, key=lambda provider: (provider.priority, provider.identifier)))

    def get_enabled(self) -> tuple[T, ...]:
        """Return enabled providers in failover order."""
        return tuple(provider for provider in self.get_all() if provider.is_enabled())

    @staticmethod
    def _lookup_key(identifier: str) -> str:
        return identifier.strip().lower()

    @staticmethod
    def _normalize_identifier(identifier: str) -> str:
        slug = identifier.strip().lower()
        if not _IDENTIFIER_PATTERN.match(slug):
            msg = (
                "Provider identifiers must start with a letter and contain only "
                "lowercase letters, numbers, or underscores"
            )
            raise ValueError(msg)
        return slug
