"""Protocol definitions for component interfaces.

This module defines structural subtyping protocols that establish
contracts for core application components without requiring inheritance.
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from notification_relay.types.models import (
    DeliveryReceipt,
    DispatchOptions,
    DispatchResult,
    Notification,
    Response,
)


@runtime_checkable
class DeliveryProvider(Protocol):
    """Protocol for notification delivery providers.

    Every delivery channel exposes the same capability set: enable-state,
    an applicability check, validation, and a send operation with built-in
    retry. The dispatcher only ever talks to providers through this interface.
    """

    @property
    def identifier(self) -> str:
        """Lowercase identifier used for lookups and configuration."""
        ...

    @property
    def display_name(self) -> str:
        """Human-readable provider name used in results and logs."""
        ...

    @property
    def priority(self) -> int:
        """Failover priority; lower values are tried first."""
        ...

    def is_enabled(self) -> bool:
        """Return True when configured and not administratively disabled."""
        ...

    def set_enabled(self, enabled: bool) -> None:
        """Toggle the administrative enable flag."""
        ...

    def can_handle(self, notification: Notification) -> bool:
        """Return True when the targeting fields suffice for this provider."""
        ...

    def validate(self, notification: Notification) -> None:
        """Raise ValidationError when the notification is unacceptable."""
        ...

    async def send(self, notification: Notification) -> DeliveryReceipt:
        """Perform exactly one delivery attempt.

        Raises:
            ProviderSendError: If the upstream transport rejects the delivery
        """
        ...

    async def send_with_retry(
        self,
        notification: Notification,
        attempts: int | None = None,
    ) -> DeliveryReceipt:
        """Send with linear-backoff retry, re-raising the last failure."""
        ...


class Dispatcher(Protocol):
    """Protocol for anything able to dispatch a notification.

    The scheduler depends on this interface rather than on the concrete
    dispatcher so that fired jobs never call back into scheduling code.
    """

    async def dispatch(
        self,
        notification: Notification,
        options: DispatchOptions | None = None,
    ) -> DispatchResult:
        """Deliver the notification through one provider."""
        ...


class HTTPClient(Protocol):
    """Protocol for HTTP client operations.

    Defines the interface for making HTTP requests with a timeout for
    provider transports. Retries are owned by the provider layer.
    """

    async def post(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        timeout: float,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send HTTP POST request with a JSON body.

        Args:
            url: Target URL for the POST request
            payload: Request body data (JSON-encoded)
            timeout: Request timeout in seconds (keyword-only)
            headers: Optional extra request headers

        Returns:
            HTTP response with status, body, and headers
        """
        ...
