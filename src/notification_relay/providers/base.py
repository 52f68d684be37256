"""Abstract base class for delivery providers.

``BaseProvider`` implements the parts of the ``DeliveryProvider`` protocol that
every channel shares: enable-state, base validation, and ``send_with_retry``.
Concrete plugins supply ``send`` (exactly one delivery attempt) and, where
their transport needs specific targeting, ``can_handle`` and ``validate``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from notification_relay.core.exceptions import ProviderSendError, ValidationError
from notification_relay.providers.retry import (
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_RETRY_ATTEMPTS,
    retry_with_linear_backoff,
)
from notification_relay.types.models import DeliveryReceipt, Notification, Response
from notification_relay.utils.logging import log_with_context
from notification_relay.utils.sanitization import sanitize_exception, sanitize_value

if TYPE_CHECKING:
    from notification_relay.types.aliases import Clock, Sleeper
    from notification_relay.types.protocols import HTTPClient

DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0


def utc_now() -> datetime:
    return datetime.now(UTC)


class BaseProvider(ABC):
    """Shared behaviour for all delivery providers.

    A provider is enabled only when its configuration was complete at
    construction time and it has not been administratively disabled.
    """

    identifier_value: str = ""
    display_name_value: str = ""

    def __init__(
        self,
        *,
        http_client: HTTPClient,
        priority: int,
        missing_fields: Sequence[str] = (),
        enabled: bool = True,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize common provider state.

        Args:
            http_client: Transport used by ``send``
            priority: Failover priority; lower values are tried first
            missing_fields: Required configuration fields that were not supplied
            enabled: Initial administrative enable flag
            retry_attempts: Default attempt count for ``send_with_retry``
            retry_base_delay: Base wait in seconds between attempts
            request_timeout: Per-request HTTP timeout in seconds
            clock: Source of ``sent_at`` timestamps
            sleep: Awaitable sleep used between retry attempts
        """
        self._http_client: HTTPClient = http_client
        self._priority: int = priority
        self._missing_fields: tuple[str, ...] = tuple(missing_fields)
        self._configured: bool = not self._missing_fields
        self._enabled: bool = enabled
        self._enabled_lock: threading.Lock = threading.Lock()
        self._retry_attempts: int = retry_attempts
        self._retry_base_delay: float = retry_base_delay
        self._request_timeout: float = request_timeout
        self._clock: Clock = clock
        self._sleep: Sleeper = sleep
        self._logger: logging.Logger = logging.getLogger(type(self).__module__)

        if not self._configured:
            log_with_context(
                self._logger,
                logging.ERROR,
                f"{self.display_name} provider is missing required configuration and stays disabled",
                extra={"provider": self.identifier, "missing_fields": list(self._missing_fields)},
            )

    @property
    def identifier(self) -> str:
        return self.identifier_value

    @property
    def display_name(self) -> str:
        return self.display_name_value

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def missing_fields(self) -> tuple[str, ...]:
        return self._missing_fields

    def is_enabled(self) -> bool:
        with self._enabled_lock:
            return self._configured and self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._enabled_lock:
            self._enabled = enabled
        log_with_context(
            self._logger,
            logging.INFO,
            f"{self.display_name} provider {'enabled' if enabled else 'disabled'}",
            extra={"provider": self.identifier, "enabled": enabled},
        )

    def can_handle(self, notification: Notification) -> bool:
        """Return True when the notification carries enough targeting for this channel."""
        return True

    def validate(self, notification: Notification) -> None:
        """Reject notifications with neither a title nor a body.

        Raises:
            ValidationError: If the notification has no content
        """
        if not notification.title and not notification.body:
            raise ValidationError(
                "Notification must have a title or body",
                issues=("title", "body"),
            )

    @abstractmethod
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
        """Validate, then send with linear-backoff retry.

        Validation errors are raised immediately and never retried. Unexpected
        exceptions from ``send`` are wrapped into ``ProviderSendError`` and
        retried like any other send failure.

        Args:
            notification: Notification to deliver
            attempts: Attempt count; defaults to the configured retry attempts

        Returns:
            Receipt from the first successful attempt

        Raises:
            ValidationError: If the notification is unacceptable
            ProviderSendError: The last failure when every attempt failed
        """
        self.validate(notification)

        async def attempt() -> DeliveryReceipt:
            try:
                return await self.send(notification)
            except (ProviderSendError, ValidationError):
                raise
            except Exception as exc:
                raise ProviderSendError(self.display_name, sanitize_exception(exc), cause=exc) from exc

        receipt = await retry_with_linear_backoff(
            attempt,
            attempts=attempts if attempts is not None else self._retry_attempts,
            base_delay=self._retry_base_delay,
            retry_on=ProviderSendError,
            sleep=self._sleep,
            label=self.display_name,
        )
        log_with_context(
            self._logger,
            logging.INFO,
            f"{self.display_name} delivered notification",
            extra={"provider": self.identifier, "message_id": receipt.message_id},
        )
        return receipt

    def _receipt(
        self,
        message_id: str | None = None,
        details: Mapping[str, object] | None = None,
    ) -> DeliveryReceipt:
        return DeliveryReceipt(
            provider=self.display_name,
            sent_at=self._clock(),
            message_id=message_id,
            details=dict(details) if details else {},
        )

    def _ensure_success(self, response: Response) -> None:
        """Raise ``ProviderSendError`` for non-2xx responses.

        Raises:
            ProviderSendError: Carrying the sanitised upstream error body
        """
        if 200 <= response.status < 300:
            return
        detail = sanitize_value(dict(response.body))
        raise ProviderSendError(self.display_name, f"HTTP {response.status}: {detail}")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(identifier={self.identifier!r}, "
            f"priority={self._priority}, enabled={self.is_enabled()})"
        )
