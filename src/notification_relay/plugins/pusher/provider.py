"""Pusher notification provider implementation.

Broadcasts a notification as an event on a Pusher channel. Channel and event
default to ``notifications`` and ``new-notification``, so Pusher can handle
any notification.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Mapping
from typing import Final

from notification_relay.core.config import parse_provider_config
from notification_relay.core.exceptions import ValidationError
from notification_relay.plugins.pusher.client import PusherEventsClient
from notification_relay.plugins.pusher.config import PusherConfig
from notification_relay.providers.base import BaseProvider, utc_now
from notification_relay.types import Clock, DeliveryReceipt, HTTPClient, Notification, Sleeper

__all__ = ["DEFAULT_CHANNEL", "DEFAULT_EVENT", "PusherProvider", "create_provider"]

DEFAULT_CHANNEL: Final[str] = "notifications"
DEFAULT_EVENT: Final[str] = "new-notification"

_CHANNEL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_\-=@,.;]{1,164}$")
_MAX_EVENT_NAME_LENGTH: Final[int] = 200
_MAX_EVENT_DATA_BYTES: Final[int] = 10_240


class PusherProvider(BaseProvider):
    """Pub/sub broadcast through Pusher Channels."""

    identifier_value = "pusher"
    display_name_value = "Pusher"

    def __init__(
        self,
        *,
        config: PusherConfig,
        http_client: HTTPClient,
        priority: int = 3,
        enabled: bool = True,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        request_timeout: float = 10.0,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        super().__init__(
            http_client=http_client,
            priority=priority,
            missing_fields=config.missing_fields(),
            enabled=enabled,
            retry_attempts=retry_attempts,
            retry_base_delay=retry_base_delay,
            request_timeout=request_timeout,
            clock=clock,
            sleep=sleep,
        )
        self._client: PusherEventsClient = PusherEventsClient(
            config=config,
            http_client=http_client,
            clock=clock,
            request_timeout=request_timeout,
        )

    def build_event(self, notification: Notification) -> tuple[str, str, dict[str, object]]:
        """Return ``(channel, event, payload)`` for the notification."""
        channel = notification.channel or DEFAULT_CHANNEL
        event = notification.event or DEFAULT_EVENT
        payload: dict[str, object] = {
            "title": notification.title,
            "body": notification.body,
            "image": notification.image,
            "data": dict(notification.data),
            "timestamp": self._clock().isoformat(),
        }
        return channel, event, payload

    def validate(self, notification: Notification) -> None:
        """Apply Pusher's channel, event and payload size limits.

        Raises:
            ValidationError: If the event cannot be published on Pusher
        """
        super().validate(notification)

        channel, event, payload = self.build_event(notification)
        issues: list[str] = []
        if not _CHANNEL_PATTERN.match(channel):
            issues.append(f"channel {channel!r} is not a valid Pusher channel name")
        if not event or len(event) > _MAX_EVENT_NAME_LENGTH:
            issues.append(f"event name must be 1-{_MAX_EVENT_NAME_LENGTH} characters")
        if len(json.dumps(payload, default=str).encode("utf-8")) > _MAX_EVENT_DATA_BYTES:
            issues.append(f"event data exceeds {_MAX_EVENT_DATA_BYTES} bytes")
        if issues:
            raise ValidationError("; ".join(issues), issues=issues)

    async def send(self, notification: Notification) -> DeliveryReceipt:
        channel, event, payload = self.build_event(notification)
        response = await self._client.trigger(channel, event, payload)
        self._ensure_success(response)
        return self._receipt(details={"channel": channel, "event": event})


def create_provider(
    *,
    config: Mapping[str, object],
    http_client: HTTPClient,
    priority: int = 3,
    enabled: bool = True,
    retry_attempts: int = 3,
    retry_base_delay: float = 1.0,
    request_timeout: float = 10.0,
    sleep: Sleeper = asyncio.sleep,
) -> PusherProvider:
    """Factory function for creating PusherProvider instances.

    Raises:
        ConfigurationError: If the configuration section fails validation
    """
    validated = parse_provider_config(config, PusherConfig, provider_name="Pusher")
    return PusherProvider(
        config=validated,
        http_client=http_client,
        priority=priority,
        enabled=enabled,
        retry_attempts=retry_attempts,
        retry_base_delay=retry_base_delay,
        request_timeout=request_timeout,
        sleep=sleep,
    )
