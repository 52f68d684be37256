"""OneSignal notification provider implementation.

Targets explicit player ids first, then named segments, and falls back to
the ``All`` segment so that OneSignal can handle any notification.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Final

from notification_relay.core.config import parse_provider_config
from notification_relay.core.exceptions import ProviderSendError
from notification_relay.plugins.onesignal.config import OneSignalConfig
from notification_relay.providers.base import BaseProvider, utc_now
from notification_relay.types import Clock, DeliveryReceipt, HTTPClient, Notification, Response, Sleeper
from notification_relay.utils.sanitization import sanitize_value

__all__ = ["OneSignalProvider", "create_provider"]

_DEFAULT_SEGMENTS: Final[tuple[str, ...]] = ("All",)


class OneSignalProvider(BaseProvider):
    """Segment and player push through the OneSignal REST API."""

    identifier_value = "onesignal"
    display_name_value = "OneSignal"

    def __init__(
        self,
        *,
        config: OneSignalConfig,
        http_client: HTTPClient,
        priority: int = 2,
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
        self._config: OneSignalConfig = config

    @property
    def notifications_url(self) -> str:
        return f"{self._config.api_url}/notifications"

    def build_payload(self, notification: Notification) -> dict[str, object]:
        """Build the OneSignal create-notification request body."""
        payload: dict[str, object] = {
            "app_id": self._config.app_id,
            "headings": {"en": notification.title},
            "contents": {"en": notification.body},
            "data": dict(notification.data),
        }

        if notification.player_ids:
            payload["include_player_ids"] = list(notification.player_ids)
        elif notification.segments:
            payload["included_segments"] = list(notification.segments)
        else:
            payload["included_segments"] = list(_DEFAULT_SEGMENTS)

        if notification.image:
            payload["big_picture"] = notification.image
            payload["large_icon"] = notification.image

        return payload

    async def send(self, notification: Notification) -> DeliveryReceipt:
        response = await self._http_client.post(
            self.notifications_url,
            self.build_payload(notification),
            timeout=self._request_timeout,
            headers={"Authorization": f"Basic {self._config.rest_api_key}"},
        )
        self._raise_for_errors(response)

        notification_id = response.body.get("id")
        details: dict[str, object] = {}
        recipients = response.body.get("recipients")
        if recipients is not None:
            details["recipients"] = recipients

        return self._receipt(
            message_id=notification_id if isinstance(notification_id, str) else None,
            details=details,
        )

    def _raise_for_errors(self, response: Response) -> None:
        """Raise with OneSignal's first reported error.

        OneSignal can answer 200 with an ``errors`` list and no id when no
        recipient is subscribed; that is a failed delivery.
        """
        errors = response.body.get("errors")
        has_id = bool(response.body.get("id"))
        if 200 <= response.status < 300 and (has_id or not errors):
            return

        detail = _first_error(errors) or f"HTTP {response.status}"
        raise ProviderSendError(self.display_name, str(sanitize_value(detail)))


def _first_error(errors: object) -> str | None:
    if isinstance(errors, list) and errors:
        return str(errors[0])  # pyright: ignore[reportUnknownArgumentType]
    if isinstance(errors, Mapping) and errors:
        return "; ".join(f"{key}: {value}" for key, value in errors.items())  # pyright: ignore[reportUnknownVariableType]
    if isinstance(errors, str) and errors:
        return errors
    return None


def create_provider(
    *,
    config: Mapping[str, object],
    http_client: HTTPClient,
    priority: int = 2,
    enabled: bool = True,
    retry_attempts: int = 3,
    retry_base_delay: float = 1.0,
    request_timeout: float = 10.0,
    sleep: Sleeper = asyncio.sleep,
) -> OneSignalProvider:
    """Factory function for creating OneSignalProvider instances.

    Raises:
        ConfigurationError: If the configuration section fails validation
    """
    validated = parse_provider_config(config, OneSignalConfig, provider_name="OneSignal")
    return OneSignalProvider(
        config=validated,
        http_client=http_client,
        priority=priority,
        enabled=enabled,
        retry_attempts=retry_attempts,
        retry_base_delay=retry_base_delay,
        request_timeout=request_timeout,
        sleep=sleep,
    )
