"""Firebase Cloud Messaging provider implementation.

Delivers notifications to a single device token, a list of device tokens, or
a topic through the FCM HTTP v1 API. Multi-token sends post one message per
token and succeed when at least one token is accepted.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Final

from notification_relay.core.config import parse_provider_config
from notification_relay.core.exceptions import ProviderSendError
from notification_relay.plugins.firebase.auth import FirebaseAuthError, ServiceAccountTokenSource
from notification_relay.plugins.firebase.config import FirebaseConfig
from notification_relay.providers.base import BaseProvider, utc_now
from notification_relay.types import Clock, DeliveryReceipt, HTTPClient, Notification, Sleeper

__all__ = ["FirebaseProvider", "create_provider"]

_FCM_SEND_URL: Final[str] = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"


def _stringify_data(data: Mapping[str, object]) -> dict[str, str]:
    """FCM requires every data value to be a string."""
    return {key: value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}


class FirebaseProvider(BaseProvider):
    """Token and topic push through Firebase Cloud Messaging."""

    identifier_value = "firebase"
    display_name_value = "Firebase"

    def __init__(
        self,
        *,
        config: FirebaseConfig,
        http_client: HTTPClient,
        priority: int = 1,
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
        self._config: FirebaseConfig = config
        self._token_source: ServiceAccountTokenSource = ServiceAccountTokenSource(
            config=config,
            http_client=http_client,
            clock=clock,
            request_timeout=request_timeout,
        )

    @property
    def send_url(self) -> str:
        return _FCM_SEND_URL.format(project_id=self._config.project_id)

    def can_handle(self, notification: Notification) -> bool:
        return bool(notification.token or notification.tokens or notification.topic)

    def build_message(self, notification: Notification) -> dict[str, object]:
        """Build the FCM message body without its target field."""
        content: dict[str, object] = {"title": notification.title, "body": notification.body}
        if notification.image:
            content["image"] = notification.image

        message: dict[str, object] = {
            "notification": content,
            "data": _stringify_data(notification.data),
        }
        if notification.android is not None:
            message["android"] = dict(notification.android)
        if notification.apns is not None:
            message["apns"] = dict(notification.apns)
        if notification.webpush is not None:
            message["webpush"] = dict(notification.webpush)
        return message

    async def send(self, notification: Notification) -> DeliveryReceipt:
        if not self.can_handle(notification):
            raise ProviderSendError(self.display_name, "Firebase requires token, tokens, or topic")

        message = self.build_message(notification)
        if notification.tokens:
            return await self._send_multicast(message, notification.tokens)

        if notification.token:
            message["token"] = notification.token
        else:
            message["topic"] = notification.topic

        message_id = await self._post_message(message)
        return self._receipt(message_id=message_id)

    async def _send_multicast(
        self,
        message: Mapping[str, object],
        tokens: tuple[str, ...],
    ) -> DeliveryReceipt:
        message_ids: list[str] = []
        errors: list[str] = []
        for token in tokens:
            try:
                message_id = await self._post_message({**message, "token": token})
            except ProviderSendError as exc:
                errors.append(exc.detail)
                continue
            if message_id:
                message_ids.append(message_id)

        success_count = len(tokens) - len(errors)
        if success_count == 0:
            raise ProviderSendError(
                self.display_name,
                f"all {len(tokens)} tokens rejected: {errors[0]}",
            )

        self._logger.info(
            "Firebase multicast delivered to %d of %d tokens",
            success_count,
            len(tokens),
        )
        return self._receipt(
            message_id=f"{success_count}/{len(errors)}",
            details={
                "success_count": success_count,
                "failure_count": len(errors),
                "message_ids": message_ids,
            },
        )

    async def _authorization_headers(self) -> dict[str, str]:
        try:
            access_token = await self._token_source.get_token()
        except FirebaseAuthError as exc:
            raise ProviderSendError(self.display_name, str(exc), cause=exc) from exc
        return {"Authorization": f"Bearer {access_token}"}

    async def _post_message(self, message: Mapping[str, object]) -> str | None:
        response = await self._http_client.post(
            self.send_url,
            {"message": message},
            timeout=self._request_timeout,
            headers=await self._authorization_headers(),
        )
        if response.status == 401:
            # Expired or revoked token; the next request re-authenticates
            self._token_source.invalidate()
        self._ensure_success(response)

        name = response.body.get("name")
        return name if isinstance(name, str) else None


def create_provider(
    *,
    config: Mapping[str, object],
    http_client: HTTPClient,
    priority: int = 1,
    enabled: bool = True,
    retry_attempts: int = 3,
    retry_base_delay: float = 1.0,
    request_timeout: float = 10.0,
    sleep: Sleeper = asyncio.sleep,
) -> FirebaseProvider:
    """Factory function for creating FirebaseProvider instances.

    Called by the plugin loader with the provider's ``config`` section and the
    shared dispatch settings.

    Raises:
        ConfigurationError: If the configuration section fails validation
    """
    validated = parse_provider_config(config, FirebaseConfig, provider_name="Firebase")
    return FirebaseProvider(
        config=validated,
        http_client=http_client,
        priority=priority,
        enabled=enabled,
        retry_attempts=retry_attempts,
        retry_base_delay=retry_base_delay,
        request_timeout=request_timeout,
        sleep=sleep,
    )
