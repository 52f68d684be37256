"""Pusher Channels HTTP events API client with request signing.

Requests are authenticated with the Pusher signature scheme: the method,
path and sorted query string (which includes the MD5 of the JSON body) are
signed with HMAC-SHA256 using the application secret.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final
from urllib.parse import urlencode

from notification_relay.plugins.pusher.config import PusherConfig
from notification_relay.types import Clock, HTTPClient, Response

__all__ = ["AUTH_VERSION", "PusherEventsClient", "body_md5", "sign_request"]

AUTH_VERSION: Final[str] = "1.0"


def body_md5(body: Mapping[str, object]) -> str:
    """Return the MD5 hex digest of the body as the HTTP client serialises it."""
    # AIOHTTPClient serialises JSON bodies with json.dumps defaults
    return hashlib.md5(json.dumps(dict(body)).encode("utf-8")).hexdigest()  # noqa: S324 - mandated by the Pusher API


def sign_request(secret: str, method: str, path: str, params: Mapping[str, str]) -> str:
    """Compute the ``auth_signature`` for a Pusher API request.

    The string to sign is ``METHOD\\nPATH\\nQUERY`` where QUERY holds the
    parameters sorted by name and joined without URL encoding.
    """
    query = "&".join(f"{name}={params[name]}" for name in sorted(params))
    string_to_sign = f"{method.upper()}\n{path}\n{query}"
    return hmac.new(secret.encode("utf-8"), string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


@dataclass(slots=True)
class PusherEventsClient:
    """Triggers events on Pusher channels."""

    config: PusherConfig
    http_client: HTTPClient
    clock: Clock
    request_timeout: float = 10.0
    _logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    @property
    def events_path(self) -> str:
        return f"/apps/{self.config.app_id}/events"

    @property
    def base_url(self) -> str:
        scheme = "https" if self.config.use_tls else "http"
        return f"{scheme}://api-{self.config.cluster}.pusher.com"

    def build_signed_url(self, body: Mapping[str, object]) -> str:
        """Return the events URL with authentication query parameters."""
        params = {
            "auth_key": self.config.key or "",
            "auth_timestamp": str(int(self.clock().timestamp())),
            "auth_version": AUTH_VERSION,
            "body_md5": body_md5(body),
        }
        params["auth_signature"] = sign_request(self.config.secret or "", "POST", self.events_path, params)
        return f"{self.base_url}{self.events_path}?{urlencode(params)}"

    async def trigger(
        self,
        channel: str,
        event: str,
        payload: Mapping[str, object],
    ) -> Response:
        """Trigger ``event`` on ``channel`` with ``payload`` as the event data."""
        body: dict[str, object] = {
            "name": event,
            "channels": [channel],
            "data": json.dumps(dict(payload), default=str),
        }
        self._logger.debug("Triggering Pusher event %s on channel %s", event, channel)
        return await self.http_client.post(
            self.build_signed_url(body),
            body,
            timeout=self.request_timeout,
        )
