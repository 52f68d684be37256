"""OAuth2 service-account credentials for the FCM HTTP v1 API.

A JWT assertion signed with the service account's RSA key (RS256) is
exchanged at the token endpoint for a short-lived access token. The token is
cached and refreshed shortly before it expires.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Final

import jwt

from notification_relay.plugins.firebase.config import FirebaseConfig
from notification_relay.types import Clock, HTTPClient
from notification_relay.utils.logging import log_with_context
from notification_relay.utils.sanitization import sanitize_exception, sanitize_value

__all__ = ["FCM_SCOPE", "FirebaseAuthError", "ServiceAccountTokenSource"]

FCM_SCOPE: Final[str] = "https://www.googleapis.com/auth/firebase.messaging"
_GRANT_TYPE: Final[str] = "urn:ietf:params:oauth:grant-type:jwt-bearer"
_ASSERTION_LIFETIME: Final[timedelta] = timedelta(hours=1)


class FirebaseAuthError(RuntimeError):
    """Raised when an access token cannot be minted or obtained."""


@dataclass(slots=True)
class _CachedToken:
    value: str
    expires_at: datetime


@dataclass(slots=True)
class ServiceAccountTokenSource:
    """Produces bearer tokens for FCM requests.

    Attributes:
        config: Complete service-account configuration
        http_client: Transport for the token exchange
        clock: Timezone-aware clock used for JWT claims and cache expiry
        request_timeout: Timeout for the token exchange request
        refresh_margin: Tokens are refreshed this long before expiry
    """

    config: FirebaseConfig
    http_client: HTTPClient
    clock: Clock
    request_timeout: float = 10.0
    refresh_margin: timedelta = timedelta(seconds=60)
    _cached: _CachedToken | None = field(default=None, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    async def get_token(self) -> str:
        """Return a valid access token, exchanging a new assertion if needed.

        Raises:
            FirebaseAuthError: If signing or the token exchange fails
        """
        async with self._lock:
            now = self.clock()
            if self._cached is not None and now < self._cached.expires_at - self.refresh_margin:
                return self._cached.value

            self._cached = await self._exchange(now)
            return self._cached.value

    def invalidate(self) -> None:
        """Drop the cached token so the next request re-authenticates."""
        self._cached = None

    def build_assertion(self, now: datetime) -> str:
        """Sign the JWT assertion presented to the token endpoint.

        Raises:
            FirebaseAuthError: If the private key cannot sign the assertion
        """
        issued_at = int(now.timestamp())
        claims: dict[str, object] = {
            "iss": self.config.client_email,
            "scope": FCM_SCOPE,
            "aud": self.config.token_uri,
            "iat": issued_at,
            "exp": issued_at + int(_ASSERTION_LIFETIME.total_seconds()),
        }
        headers = {"kid": self.config.private_key_id} if self.config.private_key_id else None
        try:
            return jwt.encode(claims, self.config.private_key or "", algorithm="RS256", headers=headers)
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            msg = f"Unable to sign service account assertion: {sanitize_exception(exc)}"
            raise FirebaseAuthError(msg) from exc

    async def _exchange(self, now: datetime) -> _CachedToken:
        assertion = self.build_assertion(now)
        response = await self.http_client.post(
            self.config.token_uri,
            {"grant_type": _GRANT_TYPE, "assertion": assertion},
            timeout=self.request_timeout,
        )
        if not 200 <= response.status < 300:
            detail = sanitize_value(dict(response.body))
            msg = f"Token exchange rejected (HTTP {response.status}): {detail}"
            raise FirebaseAuthError(msg)

        access_token = response.body.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            msg = "Token exchange response did not include an access_token"
            raise FirebaseAuthError(msg)

        expires_in = response.body.get("expires_in", 3600)
        lifetime = expires_in if isinstance(expires_in, int | float) else 3600
        log_with_context(
            self._logger,
            logging.DEBUG,
            "Obtained FCM access token",
            extra={"expires_in_seconds": lifetime},
        )
        return _CachedToken(value=access_token, expires_at=now + timedelta(seconds=lifetime))
