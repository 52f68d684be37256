"""HTTP client abstraction for provider transports.

This module provides the aiohttp-backed implementation of the ``HTTPClient``
protocol. It enforces a per-request timeout with ``asyncio.timeout`` and
normalises responses into ``Response`` objects. Retrying is owned by the
provider layer, so this client performs exactly one request per call.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Self

import aiohttp

from notification_relay.types.models import Response


class AIOHTTPClient:
    """Async HTTP client implementing the HTTPClient Protocol.

    Example:
        >>> async with AIOHTTPClient() as client:
        ...     response = await client.post(
        ...         "https://api.example.com/v1/notifications",
        ...         {"title": "Hello"},
        ...         timeout=10.0,
        ...     )
    """

    def __init__(
        self,
        *,
        default_timeout_seconds: float = 10.0,
        user_agent: str = "notification-relay",
    ) -> None:
        """Initialize HTTP client.

        Args:
            default_timeout_seconds: Session-wide timeout ceiling in seconds
            user_agent: User-Agent header sent with every request
        """
        self._default_timeout_seconds: float = default_timeout_seconds
        self._user_agent: str = user_agent

        # aiohttp session (created in __aenter__)
        self._session: aiohttp.ClientSession | None = None

        self._logger: logging.Logger = logging.getLogger(__name__)

    async def __aenter__(self) -> Self:
        timeout = aiohttp.ClientTimeout(total=self._default_timeout_seconds)
        self._session = aiohttp.ClientSession(
            timeout=timeout,
            json_serialize=json.dumps,
            headers={"User-Agent": self._user_agent},
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def post(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        timeout: float,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        """Send HTTP POST request with a JSON body and timeout.

        Args:
            url: Target URL for the POST request
            payload: Request body data (will be JSON-encoded)
            timeout: Request timeout in seconds (keyword-only)
            headers: Optional extra request headers

        Returns:
            HTTP response with status, body, and headers. Non-JSON bodies are
            returned as ``{"text": ...}``.

        Raises:
            TimeoutError: If request exceeds timeout
            ValueError: If URL is malformed
            aiohttp.ClientError: For connection issues
        """
        if self._session is None:
            msg = "HTTP client session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)

        self._logger.debug("Initiating POST request to %s", url)

        try:
            async with asyncio.timeout(timeout):
                async with self._session.post(
                    url,
                    json=dict(payload),
                    headers=dict(headers) if headers else None,
                ) as response:
                    body: Mapping[str, object]
                    try:
                        decoded: object = await response.json(content_type=None)  # pyright: ignore[reportAny]
                    except ValueError:
                        decoded = None

                    if isinstance(decoded, Mapping):
                        body = decoded  # pyright: ignore[reportUnknownVariableType]
                    elif decoded is None:
                        text = await response.text()
                        body = {"text": text} if text else {}
                    else:
                        body = {"data": decoded}

                    return Response(
                        status=response.status,
                        body=body,  # pyright: ignore[reportUnknownArgumentType]
                        headers=dict(response.headers),
                    )
        except TimeoutError:
            self._logger.warning("Request to %s timed out after %.1fs", url, timeout)
            raise
        except aiohttp.InvalidURL as exc:
            self._logger.error("Invalid URL: %s", url)
            raise ValueError(f"Malformed URL: {url}") from exc
        except aiohttp.ClientError as exc:
            self._logger.warning("Client error for %s: %s", url, exc)
            raise
