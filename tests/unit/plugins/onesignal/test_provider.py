"""Tests for the OneSignal notification provider."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from notification_relay.core.config import ConfigurationError
from notification_relay.core.exceptions import ProviderSendError
from notification_relay.plugins.onesignal.config import OneSignalConfig
from notification_relay.plugins.onesignal.provider import OneSignalProvider, create_provider
from notification_relay.types import Response
from tests.fixtures.doubles import FakeClock, ManualSleeper, make_notification


# Test fixtures and helpers


def _make_config(**overrides: object) -> OneSignalConfig:
    """Factory for creating test OneSignal configurations."""
    values: dict[str, object] = {"app_id": "app-123", "rest_api_key": "rest-key-456", **overrides}
    return OneSignalConfig.model_validate(values)


def _make_provider(http_client: AsyncMock, clock: FakeClock, **overrides: object) -> OneSignalProvider:
    return OneSignalProvider(
        config=_make_config(**overrides),
        http_client=http_client,
        clock=clock,
        sleep=ManualSleeper(),
    )


def _response(status: int = 200, **body: object) -> Response:
    return Response(status=status, body=body, headers={})


class TestOneSignalConfig:
    """Test configuration parsing."""

    def test_camel_case_keys(self) -> None:
        config = OneSignalConfig.model_validate({"appId": "app-1", "restApiKey": "key-1"})

        assert config.app_id == "app-1"
        assert config.rest_api_key == "key-1"
        assert config.missing_fields() == ()

    def test_blank_key_is_missing(self) -> None:
        assert _make_config(rest_api_key="   ").missing_fields() == ("rest_api_key",)

    def test_api_url_normalised(self) -> None:
        assert _make_config(api_url="https://api.onesignal.com/api/v1/").api_url == "https://api.onesignal.com/api/v1"

    def test_api_url_requires_https(self) -> None:
        with pytest.raises(ValidationError, match="api_url must use HTTPS"):
            _ = _make_config(api_url="http://onesignal.com/api/v1")

    def test_unknown_keys_rejected_by_factory(self) -> None:
        with pytest.raises(ConfigurationError, match="OneSignal configuration validation failed"):
            _ = create_provider(config={"app_id": "a", "api_key": "k"}, http_client=AsyncMock())


class TestPayload:
    """Test request payload targeting."""

    def test_player_ids_take_precedence(self, clock: FakeClock) -> None:
        provider = _make_provider(AsyncMock(), clock)

        payload = provider.build_payload(make_notification(player_ids=("p1", "p2"), segments=("VIP",)))

        assert payload["include_player_ids"] == ["p1", "p2"]
        assert "included_segments" not in payload
        assert payload["app_id"] == "app-123"
        assert payload["headings"] == {"en": "Server maintenance"}

    def test_segments(self, clock: FakeClock) -> None:
        payload = _make_provider(AsyncMock(), clock).build_payload(make_notification(segments=("VIP",)))

        assert payload["included_segments"] == ["VIP"]

    def test_defaults_to_all_segment(self, clock: FakeClock) -> None:
        payload = _make_provider(AsyncMock(), clock).build_payload(make_notification(image="https://cdn.example.com/x.png"))

        assert payload["included_segments"] == ["All"]
        assert payload["big_picture"] == "https://cdn.example.com/x.png"
        assert payload["large_icon"] == "https://cdn.example.com/x.png"


class TestSend:
    """Test delivery and error mapping."""

    @pytest.mark.asyncio
    async def test_successful_send(self, clock: FakeClock) -> None:
        http_client = AsyncMock()
        http_client.post.return_value = _response(id="notif-789", recipients=12)
        provider = _make_provider(http_client, clock)

        receipt = await provider.send(make_notification())

        assert receipt.provider == "OneSignal"
        assert receipt.message_id == "notif-789"
        assert receipt.details == {"recipients": 12}
        url = http_client.post.await_args.args[0]
        assert url == "https://onesignal.com/api/v1/notifications"
        assert http_client.post.await_args.kwargs["headers"] == {"Authorization": "Basic rest-key-456"}

    @pytest.mark.asyncio
    async def test_ok_status_with_errors_is_failure(self, clock: FakeClock) -> None:
        """OneSignal answers 200 with errors when nobody is subscribed."""
        http_client = AsyncMock()
        http_client.post.return_value = _response(id="", errors=["All included players are not subscribed"])

        with pytest.raises(ProviderSendError, match="not subscribed"):
            _ = await _make_provider(http_client, clock).send(make_notification())

    @pytest.mark.asyncio
    async def test_ok_status_with_id_ignores_invalid_players(self, clock: FakeClock) -> None:
        http_client = AsyncMock()
        http_client.post.return_value = _response(id="notif-1", errors={"invalid_player_ids": ["p9"]})

        receipt = await _make_provider(http_client, clock).send(make_notification(player_ids=("p1", "p9")))

        assert receipt.message_id == "notif-1"

    @pytest.mark.asyncio
    async def test_error_status_uses_first_error(self, clock: FakeClock) -> None:
        http_client = AsyncMock()
        http_client.post.return_value = _response(400, errors=["app_id not found", "second"])

        with pytest.raises(ProviderSendError) as exc_info:
            _ = await _make_provider(http_client, clock).send(make_notification())
        assert exc_info.value.detail == "app_id not found"

    @pytest.mark.asyncio
    async def test_error_status_without_body(self, clock: FakeClock) -> None:
        http_client = AsyncMock()
        http_client.post.return_value = _response(503)

        with pytest.raises(ProviderSendError, match="HTTP 503"):
            _ = await _make_provider(http_client, clock).send(make_notification())

    @pytest.mark.asyncio
    async def test_retry_recovers_from_transient_failure(self, clock: FakeClock) -> None:
        http_client = AsyncMock()
        http_client.post.side_effect = [_response(502), _response(id="notif-2")]

        receipt = await _make_provider(http_client, clock).send_with_retry(make_notification())

        assert receipt.message_id == "notif-2"
        assert http_client.post.await_count == 2
