"""Tests for the command-line interface."""

from __future__ import annotations

import functools
import importlib
import re
from collections.abc import Iterable
from pathlib import Path

import pytest
from click.testing import CliRunner

from notification_relay.app.cli import cli, discover_config_file
from notification_relay.app.runner import ApplicationRunner
from notification_relay.core.exceptions import ValidationError
from notification_relay.core.scheduler import NotificationScheduler
from notification_relay.core.validation import DispatchRequest
from notification_relay.types import (
    BulkScheduleItem,
    Dispatcher,
    DispatchOptions,
    Notification,
    Response,
    ScheduleReceipt,
    ScheduleSpec,
)

cli_module = importlib.import_module("notification_relay.app.cli")

RELAY_CONFIG = """\
providers:
  onesignal:
    config:
      app_id: app-1
      rest_api_key: ${NR_TEST_ONESIGNAL_KEY}
  pusher:
    config:
      app_id: 3
      key: app-key
      secret: app-secret
      cluster: eu
dispatch:
  retry_attempts: 1
  retry_base_delay_seconds: 0
"""

NOTIFICATION_FILE = """\
notification:
  title: Deploy finished
  body: Version 2.4.1 is live.
"""


class RoutingHTTPClient:
    """HTTP client double answering by URL prefix and recording requests."""

    def __init__(self, routes: dict[str, Response] | None = None) -> None:
        self.routes: dict[str, Response] = routes or {
            "https://onesignal.com": Response(status=200, body={"id": "os-123", "recipients": 4}, headers={}),
            "https://api-eu.pusher.com": Response(status=200, body={}, headers={}),
        }
        self.requests: list[str] = []

    async def post(self, url: str, payload: object, **kwargs: object) -> Response:  # pyright: ignore[reportUnusedParameter]
        self.requests.append(url)
        for prefix, response in self.routes.items():
            if url.startswith(prefix):
                return response
        return Response(status=404, body={"error": "not found"}, headers={})

    async def close(self) -> None:
        return None


class ShutdownImmediatelyRunner(ApplicationRunner):
    """Runner whose serve returns as soon as the jobs are scheduled."""

    async def serve(self, requests: Iterable[DispatchRequest] = ()) -> tuple[BulkScheduleItem, ...]:
        self.request_shutdown()
        return await super().serve(requests)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def http_client(monkeypatch: pytest.MonkeyPatch) -> RoutingHTTPClient:
    """Route every runner built by the CLI through an in-memory HTTP client."""
    client = RoutingHTTPClient()
    monkeypatch.setattr(cli_module, "ApplicationRunner", functools.partial(ApplicationRunner, http_client=client))
    return client


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: None)  # pyright: ignore[reportUnknownLambdaType]


@pytest.fixture
def relay_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("NR_TEST_ONESIGNAL_KEY", "os-secret")
    path = tmp_path / "relay.yaml"
    _ = path.write_text(RELAY_CONFIG, encoding="utf-8")
    return path


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    _ = path.write_text(content, encoding="utf-8")
    return path


class TestGlobalOptions:
    """Test options shared by every command."""

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("providers", "check", "send", "serve"):
            assert command in result.output
        assert "--config" in result.output
        assert "--log-level" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "notification-relay" in result.output

    def test_invalid_config_extension(self, runner: CliRunner, tmp_path: Path) -> None:
        config = _write(tmp_path, "relay.txt", "")

        result = runner.invoke(cli, ["--config", str(config), "providers"])

        assert result.exit_code == 2
        assert "Invalid configuration file extension" in result.output

    def test_config_directory_rejected(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["--config", str(tmp_path), "providers"])

        assert result.exit_code == 2
        assert "must be a file" in result.output

    def test_invalid_log_level(self, runner: CliRunner, config_file: Path) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "--log-level", "verbose", "providers"])

        assert result.exit_code == 2
        assert 'Invalid log level "verbose"' in result.output

    def test_log_level_is_normalised(
        self,
        runner: CliRunner,
        config_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        calls: list[dict[str, object]] = []
        monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: calls.append(kwargs))  # pyright: ignore[reportUnknownLambdaType, reportUnknownArgumentType]

        result = runner.invoke(cli, ["--config", str(config_file), "--log-level", "debug", "--no-syslog", "providers"])

        assert result.exit_code == 0
        assert calls == [{"log_level": "DEBUG", "enable_syslog": False, "enable_console": True}]


class TestConfigDiscovery:
    """Test configuration file discovery."""

    def test_current_directory_first(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        _ = _write(tmp_path, "config.yaml", "")
        _ = _write(tmp_path, "notification-relay.yml", "")

        assert discover_config_file() == Path("notification-relay.yml")

    def test_home_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        home = tmp_path / "home"
        home.mkdir()
        _ = _write(home, ".notification-relay.yaml", "")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: home))  # pyright: ignore[reportUnknownLambdaType, reportUnknownArgumentType]

        assert discover_config_file() == home / ".notification-relay.yaml"

    def test_default_when_nothing_found(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))  # pyright: ignore[reportUnknownLambdaType, reportUnknownArgumentType]
        monkeypatch.setattr(cli_module, "SYSTEM_CONFIG_PATHS", ())

        assert discover_config_file() == Path("notification-relay.yaml")


class TestProvidersCommand:
    """Test the providers command."""

    def test_no_providers(self, runner: CliRunner, config_file: Path, http_client: RoutingHTTPClient) -> None:  # pyright: ignore[reportUnusedParameter]
        result = runner.invoke(cli, ["--config", str(config_file), "providers"])

        assert result.exit_code == 0
        assert "No providers configured" in result.output

    def test_lists_in_priority_order(
        self,
        runner: CliRunner,
        relay_config: Path,
        http_client: RoutingHTTPClient,  # pyright: ignore[reportUnusedParameter]
    ) -> None:
        result = runner.invoke(cli, ["--config", str(relay_config), "providers"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert re.match(r"\s+2\s+OneSignal\s+enabled", lines[0])
        assert re.match(r"\s+3\s+Pusher\s+enabled", lines[1])

    def test_missing_environment_variable(
        self,
        runner: CliRunner,
        relay_config: Path,
        monkeypatch: pytest.MonkeyPatch,
        http_client: RoutingHTTPClient,  # pyright: ignore[reportUnusedParameter]
    ) -> None:
        monkeypatch.delenv("NR_TEST_ONESIGNAL_KEY")

        result = runner.invoke(cli, ["--config", str(relay_config), "providers"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
        assert "NR_TEST_ONESIGNAL_KEY" in result.output

    def test_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        config = _write(tmp_path, "relay.yaml", "dispatch:\n  retry_attempts: 0\n")

        result = runner.invoke(cli, ["--config", str(config), "providers"])

        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output

    def test_missing_config_file(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["--config", str(tmp_path / "absent.yaml"), "providers"])

        assert result.exit_code == 1
        assert "was not found" in result.output


class TestCheckCommand:
    """Test the check command."""

    def test_deliverable(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,
    ) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(relay_config), "check", str(notification)])

        assert result.exit_code == 0
        assert "Notification 0: deliverable" in result.output
        assert "OneSignal [enabled] can handle: yes, valid: yes" in result.output
        assert http_client.requests == []

    def test_not_deliverable(self, runner: CliRunner, tmp_path: Path, http_client: RoutingHTTPClient) -> None:  # pyright: ignore[reportUnusedParameter]
        config = _write(
            tmp_path,
            "relay.yaml",
            "providers:\n  pusher:\n    config: {app_id: 3, key: k, secret: s, cluster: eu}\n",
        )
        notification = _write(
            tmp_path,
            "notification.yaml",
            "notification:\n  title: Hi\n  body: Hello\n  channel: not a channel\n",
        )

        result = runner.invoke(cli, ["--config", str(config), "check", str(notification)])

        assert result.exit_code == 1
        assert "Notification 0: not deliverable" in result.output
        assert "Pusher [enabled] can handle: yes, valid: no" in result.output


class TestSendCommand:
    """Test the send command."""

    def test_send_single(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,
    ) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(relay_config), "send", str(notification)])

        assert result.exit_code == 0
        assert "Delivered via OneSignal (message id: os-123)" in result.output
        assert "  OneSignal: succeeded" in result.output
        assert http_client.requests == ["https://onesignal.com/api/v1/notifications"]

    def test_failover_to_next_provider(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,
    ) -> None:
        http_client.routes["https://onesignal.com"] = Response(status=503, body={}, headers={})
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(relay_config), "send", str(notification)])

        assert result.exit_code == 0
        assert "Delivered via Pusher" in result.output
        assert "  OneSignal: failed" in result.output

    def test_no_failover_reports_failure(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,
    ) -> None:
        http_client.routes["https://onesignal.com"] = Response(status=503, body={}, headers={})
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(relay_config), "send", "--no-failover", str(notification)])

        assert result.exit_code == 1
        assert "Error: All providers failed" in result.output
        assert "  OneSignal: failed" in result.output
        assert all("pusher" not in url for url in http_client.requests)

    def test_explicit_provider(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,
    ) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(relay_config), "send", "-p", "pusher", str(notification)])

        assert result.exit_code == 0
        assert "Delivered via Pusher" in result.output
        assert len(http_client.requests) == 1
        assert http_client.requests[0].startswith("https://api-eu.pusher.com/apps/3/events?")

    def test_disabled_provider_is_skipped(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,  # pyright: ignore[reportUnusedParameter]
    ) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(
            cli,
            ["--config", str(relay_config), "send", "--disable", "OneSignal", str(notification)],
        )

        assert result.exit_code == 0
        assert "  OneSignal: skipped (disabled)" in result.output
        assert "Delivered via Pusher" in result.output

    def test_disable_unknown_provider(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,  # pyright: ignore[reportUnusedParameter]
    ) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(relay_config), "send", "--disable", "apns", str(notification)])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_unknown_explicit_provider(
        self,
        runner: CliRunner,
        config_file: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,  # pyright: ignore[reportUnusedParameter]
    ) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(config_file), "send", "-p", "pusher", str(notification)])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_timeout_out_of_range(self, runner: CliRunner, config_file: Path, tmp_path: Path) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(config_file), "send", "--timeout", "45", str(notification)])

        assert result.exit_code == 2

    def test_invalid_notification(self, runner: CliRunner, config_file: Path, tmp_path: Path) -> None:
        notification = _write(tmp_path, "notification.yaml", "notification:\n  title: 42\n  color: red\n")

        result = runner.invoke(cli, ["--config", str(config_file), "send", str(notification)])

        assert result.exit_code == 1
        assert "Error: Invalid notification request" in result.output

    def test_scheduled_file_is_refused(
        self,
        runner: CliRunner,
        config_file: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,
    ) -> None:
        notification = _write(
            tmp_path,
            "notification.yaml",
            NOTIFICATION_FILE + "schedule:\n  time: '09:00'\n",
        )

        result = runner.invoke(cli, ["--config", str(config_file), "send", str(notification)])

        assert result.exit_code == 2
        assert "use 'serve'" in result.output
        assert http_client.requests == []

    def test_bulk(
        self,
        runner: CliRunner,
        relay_config: Path,
        tmp_path: Path,
        http_client: RoutingHTTPClient,  # pyright: ignore[reportUnusedParameter]
    ) -> None:
        notifications = _write(
            tmp_path,
            "bulk.json",
            '{"notifications": [{"title": "First", "body": "a"}, {"title": "Second", "body": "b", "channel": "bad channel"}],'
            ' "options": {"provider": "pusher"}}',
        )

        result = runner.invoke(cli, ["--config", str(relay_config), "send", str(notifications)])

        assert result.exit_code == 1
        assert "Bulk dispatch: 1/2 delivered, 1 failed" in result.output
        assert "  [0] First: delivered via Pusher" in result.output
        assert "  [1] Second: failed (" in result.output


class TestServeCommand:
    """Test the serve command."""

    def test_schedules_jobs_and_returns_on_shutdown(
        self,
        runner: CliRunner,
        config_file: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            cli_module,
            "ApplicationRunner",
            functools.partial(ShutdownImmediatelyRunner, http_client=RoutingHTTPClient()),
        )
        jobs = _write(
            tmp_path,
            "jobs.yaml",
            """\
jobs:
  - notification: {title: Standup, body: In five minutes}
    schedule: {time: "09:30", timezone: Europe/Berlin, frequency: daily}
  - notification: {title: Backup, body: Nightly}
    schedule: {time: "23:00"}
""",
        )

        result = runner.invoke(cli, ["--config", str(config_file), "serve", str(jobs)])

        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if line.startswith("Scheduled")]
        assert len(lines) == 2
        assert re.match(r"Scheduled notif_\d+_[0-9a-f]{9} \(daily\) for \S+T09:30:00\+0[12]:00 \[Europe/Berlin\]", lines[0])
        assert re.match(r"Scheduled notif_\d+_[0-9a-f]{9} \(once\) for \S+T23:00:00\+00:00 \[UTC\]", lines[1])

    def test_scheduled_batch_reports_each_item(
        self,
        runner: CliRunner,
        config_file: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            cli_module,
            "ApplicationRunner",
            functools.partial(ShutdownImmediatelyRunner, http_client=RoutingHTTPClient()),
        )
        schedule = NotificationScheduler.schedule

        def reject_broken(
            scheduler: NotificationScheduler,
            notification: Notification,
            spec: ScheduleSpec,
            dispatcher: Dispatcher,
            options: DispatchOptions | None = None,
        ) -> ScheduleReceipt:
            if notification.title == "Broken":
                raise ValidationError("Notification rejected", issues=("title",))
            return schedule(scheduler, notification, spec, dispatcher, options)

        monkeypatch.setattr(NotificationScheduler, "schedule", reject_broken)
        batch = _write(
            tmp_path,
            "batch.yaml",
            """
notifications:
  - {title: Standup, body: In five minutes}
  - {title: Broken, body: Rejected}
  - {title: Retro, body: Friday afternoon}
schedule: {time: "16:00", timezone: Europe/Berlin, frequency: daily}
""",
        )

        result = runner.invoke(cli, ["--config", str(config_file), "serve", str(batch)])

        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if line.startswith("Scheduled")]
        assert len(lines) == 2
        assert all(re.search(r"(daily) for S+T16:00:00+0[12]:00 [Europe/Berlin]", line) for line in lines)
        assert "  [1] Broken: failed (Notification rejected)" in result.output
        assert "Bulk schedule: 2/3 scheduled, 1 failed" in result.output

    def test_batch_in_jobs_file(
        self,
        runner: CliRunner,
        config_file: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            cli_module,
            "ApplicationRunner",
            functools.partial(ShutdownImmediatelyRunner, http_client=RoutingHTTPClient()),
        )
        jobs = _write(
            tmp_path,
            "jobs.yaml",
            """
jobs:
  - notifications: [{title: One, body: first}, {title: Two, body: second}]
    schedule: {time: "07:15"}
""",
        )

        result = runner.invoke(cli, ["--config", str(config_file), "serve", str(jobs)])

        assert result.exit_code == 0
        assert result.output.count("(once) for ") == 2
        assert "failed" not in result.output

    def test_every_item_failing_exits_with_failure(
        self,
        runner: CliRunner,
        config_file: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            cli_module,
            "ApplicationRunner",
            functools.partial(ShutdownImmediatelyRunner, http_client=RoutingHTTPClient()),
        )

        def reject(*args: object, **kwargs: object) -> ScheduleReceipt:  # pyright: ignore[reportUnusedParameter]
            raise ValidationError("Notification rejected")

        monkeypatch.setattr(NotificationScheduler, "schedule", reject)
        batch = _write(
            tmp_path,
            "batch.json",
            '{"notifications": [{"title": "A", "body": "a"}], "schedule": {"time": "08:00"}}',
        )

        result = runner.invoke(cli, ["--config", str(config_file), "serve", str(batch)])

        assert result.exit_code == 1
        assert "Bulk schedule: 0/1 scheduled, 1 failed" in result.output

    def test_request_file_without_schedule(self, runner: CliRunner, config_file: Path, tmp_path: Path) -> None:
        notification = _write(tmp_path, "notification.yaml", NOTIFICATION_FILE)

        result = runner.invoke(cli, ["--config", str(config_file), "serve", str(notification)])

        assert result.exit_code == 1
        assert "Error: Invalid jobs file: schedule: Field required" in result.output

    def test_jobs_file_without_schedule(self, runner: CliRunner, config_file: Path, tmp_path: Path) -> None:
        jobs = _write(tmp_path, "jobs.yaml", "jobs:\n  - notification: {title: Standup, body: In five minutes}\n")

        result = runner.invoke(cli, ["--config", str(config_file), "serve", str(jobs)])

        assert result.exit_code == 1
        assert "Error: Invalid jobs file" in result.output
