"""Command-line interface for notification-relay."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, replace
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click

from notification_relay.app.runner import ApplicationRunner
from notification_relay.core.config import (
    ConfigurationError,
    EnvironmentVariableError,
    MainConfig,
    load_main_config,
)
from notification_relay.core.exceptions import AllProvidersFailedError, NotificationRelayError
from notification_relay.core.validation import DispatchRequest, load_jobs_file, load_request_file
from notification_relay.types import (
    BulkDispatchResult,
    BulkScheduleItem,
    CompatibilityReport,
    DispatchOptions,
    DispatchResult,
    ProviderOutcome,
)
from notification_relay.utils.logging import configure_logging

# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Configuration file discovery paths in order of precedence
CURRENT_DIR_CONFIG_FILES = (
    "notification-relay.yaml",
    "notification-relay.yml",
    "config/notification-relay.yaml",
    "config.yaml",
    "config.yml",
)

HOME_CONFIG_FILES = (
    ".notification-relay.yaml",
    ".notification-relay.yml",
)

SYSTEM_CONFIG_PATHS = (
    Path("/etc/notification-relay/config.yaml"),
    Path("/etc/notification-relay.yaml"),
    Path("/usr/local/etc/notification-relay/config.yaml"),
)

_VALID_CONFIG_EXTENSIONS = frozenset({".yaml", ".yml", ".json"})
_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

try:
    __version__ = version("notification-relay")
except PackageNotFoundError:
    __version__ = "unknown"


def discover_config_file() -> Path:
    """Discover the configuration file in standard locations.

    Searches the current directory, then the user's home directory, then the
    system configuration directories.

    Returns:
        Path to the first configuration file found, or
        ``notification-relay.yaml`` if none exists
    """
    for config_file in CURRENT_DIR_CONFIG_FILES:
        config_path = Path(config_file)
        if config_path.is_file():
            return config_path

    try:
        home_dir = Path.home()
    except (OSError, RuntimeError):
        # Path.home() can fail in some environments
        home_dir = None
    if home_dir is not None:
        for config_file in HOME_CONFIG_FILES:
            config_path = home_dir / config_file
            if config_path.is_file():
                return config_path

    for config_path in SYSTEM_CONFIG_PATHS:
        if config_path.is_file():
            return config_path

    return Path(CURRENT_DIR_CONFIG_FILES[0])


def validate_config_path(
    ctx: click.Context,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    param: click.Parameter,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    value: Path | None,
) -> Path | None:
    """Validate the configuration file path.

    Raises:
        click.BadParameter: If the path is a directory or has an unsupported extension
    """
    if value is None:
        return value

    if value.is_dir():
        raise click.BadParameter("Configuration path must be a file, not a directory")

    if value.suffix.lower() not in _VALID_CONFIG_EXTENSIONS:
        extensions_str = ", ".join(sorted(_VALID_CONFIG_EXTENSIONS))
        raise click.BadParameter(f"Invalid configuration file extension. Supported extensions: {extensions_str}")

    return value


def validate_log_level(
    ctx: click.Context,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    param: click.Parameter,  # pyright: ignore[reportUnusedParameter] # required by Click callback signature
    value: str | None,
) -> str | None:
    """Validate and normalize the log level to upper case.

    Raises:
        click.BadParameter: If the level is unknown
    """
    if value is None:
        return value

    normalized_value = value.upper().strip()
    if normalized_value not in _VALID_LOG_LEVELS:
        raise click.BadParameter(f'Invalid log level "{value}". Valid options: {", ".join(sorted(_VALID_LOG_LEVELS))}')

    return normalized_value


@dataclass(slots=True)
class CLIState:
    """Global options shared by every command."""

    config_path: Path
    log_level: str | None = None
    enable_syslog: bool = True

    def load_config(self) -> MainConfig:
        config = load_main_config(self.config_path)
        configure_logging(
            log_level=self.log_level or config.application.log_level,
            enable_syslog=self.enable_syslog and config.application.syslog_enabled,
            enable_console=True,
        )
        return config


def _execute[T](coro: Coroutine[object, object, T]) -> T:
    """Run ``coro`` and turn domain errors into a clean exit status."""
    ctx = click.get_current_context()
    try:
        return asyncio.run(coro)
    except ConfigurationError as exc:
        click.echo(f"Configuration error:\n{exc}", err=True)
        ctx.exit(EXIT_FAILURE)
    except EnvironmentVariableError as exc:
        click.echo(f"Environment variable error:\n{exc}", err=True)
        ctx.exit(EXIT_FAILURE)
    except NotificationRelayError as exc:
        click.echo(f"Error: {exc}", err=True)
        if isinstance(exc, AllProvidersFailedError):
            for outcome in exc.outcomes:
                click.echo(_format_outcome(outcome), err=True)
        ctx.exit(EXIT_FAILURE)
    except KeyboardInterrupt:
        click.echo("\nShutdown complete", err=True)
        ctx.exit(EXIT_SUCCESS)


def _format_outcome(outcome: ProviderOutcome) -> str:
    line = f"  {outcome.provider}: {outcome.status.value}"
    if outcome.reason:
        line += f" ({outcome.reason})"
    return line


def _echo_dispatch_result(result: DispatchResult) -> None:
    message_id = result.receipt.message_id if result.receipt is not None else None
    suffix = f" (message id: {message_id})" if message_id else ""
    click.echo(f"Delivered via {result.used_provider}{suffix}")
    for outcome in result.outcomes:
        click.echo(_format_outcome(outcome))


def _echo_bulk_result(result: BulkDispatchResult) -> None:
    click.echo(f"Bulk dispatch: {result.successful}/{result.total} delivered, {result.failed} failed")
    for item in result.results:
        if item.success and item.result is not None:
            click.echo(f"  [{item.index}] {item.title}: delivered via {item.result.used_provider}")
        else:
            click.echo(f"  [{item.index}] {item.title}: failed ({item.error})")


def _echo_schedule_items(items: tuple[BulkScheduleItem, ...]) -> None:
    for item in items:
        receipt = item.receipt
        if item.success and receipt is not None:
            click.echo(
                f"Scheduled {receipt.job_id} ({receipt.frequency.value}) "
                f"for {receipt.scheduled_for.isoformat()} [{receipt.timezone}]"
            )
        else:
            click.echo(f"  [{item.index}] {item.title}: failed ({item.error})")
    failed = sum(not item.success for item in items)
    if failed:
        click.echo(f"Bulk schedule: {len(items) - failed}/{len(items)} scheduled, {failed} failed")


def _echo_compatibility(index: int, report: CompatibilityReport) -> None:
    verdict = "deliverable" if report.valid else "not deliverable"
    click.echo(f"Notification {index}: {verdict}")
    for entry in report.providers:
        state = "enabled" if entry.enabled else "disabled"
        handles = "yes" if entry.can_handle else "no"
        valid = "yes" if entry.valid else f"no ({entry.error})"
        click.echo(f"  {entry.name} [{state}] can handle: {handles}, valid: {valid}")


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default=None,
    callback=validate_config_path,
    help="Configuration file path (.yaml, .yml or .json). Searched in standard locations when omitted.",
)
@click.option(
    "--log-level",
    "-l",
    type=str,
    default=None,
    callback=validate_log_level,
    help="Override the configured log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
@click.option(
    "--no-syslog",
    is_flag=True,
    help="Disable syslog integration even if enabled in the configuration",
)
@click.version_option(version=__version__, prog_name="notification-relay")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, log_level: str | None, no_syslog: bool) -> None:
    """notification-relay - deliver push notifications with provider failover.

    Notifications are delivered through the configured providers in priority
    order; when one fails, the next is tried.

    Examples:

        # List configured providers
        notification-relay providers

        # Send a notification described in a YAML or JSON file
        notification-relay --config relay.yaml send notification.yaml

        # Run the scheduler for the jobs in a file
        notification-relay serve jobs.yaml
    """
    ctx.obj = CLIState(
        config_path=config if config is not None else discover_config_file(),
        log_level=log_level,
        enable_syslog=not no_syslog,
    )


@cli.command()
@click.pass_obj
def providers(state: CLIState) -> None:
    """List configured providers in failover order."""

    async def _list() -> None:
        async with ApplicationRunner(state.load_config()) as runner:
            infos = runner.dispatcher.list_providers()
        if not infos:
            click.echo("No providers configured")
            return
        for info in infos:
            status = "enabled" if info.enabled else "disabled"
            click.echo(f"{info.priority:>3}  {info.name:<12} {status}")

    _execute(_list())


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def check(state: CLIState, file: Path) -> None:
    """Check which providers could deliver the notification(s) in FILE."""

    async def _check() -> bool:
        config = state.load_config()
        request = load_request_file(file, default_timezone=config.scheduler.default_timezone)
        async with ApplicationRunner(config) as runner:
            reports = [runner.dispatcher.check_compatibility(item) for item in request.notifications]
        for index, report in enumerate(reports):
            _echo_compatibility(index, report)
        return all(report.valid for report in reports)

    if not _execute(_check()):
        click.get_current_context().exit(EXIT_FAILURE)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--provider", "-p", type=str, default=None, help="Deliver only through this provider (no failover)")
@click.option("--no-failover", is_flag=True, help="Stop after the first provider that fails")
@click.option(
    "--timeout",
    "-t",
    type=click.FloatRange(min=0, min_open=True, max=30),
    default=None,
    help="Overall dispatch timeout in seconds",
)
@click.option(
    "--disable",
    "disabled",
    multiple=True,
    help="Disable a provider for this invocation (repeatable)",
)
@click.pass_obj
def send(
    state: CLIState,
    file: Path,
    provider: str | None,
    no_failover: bool,
    timeout: float | None,
    disabled: tuple[str, ...],
) -> None:
    """Send the notification(s) described in FILE immediately."""

    async def _send() -> bool:
        config = state.load_config()
        request = load_request_file(file, default_timezone=config.scheduler.default_timezone)
        if request.schedule is not None:
            raise click.UsageError("FILE contains a schedule; use 'serve' to run scheduled notifications")
        options = _apply_overrides(request.options, provider=provider, no_failover=no_failover, timeout=timeout)

        async with ApplicationRunner(config) as runner:
            for name in disabled:
                _ = runner.dispatcher.set_provider_enabled(name, False)
            if request.bulk:
                bulk_result = await runner.dispatcher.dispatch_bulk(request.notifications, options)
                _echo_bulk_result(bulk_result)
                return bulk_result.failed == 0
            result = await runner.dispatcher.dispatch(request.notifications[0], options)
        _echo_dispatch_result(result)
        return True

    if not _execute(_send()):
        click.get_current_context().exit(EXIT_FAILURE)


def _apply_overrides(
    options: DispatchOptions,
    *,
    provider: str | None,
    no_failover: bool,
    timeout: float | None,
) -> DispatchOptions:
    if provider is not None:
        options = replace(options, provider=provider)
    if no_failover:
        options = replace(options, enable_failover=False)
    if timeout is not None:
        options = replace(options, timeout_seconds=timeout)
    return options


@cli.command()
@click.argument("jobs_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def serve(state: CLIState, jobs_file: Path) -> None:
    """Schedule the jobs in JOBS_FILE and run until interrupted.

    JOBS_FILE holds a ``jobs`` list, or a single request document (one
    notification or a batch) that carries a schedule.
    """

    async def _serve() -> bool:
        config = state.load_config()
        requests: tuple[DispatchRequest, ...] = load_jobs_file(
            jobs_file,
            default_timezone=config.scheduler.default_timezone,
        )
        async with ApplicationRunner(config) as runner:
            items = runner.schedule_jobs(requests)
            _echo_schedule_items(items)
            if not any(item.success for item in items):
                return False
            _ = await runner.serve()
        return True

    if not _execute(_serve()):
        click.get_current_context().exit(EXIT_FAILURE)
