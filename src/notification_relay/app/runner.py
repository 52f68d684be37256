"""Application runner wiring configuration, providers, dispatcher and scheduler."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Iterable
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Self

from notification_relay.core.config import MainConfig, load_main_config
from notification_relay.core.dispatcher import NotificationDispatcher
from notification_relay.core.scheduler import NotificationScheduler
from notification_relay.core.validation import DispatchRequest
from notification_relay.plugins.loader import PluginLoader
from notification_relay.plugins.registry import ProviderRegistry
from notification_relay.providers.base import utc_now
from notification_relay.types import BulkScheduleItem, Clock, DeliveryProvider, HTTPClient, Sleeper
from notification_relay.utils.http_client import AIOHTTPClient
from notification_relay.utils.logging import log_with_context

logger = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ApplicationRunner:
    """Composition root for a dispatcher and scheduler built from configuration.

    Use as an async context manager: entering builds the HTTP transport and
    every configured provider and starts the scheduler; exiting stops the
    scheduler, waits for in-flight firings and closes the transport.

    Example:
        >>> async with ApplicationRunner(load_main_config(path)) as runner:
        ...     result = await runner.dispatcher.dispatch(notification)
    """

    def __init__(
        self,
        config: MainConfig,
        *,
        http_client: HTTPClient | None = None,
        loader: PluginLoader | None = None,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Validated application configuration
            http_client: Transport for providers; an ``AIOHTTPClient`` is
                created and owned by the runner when omitted
            loader: Plugin loader used to build providers
            clock: Time source for the scheduler
            sleep: Awaitable sleep shared by scheduler triggers and retries
        """
        self.config: MainConfig = config
        self._http_client: HTTPClient | None = http_client
        self._loader: PluginLoader = loader or PluginLoader()
        self._clock: Clock = clock
        self._sleep: Sleeper = sleep
        self._exit_stack: AsyncExitStack = AsyncExitStack()
        self._dispatcher: NotificationDispatcher | None = None
        self._scheduler: NotificationScheduler | None = None
        self._shutdown_event: asyncio.Event | None = None

    @classmethod
    def from_config_file(cls, config_path: Path, **kwargs: object) -> Self:
        """Load the configuration file and build a runner for it.

        Raises:
            ConfigurationError: If the configuration is missing or invalid
        """
        return cls(load_main_config(config_path), **kwargs)  # pyright: ignore[reportArgumentType]

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            msg = "ApplicationRunner must be entered before use"
            raise RuntimeError(msg)
        return self._dispatcher

    @property
    def scheduler(self) -> NotificationScheduler:
        if self._scheduler is None:
            msg = "ApplicationRunner must be entered before use"
            raise RuntimeError(msg)
        return self._scheduler

    @property
    def default_timezone(self) -> str:
        return self.config.scheduler.default_timezone

    async def __aenter__(self) -> Self:
        try:
            http_client = self._http_client
            if http_client is None:
                http_client = await self._exit_stack.enter_async_context(
                    AIOHTTPClient(default_timeout_seconds=self.config.dispatch.request_timeout_seconds)
                )

            registry: ProviderRegistry[DeliveryProvider] = ProviderRegistry()
            loaded = self._loader.load_providers(
                self.config.providers,
                http_client=http_client,
                dispatch=self.config.dispatch,
                sleep=self._sleep,
            )
            for plugin in loaded:
                registry.register(plugin.provider)
        except BaseException:
            await self._exit_stack.aclose()
            raise

        self._dispatcher = NotificationDispatcher(registry)
        self._scheduler = NotificationScheduler(clock=self._clock, sleep=self._sleep)
        self._scheduler.start()
        self._shutdown_event = asyncio.Event()

        log_with_context(
            logger,
            logging.INFO,
            "Notification relay ready",
            extra={
                "provider_count": len(registry),
                "providers": [provider.display_name for provider in registry.get_all()],
                "enabled": [provider.display_name for provider in registry.get_enabled()],
            },
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        try:
            if self._scheduler is not None:
                await self._scheduler.aclose()
        finally:
            await self._exit_stack.aclose()
            logger.info("Notification relay shutdown complete")

    def schedule_jobs(self, requests: Iterable[DispatchRequest]) -> tuple[BulkScheduleItem, ...]:
        """Schedule every notification of every request that carries a schedule.

        A bulk request is scheduled item by item and a failing item does not
        stop the rest of its batch; the index of each result is its position
        within its own request.

        Raises:
            ValueError: If a request has no schedule
            ScheduleFormatError: If a schedule is malformed
            ValidationError: If the notification of a single request is rejected
        """
        items: list[BulkScheduleItem] = []
        for request in requests:
            if request.schedule is None:
                msg = "Only scheduled requests can be registered with the scheduler"
                raise ValueError(msg)
            if request.bulk:
                items.extend(
                    self.scheduler.schedule_bulk(
                        request.notifications, request.schedule, self.dispatcher, request.options
                    )
                )
                continue
            notification = request.notifications[0]
            receipt = self.scheduler.schedule(notification, request.schedule, self.dispatcher, request.options)
            items.append(BulkScheduleItem(index=0, title=notification.title, success=True, receipt=receipt))
        return tuple(items)

    def request_shutdown(self) -> None:
        """Ask ``serve`` to return."""
        if self._shutdown_event is not None and not self._shutdown_event.is_set():
            logger.info("Shutdown signal received, requesting graceful shutdown")
            self._shutdown_event.set()

    async def serve(self, requests: Iterable[DispatchRequest] = ()) -> tuple[BulkScheduleItem, ...]:
        """Schedule ``requests`` and run until SIGINT, SIGTERM or ``request_shutdown``.

        Returns:
            Per-notification results of the scheduling done at startup
        """
        if self._shutdown_event is None:
            msg = "ApplicationRunner must be entered before use"
            raise RuntimeError(msg)

        items = self.schedule_jobs(requests)
        log_with_context(
            logger,
            logging.INFO,
            "Serving scheduled notifications",
            extra={"jobs": sum(item.success for item in items), "failed": sum(not item.success for item in items)},
        )

        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in _SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Signal handlers can only be installed from the main thread
                continue
            installed.append(sig)

        try:
            _ = await self._shutdown_event.wait()
        finally:
            for sig in installed:
                _ = loop.remove_signal_handler(sig)
        return items
