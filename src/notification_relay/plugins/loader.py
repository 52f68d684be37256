"""Dynamic plugin loader for delivery providers.

This module builds a provider instance for every plugin named in the
configuration, validates the resulting objects implement the DeliveryProvider
Protocol, and surfaces detailed diagnostics when loading fails. Providers
marked ``enabled: false`` are still built so they can be re-enabled at runtime.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import ModuleType
from typing import TYPE_CHECKING, TypeIs, cast

from notification_relay.core.config import ConfigurationError, DispatchConfig, ProviderSettings
from notification_relay.plugins.discovery import PluginMetadata, get_plugin
from notification_relay.types import DeliveryProvider
from notification_relay.utils.logging import log_with_context
from notification_relay.utils.sanitization import sanitize_exception

if TYPE_CHECKING:
    from notification_relay.types import HTTPClient, Sleeper

__all__ = ["LoadedPlugin", "PluginLoader", "PluginLoaderError"]

logger = logging.getLogger(__name__)

_DEFAULT_FACTORY = "create_provider"


@dataclass(slots=True, frozen=True)
class LoadedPlugin:
    """Represents a successfully loaded provider plugin."""

    identifier: str
    provider: DeliveryProvider
    metadata: PluginMetadata


class PluginLoaderError(ConfigurationError):
    """Raised when a plugin cannot be loaded or validated."""

    def __init__(self, message: str, *, metadata: PluginMetadata | None = None) -> None:
        super().__init__(message)
        self.metadata: PluginMetadata | None = metadata


class PluginLoader:
    """Loader responsible for initializing configured provider plugins."""

    def __init__(self, *, logger_obj: logging.Logger | None = None) -> None:
        self._logger: logging.Logger = logger_obj or logger

    def load_providers(
        self,
        providers: Mapping[str, ProviderSettings],
        *,
        http_client: HTTPClient,
        dispatch: DispatchConfig | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> tuple[LoadedPlugin, ...]:
        """Build one provider per configured plugin.

        Args:
            providers: Provider sections keyed by plugin identifier
            http_client: Transport shared by every provider
            dispatch: Retry and timeout settings applied to every provider
            sleep: Awaitable sleep used by provider retry loops

        Returns:
            Loaded plugins in configuration order

        Raises:
            PluginLoaderError: If a plugin is unknown or its factory fails
            ConfigurationError: If a provider's settings fail schema validation
        """
        dispatch_settings = dispatch or DispatchConfig()
        loaded: list[LoadedPlugin] = []
        for identifier, settings in providers.items():
            metadata = get_plugin(identifier)
            if metadata is None:
                msg = f"No provider plugin named '{identifier}' is installed"
                raise PluginLoaderError(msg)

            priority = settings.priority if settings.priority is not None else metadata.default_priority
            kwargs: dict[str, object] = {
                "config": settings.config,
                "http_client": http_client,
                "priority": priority,
                "enabled": settings.enabled,
                "retry_attempts": dispatch_settings.retry_attempts,
                "retry_base_delay": dispatch_settings.retry_base_delay_seconds,
                "request_timeout": dispatch_settings.request_timeout_seconds,
                "sleep": sleep,
            }
            try:
                provider = self._initialize_provider(metadata, kwargs)
            except PluginLoaderError as exc:
                log_with_context(
                    self._logger,
                    logging.ERROR,
                    "Failed to load provider plugin",
                    extra={
                        "plugin_identifier": metadata.identifier,
                        "plugin_entrypoint": metadata.entrypoint,
                        "plugin_error": sanitize_exception(exc),
                    },
                )
                raise

            log_with_context(
                self._logger,
                logging.INFO,
                f"Loaded provider plugin {metadata.name}",
                extra={
                    "plugin_identifier": metadata.identifier,
                    "priority": priority,
                    "enabled": provider.is_enabled(),
                },
            )
            loaded.append(
                LoadedPlugin(
                    identifier=metadata.identifier,
                    provider=provider,
                    metadata=metadata,
                )
            )
        return tuple(loaded)

    def _initialize_provider(
        self,
        metadata: PluginMetadata,
        init_kwargs: Mapping[str, object],
    ) -> DeliveryProvider:
        module_name, attr_path = self._resolve_entrypoint(metadata)
        try:
            module = importlib.import_module(module_name)
        except Exception as exc:  # pragma: no cover - importlib provides detail
            msg = f"Unable to import plugin module '{module_name}' for provider '{metadata.identifier}': {exc}"
            raise PluginLoaderError(msg, metadata=metadata) from exc

        try:
            target = self._resolve_attribute(module, attr_path)
        except AttributeError as exc:
            msg = (
                f"Entrypoint attribute '{attr_path}' not found in module '{module_name}' "
                f"for provider '{metadata.identifier}'"
            )
            raise PluginLoaderError(msg, metadata=metadata) from exc

        try:
            candidate = self._evaluate_entrypoint(target, init_kwargs)
        except ConfigurationError:
            raise
        except Exception as exc:
            msg = f"Plugin entrypoint call failed for provider '{metadata.identifier}': {sanitize_exception(exc)}"
            raise PluginLoaderError(msg, metadata=metadata) from exc

        if not isinstance(candidate, DeliveryProvider):
            msg = (
                "Plugin entrypoint did not return a DeliveryProvider instance "
                f"(provider='{metadata.identifier}', object={type(candidate).__name__})"
            )
            raise PluginLoaderError(msg, metadata=metadata)
        return candidate

    @staticmethod
    def _resolve_entrypoint(metadata: PluginMetadata) -> tuple[str, str]:
        entrypoint = metadata.entrypoint
        if entrypoint:
            module_name, attr_path = (
                entrypoint.split(":", maxsplit=1) if ":" in entrypoint else (entrypoint, _DEFAULT_FACTORY)
            )
        else:
            module_name = f"{metadata.package}.provider"
            attr_path = _DEFAULT_FACTORY

        module_name = module_name.strip()
        attr_path = attr_path.strip()
        if not module_name or not attr_path:
            msg = (
                f"Invalid entrypoint definition for provider '{metadata.identifier}': "
                f"entrypoint={metadata.entrypoint!r}"
            )
            raise PluginLoaderError(msg, metadata=metadata)
        return module_name, attr_path

    @staticmethod
    def _resolve_attribute(module: ModuleType, attr_path: str) -> object:
        target: object = module
        for part in attr_path.split("."):
            target = cast(object, getattr(target, part))
        return target

    @staticmethod
    def _evaluate_entrypoint(
        target: object,
        init_kwargs: Mapping[str, object],
    ) -> object:
        kwargs = dict(init_kwargs)

        if inspect.isclass(target):
            class_factory = cast(type[object], target)
            return class_factory(**kwargs)
        if _is_callable_object(target):
            return target(**kwargs)
        return target


def _is_callable_object(value: object) -> TypeIs[Callable[..., object]]:
    """Type predicate that narrows objects implementing __call__."""

    return callable(value)
