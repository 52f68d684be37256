"""Plugin system public API exports."""

from notification_relay.plugins.discovery import (
    PluginMetadata,
    discover_plugins,
    get_plugin,
    get_registered_plugins,
    register_plugin,
)
from notification_relay.plugins.loader import (
    PluginLoader,
    PluginLoaderError,
)
from notification_relay.plugins.registry import ProviderRegistry

__all__ = [
    "PluginMetadata",
    "PluginLoader",
    "PluginLoaderError",
    "discover_plugins",
    "get_plugin",
    "get_registered_plugins",
    "ProviderRegistry",
    "register_plugin",
]
