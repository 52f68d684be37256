"""Plugin discovery and metadata registration system.

This module implements convention-based discovery of provider plugins from the
``notification_relay.plugins`` package. Plugin packages register descriptive
metadata at import time, allowing the loader to enumerate available delivery
channels and build only those present in configuration.
"""

from __future__ import annotations

import importlib
import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Root directory that contains provider plugin packages
_PLUGIN_ROOT = Path(__file__).resolve().parent
# Fully-qualified package prefix for provider plugins
_PLUGIN_PACKAGE = __name__.rsplit(".", maxsplit=1)[0]
# Pattern enforcing lowercase identifiers for provider packages
_IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


@dataclass(slots=True, frozen=True)
class PluginMetadata:
    """Describes a provider plugin package."""

    identifier: str
    name: str
    package: str
    version: str
    default_priority: int
    description: str = ""
    entrypoint: str | None = None


_PLUGIN_REGISTRY: dict[str, PluginMetadata] = {}
_SCANNED_PACKAGES: set[str] = set()
_REGISTRY_LOCK = threading.RLock()


def register_plugin(metadata: PluginMetadata) -> None:
    """Register plugin metadata provided by a plugin package.

    Plugin packages call this function during import to register their
    metadata. Identifiers must be unique and match the package directory name.
    """
    identifier = metadata.identifier.strip()
    if not _IDENTIFIER_PATTERN.match(identifier):
        msg = f"Plugin identifier must be lowercase alphanumeric with optional underscores: {identifier!r}"
        raise ValueError(msg)

    module_suffix = metadata.package.rsplit(".", maxsplit=1)[-1]
    if module_suffix != identifier:
        msg = f"Plugin identifier must match package name (identifier={identifier}, package={metadata.package})"
        raise ValueError(msg)

    with _REGISTRY_LOCK:
        if identifier in _PLUGIN_REGISTRY:
            msg = f"Plugin identifier already registered: {identifier}"
            raise ValueError(msg)
        _PLUGIN_REGISTRY[identifier] = metadata


def get_registered_plugins(*, force_rescan: bool = False) -> tuple[PluginMetadata, ...]:
    """Return registered plugin metadata sorted by default priority."""
    _scan_plugin_packages(force_rescan=force_rescan)
    with _REGISTRY_LOCK:
        plugins = tuple(_PLUGIN_REGISTRY.values())
    return tuple(sorted(plugins, key=lambda meta: (meta.default_priority, meta.identifier)))


def discover_plugins(
    *,
    identifiers: frozenset[str] | set[str] | None = None,
    force_rescan: bool = False,
) -> tuple[PluginMetadata, ...]:
    """Discover available plugins, optionally restricted to ``identifiers``."""
    plugins = get_registered_plugins(force_rescan=force_rescan)
    if identifiers is None:
        return plugins
    wanted = {identifier.strip().lower() for identifier in identifiers}
    return tuple(metadata for metadata in plugins if metadata.identifier in wanted)


def get_plugin(identifier: str) -> PluginMetadata | None:
    """Retrieve metadata for the specified plugin identifier."""
    _scan_plugin_packages(force_rescan=False)
    with _REGISTRY_LOCK:
        return _PLUGIN_REGISTRY.get(identifier.strip().lower())


def _scan_plugin_packages(*, force_rescan: bool) -> None:
    """Scan the plugins directory and import provider packages."""
    for entry in sorted(_PLUGIN_ROOT.iterdir()):
        if not entry.is_dir():
            continue
        if entry.name.startswith("_"):
            continue
        if not (entry / "__init__.py").exists():
            continue

        module_name = f"{_PLUGIN_PACKAGE}.{entry.name}"
        with _REGISTRY_LOCK:
            if not force_rescan and module_name in _SCANNED_PACKAGES:
                continue
            registry_before = set(_PLUGIN_REGISTRY)

        try:
            _module = importlib.import_module(module_name)
        except Exception:
            logger.exception("Failed to import plugin package", extra={"plugin_module": module_name})
            continue

        with _REGISTRY_LOCK:
            # A re-import of an already registered package leaves the registry unchanged
            if registry_before == set(_PLUGIN_REGISTRY) and module_name not in _SCANNED_PACKAGES:
                if entry.name not in _PLUGIN_REGISTRY:
                    logger.warning(
                        "Plugin package imported but did not register metadata",
                        extra={"plugin_module": module_name},
                    )
            _SCANNED_PACKAGES.add(module_name)
