"""Builds loaders and registries from configuration."""

from pathlib import Path

from plugins import (
    ChainedManifestSource,
    DirectoryManifestSource,
    JsonFileStorage,
    PluginEvents,
    PluginLoader,
    PluginRegistry,
    StaticManifestSource,
)
from plugins.sources import ManifestSource

from .config import Config


def create_source(config: Config) -> ManifestSource:
    """Manifest source described by the loader configuration.

    Builtin manifests come first so that a directory plugin with the same
    id overrides them.
    """
    sources: list[ManifestSource] = []

    if config.loader.use_builtin:
        sources.append(StaticManifestSource())

    if config.loader.plugin_dirs:
        plugin_dirs = [Path(d) for d in config.loader.plugin_dirs]
    else:
        plugin_dirs = PluginLoader.get_default_plugin_dirs()
    sources.append(DirectoryManifestSource(plugin_dirs))

    return ChainedManifestSource(sources)


def create_loader(config: Config, events: PluginEvents | None = None) -> PluginLoader:
    """Plugin loader wired from configuration."""
    return PluginLoader(
        create_source(config),
        events=events,
        transport_mode=config.loader.transport,
        request_timeout_ms=config.bridge.request_timeout_ms,
        startup_timeout_ms=config.bridge.startup_timeout_ms,
        shutdown_grace_ms=config.bridge.shutdown_grace_ms,
        mock_latency_ms=config.mock.latency_ms,
        max_line_bytes=config.bridge.max_line_bytes,
    )


def create_registry(config: Config) -> PluginRegistry:
    """Plugin registry persisted to the configured JSON file."""
    return PluginRegistry(
        storage=JsonFileStorage(config.registry_path()),
        storage_key=config.registry.storage_key,
    )
