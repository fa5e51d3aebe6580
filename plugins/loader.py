"""Plugin loader for discovering and instantiating plugins.

Asks a manifest source for available plugins, builds a bridge-backed
instance per plugin on demand, and tears instances down on unload or hot
reload. At most one live instance exists per plugin id.
"""

import asyncio
import logging
import shutil
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .bridge import DEFAULT_REQUEST_TIMEOUT_MS, DEFAULT_STARTUP_TIMEOUT_MS, PluginBridge
from .errors import (
    ManifestError,
    ManifestSourceError,
    NotReady,
    PluginNotFound,
    UnimplementedType,
    UnknownPluginType,
)
from .events import PluginEvents
from .manifest import PluginManifest, PluginType
from .protocol import DEFAULT_MAX_LINE_BYTES
from .sources import ManifestSource, StaticManifestSource
from .transport import MockTransport, ProcessTransport, Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[PluginManifest], Transport]


class InstanceStatus(str, Enum):
    """State of a loaded plugin instance."""

    READY = "ready"
    ERROR = "error"


class TransportMode(str, Enum):
    """How native plugins are reached."""

    AUTO = "auto"  # process when the binary is on PATH, mock otherwise
    PROCESS = "process"
    MOCK = "mock"


@dataclass
class PluginInstance:
    """A loaded plugin."""

    id: str
    manifest: PluginManifest
    bridge: PluginBridge | None
    status: InstanceStatus
    unsupported: str | None = None  # label of an unimplemented runtime

    async def send(
        self,
        action: str,
        params: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """Send a request to the plugin and return the response data."""
        if self.bridge is None:
            if self.unsupported:
                raise UnimplementedType(self.unsupported)
            raise NotReady()
        return await self.bridge.send(action, params, timeout_ms)

    async def stop(self) -> None:
        """Stop the plugin. Safe to call more than once."""
        if self.bridge is not None:
            await self.bridge.stop()


# Plugin types recognised by the manifest schema but without a runtime
UNSUPPORTED_TYPE_LABELS: dict[PluginType, str] = {
    PluginType.WASM: "WASM",
    PluginType.IFRAME: "IFrame",
    PluginType.WORKER: "Worker",
}


class PluginLoader:
    """Discovers plugins and manages their instances.

    Manifests come from a ``ManifestSource``. Every manifest ever seen is
    remembered so that a hot reload survives a source that temporarily
    stops listing a plugin.
    """

    def __init__(
        self,
        source: ManifestSource | None = None,
        *,
        events: PluginEvents | None = None,
        transport_mode: TransportMode | str = TransportMode.AUTO,
        transport_factory: TransportFactory | None = None,
        request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        startup_timeout_ms: int = DEFAULT_STARTUP_TIMEOUT_MS,
        shutdown_grace_ms: int = 1000,
        mock_latency_ms: float = 50,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ) -> None:
        """Initialize plugin loader.

        Args:
            source: Where manifests come from (default: builtin plugins)
            events: Notification sink shared by every bridge
            transport_mode: auto, process, or mock
            transport_factory: Overrides transport selection entirely
            request_timeout_ms: Default per-request timeout
            startup_timeout_ms: Time allowed for a plugin's ready handshake
            shutdown_grace_ms: Time allowed for a clean process exit
            mock_latency_ms: Simulated response latency of mock transports
            max_line_bytes: Largest partial frame a bridge buffers
        """
        self.source = source or StaticManifestSource()
        self.events = events or PluginEvents()
        self.transport_mode = TransportMode(transport_mode)
        self.transport_factory = transport_factory
        self.request_timeout_ms = request_timeout_ms
        self.startup_timeout_ms = startup_timeout_ms
        self.shutdown_grace_ms = shutdown_grace_ms
        self.mock_latency_ms = mock_latency_ms
        self.max_line_bytes = max_line_bytes

        self.manifests: dict[str, PluginManifest] = {}
        self.instances: dict[str, PluginInstance] = {}
        self._known_manifests: dict[str, PluginManifest] = {}
        self._locks: dict[str, asyncio.Lock] = {}

        self._dispatch: dict[PluginType, Callable[[PluginManifest], Awaitable[PluginInstance]]] = {
            PluginType.NATIVE: self._load_native,
            PluginType.WASM: self._load_unsupported,
            PluginType.IFRAME: self._load_unsupported,
            PluginType.WORKER: self._load_unsupported,
        }

    async def discover(self) -> list[PluginManifest]:
        """Refresh the manifest map from the source.

        Loaded instances are left alone, even when their plugin is no longer
        listed.

        Returns:
            Manifests found by this discovery
        """
        manifests = await self.source.list_manifests()

        self.manifests = {m.id: m for m in manifests}
        self._known_manifests.update(self.manifests)

        logger.info("Discovered %d plugins", len(manifests))
        return manifests

    async def load(self, plugin_id: str) -> PluginInstance:
        """Load a plugin, or return its existing instance.

        Args:
            plugin_id: Plugin identifier

        Returns:
            The plugin instance

        Raises:
            PluginNotFound: If no manifest is known for the id
            UnknownPluginType: If the manifest type cannot be dispatched
            PluginStartupError: If a native plugin fails to start
        """
        instance = self.instances.get(plugin_id)
        if instance is not None:
            return instance

        while True:
            lock = self._locks.setdefault(plugin_id, asyncio.Lock())
            async with lock:
                # Lock retired by a failed load while we waited; take the current one
                if self._locks.get(plugin_id) is not lock:
                    continue

                # A concurrent load may have finished while we waited
                instance = self.instances.get(plugin_id)
                if instance is not None:
                    return instance

                manifest = self.manifests.get(plugin_id)
                if manifest is None:
                    del self._locks[plugin_id]
                    raise PluginNotFound(plugin_id)

                plugin_type = manifest.plugin_type
                if plugin_type is None:
                    raise UnknownPluginType(manifest.type)

                instance = await self._dispatch[plugin_type](manifest)
                self.instances[plugin_id] = instance
                break

        logger.info("Loaded plugin: %s (%s, %s)", plugin_id, manifest.type, instance.status.value)
        return instance

    async def _load_native(self, manifest: PluginManifest) -> PluginInstance:
        transport = self._create_transport(manifest)
        bridge = PluginBridge(
            manifest.id,
            transport,
            events=self.events,
            request_timeout_ms=self.request_timeout_ms,
            startup_timeout_ms=self.startup_timeout_ms,
            max_line_bytes=self.max_line_bytes,
        )
        await bridge.start()

        return PluginInstance(
            id=manifest.id,
            manifest=manifest,
            bridge=bridge,
            status=InstanceStatus.READY,
        )

    async def _load_unsupported(self, manifest: PluginManifest) -> PluginInstance:
        label = UNSUPPORTED_TYPE_LABELS[PluginType(manifest.type)]
        logger.warning("%s plugins not yet implemented: %s", label, manifest.id)

        return PluginInstance(
            id=manifest.id,
            manifest=manifest,
            bridge=None,
            status=InstanceStatus.ERROR,
            unsupported=label,
        )

    def _create_transport(self, manifest: PluginManifest) -> Transport:
        if self.transport_factory is not None:
            return self.transport_factory(manifest)

        native = manifest.entry.native
        mode = self.transport_mode

        if mode is TransportMode.AUTO:
            if native is not None and shutil.which(native.binary):
                mode = TransportMode.PROCESS
            else:
                logger.info("Plugin binary for %s not available, using mock transport", manifest.id)
                mode = TransportMode.MOCK

        if mode is TransportMode.PROCESS:
            if native is None:
                raise ManifestError(f"Plugin {manifest.id} has no native entry point")
            return ProcessTransport(
                native.binary,
                native.args,
                label=manifest.id,
                handshake=native.handshake,
                shutdown_grace_ms=self.shutdown_grace_ms,
            )

        return MockTransport(latency_ms=self.mock_latency_ms, label=manifest.id)

    async def unload(self, plugin_id: str) -> None:
        """Stop and forget a plugin instance. No-op if not loaded."""
        instance = self.instances.pop(plugin_id, None)
        if instance is None:
            return

        await instance.stop()
        logger.info("Unloaded plugin: %s", plugin_id)

    async def hot_reload(self, plugin_id: str) -> PluginInstance:
        """Unload, rediscover, and load a plugin again.

        If rediscovery no longer lists the plugin (or fails outright), the
        last manifest seen for it is used instead.

        Raises:
            PluginNotFound: If no manifest is known before or after rediscovery
        """
        current = self.instances.get(plugin_id)
        previous = current.manifest if current is not None else self._known_manifests.get(plugin_id)

        await self.unload(plugin_id)

        try:
            await self.discover()
        except ManifestSourceError as e:
            logger.warning("Rediscovery failed while reloading %s: %s", plugin_id, e)

        if plugin_id not in self.manifests:
            if previous is None:
                raise PluginNotFound(plugin_id, f"Plugin not found after rediscovery: {plugin_id}")
            logger.warning("Plugin %s missing from rediscovery, reusing cached manifest", plugin_id)
            self.manifests[plugin_id] = previous

        return await self.load(plugin_id)

    def get(self, plugin_id: str) -> PluginInstance | None:
        """Get a loaded plugin instance."""
        return self.instances.get(plugin_id)

    def is_loaded(self, plugin_id: str) -> bool:
        return plugin_id in self.instances

    def get_loaded_plugins(self) -> list[str]:
        """Ids of all loaded plugins."""
        return list(self.instances)

    def get_available_plugins(self) -> list[PluginManifest]:
        """Manifests from the latest discovery."""
        return list(self.manifests.values())

    async def stop_all(self) -> None:
        """Stop every loaded plugin and clear the instance map."""
        instances = list(self.instances.values())
        self.instances.clear()

        results = await asyncio.gather(*(i.stop() for i in instances), return_exceptions=True)
        for instance, result in zip(instances, results):
            if isinstance(result, Exception):
                logger.error("Failed to stop plugin %s: %s", instance.id, result)

    @staticmethod
    def get_default_plugin_dirs() -> list[Path]:
        """Get default plugin directories.

        Returns:
            List of default plugin directories:
            - ~/.plughost/plugins (global)
            - ./.plugins (local to project)
        """
        return [
            Path.home() / ".plughost" / "plugins",
            Path.cwd() / ".plugins",
        ]
