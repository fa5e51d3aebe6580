"""Plugin communication and lifecycle layer.

Talks to out-of-process plugins over newline-delimited JSON, manages
their discovery and lifecycle, and remembers which ones the user enabled.

Pieces:
    PluginBridge     request/response correlation over one transport
    ProcessTransport plugin binary spoken to over stdin/stdout
    MockTransport    canned in-process responses when no binary is available
    PluginLoader     discovery, load/unload/hot-reload, one instance per id
    PluginRegistry   persisted enable flags and settings

Example plugin.yaml:
    id: diamond-drill
    name: Diamond Drill
    version: 0.1.0
    type: native

    entry:
      native:
        binary: diamond
        args: [--plugin-mode]
"""

from .bridge import PluginBridge
from .events import PluginEvent, PluginEvents
from .loader import InstanceStatus, PluginInstance, PluginLoader, TransportMode
from .manifest import PluginManifest, PluginType
from .registry import PluginRegistry, RegistryEntry
from .sources import ChainedManifestSource, DirectoryManifestSource, StaticManifestSource
from .storage import JsonFileStorage, MemoryStorage
from .transport import MockTransport, ProcessTransport, Transport

__all__ = [
    "ChainedManifestSource",
    "DirectoryManifestSource",
    "InstanceStatus",
    "JsonFileStorage",
    "MemoryStorage",
    "MockTransport",
    "PluginBridge",
    "PluginEvent",
    "PluginEvents",
    "PluginInstance",
    "PluginLoader",
    "PluginManifest",
    "PluginRegistry",
    "PluginType",
    "ProcessTransport",
    "RegistryEntry",
    "StaticManifestSource",
    "Transport",
    "TransportMode",
]
