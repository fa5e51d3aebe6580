"""Plugin host error taxonomy.

Request-level failures (timeouts, plugin-side errors, not-ready) surface as
the exception of that single ``send()`` call. Protocol and storage failures
are logged where they happen and never reach unrelated callers.
"""


class PluginError(Exception):
    """Base class for plugin host errors."""

    pass


class ProtocolError(PluginError):
    """Malformed frame received from a plugin."""

    pass


class RequestTimeout(PluginError):
    """A request did not receive a response in time."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Request timeout: {action}")


class NotReady(PluginError):
    """Request issued before start() or after stop()."""

    def __init__(self, message: str = "Plugin not ready") -> None:
        super().__init__(message)


class NoProcess(PluginError):
    """Request issued while the plugin process is dead or absent."""

    def __init__(self, message: str = "No plugin process") -> None:
        super().__init__(message)


class PluginNotFound(PluginError):
    """No manifest is known for the requested plugin id."""

    def __init__(self, plugin_id: str, message: str | None = None) -> None:
        self.plugin_id = plugin_id
        super().__init__(message or f"Plugin not found: {plugin_id}")


class UnknownPluginType(PluginError):
    """Manifest declares a type the loader cannot dispatch."""

    def __init__(self, plugin_type: str) -> None:
        self.plugin_type = plugin_type
        super().__init__(f"Unknown plugin type: {plugin_type}")


class UnimplementedType(PluginError):
    """Plugin type is recognised but has no runtime yet."""

    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"{label} not implemented")


class PluginResponseError(PluginError):
    """The plugin answered a request with ``success: false``."""

    def __init__(self, message: str, action: str | None = None) -> None:
        self.action = action
        super().__init__(message)


class PluginStopped(PluginError):
    """Pending request abandoned because the bridge stopped or the process exited."""

    pass


class PluginStartupError(PluginError):
    """Plugin process did not signal readiness."""

    pass


class PluginSpawnError(PluginError):
    """Plugin process could not be launched."""

    pass


class ManifestError(PluginError):
    """Invalid or unreadable plugin manifest."""

    pass


class ManifestSourceError(PluginError):
    """A manifest source failed to produce a listing."""

    pass


class StorageFailure(PluginError):
    """Registry storage could not be read or written."""

    pass
