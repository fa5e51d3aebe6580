"""Plugin lifecycle notifications.

A ``PluginEvents`` object is handed to the loader (and from there to every
bridge it builds). Consumers subscribe per event kind instead of passing
loose callbacks around:

    events = PluginEvents()
    events.on_exit(lambda plugin_id, code: print(plugin_id, "exited", code))
    loader = PluginLoader(events=events)

Handlers always receive the plugin id first.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class PluginEvent(str, Enum):
    """Notification kinds emitted by bridges."""

    READY = "ready"  # (plugin_id)
    ERROR = "error"  # (plugin_id, exception)
    MESSAGE = "message"  # (plugin_id, message dict)
    EXIT = "exit"  # (plugin_id, return code or None)


class PluginEvents:
    """Subscription registry for plugin notifications."""

    def __init__(self) -> None:
        self._handlers: dict[PluginEvent, list[Handler]] = {event: [] for event in PluginEvent}

    def subscribe(self, event: PluginEvent, handler: Handler) -> Callable[[], None]:
        """Subscribe a handler to an event kind.

        Args:
            event: Event kind
            handler: Callable invoked with the plugin id and event payload

        Returns:
            Callable that removes the subscription
        """
        handlers = self._handlers[PluginEvent(event)]
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def on_ready(self, handler: Handler) -> Callable[[], None]:
        return self.subscribe(PluginEvent.READY, handler)

    def on_error(self, handler: Handler) -> Callable[[], None]:
        return self.subscribe(PluginEvent.ERROR, handler)

    def on_message(self, handler: Handler) -> Callable[[], None]:
        return self.subscribe(PluginEvent.MESSAGE, handler)

    def on_exit(self, handler: Handler) -> Callable[[], None]:
        return self.subscribe(PluginEvent.EXIT, handler)

    def emit(self, event: PluginEvent, plugin_id: str, *args: Any) -> None:
        """Invoke every handler subscribed to ``event``.

        A failing handler is logged and does not stop the others.
        """
        for handler in list(self._handlers[event]):
            try:
                handler(plugin_id, *args)
            except Exception:
                logger.warning("Handler for %s event of %s failed", event.value, plugin_id, exc_info=True)

    def handler_count(self, event: PluginEvent) -> int:
        """Number of handlers subscribed to ``event``."""
        return len(self._handlers[event])
