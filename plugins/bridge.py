"""Request/response bridge to a single plugin.

The bridge owns one transport. It frames outgoing requests, reassembles
incoming lines, and matches every response to the request that caused it
by correlation id. Responses may arrive in any order; each request has its
own timeout, and whichever of response or timeout comes first settles it.

Usage::

    bridge = PluginBridge("diamond-drill", MockTransport(latency_ms=0))
    await bridge.start()
    data = await bridge.send("ping")   # {"pong": True}
    await bridge.stop()
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from .errors import (
    NoProcess,
    NotReady,
    PluginError,
    PluginResponseError,
    PluginStartupError,
    PluginStopped,
    RequestTimeout,
)
from .events import PluginEvent, PluginEvents
from .protocol import (
    DEFAULT_MAX_LINE_BYTES,
    SHUTDOWN_MESSAGE_ID,
    FrameDecoder,
    encode_message,
    encode_request,
    is_ready_signal,
    is_response,
    new_correlation_id,
)
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_MS = 30000
DEFAULT_STARTUP_TIMEOUT_MS = 5000


@dataclass
class PendingRequest:
    """An issued request waiting for its response."""

    correlation_id: str
    action: str
    future: asyncio.Future
    timeout_handle: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()
            self.timeout_handle = None


class PluginBridge:
    """Correlates requests and responses over a plugin transport.

    ``ready`` is True only between a successful ``start()`` and the next
    ``stop()`` or process exit.
    """

    def __init__(
        self,
        plugin_id: str,
        transport: Transport,
        *,
        events: PluginEvents | None = None,
        request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS,
        startup_timeout_ms: int = DEFAULT_STARTUP_TIMEOUT_MS,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ) -> None:
        """Initialize bridge.

        Args:
            plugin_id: Plugin identifier, passed to every event handler
            transport: Channel to the plugin
            events: Notification sink (a private one is created if omitted)
            request_timeout_ms: Default per-request timeout
            startup_timeout_ms: Time allowed for the ready handshake
            max_line_bytes: Largest partial frame kept in the buffer
        """
        self.plugin_id = plugin_id
        self.transport = transport
        self.events = events or PluginEvents()
        self.request_timeout_ms = request_timeout_ms
        self.startup_timeout_ms = startup_timeout_ms

        self.ready = False
        self.mock_mode = False
        self.pending_requests: dict[str, PendingRequest] = {}

        self._decoder = FrameDecoder(label=plugin_id, max_line_bytes=max_line_bytes)
        self._ready_waiter: asyncio.Future | None = None
        self._stopping = False

        transport.on_data(self._handle_data)
        transport.on_exit(self._handle_exit)

    @property
    def buffer(self) -> str:
        """Partial line awaiting its newline."""
        return self._decoder.buffer

    @property
    def pending_count(self) -> int:
        return len(self.pending_requests)

    def is_ready(self) -> bool:
        return self.ready

    async def start(self) -> None:
        """Start the plugin and wait until it can take requests.

        A simulated transport makes the bridge ready immediately. A real
        process must print the ``init`` ready frame within the startup
        timeout unless its transport declares no handshake.

        Raises:
            PluginSpawnError: If the process cannot be launched
            PluginStartupError: If the process never signals readiness
        """
        if self.ready:
            return

        self._stopping = False

        if self.transport.simulated:
            await self.transport.start()
            self.mock_mode = True
            logger.info("[%s] Running in mock mode", self.plugin_id)
            self._mark_ready()
            return

        loop = asyncio.get_running_loop()
        if self.transport.requires_handshake:
            self._ready_waiter = loop.create_future()

        try:
            await self.transport.start()
        except PluginError as e:
            self._ready_waiter = None
            self.events.emit(PluginEvent.ERROR, self.plugin_id, e)
            raise

        if self._ready_waiter is None:
            self._mark_ready()
            return

        try:
            await asyncio.wait_for(self._ready_waiter, timeout=self.startup_timeout_ms / 1000)
        except asyncio.TimeoutError:
            error = PluginStartupError("Plugin startup timeout")
            await self._abort_start(error)
            raise error from None
        except PluginError as e:
            await self._abort_start(e)
            raise
        finally:
            self._ready_waiter = None

        self._mark_ready()

    async def _abort_start(self, error: PluginError) -> None:
        logger.error("[%s] %s", self.plugin_id, error)
        self.events.emit(PluginEvent.ERROR, self.plugin_id, error)
        self._stopping = True
        await self.transport.stop()

    def _mark_ready(self) -> None:
        self.ready = True
        logger.info("[%s] Plugin ready", self.plugin_id)
        self.events.emit(PluginEvent.READY, self.plugin_id)

    async def send(
        self,
        action: str,
        params: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """Send a request and wait for its response.

        Args:
            action: Action name understood by the plugin
            params: Action parameters
            timeout_ms: Per-request timeout (default: bridge setting)

        Returns:
            The ``data`` field of the plugin's response

        Raises:
            NotReady: If the bridge is not started
            NoProcess: If the transport is closed
            RequestTimeout: If no response arrives in time
            PluginResponseError: If the plugin reports a failure
            PluginStopped: If the bridge stops or the process exits first
        """
        if not self.ready:
            raise NotReady()
        if not self.transport.alive:
            raise NoProcess()

        if timeout_ms is None:
            timeout_ms = self.request_timeout_ms

        loop = asyncio.get_running_loop()
        correlation_id = new_correlation_id()
        pending = PendingRequest(correlation_id, action, loop.create_future())
        pending.timeout_handle = loop.call_later(max(timeout_ms, 0) / 1000, self._expire, correlation_id)
        self.pending_requests[correlation_id] = pending

        try:
            await self.transport.write(encode_request(correlation_id, action, params))
            return await pending.future
        finally:
            # No-op when the response or timer already settled the request
            self._discard(correlation_id)

    def _discard(self, correlation_id: str) -> None:
        pending = self.pending_requests.pop(correlation_id, None)
        if pending is not None:
            pending.cancel_timer()

    def _expire(self, correlation_id: str) -> None:
        pending = self.pending_requests.pop(correlation_id, None)
        if pending is None:
            return

        pending.cancel_timer()
        logger.warning("[%s] Request timeout: %s", self.plugin_id, pending.action)
        if not pending.future.done():
            pending.future.set_exception(RequestTimeout(pending.action))

    def _handle_data(self, chunk: str) -> None:
        for message in self._decoder.feed(chunk):
            self._handle_message(message)

    def _handle_message(self, message: dict[str, Any]) -> None:
        if self._ready_waiter is not None and not self._ready_waiter.done() and is_ready_signal(message):
            self._ready_waiter.set_result(message.get("data"))
            return

        correlation_id = message.get("id")
        pending = None
        if isinstance(correlation_id, str):
            pending = self.pending_requests.pop(correlation_id, None)

        if pending is not None:
            pending.cancel_timer()
            if pending.future.done():
                return

            if message.get("success") is True:
                pending.future.set_result(message.get("data"))
            else:
                error = message.get("error") or "Unknown error"
                pending.future.set_exception(PluginResponseError(str(error), action=pending.action))
            return

        if correlation_id == SHUTDOWN_MESSAGE_ID:
            logger.debug("[%s] Shutdown acknowledged", self.plugin_id)
            return

        if is_response(message):
            logger.debug("[%s] Response for unknown or expired request %s", self.plugin_id, correlation_id)

        self.events.emit(PluginEvent.MESSAGE, self.plugin_id, message)

    def _handle_exit(self, code: int | None) -> None:
        self.ready = False

        if not self._stopping:
            logger.error("[%s] Plugin process exited unexpectedly (code %s)", self.plugin_id, code)

        if self._ready_waiter is not None and not self._ready_waiter.done():
            self._ready_waiter.set_exception(PluginStartupError(f"Plugin process exited before ready (code {code})"))

        self._reject_pending("Plugin process exited")
        self.events.emit(PluginEvent.EXIT, self.plugin_id, code)

    def _reject_pending(self, reason: str) -> None:
        pending_requests = list(self.pending_requests.values())
        self.pending_requests.clear()

        for pending in pending_requests:
            pending.cancel_timer()
            if not pending.future.done():
                pending.future.set_exception(PluginStopped(reason))

    async def stop(self, reason: str = "Plugin stopped") -> None:
        """Stop the plugin and fail every outstanding request.

        Safe to call more than once.

        Args:
            reason: Message for the rejected requests
        """
        self.ready = False
        self._stopping = True
        self._reject_pending(reason)
        self._decoder.reset()

        if not self.transport.simulated and self.transport.alive:
            try:
                await self.transport.write(
                    encode_message({"id": SHUTDOWN_MESSAGE_ID, "action": "shutdown", "params": {}})
                )
            except (PluginError, OSError):
                logger.debug("[%s] Could not deliver shutdown request", self.plugin_id)

        await self.transport.stop()
        self._decoder.reset()
