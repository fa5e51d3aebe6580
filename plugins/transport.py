"""Byte channels between the host and a plugin.

Two implementations share one interface so the bridge never needs to know
where its frames go:

- ``ProcessTransport`` spawns the plugin binary and talks over its stdio.
- ``MockTransport`` answers requests in-process from a table of canned
  responses, for hosts where the plugin binary is not available.
"""

import asyncio
import codecs
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .errors import NoProcess, PluginSpawnError, ProtocolError
from .protocol import decode_line, encode_response

logger = logging.getLogger(__name__)

DataHandler = Callable[[str], None]
ExitHandler = Callable[[int | None], None]


class Transport(ABC):
    """Bidirectional text channel to one plugin."""

    # True when no real process sits behind the channel
    simulated: bool = False

    def __init__(self, label: str = "plugin") -> None:
        self.label = label
        self._data_handlers: list[DataHandler] = []
        self._exit_handlers: list[ExitHandler] = []

    def on_data(self, handler: DataHandler) -> None:
        """Register a handler for decoded text chunks."""
        self._data_handlers.append(handler)

    def on_exit(self, handler: ExitHandler) -> None:
        """Register a handler for the end of the channel (receives the exit code)."""
        self._exit_handlers.append(handler)

    @property
    def requires_handshake(self) -> bool:
        """Whether the bridge must wait for the ``init`` ready frame."""
        return False

    @property
    @abstractmethod
    def alive(self) -> bool:
        """Whether frames can currently be written."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Open the channel."""
        ...

    @abstractmethod
    async def write(self, line: str) -> None:
        """Write one framed line.

        Raises:
            NoProcess: If the channel is closed
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...

    def _emit_data(self, text: str) -> None:
        for handler in list(self._data_handlers):
            try:
                handler(text)
            except Exception:
                logger.error("[%s] Data handler failed", self.label, exc_info=True)

    def _emit_exit(self, code: int | None) -> None:
        for handler in list(self._exit_handlers):
            try:
                handler(code)
            except Exception:
                logger.error("[%s] Exit handler failed", self.label, exc_info=True)


class ProcessTransport(Transport):
    """Plugin running as a child process speaking over stdin/stdout.

    stdout is decoded incrementally so a multi-byte character split across
    two reads is not mangled. stderr is forwarded to the log.
    """

    def __init__(
        self,
        binary: str,
        args: Sequence[str] | None = None,
        *,
        label: str = "plugin",
        handshake: bool = True,
        shutdown_grace_ms: int = 1000,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        read_chunk_size: int = 65536,
    ) -> None:
        """Initialize process transport.

        Args:
            binary: Executable to launch
            args: Command line arguments
            label: Name used in log lines (normally the plugin id)
            handshake: Whether the plugin prints an ``init`` ready frame
            shutdown_grace_ms: Time allowed for a clean exit before killing
            env: Environment for the child (None = inherit)
            cwd: Working directory for the child
            read_chunk_size: Maximum bytes per stdout read
        """
        super().__init__(label)
        self.binary = binary
        self.args = list(args or [])
        self.handshake = handshake
        self.shutdown_grace_ms = shutdown_grace_ms
        self.env = dict(env) if env is not None else None
        self.cwd = cwd
        self.read_chunk_size = read_chunk_size

        self._process: asyncio.subprocess.Process | None = None
        self._stdout_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._exit_task: asyncio.Task | None = None

    @property
    def requires_handshake(self) -> bool:
        return self.handshake

    @property
    def alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process else None

    async def start(self) -> None:
        """Spawn the plugin process.

        Raises:
            PluginSpawnError: If the binary cannot be launched
        """
        if self.alive:
            return

        try:
            self._process = await asyncio.create_subprocess_exec(
                self.binary,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
                cwd=self.cwd,
            )
        except OSError as e:
            raise PluginSpawnError(f"Failed to spawn {self.binary}: {e}") from e

        logger.info("[%s] Spawned %s (pid %d)", self.label, self.binary, self._process.pid)

        self._stdout_task = asyncio.create_task(self._read_stdout(self._process))
        self._stderr_task = asyncio.create_task(self._read_stderr(self._process))
        self._exit_task = asyncio.create_task(self._watch_exit(self._process))

    async def write(self, line: str) -> None:
        process = self._process
        if process is None or process.returncode is not None or process.stdin is None:
            raise NoProcess()
        if process.stdin.is_closing():
            raise NoProcess()

        try:
            process.stdin.write(line.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise NoProcess() from e

    async def stop(self) -> None:
        """Close stdin, wait for a clean exit, then kill if needed."""
        process = self._process
        if process is None:
            return

        if process.returncode is None:
            if process.stdin is not None and not process.stdin.is_closing():
                process.stdin.close()

            try:
                await asyncio.wait_for(process.wait(), timeout=self.shutdown_grace_ms / 1000)
            except asyncio.TimeoutError:
                logger.warning("[%s] Plugin did not exit within %d ms, killing", self.label, self.shutdown_grace_ms)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        exit_task = self._exit_task
        if exit_task is not None and exit_task is not asyncio.current_task():
            await exit_task

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while True:
            chunk = await process.stdout.read(self.read_chunk_size)
            if not chunk:
                tail = decoder.decode(b"", final=True)
                if tail:
                    self._emit_data(tail)
                break

            text = decoder.decode(chunk)
            if text:
                self._emit_data(text)

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None

        while True:
            line = await process.stderr.readline()
            if not line:
                break
            logger.warning("[%s] stderr: %s", self.label, line.decode("utf-8", errors="replace").rstrip())

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        code = await process.wait()

        # Deliver everything the plugin wrote before reporting the exit
        readers = [t for t in (self._stdout_task, self._stderr_task) if t is not None]
        if readers:
            _, still_reading = await asyncio.wait(readers, timeout=1.0)
            # A grandchild may hold the pipe open after the plugin exits
            for task in still_reading:
                logger.warning("[%s] Output pipe still open after exit, closing reader", self.label)
                task.cancel()
            if still_reading:
                await asyncio.wait(still_reading)

        logger.info("[%s] Plugin process exited with code %s", self.label, code)
        self._emit_exit(code)


MockHandler = Callable[[dict[str, Any]], Any]


def _mock_ping(params: dict[str, Any]) -> Any:
    return {"pong": True}


def _mock_capabilities(params: dict[str, Any]) -> Any:
    return {
        "actions": ["ping", "analyze", "deep_analyze", "report", "browse", "shutdown"],
        "version": "0.1.0",
        "features": {"tui": True, "gui": False},
    }


def _mock_browse(params: dict[str, Any]) -> Any:
    return {
        "path": params.get("path") or ".",
        "entries": [
            {"name": "example.md", "path": "./example.md", "type": "file"},
            {"name": "docs", "path": "./docs", "type": "directory"},
        ],
    }


def _mock_analyze(params: dict[str, Any]) -> Any:
    files = params.get("files") or []
    return {
        "files_analyzed": len(files),
        "analyses": [
            {
                "path": path,
                "size": 1024,
                "file_type": "md",
                "permissions": "644",
                "is_binary": False,
            }
            for path in files
        ],
    }


def _mock_shutdown(params: dict[str, Any]) -> Any:
    return {"shutdown": "acknowledged"}


MOCK_RESPONSES: dict[str, MockHandler] = {
    "ping": _mock_ping,
    "get_capabilities": _mock_capabilities,
    "browse": _mock_browse,
    "analyze": _mock_analyze,
    "shutdown": _mock_shutdown,
}


class MockTransport(Transport):
    """In-process stand-in for a native plugin.

    Each request written is answered after ``latency_ms`` by the handler
    registered for its action. The reply travels back through the data
    handlers as a framed line, exactly like output from a real process.
    A handler that raises produces a ``success: false`` reply.
    """

    simulated = True

    def __init__(
        self,
        latency_ms: float = 50,
        responses: Mapping[str, MockHandler] | None = None,
        *,
        label: str = "plugin",
    ) -> None:
        super().__init__(label)
        self.latency_ms = latency_ms
        self.responses: dict[str, MockHandler] = {**MOCK_RESPONSES, **(responses or {})}
        self.requests: list[dict[str, Any]] = []
        self._started = False
        self._scheduled: set[asyncio.TimerHandle] = set()

    @property
    def alive(self) -> bool:
        return self._started

    async def start(self) -> None:
        self._started = True

    async def write(self, line: str) -> None:
        if not self._started:
            raise NoProcess()

        try:
            request = decode_line(line.rstrip("\n"))
        except ProtocolError as e:
            logger.error("[%s] Mock transport received malformed request: %s", self.label, e)
            return

        self.requests.append(request)
        reply = self._respond(request)

        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def deliver() -> None:
            self._scheduled.discard(handle)
            if self._started:
                self._emit_data(reply)

        handle = loop.call_later(max(self.latency_ms, 0) / 1000, deliver)
        self._scheduled.add(handle)

    def _respond(self, request: dict[str, Any]) -> str:
        correlation_id = request.get("id")
        action = request.get("action")
        handler = self.responses.get(action) if isinstance(action, str) else None

        if handler is None:
            return encode_response(correlation_id, False, error=f"Mock: Unknown action {action}")

        params = request.get("params")
        try:
            data = handler(params if isinstance(params, dict) else {})
        except Exception as e:
            return encode_response(correlation_id, False, error=str(e))

        return encode_response(correlation_id, True, data=data)

    async def stop(self) -> None:
        self._started = False

        for handle in self._scheduled:
            handle.cancel()
        self._scheduled.clear()
