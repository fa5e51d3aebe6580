"""
Test doubles and helpers shared across the plugin host tests.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from plugins.errors import NoProcess
from plugins.events import PluginEvent, PluginEvents
from plugins.transport import ProcessTransport, Transport

FIXTURES_DIR = Path(__file__).parent / "fixtures"
ECHO_PLUGIN = FIXTURES_DIR / "echo_plugin.py"


class ScriptedTransport(Transport):
    """Transport double: records writes, lets the test feed output."""

    def __init__(self, label: str = "scripted", handshake: bool = False) -> None:
        super().__init__(label)
        self.handshake = handshake
        self.written: list[str] = []
        self.started = False
        self.stopped = 0
        self._alive = False

    @property
    def requires_handshake(self) -> bool:
        return self.handshake

    @property
    def alive(self) -> bool:
        return self._alive

    async def start(self) -> None:
        self.started = True
        self._alive = True

    async def write(self, line: str) -> None:
        if not self._alive:
            raise NoProcess()
        self.written.append(line)

    async def stop(self) -> None:
        self.stopped += 1
        self._alive = False

    def feed(self, text: str) -> None:
        self._emit_data(text)

    def reply(self, message: dict[str, Any]) -> None:
        self.feed(json.dumps(message) + "\n")

    def requests(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.written]

    def exit(self, code: int | None) -> None:
        self._alive = False
        self._emit_exit(code)


async def wait_for_writes(transport: ScriptedTransport, count: int) -> None:
    """Yield to the loop until ``count`` frames were written."""
    for _ in range(100):
        if len(transport.written) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} writes, got {len(transport.written)}")


def echo_plugin_transport(*flags: str, **kwargs: Any) -> ProcessTransport:
    """Process transport running tests/fixtures/echo_plugin.py."""
    return ProcessTransport(sys.executable, [str(ECHO_PLUGIN), *flags], label="echo", **kwargs)


class EventRecorder:
    """Collects every event emitted on a PluginEvents object."""

    def __init__(self, events: PluginEvents) -> None:
        self.records: list[tuple[PluginEvent, tuple[Any, ...]]] = []
        for event in PluginEvent:
            events.subscribe(event, self._recorder(event))

    def _recorder(self, event: PluginEvent):
        def record(*args: Any) -> None:
            self.records.append((event, args))

        return record

    def of(self, event: PluginEvent) -> list[tuple[Any, ...]]:
        return [args for kind, args in self.records if kind is event]


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` until it returns true or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(interval)
