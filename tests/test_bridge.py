"""Tests for the request/response bridge."""

import asyncio

import pytest

from plugins.bridge import PendingRequest, PluginBridge
from plugins.errors import (
    NoProcess,
    NotReady,
    PluginResponseError,
    PluginSpawnError,
    PluginStartupError,
    PluginStopped,
    RequestTimeout,
)
from plugins.events import PluginEvent
from plugins.transport import MockTransport, ProcessTransport
from tests.helpers import ScriptedTransport, echo_plugin_transport, wait_for_writes, wait_until


@pytest.mark.asyncio
class TestBridgeStart:
    """Test start() and readiness."""

    async def test_mock_transport_is_ready_immediately(self, events, recorder):
        bridge = PluginBridge("diamond-drill", MockTransport(latency_ms=0), events=events)

        await bridge.start()

        assert bridge.ready is True
        assert bridge.is_ready()
        assert bridge.mock_mode is True
        assert recorder.of(PluginEvent.READY) == [("diamond-drill",)]

    async def test_transport_without_handshake_ready_after_spawn(self, scripted):
        bridge = PluginBridge("p", scripted)

        await bridge.start()

        assert scripted.started
        assert bridge.ready is True
        assert bridge.mock_mode is False

    async def test_waits_for_ready_frame(self, events, recorder):
        transport = ScriptedTransport(handshake=True)
        bridge = PluginBridge("p", transport, events=events)

        start = asyncio.create_task(bridge.start())
        await asyncio.sleep(0)
        assert bridge.ready is False

        transport.reply({"id": "init", "success": True, "data": {"status": "ready"}})
        await asyncio.wait_for(start, timeout=1)

        assert bridge.ready is True
        assert recorder.of(PluginEvent.READY) == [("p",)]
        # The handshake frame is consumed, not forwarded
        assert recorder.of(PluginEvent.MESSAGE) == []

    async def test_startup_timeout(self, events, recorder):
        transport = ScriptedTransport(handshake=True)
        bridge = PluginBridge("p", transport, events=events, startup_timeout_ms=20)

        with pytest.raises(PluginStartupError, match="Plugin startup timeout"):
            await bridge.start()

        assert bridge.ready is False
        assert transport.stopped == 1
        assert len(recorder.of(PluginEvent.ERROR)) == 1

    async def test_exit_before_ready(self):
        transport = ScriptedTransport(handshake=True)
        bridge = PluginBridge("p", transport, startup_timeout_ms=1000)

        start = asyncio.create_task(bridge.start())
        await asyncio.sleep(0)
        transport.exit(2)

        with pytest.raises(PluginStartupError, match="exited before ready"):
            await start
        assert bridge.ready is False

    async def test_spawn_failure_emits_error(self, events, recorder):
        bridge = PluginBridge("p", ProcessTransport("/nonexistent/plugin-binary-for-tests"), events=events)

        with pytest.raises(PluginSpawnError):
            await bridge.start()

        assert bridge.ready is False
        assert recorder.of(PluginEvent.ERROR)[0][0] == "p"

    async def test_start_twice_is_noop(self, recorder, events):
        bridge = PluginBridge("p", MockTransport(latency_ms=0), events=events)

        await bridge.start()
        await bridge.start()

        assert len(recorder.of(PluginEvent.READY)) == 1


@pytest.mark.asyncio
class TestBridgeSend:
    """Test request/response correlation."""

    async def test_send_before_start(self, scripted):
        bridge = PluginBridge("p", scripted)

        with pytest.raises(NotReady, match="Plugin not ready"):
            await bridge.send("ping")

    async def test_send_after_stop(self):
        bridge = PluginBridge("p", MockTransport(latency_ms=0))
        await bridge.start()
        await bridge.stop()

        with pytest.raises(NotReady, match="Plugin not ready"):
            await bridge.send("ping")

    async def test_send_with_dead_transport(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()
        scripted._alive = False

        with pytest.raises(NoProcess, match="No plugin process"):
            await bridge.send("ping")
        assert bridge.pending_requests == {}

    async def test_ping_over_mock(self):
        bridge = PluginBridge("diamond-drill", MockTransport(latency_ms=0))
        await bridge.start()

        assert await bridge.send("ping") == {"pong": True}
        assert bridge.pending_requests == {}

    async def test_request_frame(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        task = asyncio.create_task(bridge.send("browse", {"path": "docs"}))
        await wait_for_writes(scripted, 1)

        request = scripted.requests()[0]
        assert request["action"] == "browse"
        assert request["params"] == {"path": "docs"}
        assert request["id"] in bridge.pending_requests

        scripted.reply({"id": request["id"], "success": True, "data": {"entries": []}})
        assert await task == {"entries": []}
        assert bridge.pending_requests == {}

    async def test_out_of_order_responses(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        first = asyncio.create_task(bridge.send("echo", {"n": 1}))
        second = asyncio.create_task(bridge.send("echo", {"n": 2}))
        await wait_for_writes(scripted, 2)
        id1, id2 = (r["id"] for r in scripted.requests())

        scripted.reply({"id": id2, "success": True, "data": "two"})
        scripted.reply({"id": id1, "success": True, "data": "one"})

        assert await first == "one"
        assert await second == "two"

    async def test_plugin_error(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        task = asyncio.create_task(bridge.send("analyze"))
        await wait_for_writes(scripted, 1)
        scripted.reply({"id": scripted.requests()[0]["id"], "success": False, "error": "Access denied"})

        with pytest.raises(PluginResponseError, match="Access denied") as exc_info:
            await task
        assert exc_info.value.action == "analyze"

    async def test_plugin_error_without_message(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        task = asyncio.create_task(bridge.send("analyze"))
        await wait_for_writes(scripted, 1)
        scripted.reply({"id": scripted.requests()[0]["id"], "success": False})

        with pytest.raises(PluginResponseError, match="Unknown error"):
            await task

    @pytest.mark.parametrize("flag", ["false", "true", 1])
    async def test_success_must_be_boolean_true(self, scripted, flag):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        task = asyncio.create_task(bridge.send("analyze"))
        await wait_for_writes(scripted, 1)
        scripted.reply({"id": scripted.requests()[0]["id"], "success": flag, "data": {}})

        with pytest.raises(PluginResponseError):
            await task

    async def test_failed_request_does_not_affect_others(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        failing = asyncio.create_task(bridge.send("fail"))
        ok = asyncio.create_task(bridge.send("ping"))
        await wait_for_writes(scripted, 2)
        fail_id, ok_id = (r["id"] for r in scripted.requests())

        scripted.reply({"id": fail_id, "success": False, "error": "nope"})
        scripted.reply({"id": ok_id, "success": True, "data": {"pong": True}})

        with pytest.raises(PluginResponseError):
            await failing
        assert await ok == {"pong": True}
        assert bridge.ready is True

    async def test_timeout(self):
        bridge = PluginBridge("p", MockTransport(latency_ms=10))
        await bridge.start()

        with pytest.raises(RequestTimeout, match="Request timeout: ping"):
            await bridge.send("ping", {}, 1)

        assert bridge.pending_requests == {}

    async def test_late_response_is_unsolicited(self, events, recorder):
        bridge = PluginBridge("p", MockTransport(latency_ms=10), events=events)
        await bridge.start()

        with pytest.raises(RequestTimeout):
            await bridge.send("ping", {}, 1)
        await wait_until(lambda: recorder.of(PluginEvent.MESSAGE), timeout=1)

        plugin_id, message = recorder.of(PluginEvent.MESSAGE)[0]
        assert plugin_id == "p"
        assert message["data"] == {"pong": True}
        assert bridge.pending_requests == {}

    async def test_default_timeout_applies(self):
        bridge = PluginBridge("p", MockTransport(latency_ms=50), request_timeout_ms=5)
        await bridge.start()

        with pytest.raises(RequestTimeout):
            await bridge.send("ping")

    async def test_timer_cancelled_on_response(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        task = asyncio.create_task(bridge.send("ping"))
        await wait_for_writes(scripted, 1)
        pending = next(iter(bridge.pending_requests.values()))
        handle = pending.timeout_handle

        scripted.reply({"id": scripted.requests()[0]["id"], "success": True, "data": {}})
        await task

        assert handle.cancelled()
        assert pending.timeout_handle is None

    async def test_cancelled_caller_removes_pending(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        task = asyncio.create_task(bridge.send("slow"))
        await wait_for_writes(scripted, 1)
        pending = next(iter(bridge.pending_requests.values()))

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert bridge.pending_requests == {}
        assert pending.timeout_handle is None


@pytest.mark.asyncio
class TestBridgeData:
    """Test the data-handling path."""

    async def test_two_responses_in_one_chunk(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()
        loop = asyncio.get_running_loop()
        futures = {}
        for cid in ("a", "b"):
            futures[cid] = loop.create_future()
            bridge.pending_requests[cid] = PendingRequest(cid, "ping", futures[cid])

        scripted.feed('{"id":"a","success":true,"data":{}}\n{"id":"b","success":true,"data":{}}\n')

        assert futures["a"].result() == {}
        assert futures["b"].result() == {}
        assert bridge.pending_requests == {}
        assert bridge.buffer == ""

    async def test_malformed_segments_interleaved(self, scripted, events, recorder):
        bridge = PluginBridge("p", scripted, events=events)
        await bridge.start()
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        bridge.pending_requests["a"] = PendingRequest("a", "ping", future)

        scripted.feed('garbage\n{"id":"a","success":true,"data":1}\n{"half')
        scripted.feed('-broken\n{"id":"evt","type":"progress","data":{}}\n')

        assert future.result() == 1
        assert bridge.buffer == ""
        assert [m["type"] for _, m in recorder.of(PluginEvent.MESSAGE)] == ["progress"]

    async def test_partial_frame_stays_buffered(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        scripted.feed('{"id":"x","succ')

        assert bridge.buffer == '{"id":"x","succ'

    async def test_unsolicited_event(self, scripted, events, recorder):
        bridge = PluginBridge("p", scripted, events=events)
        await bridge.start()

        scripted.reply({"id": "e1", "type": "file_changed", "data": {"path": "a.md"}})

        assert recorder.of(PluginEvent.MESSAGE) == [
            ("p", {"id": "e1", "type": "file_changed", "data": {"path": "a.md"}})
        ]

    async def test_shutdown_ack_not_forwarded(self, scripted, events, recorder):
        bridge = PluginBridge("p", scripted, events=events)
        await bridge.start()

        scripted.reply({"id": "shutdown", "success": True, "data": {"shutdown": "acknowledged"}})

        assert recorder.of(PluginEvent.MESSAGE) == []


@pytest.mark.asyncio
class TestBridgeStop:
    """Test stop() and process exit."""

    async def test_stop_rejects_pending(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        tasks = [asyncio.create_task(bridge.send("slow")) for _ in range(3)]
        await wait_for_writes(scripted, 3)
        handles = [p.timeout_handle for p in bridge.pending_requests.values()]

        await bridge.stop()

        for task in tasks:
            with pytest.raises(PluginStopped, match="Plugin stopped"):
                await task
        assert all(h.cancelled() for h in handles)
        assert bridge.pending_requests == {}
        assert bridge.ready is False
        assert scripted.stopped == 1

    async def test_stop_sends_shutdown_frame(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        await bridge.stop()

        assert scripted.requests()[-1] == {"id": "shutdown", "action": "shutdown", "params": {}}

    async def test_stop_clears_buffer(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()
        scripted.feed('{"partial":')

        await bridge.stop()

        assert bridge.buffer == ""

    async def test_stop_is_idempotent(self):
        bridge = PluginBridge("p", MockTransport(latency_ms=0))
        await bridge.start()

        await bridge.stop()
        await bridge.stop()

        assert bridge.ready is False

    async def test_stop_before_start(self, scripted):
        bridge = PluginBridge("p", scripted)

        await bridge.stop()

        assert bridge.ready is False

    async def test_stop_with_custom_reason(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()
        task = asyncio.create_task(bridge.send("slow"))
        await wait_for_writes(scripted, 1)

        await bridge.stop("Editor closing")

        with pytest.raises(PluginStopped, match="Editor closing"):
            await task

    async def test_process_exit_rejects_pending(self, scripted, events, recorder):
        bridge = PluginBridge("p", scripted, events=events)
        await bridge.start()
        task = asyncio.create_task(bridge.send("slow"))
        await wait_for_writes(scripted, 1)

        scripted.exit(137)

        with pytest.raises(PluginStopped, match="Plugin process exited"):
            await task
        assert bridge.ready is False
        assert bridge.pending_requests == {}
        assert recorder.of(PluginEvent.EXIT) == [("p", 137)]

    async def test_exit_is_not_restarted(self, scripted):
        bridge = PluginBridge("p", scripted)
        await bridge.start()

        scripted.exit(1)

        with pytest.raises(NotReady):
            await bridge.send("ping")
        assert scripted.started is True


@pytest.mark.asyncio
class TestBridgeWithProcess:
    """End-to-end bridge tests against a real plugin process."""

    async def test_handshake_round_trip_and_stop(self, events, recorder):
        bridge = PluginBridge("echo", echo_plugin_transport(), events=events, startup_timeout_ms=10000)

        await bridge.start()
        try:
            assert bridge.ready is True
            assert await bridge.send("ping") == {"pong": True}
            assert await bridge.send("echo", {"x": [1, 2]}) == {"x": [1, 2]}

            with pytest.raises(PluginResponseError, match="nope"):
                await bridge.send("fail", {"message": "nope"})

            assert await bridge.send("garbage") == {"after_garbage": True}
            assert await bridge.send("notify") == {"notified": True}
        finally:
            await bridge.stop()

        assert [m["type"] for _, m in recorder.of(PluginEvent.MESSAGE)] == ["progress"]
        assert bridge.ready is False
        assert recorder.of(PluginEvent.EXIT) == [("echo", 0)]

    async def test_no_handshake_plugin(self):
        transport = echo_plugin_transport("--no-handshake", handshake=False)
        bridge = PluginBridge("echo", transport)

        await bridge.start()
        try:
            assert await bridge.send("ping", timeout_ms=10000) == {"pong": True}
        finally:
            await bridge.stop()

    async def test_silent_plugin_times_out(self):
        bridge = PluginBridge("echo", echo_plugin_transport("--silent"), startup_timeout_ms=300)

        with pytest.raises(PluginStartupError, match="Plugin startup timeout"):
            await bridge.start()

        assert bridge.transport.alive is False

    async def test_plugin_exits_before_ready(self):
        bridge = PluginBridge("echo", echo_plugin_transport("--exit-immediately", "4"), startup_timeout_ms=10000)

        with pytest.raises(PluginStartupError, match="code 4"):
            await bridge.start()

    async def test_crash_rejects_pending_and_reports_exit(self, events, recorder):
        bridge = PluginBridge("echo", echo_plugin_transport(), events=events, startup_timeout_ms=10000)
        await bridge.start()

        with pytest.raises(PluginStopped, match="Plugin process exited"):
            await bridge.send("crash", {"code": 3})

        await wait_until(lambda: recorder.of(PluginEvent.EXIT))
        assert recorder.of(PluginEvent.EXIT) == [("echo", 3)]
        assert bridge.ready is False

        await bridge.stop()
