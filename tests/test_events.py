"""Tests for plugin event subscriptions."""

import logging

from plugins.events import PluginEvent, PluginEvents


class TestPluginEvents:
    """Test subscribe/emit."""

    def test_emit_passes_plugin_id_first(self, events):
        received = []
        events.on_exit(lambda plugin_id, code: received.append((plugin_id, code)))

        events.emit(PluginEvent.EXIT, "p", 3)

        assert received == [("p", 3)]

    def test_events_are_independent(self, events):
        ready = []
        events.on_ready(ready.append)

        events.emit(PluginEvent.ERROR, "p", RuntimeError("x"))
        events.emit(PluginEvent.MESSAGE, "p", {"type": "progress"})

        assert ready == []

    def test_unsubscribe(self, events):
        received = []
        unsubscribe = events.on_message(lambda plugin_id, message: received.append(message))

        unsubscribe()
        unsubscribe()
        events.emit(PluginEvent.MESSAGE, "p", {})

        assert received == []
        assert events.handler_count(PluginEvent.MESSAGE) == 0

    def test_subscribe_by_name(self, events):
        events.subscribe("error", lambda *args: None)

        assert events.handler_count(PluginEvent.ERROR) == 1

    def test_failing_handler_does_not_stop_others(self, events, caplog):
        received = []

        def broken(plugin_id):
            raise ValueError("handler bug")

        events.on_ready(broken)
        events.on_ready(received.append)

        with caplog.at_level(logging.WARNING, logger="plugins.events"):
            events.emit(PluginEvent.READY, "p")

        assert received == ["p"]
        assert "Handler for ready event of p failed" in caplog.text

    def test_handler_may_unsubscribe_during_emit(self):
        events = PluginEvents()
        calls = []

        def once(plugin_id):
            calls.append(plugin_id)
            unsubscribe()

        unsubscribe = events.on_ready(once)

        events.emit(PluginEvent.READY, "a")
        events.emit(PluginEvent.READY, "b")

        assert calls == ["a"]
