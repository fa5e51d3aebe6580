"""
Shared pytest fixtures for the plugin host test suite.
"""

import pytest

from plugins.events import PluginEvents
from tests.helpers import EventRecorder, ScriptedTransport


@pytest.fixture
def events() -> PluginEvents:
    return PluginEvents()


@pytest.fixture
def recorder(events: PluginEvents) -> EventRecorder:
    return EventRecorder(events)


@pytest.fixture
def scripted() -> ScriptedTransport:
    return ScriptedTransport()
