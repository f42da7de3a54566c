"""
Tests for the Event Bus
========================
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from touchsurface.events import EventBus, Events


class TestEventBus:
    @pytest.fixture
    def bus(self):
        return EventBus()

    def test_emit_reaches_subscriber(self, bus):
        received = []
        bus.subscribe(Events.CONTACT, lambda **kw: received.append(kw))

        bus.emit(Events.CONTACT, event="e")

        assert received == [{"event": "e"}]

    def test_priority_order(self, bus):
        order = []
        bus.subscribe("x", lambda: order.append("low"), priority=0)
        bus.subscribe("x", lambda: order.append("high"), priority=10)

        bus.emit("x")

        assert order == ["high", "low"]

    def test_failing_handler_isolated(self, bus):
        received = []

        def broken():
            raise RuntimeError("handler bug")

        bus.subscribe("x", broken, priority=1)
        bus.subscribe("x", lambda: received.append(True))

        bus.emit("x")

        assert received == [True]

    def test_unsubscribe(self, bus):
        received = []
        handler = lambda: received.append(True)  # noqa: E731
        bus.subscribe("x", handler)
        bus.unsubscribe("x", handler)

        bus.emit("x")

        assert received == []
        assert bus.listener_count("x") == 0

    def test_listener_count(self, bus):
        bus.subscribe("x", lambda: None)
        bus.subscribe("x", lambda: None)

        assert bus.listener_count("x") == 2
        assert bus.listener_count("y") == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
