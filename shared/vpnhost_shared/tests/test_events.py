"""Tests for the in-process event bus."""

from unittest.mock import MagicMock

from vpnhost_shared.events import EventBus


class TestEventBus:
    """Test listener registration and emission."""

    def test_on_listener_called_every_time(self):
        bus = EventBus()
        listener = MagicMock()
        bus.on("server-active", listener)

        assert bus.emit("server-active", 1) is True
        assert bus.emit("server-active", 2) is True

        assert listener.call_count == 2
        listener.assert_called_with(2)

    def test_once_listener_called_once(self):
        bus = EventBus()
        listener = MagicMock()
        bus.once("server-active", listener)

        bus.emit("server-active")
        bus.emit("server-active")

        listener.assert_called_once_with()
        assert bus.listener_count("server-active") == 0

    def test_emit_without_listeners(self):
        assert EventBus().emit("nothing") is False

    def test_off_removes_listener(self):
        bus = EventBus()
        listener = MagicMock()
        bus.on("account-connectivity-issue", listener)
        bus.off("account-connectivity-issue", listener)

        bus.emit("account-connectivity-issue")

        listener.assert_not_called()

    def test_failing_listener_does_not_stop_others(self):
        bus = EventBus()
        failing = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        bus.on("server-active", failing)
        bus.on("server-active", healthy)

        bus.emit("server-active")

        failing.assert_called_once()
        healthy.assert_called_once()
