"""In-process event bus for domain events."""

from collections import defaultdict
from typing import Any, Callable, Dict, List

from vpnhost_shared.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[..., Any]


class EventBus:
    """Synchronous publish/subscribe keyed by event name."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._once: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, fn: Listener) -> None:
        """Call ``fn`` every time ``event`` is emitted."""
        self._listeners[event].append(fn)

    def once(self, event: str, fn: Listener) -> None:
        """Call ``fn`` the next time ``event`` is emitted only."""
        self._once[event].append(fn)

    def off(self, event: str, fn: Listener) -> None:
        """Remove ``fn`` from ``event``; unknown listeners are ignored."""
        for registry in (self._listeners, self._once):
            if fn in registry.get(event, []):
                registry[event].remove(fn)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, [])) + len(self._once.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Emit ``event`` to its listeners.

        Listener failures are logged and do not prevent the remaining
        listeners from running.

        Args:
            event: Event name
            *args: Positional arguments passed to each listener

        Returns:
            bool: True if the event had listeners
        """
        listeners = list(self._listeners.get(event, [])) + self._once.pop(event, [])
        for fn in listeners:
            try:
                fn(*args)
            except Exception as e:
                logger.error("Event listener failed", event_name=event, error=str(e))
        return bool(listeners)
