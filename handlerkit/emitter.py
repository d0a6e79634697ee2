"""Minimal async event source.

Stands in for the chat client's event surface: the event bus and the
orchestrator attach listeners here, and the client adapter calls
``emit`` for each inbound platform event.
"""

import inspect
from collections import defaultdict
from typing import Any, Callable, Dict, List

from .logging_config import get_logger

logger = get_logger("events")

Listener = Callable[..., Any]


class EventEmitter:
    """Name-keyed listener table with async, in-order emission."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, event_name: str, listener: Listener) -> None:
        """Attach a listener that runs on every emission."""
        self._listeners[event_name].append(listener)

    def once(self, event_name: str, listener: Listener) -> None:
        """Attach a listener that detaches itself after its first run."""
        async def wrapper(*args):
            self.off(event_name, wrapper)
            result = listener(*args)
            if inspect.isawaitable(result):
                result = await result
            return result

        self.on(event_name, wrapper)

    def off(self, event_name: str, listener: Listener) -> bool:
        """Detach a listener. Returns False if it was not attached."""
        listeners = self._listeners.get(event_name, [])
        try:
            listeners.remove(listener)
        except ValueError:
            return False
        if not listeners:
            self._listeners.pop(event_name, None)
        return True

    def listeners(self, event_name: str) -> List[Listener]:
        return list(self._listeners.get(event_name, []))

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    @property
    def event_names(self) -> List[str]:
        return list(self._listeners.keys())

    async def emit(self, event_name: str, *args: Any) -> int:
        """Call every listener for ``event_name`` in attach order.

        Listeners are snapshotted first, so attaching or detaching
        during emission affects only later emissions. Returns the
        number of listeners called.
        """
        listeners = self.listeners(event_name)
        for listener in listeners:
            result = listener(*args)
            if inspect.isawaitable(result):
                await result
        logger.debug("event_emitted", event_name=event_name, listeners=len(listeners))
        return len(listeners)
