"""Event bus for engine notifications.

Simple pub/sub system so that applications can observe the engine
(drain notifications, fatal errors, auth changes, diagnostics) without
holding references into it.
"""

from __future__ import annotations

import traceback
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from agavelink.core.logging import get_logger

_logger = get_logger(__name__)

# Published each time the pending request counter drops to zero.
EVENT_ALL_FINISHED = "tasks.all_finished"
# Single channel for unrecoverable programming/configuration defects.
EVENT_FATAL_ERROR = "agave.fatal_error"
EVENT_AUTH_STATE_CHANGED = "auth.state_changed"


class EventBus:
    """Simple event bus.

    Example:
        bus = EventBus()

        def on_fatal(data):
            print(data["message"])

        bus.subscribe("agave.fatal_error", on_fatal)
        bus.publish("agave.fatal_error", {"message": "Request count is less than 0"})
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[[dict[str, Any]], None]]] = defaultdict(list)
        self._all_subscribers: list[Callable[[str, dict[str, Any]], None]] = []

    def subscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        """Subscribe to an event.

        Args:
            event: Event name
            callback: Callback function (receives event data dict)
        """
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[dict[str, Any]], None]) -> None:
        """Unsubscribe from an event.

        Args:
            event: Event name
            callback: Callback function to remove
        """
        if event in self._subscribers and callback in self._subscribers[event]:
            self._subscribers[event].remove(callback)

    def subscribe_all(self, callback: Callable[[str, dict[str, Any]], None]) -> None:
        """Subscribe to all published events.

        Args:
            callback: Callback function (receives event name and event data dict)
        """
        self._all_subscribers.append(callback)

    def publish(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Publish an event.

        Handler exceptions are logged and swallowed; publishing never raises.

        Args:
            event: Event name
            data: Event data (optional)
        """
        data = data or {}

        for cb_event in list(self._subscribers.get(event, [])):
            try:
                cb_event(data)
            except Exception as e:
                tb = traceback.format_exc()
                _logger.error(
                    f"Error in event handler for '{event}' (callback={cb_event}): "
                    f"{type(e).__name__}: {e}\n{tb}"
                )

        for cb_all in list(self._all_subscribers):
            try:
                cb_all(event, data)
            except Exception as e:
                tb = traceback.format_exc()
                _logger.error(
                    f"Error in all-event handler (event='{event}', callback={cb_all}): "
                    f"{type(e).__name__}: {e}\n{tb}"
                )

    def clear(self) -> None:
        """Clear all subscribers."""
        self._subscribers.clear()
        self._all_subscribers.clear()


_global_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get global event bus instance."""
    global _global_bus
    if _global_bus is None:
        _global_bus = EventBus()
    return _global_bus


def report_fatal(message: str, **data: Any) -> None:
    """Report an unrecoverable defect on the fatal-error channel.

    Fatal conditions are never retried. Callers decide whether to also raise
    (catalog misuse) or to refuse the current call (runtime bookkeeping).

    Args:
        message: Human readable description
        **data: Extra context published with the event
    """
    _logger.error(f"FATAL: {message}")
    get_event_bus().publish(EVENT_FATAL_ERROR, {"message": message, **data})
