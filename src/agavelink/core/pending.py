"""Counter of transport operations issued but not yet completed."""

from __future__ import annotations

from collections.abc import Callable

from agavelink.core.events import EVENT_ALL_FINISHED, get_event_bus, report_fatal
from agavelink.core.logging import get_logger

_LOGGER = get_logger(__name__)


class PendingCounter:
    """Non-negative in-flight count with a drain notification.

    Each transition to zero publishes ``tasks.all_finished`` once and calls
    the drain listeners registered at that moment. One-shot listeners are
    dropped after they fire.
    """

    def __init__(self) -> None:
        self._count = 0
        self._listeners: list[Callable[[], None]] = []
        self._once: list[Callable[[], None]] = []

    @property
    def count(self) -> int:
        return self._count

    def add_drain_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def call_on_next_drain(self, callback: Callable[[], None]) -> None:
        self._once.append(callback)

    def increment(self) -> None:
        self._count += 1

    def decrement(self) -> None:
        if self._count <= 0:
            report_fatal("Request count is less than 0")
            self._count = 0
            return

        self._count -= 1
        if self._count == 0:
            self._notify_drained()

    def _notify_drained(self) -> None:
        _LOGGER.verbose("all pending requests finished")
        once, self._once = self._once, []
        for cb in [*self._listeners, *once]:
            try:
                cb()
            except Exception as e:
                _LOGGER.error(f"drain listener failed: {type(e).__name__}: {e}")
        get_event_bus().publish(EVENT_ALL_FINISHED, {})
