"""Tests for the pending request counter."""

from agavelink.core.events import EVENT_ALL_FINISHED, get_event_bus
from agavelink.core.pending import PendingCounter


def test_drain_fires_on_each_transition_to_zero():
    counter = PendingCounter()
    drained: list[int] = []
    published: list[dict] = []
    counter.add_drain_listener(lambda: drained.append(counter.count))
    get_event_bus().subscribe(EVENT_ALL_FINISHED, published.append)

    counter.increment()
    counter.increment()
    counter.decrement()
    assert drained == []

    counter.decrement()
    assert drained == [0]
    assert len(published) == 1

    counter.increment()
    counter.decrement()
    assert drained == [0, 0]
    assert len(published) == 2


def test_one_shot_listener_fires_once():
    counter = PendingCounter()
    calls: list[str] = []
    counter.call_on_next_drain(lambda: calls.append("x"))

    for _ in range(2):
        counter.increment()
        counter.decrement()

    assert calls == ["x"]


def test_underflow_is_fatal_and_holds_zero(fatal_events):
    counter = PendingCounter()
    drained: list[bool] = []
    counter.add_drain_listener(lambda: drained.append(True))

    counter.decrement()

    assert counter.count == 0
    assert drained == []
    assert fatal_events == [{"message": "Request count is less than 0"}]


def test_failing_listener_does_not_block_others():
    counter = PendingCounter()
    calls: list[str] = []

    def boom() -> None:
        raise RuntimeError("listener bug")

    counter.add_drain_listener(boom)
    counter.add_drain_listener(lambda: calls.append("ok"))
    counter.increment()
    counter.decrement()

    assert calls == ["ok"]
