"""
Unit and stress tests for hydro.runtime.event_bus.EventBus.

Unit tests validate:
- publish enqueues events when capacity is available
- publish does not raise when the queue is full (drop policy)

Stress tests validate:
- publish is safe under concurrent calls from multiple threads
- the bus does not deadlock or crash under high contention

Notes
-----
Thread stress tests are probabilistic: passing increases confidence but does not
prove the absence of races. Run repeatedly for higher confidence.
"""

from __future__ import annotations

import threading
from queue import Empty
from typing import List

import pytest

from hydro.domain.events import AlarmEvent, EventTopic
from hydro.runtime.event_bus import EventBus


def _mk_event(i: int) -> AlarmEvent:
    """
    Create a minimal AlarmEvent for EventBus tests.

    Parameters
    ----------
    i
        Integer used to create a unique alarm id.
    """
    return AlarmEvent(topic=EventTopic.ACTIVATED, model={"_id": f"a{i}", "name": "Low chlorine"})


def _drain_queue(q, limit: int = 10_000) -> List[AlarmEvent]:
    out: List[AlarmEvent] = []
    for _ in range(limit):
        try:
            out.append(q.get_nowait())
        except Empty:
            break
    return out


def test_publish_enqueues_event_when_space_available() -> None:
    bus = EventBus()

    bus.publish(_mk_event(1))

    got = bus.alarm_events_q.get_nowait()
    assert got.model["_id"] == "a1"
    assert bus.dropped == 0


def test_publish_drops_when_full_without_raising() -> None:
    """
    publish should not raise if the queue is full (drop policy).
    """
    bus = EventBus()

    for i in range(bus.alarm_events_q.maxsize):
        bus.alarm_events_q.put_nowait(_mk_event(i))

    bus.publish(_mk_event(999999))

    assert bus.alarm_events_q.qsize() == bus.alarm_events_q.maxsize
    assert bus.dropped == 1


@pytest.mark.stress
def test_event_bus_publish_concurrent_producers() -> None:
    """
    Stress-test publish from multiple threads concurrently.

    Validates:
    - no exceptions from concurrent publishing
    - no deadlocks
    - queue size remains bounded (drop-on-full behavior)

    Drops are expected since producers outrun the (absent) consumer.
    """
    bus = EventBus()
    start = threading.Barrier(16)
    errors: List[BaseException] = []

    def producer(tid: int) -> None:
        try:
            start.wait()
            for k in range(3000):
                bus.publish(_mk_event(tid * 1_000_000 + k))
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=producer, args=(t,)) for t in range(16)]
    for t in threads:
        t.start()

    for t in threads:
        t.join(timeout=10)

    assert all(not t.is_alive() for t in threads), "A producer thread did not finish (possible deadlock)"
    if errors:
        raise AssertionError(f"Concurrency test caught exceptions: {errors!r}")

    assert bus.alarm_events_q.qsize() <= bus.alarm_events_q.maxsize
    # every publish either landed in the queue or was counted as dropped
    assert bus.dropped == 16 * 3000 - bus.alarm_events_q.qsize()

    drained = _drain_queue(bus.alarm_events_q, limit=5000)
    assert all(isinstance(e, AlarmEvent) for e in drained)
