from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from queue import Full, Queue
from typing import Protocol

from hydro.domain.events import AlarmEvent

log = logging.getLogger(__name__)


class EventSink(Protocol):
    """
    Outbound event contract of the alarm core.

    Publishing is fire-and-forget and at-most-once: implementations must not
    block the caller for long and must not raise for delivery problems.
    """

    def publish(self, event: AlarmEvent) -> None:
        ...


@dataclass
class EventBus:
    """
    In-process event bus for alarm events using a thread-safe queue.

    The bus provides a simple producer/consumer mechanism:
    - Producers (dispatcher, supervisors) call :meth:`publish`.
    - Consumers (e.g., the notification adapter thread) read from :attr:`alarm_events_q`.

    Concurrency Model
    -----------------
    Python's :class:`queue.Queue` is thread-safe. Multiple producers may call
    :meth:`publish` concurrently from dispatch threads without additional locking.

    Backpressure Policy
    -------------------
    If the queue is full, events are dropped (best-effort). This prevents
    a stalled consumer from blocking notification delivery threads.

    Attributes
    ----------
    alarm_events_q
        Bounded queue of alarm events. Consumers should drain this queue in a loop.
    """

    alarm_events_q: "Queue[AlarmEvent]" = field(default_factory=lambda: Queue(maxsize=5000))
    _dropped: int = field(default=0, init=False, repr=False)
    _dropped_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def dropped(self) -> int:
        """Number of events discarded because the queue was full."""
        return self._dropped

    def publish(self, event: AlarmEvent) -> None:
        """
        Publish an alarm event to the queue (non-blocking).

        Parameters
        ----------
        event
            AlarmEvent to publish.
        """
        try:
            self.alarm_events_q.put_nowait(event)
        except Full:
            with self._dropped_lock:
                self._dropped += 1
                dropped = self._dropped
            log.warning("Event bus full, dropped %s event (%d dropped so far)", event.topic.value, dropped)
