from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List

from hydro.domain.events import AlarmEvent, EventLevel


@dataclass
class EventStore:
    """
    Bounded in-memory history of published alarm events.

    This is the audit log operators browse: every event is kept with the
    level derived from its topic. When ``max_events`` is reached the oldest
    events are discarded.

    Parameters
    ----------
    max_events
        Maximum number of events retained.
    """

    max_events: int = 10000
    _events: Deque[AlarmEvent] = field(default_factory=deque, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        self._events = deque(maxlen=self.max_events)

    def add_event(self, event: AlarmEvent) -> None:
        """
        Append an event to the history.

        Parameters
        ----------
        event
            Event to record.
        """
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[AlarmEvent]:
        """
        Snapshot copy of the event history, oldest first.
        """
        with self._lock:
            return list(self._events)

    def events_at_level(self, level: EventLevel) -> List[AlarmEvent]:
        with self._lock:
            return [e for e in self._events if e.level == level]

    def events_for_alarm(self, alarm_id: str) -> List[AlarmEvent]:
        with self._lock:
            return [e for e in self._events if e.model.get("_id") == alarm_id]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
