from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

from hydro.domain.models import Alarm


class AlarmRepository(Protocol):
    """
    Persistence contract for alarms.

    Both operations are atomic at the single-record level; the core never
    needs multi-record transactions.
    """

    def load_alarm(self, alarm_id: str) -> Optional[Alarm]:
        ...

    def save_alarm(self, alarm: Alarm) -> None:
        ...

    def list_alarms(self) -> List[Alarm]:
        ...


@dataclass
class InMemoryAlarmRepository:
    """
    In-memory alarm repository.

    Stores live `Alarm` instances keyed by id, so every reader observes the
    current state of an alarm rather than a copy taken at load time.

    Notes
    -----
    - All access is guarded by a re-entrant lock.
    - Saving an alarm with an existing id overwrites the previous record.
    """

    alarms: Dict[str, Alarm] = field(default_factory=dict)

    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def load(self, alarms: Iterable[Alarm]) -> None:
        """
        Bulk-insert alarms (seed data).

        Parameters
        ----------
        alarms
            Alarms to store.
        """
        with self._lock:
            for alarm in alarms:
                self.alarms[alarm.id] = alarm

    def load_alarm(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            return self.alarms.get(alarm_id)

    def save_alarm(self, alarm: Alarm) -> None:
        with self._lock:
            self.alarms[alarm.id] = alarm

    def delete_alarm(self, alarm_id: str) -> None:
        with self._lock:
            self.alarms.pop(alarm_id, None)

    def list_alarms(self) -> List[Alarm]:
        with self._lock:
            return list(self.alarms.values())

    def not_stopped(self) -> List[Alarm]:
        """
        Return alarms that are RUNNING or ACTIVE.

        Returns
        -------
        list of Alarm
            Alarms whose state is not STOPPED.
        """
        with self._lock:
            return [a for a in self.alarms.values() if not a.is_stopped()]
