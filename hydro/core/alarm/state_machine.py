"""
Repository-backed alarm state transitions.

`Alarm.apply_state` implements the transition rule on one instance. This
module applies it to persisted alarms: load, apply, save, serialized per
alarm id so concurrent requests for the same alarm cannot interleave between
the load and the save.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict

from hydro.core.state.alarm_store import AlarmRepository
from hydro.domain.errors import AlarmNotFoundError
from hydro.domain.models import AlarmState, now_ms

log = logging.getLogger(__name__)


@dataclass
class AlarmStateMachine:
    """
    Apply state transition requests to persisted alarms.

    Parameters
    ----------
    repository
        Alarm persistence.
    clock
        Returns the current time in epoch milliseconds.
    """

    repository: AlarmRepository
    clock: Callable[[], int] = now_ms

    _locks: Dict[str, threading.Lock] = field(default_factory=dict, init=False, repr=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def _lock_for(self, alarm_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(alarm_id)
            if lock is None:
                lock = self._locks[alarm_id] = threading.Lock()
            return lock

    def request_transition(self, alarm_id: str, new_state: AlarmState) -> bool:
        """
        Move an alarm to ``new_state``.

        Parameters
        ----------
        alarm_id
            Id of the alarm to transition.
        new_state
            Target state.

        Returns
        -------
        bool
            True if the state changed; False if the alarm was already in
            ``new_state`` (the change time is left untouched and nothing is saved).

        Raises
        ------
        AlarmNotFoundError
            If the repository does not know the alarm.
        """
        with self._lock_for(alarm_id):
            alarm = self.repository.load_alarm(alarm_id)
            if alarm is None:
                with self._guard:
                    self._locks.pop(alarm_id, None)
                raise AlarmNotFoundError(alarm_id)

            previous = alarm.state
            changed = alarm.apply_state(new_state, now=self.clock())
            if changed:
                self.repository.save_alarm(alarm)
                log.debug("Alarm %s: %s -> %s", alarm.name, previous.name, alarm.state.name)
            return changed
