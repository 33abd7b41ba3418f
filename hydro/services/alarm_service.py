from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from hydro.core.actions.dispatcher import ActionDispatcher
from hydro.core.alarm.alarm_base import ConditionEvaluator
from hydro.core.alarm.state_machine import AlarmStateMachine
from hydro.core.alarm.supervisor import AlarmSupervisor
from hydro.core.state.alarm_store import AlarmRepository
from hydro.domain.errors import AlarmNotFoundError
from hydro.domain.models import Alarm, now_ms
from hydro.runtime.event_bus import EventSink

log = logging.getLogger(__name__)


@dataclass
class AlarmService:
    """
    Orchestrate the set of supervised alarms.

    Responsibilities
    ----------------
    - Keep one `AlarmSupervisor` per non-STOPPED alarm.
    - Translate operator commands (run / stop / ack) and alarm definition
      changes (added / edited / deleted) into supervisor calls.
    - Re-check the conditions of alarms whose tags changed.

    Notes
    -----
    This service contains orchestration logic only. Lifecycle rules live in
    the supervisor, action delivery in the dispatcher.

    Parameters
    ----------
    repository
        Alarm persistence shared with the supervisors.
    state_machine
        Applies state transitions.
    dispatcher
        Executes start actions.
    evaluator
        Source of start/stop condition facts.
    events
        Sink for lifecycle events.
    clock
        Returns the current time in epoch milliseconds.
    """

    repository: AlarmRepository
    state_machine: AlarmStateMachine
    dispatcher: ActionDispatcher
    evaluator: ConditionEvaluator
    events: EventSink
    clock: Callable[[], int] = now_ms

    _supervisors: Dict[str, AlarmSupervisor] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def supervisor(self, alarm_id: str) -> Optional[AlarmSupervisor]:
        with self._lock:
            return self._supervisors.get(alarm_id)

    @property
    def supervised_ids(self) -> List[str]:
        with self._lock:
            return list(self._supervisors)

    def restore(self) -> List[str]:
        """
        Resume supervision of every alarm that was not STOPPED at shutdown.

        Returns
        -------
        list of str
            Ids of the restored alarms.
        """
        restored: List[str] = []
        for alarm in self.repository.list_alarms():
            if alarm.is_stopped():
                continue
            with self._lock:
                if alarm.id in self._supervisors:
                    continue
                sup = self._create_supervisor(alarm.id)
                self._supervisors[alarm.id] = sup
            sup.check_conditions()
            restored.append(alarm.id)

        if restored:
            log.info("Restored %d running alarm(s)", len(restored))
        return restored

    def run_alarm(self, alarm_id: str, user: Optional[str] = None) -> bool:
        """
        Start supervising a STOPPED alarm.

        Returns
        -------
        bool
            False if the alarm is already supervised or not STOPPED.

        Raises
        ------
        AlarmNotFoundError
            If no alarm has the given id.
        """
        with self._lock:
            existing = self._supervisors.get(alarm_id)
            if existing is not None:
                if not existing.handle.is_stopped():
                    return False
                # stopped on its own (condition check failure)
                existing.destroy()
                del self._supervisors[alarm_id]

            if self.repository.load_alarm(alarm_id) is None:
                raise AlarmNotFoundError(alarm_id)

            sup = self._create_supervisor(alarm_id)
            if not sup.run(user):
                sup.destroy()
                return False

            self._supervisors[alarm_id] = sup

        log.debug("Alarm run by %s: %s", user or "system", sup.handle.name)
        return True

    def stop_alarm(self, alarm_id: str, user: Optional[str] = None) -> bool:
        """
        Stop an alarm and drop its supervisor.

        Returns
        -------
        bool
            False if the alarm is not supervised.
        """
        with self._lock:
            sup = self._supervisors.pop(alarm_id, None)

        if sup is None:
            return False

        try:
            sup.stop(user)
        except AlarmNotFoundError:
            log.warning("Stopped supervising alarm %s which no longer exists", alarm_id)
        finally:
            sup.destroy()

        log.debug("Alarm stopped by %s: %s", user or "system", sup.handle.name)
        return True

    def ack_alarm(self, alarm_id: str, user: Optional[str] = None) -> bool:
        """
        Acknowledge an ACTIVE, manually stopped alarm.

        Raises
        ------
        AckRejectedError
            If the alarm's start condition still holds.
        """
        sup = self.supervisor(alarm_id)
        if sup is None:
            return False
        return sup.ack(user)

    def alarm_added(self, alarm: Alarm) -> bool:
        """
        Store a new alarm definition and supervise it unless it is STOPPED.

        Returns
        -------
        bool
            Whether the alarm is now supervised.
        """
        self.repository.save_alarm(alarm)
        if alarm.is_stopped():
            return False

        with self._lock:
            if alarm.id in self._supervisors:
                return True
            sup = self._create_supervisor(alarm.id)
            self._supervisors[alarm.id] = sup
        sup.check_conditions()
        return True

    def alarm_edited(self, alarm_id: str, user: Optional[str] = None) -> bool:
        """
        Restart supervision so the edited definition takes effect.

        Returns
        -------
        bool
            Whether the alarm was supervised before the edit.
        """
        if not self.stop_alarm(alarm_id, user):
            return False
        return self.run_alarm(alarm_id, user)

    def alarm_deleted(self, alarm_id: str) -> None:
        with self._lock:
            sup = self._supervisors.pop(alarm_id, None)
        if sup is not None:
            sup.destroy()
            log.info("Dropped deleted alarm: %s", sup.handle.name)

    def check_alarm(self, alarm_id: str) -> None:
        sup = self.supervisor(alarm_id)
        if sup is not None:
            sup.check_conditions()

    def tags_changed(self, tag_names: Iterable[str]) -> int:
        """
        Re-check every supervised alarm whose conditions reference a changed tag.

        Returns
        -------
        int
            Number of alarms re-checked.
        """
        changed = set(tag_names)
        with self._lock:
            sups = list(self._supervisors.values())

        checked = 0
        for sup in sups:
            alarm = sup.handle.model
            if alarm is None:
                continue
            if changed.isdisjoint(alarm.start_condition_tags) and changed.isdisjoint(alarm.stop_condition_tags):
                continue
            sup.check_conditions()
            checked += 1
        return checked

    def shutdown(self) -> None:
        """Destroy every supervisor, keeping alarm states for the next restore."""
        with self._lock:
            sups = list(self._supervisors.values())
            self._supervisors.clear()
        for sup in sups:
            sup.destroy()

    def _create_supervisor(self, alarm_id: str) -> AlarmSupervisor:
        return AlarmSupervisor(
            alarm_id,
            repository=self.repository,
            state_machine=self.state_machine,
            dispatcher=self.dispatcher,
            evaluator=self.evaluator,
            events=self.events,
            clock=self.clock,
        )
