"""
Alarm supervision (run / stop / acknowledge / escalate).

One `AlarmSupervisor` drives one alarm through its lifecycle:

- RUNNING: when the start condition becomes true, the escalation clock
  starts and the first due start action activates the alarm
- ACTIVE: start actions are executed on the escalation timeline; when the
  stop condition holds (according to the stop mode) the alarm returns to
  RUNNING
- STOPPED: nothing is supervised; in-flight actions cancel themselves

The supervisor does not evaluate conditions itself: it asks a
`ConditionEvaluator` for the current facts every time it re-checks.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Callable, Optional

from hydro.core.actions.dispatcher import ActionDispatcher
from hydro.core.alarm.alarm_base import ConditionEvaluator
from hydro.core.alarm.running_alarm import RunningAlarmHandle
from hydro.core.alarm.state_machine import AlarmStateMachine
from hydro.core.alarm.timeline import current_action_index, execution_time
from hydro.core.state.alarm_store import AlarmRepository
from hydro.domain.errors import AckRejectedError, AlarmError, AlarmNotFoundError
from hydro.domain.events import AlarmEvent, EventTopic, serialize_error
from hydro.domain.models import Alarm, AlarmState, now_ms
from hydro.runtime.event_bus import EventSink

log = logging.getLogger(__name__)

MIN_CHECK_DELAY_MS = 100


class AlarmSupervisor:
    """
    Lifecycle driver for a single alarm.

    Concurrency Model
    -----------------
    Public methods and the escalation timer callback run under one
    re-entrant lock, so condition checks triggered by tag changes and by the
    timer never interleave. Action delivery happens on the dispatcher's
    executor and never holds this lock.

    Parameters
    ----------
    alarm_id
        Alarm to supervise.
    repository
        Alarm persistence.
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

    def __init__(
        self,
        alarm_id: str,
        repository: AlarmRepository,
        state_machine: AlarmStateMachine,
        dispatcher: ActionDispatcher,
        evaluator: ConditionEvaluator,
        events: EventSink,
        clock: Callable[[], int] = now_ms,
    ):
        self.handle = RunningAlarmHandle(repository, alarm_id)
        self._state_machine = state_machine
        self._dispatcher = dispatcher
        self._evaluator = evaluator
        self._events = events
        self._clock = clock
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._current_action_index = -1
        self._start_condition_met_at = -1
        self._destroyed = False

    @property
    def alarm_id(self) -> str:
        return self.handle.alarm_id

    @property
    def current_action_index(self) -> int:
        return self._current_action_index

    def _model(self) -> Alarm:
        alarm = self.handle.model
        if alarm is None:
            raise AlarmNotFoundError(self.alarm_id)
        return alarm

    # --- operator commands ---
    def run(self, user: Optional[str] = None) -> bool:
        """
        Start supervising a STOPPED alarm.

        Returns
        -------
        bool
            False if the alarm was not STOPPED (nothing done).
        """
        with self._lock:
            if not self._model().is_stopped():
                return False

            self._state_machine.request_transition(self.alarm_id, AlarmState.RUNNING)
            self._publish(EventTopic.RUN, user=user)
            self.check_conditions()
            return True

    def stop(self, user: Optional[str] = None) -> bool:
        """
        Stop the alarm and cancel pending escalation.

        Returns
        -------
        bool
            False if the alarm was already STOPPED.
        """
        with self._lock:
            if self._model().is_stopped():
                return False

            self._cancel_timer()
            self._current_action_index = -1
            self._start_condition_met_at = -1

            self._state_machine.request_transition(self.alarm_id, AlarmState.STOPPED)
            self._publish(EventTopic.STOPPED, user=user)
            return True

    def ack(self, user: Optional[str] = None) -> bool:
        """
        Acknowledge an ACTIVE alarm with the MANUAL stop mode.

        Returns
        -------
        bool
            False if the alarm is not ACTIVE or not manually stopped.

        Raises
        ------
        AckRejectedError
            If the start condition still holds.
        """
        with self._lock:
            alarm = self._model()
            if not alarm.is_active() or not alarm.is_manual_stop():
                return False

            if self._check_start_condition(alarm):
                raise AckRejectedError(alarm.name)

            if self.handle.is_stopped():
                return False

            self._deactivate(user)
            return True

    def destroy(self) -> None:
        """Cancel the escalation timer and every in-flight action of this alarm."""
        with self._lock:
            self._destroyed = True
            self._cancel_timer()
            self.handle.release()

    # --- condition checks ---
    def check_conditions(self) -> None:
        """
        Re-evaluate the alarm's conditions and advance its lifecycle.
        """
        with self._lock:
            if self._destroyed:
                return

            alarm = self.handle.model
            if alarm is None or alarm.is_stopped():
                return

            if alarm.is_running():
                if self._check_start_condition(alarm):
                    if self._start_condition_met_at == -1:
                        self._start_condition_met_at = self._clock()
                    self._execute_next_start_action(alarm)
                else:
                    self._start_condition_met_at = -1
                return

            if self._check_stop_condition(alarm):
                self._start_condition_met_at = -1
                self._deactivate(None)
            elif self.handle.is_stopped():
                return
            elif self._check_start_condition(alarm):
                if self._start_condition_met_at == -1:
                    self._start_condition_met_at = alarm.last_state_change_time
                self._execute_next_start_action(alarm)
            else:
                self._start_condition_met_at = -1

    def _check_start_condition(self, alarm: Alarm) -> bool:
        try:
            return bool(self._evaluator.start_condition_met(alarm))
        except Exception as e:
            self._handle_condition_check_failure(e, "start")
        return False

    def _check_stop_condition(self, alarm: Alarm) -> bool:
        if alarm.is_manual_stop():
            return False

        start_met = self._check_start_condition(alarm)

        if self.handle.is_stopped():
            return False

        if alarm.is_negated_stop():
            return not start_met

        if start_met:
            return False

        try:
            return bool(self._evaluator.stop_condition_met(alarm))
        except Exception as e:
            self._handle_condition_check_failure(e, "stop")
        return False

    def _handle_condition_check_failure(self, err: Exception, condition_kind: str) -> None:
        name = self.handle.name
        self._publish(
            EventTopic.CONDITION_CHECK_FAILED,
            error=serialize_error(err),
            details=getattr(err, "condition_kind", None) or condition_kind,
        )

        try:
            self.stop(None)
        except AlarmError as stop_err:
            log.error("Failed to stop alarm %s because of a condition check failure: %s", name, stop_err)
        else:
            log.warning("Stopped alarm %s because of a %s condition check failure: %s", name, condition_kind, err)

    # --- escalation ---
    def _execute_next_start_action(self, alarm: Alarm) -> None:
        if self._timer is not None:
            return

        actions = alarm.start_actions
        if not actions:
            if not alarm.is_active():
                self._activate()
            return

        if self._current_action_index >= len(actions) - 1:
            return

        met_at = self._start_condition_met_at
        due_index = current_action_index(actions, self._clock() - met_at)

        if due_index == -1:
            self._schedule_check(execution_time(actions, 0, met_at))
        elif due_index == self._current_action_index:
            self._schedule_check(execution_time(actions, due_index + 1, met_at))
        else:
            self._execute_start_action(alarm, due_index)

    def _execute_start_action(self, alarm: Alarm, action_index: int) -> None:
        if alarm.is_running() and not self._activate():
            return

        self._current_action_index = action_index

        action = alarm.start_actions[action_index]
        if action.no != action_index + 1:
            action = dataclasses.replace(action, no=action_index + 1)

        log.info("Executing %s action %d of alarm %s...", action.type.value, action.no, alarm.name)

        self._dispatcher.execute(self.handle, action)
        self._publish(EventTopic.ACTION_EXECUTED, action=action.ref(), severity=action.severity)

        next_time = execution_time(alarm.start_actions, action_index + 1, self._start_condition_met_at)
        if next_time != -1:
            self._schedule_check(next_time)

    def _schedule_check(self, at_ms: int) -> None:
        delay_ms = max(at_ms - self._clock(), MIN_CHECK_DELAY_MS)
        timer = threading.Timer(delay_ms / 1000.0, lambda: self._on_timer(timer))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _on_timer(self, timer: threading.Timer) -> None:
        try:
            with self._lock:
                # fired before cancel() but got the lock after a newer timer was armed
                if self._timer is not timer:
                    return
                self._timer = None
                self.check_conditions()
        except Exception:
            log.exception("Scheduled condition check of alarm %s failed", self.handle.name)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # --- transitions ---
    def _activate(self) -> bool:
        try:
            self._state_machine.request_transition(self.alarm_id, AlarmState.ACTIVE)
        except AlarmError as e:
            log.error("Failed to activate alarm %s: %s", self.handle.name, e)
            return False

        log.info("Alarm activated: %s", self.handle.name)
        self._publish(EventTopic.ACTIVATED)
        return True

    def _deactivate(self, user: Optional[str]) -> None:
        self._cancel_timer()
        self._current_action_index = -1

        try:
            self._state_machine.request_transition(self.alarm_id, AlarmState.RUNNING)
        except AlarmError as e:
            log.error("Failed to deactivate alarm %s: %s", self.handle.name, e)
            return

        log.info("Alarm deactivated by %s: %s", user or "system", self.handle.name)
        self._publish(EventTopic.DEACTIVATED, user=user)

        self.check_conditions()

    def _publish(self, topic: EventTopic, **fields: Any) -> None:
        try:
            self._events.publish(AlarmEvent(topic=topic, model=self.handle.to_json(), **fields))
        except Exception:
            log.exception("Failed to publish %s event for alarm %s", topic.value, self.handle.name)
