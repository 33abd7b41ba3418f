"""
Unit tests for hydro.core.alarm.state_machine.AlarmStateMachine.

These tests validate:
- transitions are persisted and stamped with the injected clock
- same-state requests are no-ops (no stamp, no save)
- unknown alarm ids raise AlarmNotFoundError
"""

from __future__ import annotations

from typing import List, Optional

import pytest

from hydro.core.alarm.state_machine import AlarmStateMachine
from hydro.core.state.alarm_store import InMemoryAlarmRepository
from hydro.domain.errors import AlarmNotFoundError
from hydro.domain.models import Alarm, AlarmState


class CountingRepository(InMemoryAlarmRepository):
    """In-memory repository counting saves."""

    def __init__(self) -> None:
        super().__init__()
        self.saved: List[str] = []

    def save_alarm(self, alarm: Alarm) -> None:
        self.saved.append(alarm.id)
        super().save_alarm(alarm)


def _setup(state: AlarmState = AlarmState.STOPPED, changed_at: int = 0) -> tuple:
    repo = CountingRepository()
    repo.load([Alarm(id="a1", name="A", state=state, last_state_change_time=changed_at)])
    return repo, AlarmStateMachine(repo, clock=lambda: 5000)


def test_request_transition_changes_and_saves() -> None:
    repo, sm = _setup()

    assert sm.request_transition("a1", AlarmState.RUNNING) is True

    alarm: Optional[Alarm] = repo.load_alarm("a1")
    assert alarm is not None
    assert alarm.state == AlarmState.RUNNING
    assert alarm.last_state_change_time == 5000
    assert repo.saved == ["a1"]


def test_request_transition_same_state_is_noop() -> None:
    repo, sm = _setup(state=AlarmState.ACTIVE, changed_at=100)

    assert sm.request_transition("a1", AlarmState.ACTIVE) is False

    alarm = repo.load_alarm("a1")
    assert alarm is not None
    assert alarm.last_state_change_time == 100
    assert repo.saved == []


def test_request_transition_unknown_alarm() -> None:
    _, sm = _setup()

    with pytest.raises(AlarmNotFoundError) as exc_info:
        sm.request_transition("missing", AlarmState.RUNNING)

    assert exc_info.value.alarm_id == "missing"
    assert exc_info.value.code == "ALARM_NOT_FOUND"


def test_unknown_alarm_does_not_leave_a_lock_behind() -> None:
    _, sm = _setup()
    sm.request_transition("a1", AlarmState.RUNNING)

    for i in range(50):
        with pytest.raises(AlarmNotFoundError):
            sm.request_transition(f"gone-{i}", AlarmState.STOPPED)

    assert list(sm._locks) == ["a1"]


def test_any_state_can_reach_any_other_state() -> None:
    repo, sm = _setup()

    for state in (AlarmState.ACTIVE, AlarmState.STOPPED, AlarmState.RUNNING, AlarmState.ACTIVE, AlarmState.RUNNING):
        assert sm.request_transition("a1", state) is True

    assert repo.load_alarm("a1").state == AlarmState.RUNNING  # type: ignore[union-attr]
