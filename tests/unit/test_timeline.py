"""
Unit tests for hydro.core.alarm.timeline.

These tests validate the escalation timeline:
- which step is current for a given elapsed time
- absolute execution times of steps
- consistency between the two functions
- severity derived from the current step
"""

from __future__ import annotations

from typing import List

import pytest

from hydro.core.alarm.timeline import current_action_index, current_severity, execution_time
from hydro.domain.models import Alarm, AlarmSeverity, AlarmState, SeverityAction, SmsAction


def _actions(*delays: int) -> List[SmsAction]:
    return [SmsAction(delay=d, no=i + 1) for i, d in enumerate(delays)]


@pytest.mark.parametrize(
    "elapsed_ms, expected",
    [
        (0, 0),
        (29_999, 0),
        (30_000, 1),
        (45_000, 1),
        (90_000, 2),
        (200_000, 2),
    ],
)
def test_current_action_index_follows_cumulative_delays(elapsed_ms: int, expected: int) -> None:
    """
    Delays [0, 30, 60] s give cumulative offsets [0, 30000, 90000] ms.
    """
    assert current_action_index(_actions(0, 30, 60), elapsed_ms) == expected


def test_current_action_index_empty_list_is_minus_one() -> None:
    assert current_action_index([], 0) == -1
    assert current_action_index([], 10**9) == -1


def test_current_action_index_before_first_step_is_minus_one() -> None:
    assert current_action_index(_actions(10), 9_999) == -1


def test_current_action_index_inactive_or_unknown_elapsed() -> None:
    actions = _actions(0, 30)
    assert current_action_index(actions, 45_000, active=False) == -1
    assert current_action_index(actions, None) == -1


def test_zero_delay_steps_collapse_to_the_last_one() -> None:
    """
    Several zero-delay steps are all due at once; the last of them is current.
    """
    assert current_action_index(_actions(0, 0, 0, 60), 0) == 2


def test_execution_time_is_inclusive_cumulative_sum() -> None:
    actions = _actions(0, 30, 60)
    r = 1_000_000

    assert execution_time(actions, 0, r) == r
    assert execution_time(actions, 1, r) == r + 30_000
    assert execution_time(actions, 2, r) == r + 90_000


def test_execution_time_out_of_range() -> None:
    actions = _actions(0, 30)
    assert execution_time(actions, 2, 0) == -1
    assert execution_time(actions, -1, 0) == -1
    assert execution_time([], 0, 0) == -1


def test_execution_time_and_current_index_agree() -> None:
    """
    For each step i, the index current at its execution time is i.
    """
    actions = _actions(5, 0, 30, 60, 1)
    r = 1_700_000_000_000

    for i in range(len(actions)):
        if i + 1 < len(actions) and actions[i + 1].delay == 0:
            continue
        assert current_action_index(actions, execution_time(actions, i, r) - r) == i


def test_current_severity_of_active_alarm() -> None:
    alarm = Alarm(
        id="a1",
        name="A",
        state=AlarmState.ACTIVE,
        last_state_change_time=0,
        start_actions=[
            SeverityAction(delay=0, severity=AlarmSeverity.INFO),
            SeverityAction(delay=60, severity=AlarmSeverity.ERROR),
        ],
    )

    assert current_severity(alarm, now=10_000) == "info"
    assert current_severity(alarm, now=60_000) == "error"


def test_current_severity_debug_before_first_step_and_none_when_not_active() -> None:
    alarm = Alarm(
        id="a1",
        name="A",
        state=AlarmState.ACTIVE,
        last_state_change_time=0,
        start_actions=[SeverityAction(delay=60, severity=AlarmSeverity.ERROR)],
    )
    assert current_severity(alarm, now=1_000) == "debug"

    alarm.apply_state(AlarmState.RUNNING, now=2_000)
    assert current_severity(alarm, now=200_000) is None
