"""
Escalation timeline.

Pure functions deriving "which escalation step is current" from an ordered
action list and elapsed time. Each action's ``delay`` is relative to the
previous action, so the timeline is the running sum of ``delay * 1000``
milliseconds:

    delays [0, 30, 60] s  ->  cumulative [0, 30000, 90000] ms

`current_action_index` and `execution_time` are consistent with each other:
for a reference instant ``r``, ``current_action_index(actions, now - r)`` is
the largest ``i`` with ``execution_time(actions, i, r) <= now``.
"""

from __future__ import annotations

from typing import Optional, Sequence

from hydro.domain.models import Action, Alarm, AlarmState, now_ms


def current_action_index(actions: Sequence[Action], elapsed_ms: Optional[int], active: bool = True) -> int:
    """
    Index of the escalation step reached after ``elapsed_ms``.

    Parameters
    ----------
    actions
        Ordered escalation actions.
    elapsed_ms
        Milliseconds since the reference instant (e.g. activation time).
    active
        Whether the alarm is ACTIVE. State and elapsed time go together: an
        inactive alarm has no current step.

    Returns
    -------
    int
        Greatest ``i`` whose cumulative delay is <= ``elapsed_ms``; the last
        index once the whole timeline has played out; -1 if the list is empty,
        ``elapsed_ms`` is None, the alarm is not active, or the first step is
        not due yet.
    """
    if not active or elapsed_ms is None or not actions:
        return -1

    index = -1
    total = 0
    for i, action in enumerate(actions):
        total += action.delay * 1000
        if elapsed_ms < total:
            break
        index = i
    return index


def execution_time(actions: Sequence[Action], action_index: int, reference_ms: int) -> int:
    """
    Absolute time (epoch ms) at which the action at ``action_index`` is due.

    Returns
    -------
    int
        ``reference_ms`` plus the cumulative delay up to and including
        ``action_index``; -1 if the index is out of range.
    """
    if action_index < 0 or action_index >= len(actions):
        return -1
    return reference_ms + sum(a.delay * 1000 for a in actions[: action_index + 1])


def current_severity(alarm: Alarm, now: Optional[int] = None) -> Optional[str]:
    """
    Severity currently displayed for an alarm.

    Elapsed time is measured from the alarm's last state change (its
    activation time while ACTIVE).

    Returns
    -------
    str or None
        Severity of the current step; ``"debug"`` for an ACTIVE alarm with no
        step reached; None when the alarm is not ACTIVE.
    """
    state, changed_at = alarm.snapshot()
    active = state == AlarmState.ACTIVE
    ts = now_ms() if now is None else now
    idx = current_action_index(alarm.start_actions, ts - changed_at, active=active)
    if idx == -1:
        return "debug" if active else None
    return alarm.start_actions[idx].severity.value
