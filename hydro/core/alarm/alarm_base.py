"""
Condition evaluation contracts (decisions and evaluators).

This module defines the contract between:

- the external rule evaluator, which decides whether an alarm's start/stop
  conditions hold for the current plant tag values, producing
  -> class:`ConditionDecision`
- the alarm supervisor, which asks a -> class:`ConditionEvaluator` for those
  facts whenever it re-checks an alarm

The rule language itself lives outside this package. `ConditionFacts` is the
in-process evaluator that simply remembers the latest decision per alarm.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Protocol

from hydro.domain.models import Alarm


@dataclass(frozen=True)
class ConditionDecision:
    """
    Result of evaluating one alarm's conditions.

    Parameters
    ----------
    alarm_id
        Alarm the decision is about.
    start_met
        Whether the start condition currently holds.
    stop_met
        Whether the stop condition currently holds (only meaningful for the
        SPECIFIED stop mode).
    """

    alarm_id: str
    start_met: bool
    stop_met: bool = False


class ConditionEvaluator(Protocol):
    """
    Protocol interface for condition evaluation.

    Implementations may raise `hydro.domain.errors.ConditionCheckError` when a
    condition cannot be evaluated; the supervisor then stops the alarm.

    Methods
    -------
    start_condition_met(alarm)
        Whether the alarm's start condition holds now.
    stop_condition_met(alarm)
        Whether the alarm's stop condition holds now.
    """

    def start_condition_met(self, alarm: Alarm) -> bool:
        ...

    def stop_condition_met(self, alarm: Alarm) -> bool:
        ...


@dataclass
class ConditionFacts:
    """
    Evaluator backed by the latest `ConditionDecision` per alarm.

    Alarms without a decision have neither condition met.
    """

    _decisions: Dict[str, ConditionDecision] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def update(self, decisions: Iterable[ConditionDecision]) -> None:
        with self._lock:
            for d in decisions:
                self._decisions[d.alarm_id] = d

    def forget(self, alarm_id: str) -> None:
        with self._lock:
            self._decisions.pop(alarm_id, None)

    def start_condition_met(self, alarm: Alarm) -> bool:
        with self._lock:
            d = self._decisions.get(alarm.id)
        return d is not None and d.start_met

    def stop_condition_met(self, alarm: Alarm) -> bool:
        with self._lock:
            d = self._decisions.get(alarm.id)
        return d is not None and d.stop_met
