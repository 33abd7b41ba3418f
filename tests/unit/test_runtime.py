"""
Unit tests for the runtime wiring:
- hydro.runtime.condition_worker_thread.ConditionWorkerThread
- hydro.bootstrap.build_alarm_system + hydro.runtime.app_runtime.AppRuntime

The end-to-end test builds the system from a YAML file without channels,
feeds a condition decision and waits for the alarm to activate.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from queue import Queue
from typing import Callable, List

from hydro.bootstrap import build_alarm_system
from hydro.core.alarm.alarm_base import ConditionDecision, ConditionFacts
from hydro.domain.events import EventTopic
from hydro.domain.models import Alarm, AlarmState
from hydro.runtime.condition_worker_thread import ConditionWorkerThread

CONFIG = """
logging:
  level: INFO
alarms:
  - _id: a1
    name: Low chlorine
    state: RUNNING
    stopConditionMode: negated
    startActions: []
  - _id: a2
    name: High turbidity
    state: STOPPED
"""


def _wait_for(predicate: Callable[[], bool], timeout_s: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeService:
    """Records alarms asked to re-check their conditions."""

    def __init__(self) -> None:
        self.checked: List[str] = []

    def check_alarm(self, alarm_id: str) -> None:
        self.checked.append(alarm_id)


def test_condition_worker_records_decision_and_rechecks() -> None:
    service = FakeService()
    facts = ConditionFacts()
    q: "Queue[ConditionDecision]" = Queue()
    stop = threading.Event()
    worker = ConditionWorkerThread(service=service, facts=facts, decisions_q=q, stop_event=stop)  # type: ignore[arg-type]
    worker.start()

    q.put(ConditionDecision("a1", start_met=True))

    assert _wait_for(lambda: service.checked == ["a1"])
    worker.stop()
    worker.join()

    assert facts.start_condition_met(Alarm(id="a1", name="A")) is True


def test_alarm_system_end_to_end(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")

    wiring = build_alarm_system(str(path))
    wiring.runtime.start()
    try:
        assert wiring.service.supervised_ids == ["a1"]

        assert wiring.runtime.submit_decision(ConditionDecision("a1", start_met=True)) is True
        assert _wait_for(lambda: wiring.repository.load_alarm("a1").state == AlarmState.ACTIVE)  # type: ignore[union-attr]

        assert _wait_for(lambda: EventTopic.ACTIVATED in [e.topic for e in wiring.events.events])

        wiring.runtime.submit_decision(ConditionDecision("a1", start_met=False))
        assert _wait_for(lambda: wiring.repository.load_alarm("a1").state == AlarmState.RUNNING)  # type: ignore[union-attr]
    finally:
        wiring.runtime.stop()

    # states survive shutdown for the next restore
    assert wiring.repository.load_alarm("a1").state == AlarmState.RUNNING  # type: ignore[union-attr]
    assert wiring.repository.load_alarm("a2").state == AlarmState.STOPPED  # type: ignore[union-attr]
