from __future__ import annotations

import logging
import threading
from queue import Empty, Queue

from hydro.core.alarm.alarm_base import ConditionDecision, ConditionFacts
from hydro.services.alarm_service import AlarmService

log = logging.getLogger(__name__)


class ConditionWorkerThread:
    """
    Worker thread applying condition decisions to the supervised alarms.

    Responsibilities
    ----------------
    - Consume `ConditionDecision` objects pushed by the external rule
      evaluator.
    - Record each decision in `ConditionFacts`.
    - Ask `AlarmService` to re-check the alarm the decision is about.

    Concurrency Model
    -----------------
    - The thread polls the queue with a timeout to remain responsive to stop signals.
    - Exceptions while handling a decision are logged and do not kill the thread.

    Parameters
    ----------
    service
        Alarm service owning the supervisors.
    facts
        Condition facts read by the supervisors.
    decisions_q
        Queue of incoming decisions.
    stop_event
        Thread stop signal.
    """

    def __init__(
        self,
        service: AlarmService,
        facts: ConditionFacts,
        decisions_q: "Queue[ConditionDecision]",
        stop_event: threading.Event,
    ):
        self._service = service
        self._facts = facts
        self._q = decisions_q
        self._stop = stop_event
        self._thread = threading.Thread(target=self._run, name="condition-worker", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = 2.0) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def handle_decision(self, decision: ConditionDecision) -> None:
        self._facts.update([decision])
        self._service.check_alarm(decision.alarm_id)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                decision = self._q.get(timeout=0.5)
            except Empty:
                continue

            try:
                self.handle_decision(decision)
            except Exception:
                log.exception("Failed to apply condition decision for alarm %s", decision.alarm_id)
