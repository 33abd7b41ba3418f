from __future__ import annotations

import logging
import threading
from queue import Full, Queue
from typing import Optional

from hydro.channels.gammu_sms import GammuSmsChannel
from hydro.core.actions.dispatcher import ActionDispatcher
from hydro.core.alarm.alarm_base import ConditionDecision, ConditionFacts
from hydro.core.state.event_store import EventStore
from hydro.notification.notification_thread import NotificationWorkerThread
from hydro.runtime.condition_worker_thread import ConditionWorkerThread
from hydro.runtime.event_bus import EventBus
from hydro.runtime.notification_adapter_thread import NotificationAdapterThread
from hydro.services.alarm_service import AlarmService

log = logging.getLogger(__name__)


class AppRuntime:
    """
    Thread supervisor for the alarm system.

    This class owns:
    - a shared stop event
    - the queue of incoming condition decisions
    - thread lifecycles (start/stop/join)
    - shutdown of the dispatcher executor and the delivery channels

    Thread Topology
    ---------------
    1) ConditionWorkerThread (business logic)
       - consumes `ConditionDecision` from `decisions_q`
       - records them in `ConditionFacts`
       - asks `AlarmService` to re-check the alarm

    2) Supervisor timers and dispatcher executor (escalation and delivery)
       - publish AlarmEvents into the EventBus

    3) NotificationAdapterThread (adapter)
       - consumes AlarmEvents from the EventBus
       - records them in the EventStore
       - emits NotificationEvents into NotificationWorkerThread

    Notes
    -----
    Backpressure policy: decisions, bus events and notifications are all
    dropped (with a warning) when their queue is full.
    """

    def __init__(
        self,
        service: AlarmService,
        facts: ConditionFacts,
        dispatcher: ActionDispatcher,
        bus: EventBus,
        event_store: EventStore,
        notifier: Optional[NotificationWorkerThread] = None,
        sms: Optional[GammuSmsChannel] = None,
        notify_min_level: str = "info",
    ):
        self.service = service
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._sms = sms
        self._stop = threading.Event()
        # stopped last so events of the shutdown itself still reach the audit log
        self._notify_stop = threading.Event()

        self.decisions_q: "Queue[ConditionDecision]" = Queue(maxsize=5000)

        self._condition_worker = ConditionWorkerThread(
            service=service,
            facts=facts,
            decisions_q=self.decisions_q,
            stop_event=self._stop,
        )

        self._notify_adapter = NotificationAdapterThread(
            bus=bus,
            store=event_store,
            notifier=notifier,
            stop_event=self._notify_stop,
            min_level=notify_min_level,
        )

    def submit_decision(self, decision: ConditionDecision) -> bool:
        """
        Queue a condition decision (non-blocking).

        Returns
        -------
        bool
            False if the queue was full and the decision was dropped.
        """
        try:
            self.decisions_q.put_nowait(decision)
        except Full:
            log.warning("Decision queue full, dropped decision for alarm %s", decision.alarm_id)
            return False
        return True

    def start(self) -> None:
        """
        Start channels and threads, then resume alarms left running.

        Notes
        -----
        The notification side starts first so no event of the restore is lost.
        """
        if self._notifier is not None:
            self._notifier.start()
        self._notify_adapter.start()

        if self._sms is not None:
            self._sms.start()

        self._condition_worker.start()
        self.service.restore()

    def stop(self) -> None:
        """
        Stop supervision and all runtime threads.

        Alarm states are kept so the next `start` restores them.
        """
        self._condition_worker.stop()
        self._condition_worker.join(timeout=2.0)

        self.service.shutdown()
        self._dispatcher.shutdown()

        if self._sms is not None:
            self._sms.stop()

        self._notify_adapter.stop()
        self._notify_adapter.join(timeout=2.0)

        if self._notifier is not None:
            self._notifier.stop()
