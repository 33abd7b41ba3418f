from __future__ import annotations

import logging
import threading
from queue import Empty
from typing import Optional

from hydro.core.state.event_store import EventStore
from hydro.domain.events import AlarmEvent
from hydro.notification.base import NotificationEvent
from hydro.notification.notification_thread import NotificationWorkerThread
from hydro.notification.payload import build_alarm_webhook_payload, level_at_least
from hydro.runtime.event_bus import EventBus

log = logging.getLogger(__name__)


class NotificationAdapterThread:
    """
    Adapter thread that bridges published AlarmEvents to the audit log and
    the notification worker.

    Responsibilities
    ----------------
    - Drain `EventBus.alarm_events_q`.
    - Record every event in the `EventStore`.
    - Emit a `NotificationEvent` for events at or above ``min_level`` when a
      notification worker is configured.

    Concurrency Model
    -----------------
    - Runs as a daemon thread.
    - Polls the queue with a timeout to remain responsive to stop signals.
    - Any exception while handling one event is logged and the loop goes on.
    - Events still queued when the thread stops are handled before it exits.

    Parameters
    ----------
    bus
        Event bus providing the AlarmEvent queue.
    store
        Event history.
    notifier
        Optional notification worker responsible for actual sending.
    stop_event
        Stop signal for the thread.
    min_level
        Lowest event level forwarded to the notifier.
    """

    def __init__(
        self,
        bus: EventBus,
        store: EventStore,
        notifier: Optional[NotificationWorkerThread],
        stop_event: threading.Event,
        min_level: str = "info",
    ):
        self._bus = bus
        self._store = store
        self._notifier = notifier
        self._stop = stop_event
        self._min_level = min_level
        self._thread = threading.Thread(target=self._run, name="notification-adapter", daemon=True)

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = 2.0) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def handle_event(self, ev: AlarmEvent) -> None:
        """
        Record one event and forward it to the notifier if its level qualifies.
        """
        self._store.add_event(ev)

        if self._notifier is None or not level_at_least(ev.level, self._min_level):
            return

        payload = build_alarm_webhook_payload(self._store, ev)
        self._notifier.emit(
            NotificationEvent(
                type=ev.topic.value,
                payload=payload,
                level=ev.level.value,
                source=ev.model.get("name"),
                ts=ev.timestamp.isoformat(timespec="seconds"),
            )
        )

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                ev: AlarmEvent = self._bus.alarm_events_q.get(timeout=0.5)
            except Empty:
                continue

            try:
                self.handle_event(ev)
            except Exception:
                log.exception("Failed to handle %s event", ev.topic.value)

        self._drain()

    def _drain(self) -> None:
        # events published during shutdown still belong in the audit log
        while True:
            try:
                ev = self._bus.alarm_events_q.get_nowait()
            except Empty:
                return
            try:
                self.handle_event(ev)
            except Exception:
                log.exception("Failed to handle %s event", ev.topic.value)
