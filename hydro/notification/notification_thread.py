from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from hydro.notification.base import NotificationEvent, Notifier

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationThreadConfig:
    max_queue: int = 2000
    retry_count: int = 3
    retry_backoff_s: float = 0.5
    poll_timeout_s: float = 0.5


@dataclass
class NotificationStats:
    """Delivery counters, per notifier attempt (not per event)."""
    delivered: int = 0
    failed: int = 0
    dropped: int = 0


class NotificationWorkerThread:
    """
    Background sender forwarding notification events to every notifier.

    Each notifier gets ``retry_count`` retries with exponential backoff. An
    event that still fails is logged and given up on; one notifier failing
    never keeps the event from the others.

    Notes
    -----
    Notifiers exposing ``close()`` are closed when the worker stops.
    """

    def __init__(self, notifiers: List[Notifier], cfg: NotificationThreadConfig | None = None):
        self._notifiers = notifiers
        self._cfg = cfg or NotificationThreadConfig()
        self._q: "queue.Queue[Optional[NotificationEvent]]" = queue.Queue(maxsize=self._cfg.max_queue)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="notification-worker", daemon=True)
        self.stats = NotificationStats()

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        try:
            self._q.put_nowait(None)
        except queue.Full:
            pass
        if self._thread.is_alive():
            self._thread.join(timeout=2.0)

        for notifier in self._notifiers:
            close = getattr(notifier, "close", None)
            if callable(close):
                close()

    def emit(self, event: NotificationEvent) -> bool:
        """
        Queue an event for delivery.

        Returns
        -------
        bool
            False if the queue was full and the event was dropped.
        """
        try:
            self._q.put_nowait(event)
        except queue.Full:
            self.stats.dropped += 1
            log.warning("Notification queue full, dropped %s", event.type)
            return False
        return True

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                event = self._q.get(timeout=self._cfg.poll_timeout_s)
            except queue.Empty:
                continue

            if event is None:
                break

            for notifier in self._notifiers:
                if self._send_with_retries(notifier, event):
                    self.stats.delivered += 1
                else:
                    self.stats.failed += 1

    def _send_with_retries(self, notifier: Notifier, event: NotificationEvent) -> bool:
        attempts = self._cfg.retry_count + 1
        for attempt in range(attempts):
            try:
                notifier.notify(event)
                return True
            except Exception as e:
                if attempt == attempts - 1:
                    log.error("Giving up on %s notification after %d attempt(s): %s", event.type, attempts, e)
                    break
                log.debug("Notification attempt %d for %s failed: %s", attempt + 1, event.type, e)
                time.sleep(self._cfg.retry_backoff_s * (2 ** attempt))
        return False
