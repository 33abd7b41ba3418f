from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol


@dataclass(frozen=True)
class NotificationEvent:
    """
    Notification event contract used by the notification layer.

    A `NotificationEvent` is a transport message forwarded to one or more
    notifiers. It represents *what should be communicated* about an alarm
    event, not *how* it is delivered.

    Parameters
    ----------
    type
        Event type identifier (the alarm event topic, e.g. "alarms.activated").
    payload
        JSON-ready body handed to the notifier.
    level
        Audit level of the topic ("debug", "info", "warning", "error").
    source
        Alarm name the event is about.
    ts
        ISO-8601 timestamp of the alarm event.
    """

    type: str
    payload: Dict[str, Any]
    level: Optional[str] = None
    source: Optional[str] = None
    ts: Optional[str] = None


class Notifier(Protocol):
    """
    Protocol interface for notification delivery.

    Methods
    -------
    notify(event)
        Deliver a notification event; raise on failure so the worker can retry.
    """

    def notify(self, event: NotificationEvent) -> None:
        ...
