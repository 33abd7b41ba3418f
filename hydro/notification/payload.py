from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Dict

from hydro.core.state.event_store import EventStore
from hydro.domain.events import AlarmEvent, EventLevel

LEVEL_ORDER = [EventLevel.DEBUG, EventLevel.INFO, EventLevel.WARNING, EventLevel.ERROR]


def _iso(ts: datetime) -> str:
    return ts.isoformat(timespec="seconds")


def level_at_least(level: EventLevel, min_level: str) -> bool:
    """
    Whether ``level`` is at or above ``min_level``.

    Raises
    ------
    ValueError
        If ``min_level`` is not a known level name.
    """
    return LEVEL_ORDER.index(level) >= LEVEL_ORDER.index(EventLevel(min_level))


def build_alarm_webhook_payload(store: EventStore, ev: AlarmEvent) -> Dict[str, Any]:
    """
    Build a webhook payload for an alarm event plus event history totals.

    The payload includes:
    - "event": topic, level, timestamp and the event body
    - "totals": counters computed from the event history in ``store``

    Parameters
    ----------
    store
        Event history used for the totals snapshot.
    ev
        Alarm event that triggered the webhook.

    Returns
    -------
    dict
        Webhook payload dictionary with keys: "type", "event", and "totals".
    """
    events = store.events

    by_level = Counter(e.level.value for e in events)
    by_topic = Counter(e.topic.value for e in events)

    event_payload = {
        "topic": ev.topic.value,
        "level": ev.level.value,
        "timestamp": _iso(ev.timestamp),
        **ev.to_payload(),
    }

    totals_payload = {
        "events_total": len(events),
        "event_counts_by_level": {k: int(v) for k, v in by_level.items()},
        "event_counts_by_topic": {k: int(v) for k, v in by_topic.items()},
    }

    return {
        "type": "alarm_event",
        "event": event_payload,
        "totals": totals_payload,
    }
