"""
Alarm event domain models.

This module defines the event-level representation of what the alarm core
reports. An `AlarmEvent` represents *what happened* (an alarm was activated,
an SMS was sent, a user lookup failed), while `Alarm` (in models.py)
represents *what is currently true*.

Events are typically used for:
- the audit/events log (each topic maps to a log level)
- webhook notifications
- the real-time bridge to operator browsers
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from hydro.domain.models import ActionType, AlarmSeverity


class EventTopic(str, Enum):
    """
    Topics published by the alarm core.

    Lifecycle topics come from the supervisor, ``alarms.actions.*`` topics from
    the action dispatcher.
    """

    RUN = "alarms.run"
    STOPPED = "alarms.stopped"
    ACTIVATED = "alarms.activated"
    DEACTIVATED = "alarms.deactivated"
    ACTION_EXECUTED = "alarms.actionExecuted"
    CONDITION_CHECK_FAILED = "alarms.conditionCheckFailed"

    SMS_SENT = "alarms.actions.smsSent"
    SMS_FAILED = "alarms.actions.smsFailed"
    EMAIL_SENT = "alarms.actions.emailSent"
    EMAIL_FAILED = "alarms.actions.emailFailed"
    CALL_SENT = "alarms.actions.callSent"
    CALL_FAILED = "alarms.actions.callFailed"
    FIND_USERS_FAILED = "alarms.actions.findUsersFailed"

    @classmethod
    def delivered(cls, action_type: ActionType, ok: bool) -> "EventTopic":
        """Topic reporting a delivery outcome for a message action type."""
        return cls(f"alarms.actions.{action_type.value}{'Sent' if ok else 'Failed'}")


class EventLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


TOPIC_LEVELS: Dict[EventTopic, EventLevel] = {
    EventTopic.ACTION_EXECUTED: EventLevel.DEBUG,
    EventTopic.SMS_SENT: EventLevel.DEBUG,
    EventTopic.EMAIL_SENT: EventLevel.DEBUG,
    EventTopic.CALL_SENT: EventLevel.DEBUG,
    EventTopic.RUN: EventLevel.INFO,
    EventTopic.ACTIVATED: EventLevel.INFO,
    EventTopic.DEACTIVATED: EventLevel.INFO,
    EventTopic.STOPPED: EventLevel.WARNING,
    EventTopic.CONDITION_CHECK_FAILED: EventLevel.ERROR,
    EventTopic.SMS_FAILED: EventLevel.ERROR,
    EventTopic.EMAIL_FAILED: EventLevel.ERROR,
    EventTopic.CALL_FAILED: EventLevel.ERROR,
    EventTopic.FIND_USERS_FAILED: EventLevel.ERROR,
}


def serialize_error(err: BaseException) -> Dict[str, Any]:
    """
    Convert an exception into the JSON-friendly form carried by events.

    Returns
    -------
    dict
        ``{"name", "message"}`` plus ``"code"`` when the exception defines one.
    """
    out: Dict[str, Any] = {"name": type(err).__name__, "message": str(err)}
    code = getattr(err, "code", None)
    if code is not None:
        out["code"] = code
    return out


@dataclass(frozen=True)
class AlarmEvent:
    """
    Event published by the alarm core.

    Parameters
    ----------
    topic
        What happened.
    model
        Short alarm snapshot (``{"_id", "name"}``).
    timestamp
        When the event was created.
    action
        ``{"no", "type"}`` of the action concerned, if any.
    recipient
        Single recipient identity (sms/call: ``{"_id", "login", "mobile"}``).
    recipients
        Batched recipient addresses (email).
    error
        Serialized error for failure topics.
    user
        Login of the operator who triggered a lifecycle change.
    severity
        Severity of an executed action.
    details
        Extra context (e.g. which condition failed).
    """

    topic: EventTopic
    model: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)
    action: Optional[Dict[str, Any]] = None
    recipient: Optional[Dict[str, Any]] = None
    recipients: Optional[List[str]] = None
    error: Optional[Dict[str, Any]] = None
    user: Optional[str] = None
    severity: Optional[AlarmSeverity] = None
    details: Optional[str] = None

    @property
    def level(self) -> EventLevel:
        return TOPIC_LEVELS.get(self.topic, EventLevel.INFO)

    def to_payload(self) -> Dict[str, Any]:
        """
        Event body as published on the bus: ``model`` plus the optional fields
        that are set.
        """
        payload: Dict[str, Any] = {"model": dict(self.model)}
        if self.action is not None:
            payload["action"] = dict(self.action)
        if self.recipient is not None:
            payload["recipient"] = dict(self.recipient)
        if self.recipients is not None:
            payload["recipients"] = list(self.recipients)
        if self.error is not None:
            payload["error"] = dict(self.error)
        if self.user is not None:
            payload["user"] = self.user
        if self.severity is not None:
            payload["severity"] = self.severity.value
        if self.details is not None:
            payload["details"] = self.details
        return payload
