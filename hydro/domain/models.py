"""
Domain models and enums.

This module defines the core domain-level types used across the alarm core:
- Alarm states, stop-condition modes, severities and action types
- The escalation actions (a closed family: sms, email, call, severity)
- Directory users and their on-call mobile windows
- `Alarm`, the entity owning the state machine (state + last change time)

Actions and users are immutable (frozen) dataclasses so they can be shared
across dispatch threads. `Alarm` is mutable but guards its state transitions
with a per-instance lock.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from hydro.domain.errors import ConfigError


MAX_ACTION_DELAY_S = 24 * 3600


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class AlarmState(int, Enum):
    """
    Lifecycle state of an alarm.

    Members
    -------
    STOPPED : int
        Alarm is not supervised (initial state).
    RUNNING : int
        Alarm is supervised, start condition not (yet) met.
    ACTIVE : int
        Start condition met; escalation actions are being executed.
    """

    STOPPED = 0
    RUNNING = 1
    ACTIVE = 2


class StopConditionMode(str, Enum):
    """
    How an active alarm returns to RUNNING.

    Members
    -------
    MANUAL : str
        Only an operator acknowledgement deactivates the alarm.
    NEGATED : str
        The alarm deactivates once the start condition is no longer met.
    SPECIFIED : str
        A separate stop condition must be met (and the start condition not).
    """

    MANUAL = "manual"
    NEGATED = "negated"
    SPECIFIED = "specified"


class AlarmSeverity(str, Enum):
    """Visible severity of an alarm once an escalation step becomes current."""

    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ActionType(str, Enum):
    """Discriminator of the action family."""

    SMS = "sms"
    EMAIL = "email"
    CALL = "call"
    SEVERITY = "severity"


@dataclass(frozen=True)
class Action:
    """
    One escalation step of an alarm.

    Parameters
    ----------
    delay
        Seconds relative to the previous action (0..86400). Cumulative delays
        form the escalation timeline.
    severity
        Alarm severity while this step is the current one.
    no
        1-based position in the action list (reporting only).
    """

    type: ClassVar[ActionType]

    delay: int = 0
    severity: AlarmSeverity = AlarmSeverity.WARNING
    no: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.delay <= MAX_ACTION_DELAY_S:
            raise ValueError(f"Action delay must be within 0..{MAX_ACTION_DELAY_S}s, got {self.delay}")

    def ref(self) -> Dict[str, Any]:
        """Short `{no, type}` reference used in event payloads."""
        return {"no": self.no, "type": self.type.value}


@dataclass(frozen=True)
class MessageAction(Action):
    """
    Action delivering a text message to directory users.

    Parameters
    ----------
    text
        Message body.
    users
        Raw user references as stored with the alarm, usually ``{"id": <hex>}``
        mappings. They are validated lazily by the user resolver.
    """

    text: str = ""
    users: Tuple[Any, ...] = ()

    @property
    def parameters(self) -> Dict[str, Any]:
        return {"text": self.text, "users": list(self.users)}


@dataclass(frozen=True)
class SmsAction(MessageAction):
    type: ClassVar[ActionType] = ActionType.SMS


@dataclass(frozen=True)
class EmailAction(MessageAction):
    type: ClassVar[ActionType] = ActionType.EMAIL


@dataclass(frozen=True)
class CallAction(MessageAction):
    type: ClassVar[ActionType] = ActionType.CALL


@dataclass(frozen=True)
class SeverityAction(Action):
    """Action that only changes the displayed severity."""

    type: ClassVar[ActionType] = ActionType.SEVERITY


AnyAction = Union[SmsAction, EmailAction, CallAction, SeverityAction]

_MESSAGE_ACTIONS = {
    ActionType.SMS: SmsAction,
    ActionType.EMAIL: EmailAction,
    ActionType.CALL: CallAction,
}


def parse_action(raw: Mapping[str, Any], no: int) -> AnyAction:
    """
    Build an action from its stored mapping form.

    Parameters
    ----------
    raw
        Mapping with ``type``, optional ``parameters``, ``delay`` and ``severity``.
    no
        1-based position in the owning action list.

    Raises
    ------
    ConfigError
        If the type, severity or delay is invalid.
    """
    try:
        action_type = ActionType(str(raw.get("type")))
        severity = AlarmSeverity(str(raw.get("severity", AlarmSeverity.WARNING.value)))
        delay = int(raw.get("delay") or 0)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid action #{no}: {e}") from e

    try:
        if action_type is ActionType.SEVERITY:
            return SeverityAction(delay=delay, severity=severity, no=no)

        params = raw.get("parameters")
        if not isinstance(params, Mapping):
            params = {}
        users = params.get("users")
        return _MESSAGE_ACTIONS[action_type](
            delay=delay,
            severity=severity,
            no=no,
            text=str(params.get("text") or ""),
            users=tuple(users) if isinstance(users, (list, tuple)) else (),
        )
    except ValueError as e:
        raise ConfigError(f"Invalid action #{no}: {e}") from e


def parse_actions(raw: Optional[Sequence[Mapping[str, Any]]]) -> List[AnyAction]:
    return [parse_action(item, i + 1) for i, item in enumerate(raw or [])]


@dataclass(frozen=True)
class MobileWindow:
    """
    A mobile number with the time-of-day window in which it is on call.

    Times are ``HH:MM`` wall-clock values. The default ``00:00``-``00:00`` window
    covers the whole day because a ``to_time`` of ``00:00`` means end of day.
    """

    number: str
    from_time: str = "00:00"
    to_time: str = "00:00"


@dataclass(frozen=True)
class User:
    """
    Directory user projected to the fields needed for delivery.

    Parameters
    ----------
    id
        Opaque 24-character hex identifier.
    login
        Login name (used in logs and event payloads).
    email
        E-mail address, may be empty.
    mobile
        On-call mobile windows.
    """

    id: str
    login: str
    email: Optional[str] = None
    mobile: Tuple[MobileWindow, ...] = ()

    def recipient(self, number: str) -> Dict[str, Any]:
        """Recipient identity as published in sms/call events."""
        return {"_id": self.id, "login": self.login, "mobile": number}


def parse_user(raw: Mapping[str, Any]) -> User:
    """
    Build a user from a mapping.

    ``mobile`` may be a list of ``{number, fromTime, toTime}`` entries or a
    single number string, which is on call all day.
    """
    mobile_raw = raw.get("mobile") or []
    if isinstance(mobile_raw, str):
        mobile_raw = [{"number": mobile_raw}]

    mobile = tuple(
        MobileWindow(
            number=str(m["number"]),
            from_time=str(m.get("fromTime", "00:00")),
            to_time=str(m.get("toTime", "00:00")),
        )
        for m in mobile_raw
        if isinstance(m, Mapping) and m.get("number")
    )

    try:
        return User(
            id=str(raw["_id"] if "_id" in raw else raw["id"]).lower(),
            login=str(raw["login"]),
            email=raw.get("email") or None,
            mobile=mobile,
        )
    except KeyError as e:
        raise ConfigError(f"User is missing field {e}") from e


@dataclass(eq=False)
class Alarm:
    """
    Alarm entity and its lifecycle state machine.

    The entity owns ``state`` and ``last_state_change_time``. All state
    changes go through :meth:`apply_state`, which stamps the change time only
    when the state value actually changes.

    Concurrency Model
    -----------------
    ``apply_state`` runs under a per-alarm re-entrant lock so two concurrent
    transitions cannot stamp the time from a stale read of ``state``.

    Parameters
    ----------
    id
        Opaque identifier.
    name
        Display label.
    state
        Current lifecycle state.
    last_state_change_time
        Epoch milliseconds of the last state change; 0 until the first change.
    start_condition, start_condition_tags
        Expression and referenced tag names, evaluated externally.
    start_actions
        Escalation actions, in escalation order.
    stop_condition_mode
        How the alarm deactivates; None when not configured.
    stop_condition, stop_condition_tags, stop_actions
        Stop-side counterparts.
    """

    id: str
    name: str
    state: AlarmState = AlarmState.STOPPED
    last_state_change_time: int = 0
    start_condition: str = ""
    start_condition_tags: List[str] = field(default_factory=list)
    start_actions: List[AnyAction] = field(default_factory=list)
    stop_condition_mode: Optional[StopConditionMode] = None
    stop_condition: str = ""
    stop_condition_tags: List[str] = field(default_factory=list)
    stop_actions: List[AnyAction] = field(default_factory=list)

    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    # --- state predicates ---
    def is_stopped(self) -> bool:
        return self.state == AlarmState.STOPPED

    def is_running(self) -> bool:
        return self.state == AlarmState.RUNNING

    def is_active(self) -> bool:
        return self.state == AlarmState.ACTIVE

    # --- stop mode predicates ---
    def is_manual_stop(self) -> bool:
        return self.stop_condition_mode == StopConditionMode.MANUAL

    def is_negated_stop(self) -> bool:
        return self.stop_condition_mode == StopConditionMode.NEGATED

    def is_specified_stop(self) -> bool:
        return self.stop_condition_mode == StopConditionMode.SPECIFIED

    def apply_state(self, new_state: AlarmState, now: Optional[int] = None) -> bool:
        """
        Set the alarm state.

        Parameters
        ----------
        new_state
            Target state.
        now
            Epoch milliseconds used as the change time. If None, uses the wall clock.

        Returns
        -------
        bool
            True if the state changed (and the change time was stamped),
            False for a no-op.
        """
        with self._lock:
            if self.state == new_state:
                return False
            self.state = AlarmState(new_state)
            self.last_state_change_time = now_ms() if now is None else now
            return True

    def snapshot(self) -> Tuple[AlarmState, int]:
        """Consistent ``(state, last_state_change_time)`` pair."""
        with self._lock:
            return self.state, self.last_state_change_time

    def to_json(self) -> Dict[str, Any]:
        """Short form used as the ``model`` field of published events."""
        return {"_id": self.id, "name": self.name}

    def to_dict(self) -> Dict[str, Any]:
        state, changed_at = self.snapshot()
        return {
            "_id": self.id,
            "name": self.name,
            "state": state.name,
            "lastStateChangeTime": changed_at,
            "startCondition": self.start_condition,
            "startConditionTags": list(self.start_condition_tags),
            "startActions": [_action_to_dict(a) for a in self.start_actions],
            "stopConditionMode": self.stop_condition_mode.value if self.stop_condition_mode else None,
            "stopCondition": self.stop_condition,
            "stopConditionTags": list(self.stop_condition_tags),
            "stopActions": [_action_to_dict(a) for a in self.stop_actions],
        }


def _action_to_dict(action: Action) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "type": action.type.value,
        "delay": action.delay,
        "severity": action.severity.value,
    }
    if isinstance(action, MessageAction):
        out["parameters"] = action.parameters
    return out


def parse_alarm(raw: Mapping[str, Any]) -> Alarm:
    """
    Build an alarm from its mapping form (seed data / document store).

    Raises
    ------
    ConfigError
        If required fields are missing or values are invalid.
    """
    try:
        alarm_id = str(raw["_id"] if "_id" in raw else raw["id"])
        name = str(raw["name"]).strip()
    except KeyError as e:
        raise ConfigError(f"Alarm is missing field {e}") from e

    state_raw = raw.get("state", AlarmState.STOPPED.name)
    mode_raw = raw.get("stopConditionMode")
    try:
        state = AlarmState[state_raw.upper()] if isinstance(state_raw, str) else AlarmState(int(state_raw))
        mode = StopConditionMode(mode_raw) if mode_raw else None
    except (KeyError, ValueError) as e:
        raise ConfigError(f"Invalid alarm {name!r}: {e}") from e

    return Alarm(
        id=alarm_id,
        name=name,
        state=state,
        last_state_change_time=int(raw.get("lastStateChangeTime", 0)),
        start_condition=str(raw.get("startCondition") or ""),
        start_condition_tags=[str(t) for t in raw.get("startConditionTags") or []],
        start_actions=parse_actions(raw.get("startActions")),
        stop_condition_mode=mode,
        stop_condition=str(raw.get("stopCondition") or ""),
        stop_condition_tags=[str(t) for t in raw.get("stopConditionTags") or []],
        stop_actions=parse_actions(raw.get("stopActions")),
    )
