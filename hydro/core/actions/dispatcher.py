"""
Execution of escalation actions.

`ActionDispatcher` turns one action of a running alarm into notifications:

1. pick the delivery channel for the action type (sms/email/call);
   severity actions have no runtime work
2. resolve the action's user references through the `UserResolver`
3. narrow users to recipients (on-call mobile number for sms/call,
   e-mail address for email)
4. fan out one independent delivery task per recipient (one batched task
   for email) and publish a ``*Sent`` / ``*Failed`` event per outcome

Cancellation is cooperative: the `RunningAlarmHandle` is checked before and
after every blocking step and a stopped alarm silently ends the work. Already
issued channel calls are not interrupted, only their reporting is suppressed.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Union

from hydro.channels.base import CallChannel, MailChannel, SmsChannel
from hydro.core.actions.text import transliterate
from hydro.core.alarm.running_alarm import RunningAlarmHandle
from hydro.core.recipients.on_call import current_time_value, select_on_call_number
from hydro.core.recipients.user_resolver import UserResolver
from hydro.domain.errors import UserLookupError
from hydro.domain.events import AlarmEvent, EventTopic, serialize_error
from hydro.domain.models import (
    Action,
    CallAction,
    EmailAction,
    MessageAction,
    SeverityAction,
    SmsAction,
    User,
)
from hydro.runtime.event_bus import EventSink

log = logging.getLogger(__name__)

Channel = Union[SmsChannel, MailChannel, CallChannel]
Recipient = Dict[str, Any]

_VERBS = {
    SmsAction: "send SMS",
    EmailAction: "send e-mails",
    CallAction: "call",
}


def _done(result: List["Future[Optional[bool]]"]) -> "Future[List[Future[Optional[bool]]]]":
    fut: "Future[List[Future[Optional[bool]]]]" = Future()
    fut.set_result(result)
    return fut


def _log_unexpected_failure(alarm_id: str, action: Action, fut: "Future[Any]") -> None:
    # channel failures are reported by _deliver; this covers everything else (store, clock)
    if fut.cancelled():
        return
    err = fut.exception()
    if err is not None:
        log.error(
            "Unexpected failure in %s action %d of alarm %s: %s",
            action.type.value,
            action.no,
            alarm_id,
            err,
            exc_info=err,
        )


@dataclass
class ActionDispatcher:
    """
    Execute alarm actions against the notification channels.

    Parameters
    ----------
    resolver
        Resolves user references of message actions.
    events
        Sink receiving the delivery events.
    sms, mail, call
        Channel handles; None means the channel is not configured and actions
        of that type are skipped with a warning.
    executor
        Executor running resolutions and deliveries. A thread pool is created
        (and owned) when omitted.
    time_of_day
        Returns the current time of day encoded as ``hours * 1000 + minutes``.
    max_workers
        Size of the owned thread pool.
    """

    resolver: UserResolver
    events: EventSink
    sms: Optional[SmsChannel] = None
    mail: Optional[MailChannel] = None
    call: Optional[CallChannel] = None
    executor: Optional[Executor] = None
    time_of_day: Callable[[], int] = current_time_value
    max_workers: int = 8

    _pool: Executor = field(init=False, repr=False)
    _owns_executor: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.executor is None:
            self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="alarm-action")
            self._owns_executor = True
        else:
            self._pool = self.executor

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._pool.shutdown(wait=wait)

    def execute(self, handle: RunningAlarmHandle, action: Action) -> "Future[List[Future[Optional[bool]]]]":
        """
        Start executing an action (fire-and-forget).

        Parameters
        ----------
        handle
            View over the alarm the action belongs to.
        action
            Action to execute.

        Returns
        -------
        Future
            Resolves, once recipients are known, to the list of per-delivery
            futures. Each delivery future yields True (sent), False (failed)
            or None (cancelled because the alarm stopped).
        """
        if isinstance(action, SeverityAction):
            return _done([])

        channel = self._channel_for(action)
        if channel is None:
            log.warning("Cannot %s: %s channel not available!", _VERBS[type(action)], action.type.value)
            return _done([])

        fut = self._pool.submit(self._run, handle, action, channel)
        fut.add_done_callback(partial(_log_unexpected_failure, handle.alarm_id, action))
        return fut

    def _channel_for(self, action: Action) -> Optional[Channel]:
        if isinstance(action, SmsAction):
            return self.sms
        if isinstance(action, EmailAction):
            return self.mail
        if isinstance(action, CallAction):
            return self.call
        raise TypeError(f"Unsupported action type: {type(action).__name__}")

    def _run(self, handle: RunningAlarmHandle, action: MessageAction, channel: Channel) -> List["Future[Optional[bool]]"]:
        if handle.is_stopped():
            return []

        try:
            users = self.resolver.resolve_users(action.parameters)
        except UserLookupError as e:
            if handle.is_stopped():
                return []
            log.error(
                "Failed to retrieve users for %s action %d of alarm %s: %s",
                action.type.value,
                action.no,
                handle.name,
                e,
            )
            self._publish(handle, EventTopic.FIND_USERS_FAILED, action, error=serialize_error(e))
            return []

        if handle.is_stopped():
            return []

        if isinstance(action, EmailAction):
            return self._send_emails(handle, action, channel, users)  # type: ignore[arg-type]
        return self._send_to_mobiles(handle, action, channel, users)

    def _send_to_mobiles(
        self,
        handle: RunningAlarmHandle,
        action: MessageAction,
        channel: Channel,
        users: List[User],
    ) -> List["Future[Optional[bool]]"]:
        now_value = self.time_of_day()
        recipients: List[Recipient] = []
        for user in users:
            number = select_on_call_number(now_value, user)
            if number is not None:
                recipients.append(user.recipient(number))

        if not recipients:
            log.warning(
                "Not going to %s: no recipients for action %d of alarm: %s",
                _VERBS[type(action)],
                action.no,
                handle.name,
            )
            return []

        if isinstance(action, SmsAction):
            text = transliterate(action.text)

            def send(r: Recipient) -> None:
                channel.send_text(r["mobile"], text)  # type: ignore[union-attr]
        else:

            def send(r: Recipient) -> None:
                channel.say(r["mobile"], action.text)  # type: ignore[union-attr]

        return [self._submit_delivery(handle, action, partial(send, r), recipient=r) for r in recipients]

    def _send_emails(
        self,
        handle: RunningAlarmHandle,
        action: EmailAction,
        channel: MailChannel,
        users: List[User],
    ) -> List["Future[Optional[bool]]"]:
        addresses = [u.email for u in users if u.email]

        if not addresses:
            log.warning(
                "Not sending any e-mails: no recipients for action %d of alarm: %s",
                action.no,
                handle.name,
            )
            return []

        subject = handle.name
        return [
            self._submit_delivery(
                handle,
                action,
                lambda: channel.send(addresses, subject, action.text),
                recipients=addresses,
            )
        ]

    def _submit_delivery(
        self,
        handle: RunningAlarmHandle,
        action: MessageAction,
        send: Callable[[], None],
        **target: Any,
    ) -> "Future[Optional[bool]]":
        fut = self._pool.submit(self._deliver, handle, action, send, **target)
        fut.add_done_callback(partial(_log_unexpected_failure, handle.alarm_id, action))
        return fut

    def _deliver(
        self,
        handle: RunningAlarmHandle,
        action: MessageAction,
        send: Callable[[], None],
        recipient: Optional[Recipient] = None,
        recipients: Optional[List[str]] = None,
    ) -> Optional[bool]:
        if handle.is_stopped():
            return None

        who = f"{recipient['login']} ({recipient['mobile']})" if recipient else ", ".join(recipients or [])

        try:
            send()
        except Exception as e:
            if handle.is_stopped():
                return None
            log.error(
                "Failed to %s to %s as part of alarm %s: %s",
                _VERBS[type(action)],
                who,
                handle.name,
                e,
            )
            self._publish(
                handle,
                EventTopic.delivered(action.type, ok=False),
                action,
                error=serialize_error(e),
                recipient=recipient,
                recipients=recipients,
            )
            return False

        if handle.is_stopped():
            return None

        log.debug("Delivered %s action %d to %s as part of alarm %s", action.type.value, action.no, who, handle.name)
        self._publish(
            handle,
            EventTopic.delivered(action.type, ok=True),
            action,
            recipient=recipient,
            recipients=recipients,
        )
        return True

    def _publish(self, handle: RunningAlarmHandle, topic: EventTopic, action: Action, **fields: Any) -> None:
        event = AlarmEvent(topic=topic, model=handle.to_json(), action=action.ref(), **fields)
        try:
            self.events.publish(event)
        except Exception:
            log.exception("Failed to publish %s event for alarm %s", topic.value, handle.name)
