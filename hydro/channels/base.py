from __future__ import annotations

from typing import Protocol, Sequence


class SmsChannel(Protocol):
    """
    Protocol interface for SMS delivery.

    Methods
    -------
    send_text(number, text)
        Deliver one text message. Returns on success, raises on failure.
    """

    def send_text(self, number: str, text: str) -> None:
        ...


class MailChannel(Protocol):
    """
    Protocol interface for e-mail delivery.

    Methods
    -------
    send(to, subject, text)
        Deliver one message to all addresses. Returns on success, raises on failure.
    """

    def send(self, to: Sequence[str], subject: str, text: str) -> None:
        ...


class CallChannel(Protocol):
    """
    Protocol interface for voice calls.

    Methods
    -------
    say(to, message)
        Call ``to`` and read ``message`` out loud. Returns once the call is
        placed, raises on failure.
    """

    def say(self, to: str, message: str) -> None:
        ...
