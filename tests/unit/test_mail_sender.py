"""
Unit tests for hydro.channels.mail_sender.

These tests validate:
- SMTP delivery (message headers, STARTTLS and login) with a fake SMTP class
- remote sender delivery with a mocked requests.post
- channel selection from configuration
"""

from __future__ import annotations

from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest

from hydro.channels.mail_sender import (
    MailConfig,
    RemoteMailChannel,
    SmtpConfig,
    SmtpMailChannel,
    build_mail_channel,
)
from hydro.domain.errors import ChannelError, ConfigError


class FakeSMTP:
    """
    smtplib.SMTP stand-in recording the session.
    """

    instances: List["FakeSMTP"] = []

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.steps: List[str] = []
        self.messages: List[Any] = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.steps.append("quit")

    def starttls(self) -> None:
        self.steps.append("starttls")

    def login(self, user: str, password: str) -> None:
        self.steps.append(f"login {user}:{password}")

    def send_message(self, msg: Any) -> None:
        self.steps.append("send")
        self.messages.append(msg)


def _smtp_cfg(**smtp: Any) -> MailConfig:
    return MailConfig(
        sender="alarms@example.com",
        reply_to="ops@example.com",
        smtp=SmtpConfig(host="smtp.example.com", **smtp),
    )


def test_smtp_channel_sends_one_message_to_all_recipients() -> None:
    FakeSMTP.instances = []
    channel = SmtpMailChannel(_smtp_cfg(username="alarms", password="secret"), smtp_factory=FakeSMTP)

    channel.send(["a@example.com", "b@example.com"], "Low chlorine", "Chlorine below 0.2 mg/l")

    smtp = FakeSMTP.instances[0]
    assert (smtp.host, smtp.port, smtp.timeout) == ("smtp.example.com", 587, 10.0)
    assert smtp.steps == ["starttls", "login alarms:secret", "send", "quit"]

    msg = smtp.messages[0]
    assert msg["From"] == "alarms@example.com"
    assert msg["To"] == "a@example.com, b@example.com"
    assert msg["Subject"] == "Low chlorine"
    assert msg["Reply-To"] == "ops@example.com"
    assert msg.get_content().strip() == "Chlorine below 0.2 mg/l"


def test_smtp_channel_without_tls_or_login() -> None:
    FakeSMTP.instances = []
    channel = SmtpMailChannel(_smtp_cfg(starttls=False, port=25), smtp_factory=FakeSMTP)

    channel.send(["a@example.com"], "s", "t")

    assert FakeSMTP.instances[0].steps == ["send", "quit"]


def test_remote_channel_posts_message(monkeypatch) -> None:
    seen: Dict[str, Any] = {}
    response = MagicMock(status_code=204)

    def fake_post(url, json, headers, timeout):
        seen.update(url=url, json=json, timeout=timeout)
        return response

    monkeypatch.setattr("requests.post", fake_post)

    cfg = MailConfig(sender="alarms@example.com", remote_sender_url="https://mail.example.com/send", secret_key="k")
    RemoteMailChannel(cfg).send(["a@example.com"], "Low chlorine", "text")

    assert seen["url"] == "https://mail.example.com/send"
    assert seen["json"] == {
        "to": ["a@example.com"],
        "subject": "Low chlorine",
        "text": "text",
        "from": "alarms@example.com",
        "secretKey": "k",
    }
    assert seen["timeout"] == 5.0


def test_remote_channel_rejects_other_status(monkeypatch) -> None:
    monkeypatch.setattr("requests.post", lambda *a, **kw: MagicMock(status_code=200))

    cfg = MailConfig(sender="alarms@example.com", remote_sender_url="https://mail.example.com/send")
    with pytest.raises(ChannelError) as exc_info:
        RemoteMailChannel(cfg).send(["a@example.com"], "s", "t")

    assert exc_info.value.code == "INVALID_REMOTE_RESPONSE"


def test_build_mail_channel_selection() -> None:
    assert build_mail_channel(None) is None
    assert build_mail_channel(MailConfig(sender="a@example.com")) is None
    assert isinstance(build_mail_channel(_smtp_cfg()), SmtpMailChannel)
    assert isinstance(
        build_mail_channel(MailConfig(sender="a@example.com", remote_sender_url="https://x")),
        RemoteMailChannel,
    )


def test_build_mail_channel_rejects_both_methods() -> None:
    cfg = MailConfig(
        sender="a@example.com",
        smtp=SmtpConfig(host="smtp.example.com"),
        remote_sender_url="https://x",
    )
    with pytest.raises(ConfigError):
        build_mail_channel(cfg)
