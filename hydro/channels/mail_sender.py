from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Callable, Dict, Optional, Sequence, Union

import requests

from hydro.domain.errors import ChannelError, ConfigError


@dataclass(frozen=True)
class SmtpConfig:
    """SMTP server connection settings."""
    host: str
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    starttls: bool = True
    timeout_s: float = 10.0


@dataclass(frozen=True)
class MailConfig:
    """
    Mail channel configuration.

    Exactly one of ``smtp`` and ``remote_sender_url`` may be set. With neither,
    the mail channel is not available.

    Parameters
    ----------
    sender
        ``From`` address.
    reply_to
        Optional ``Reply-To`` address.
    bcc
        Optional blind copy address.
    smtp
        Direct SMTP delivery settings.
    remote_sender_url
        URL of a remote mail sender accepting JSON POSTs.
    secret_key
        Shared secret sent to the remote mail sender.
    timeout_s
        HTTP timeout for the remote sender.
    """
    sender: str
    reply_to: Optional[str] = None
    bcc: Optional[str] = None
    smtp: Optional[SmtpConfig] = None
    remote_sender_url: Optional[str] = None
    secret_key: Optional[str] = None
    timeout_s: float = 5.0


class SmtpMailChannel:
    """
    `MailChannel` delivering through an SMTP server.

    Parameters
    ----------
    cfg
        Mail configuration with ``smtp`` set.
    smtp_factory
        ``smtplib.SMTP``-compatible constructor (replaced in tests).
    """

    def __init__(self, cfg: MailConfig, smtp_factory: Callable[..., Any] = smtplib.SMTP):
        if cfg.smtp is None:
            raise ConfigError("SmtpMailChannel requires SMTP settings")
        self._cfg = cfg
        self._smtp = cfg.smtp
        self._smtp_factory = smtp_factory

    def build_message(self, to: Sequence[str], subject: str, text: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._cfg.sender
        msg["To"] = ", ".join(to)
        msg["Subject"] = subject
        if self._cfg.reply_to:
            msg["Reply-To"] = self._cfg.reply_to
        if self._cfg.bcc:
            msg["Bcc"] = self._cfg.bcc
        msg.set_content(text)
        return msg

    def send(self, to: Sequence[str], subject: str, text: str) -> None:
        """
        Send one message to all addresses.

        Raises
        ------
        smtplib.SMTPException, OSError
            On connection, authentication or delivery failure.
        """
        msg = self.build_message(to, subject, text)
        with self._smtp_factory(self._smtp.host, self._smtp.port, timeout=self._smtp.timeout_s) as smtp:
            if self._smtp.starttls:
                smtp.starttls()
            if self._smtp.username:
                smtp.login(self._smtp.username, self._smtp.password or "")
            smtp.send_message(msg)


class RemoteMailChannel:
    """
    `MailChannel` delegating to a remote mail sender over HTTP.

    The remote sender answers ``204 No Content`` on success; any other status
    is a delivery failure.
    """

    def __init__(self, cfg: MailConfig):
        if not cfg.remote_sender_url:
            raise ConfigError("RemoteMailChannel requires remote_sender_url")
        self._cfg = cfg

    def send(self, to: Sequence[str], subject: str, text: str) -> None:
        """
        POST the message to the remote sender.

        Raises
        ------
        requests.RequestException
            For network-related errors.
        ChannelError
            If the remote sender does not answer with 204.
        """
        body: Dict[str, Any] = {
            "to": list(to),
            "subject": subject,
            "text": text,
            "from": self._cfg.sender,
            "secretKey": self._cfg.secret_key,
        }
        if self._cfg.reply_to:
            body["replyTo"] = self._cfg.reply_to
        if self._cfg.bcc:
            body["bcc"] = self._cfg.bcc

        r = requests.post(
            self._cfg.remote_sender_url,
            json=body,
            headers={"Content-Type": "application/json"},
            timeout=self._cfg.timeout_s,
        )
        if r.status_code != 204:
            raise ChannelError(
                f"Remote mail sender answered {r.status_code}",
                code="INVALID_REMOTE_RESPONSE",
            )


def build_mail_channel(cfg: Optional[MailConfig]) -> Optional[Union[SmtpMailChannel, RemoteMailChannel]]:
    """
    Create the mail channel described by ``cfg``.

    Returns
    -------
    SmtpMailChannel, RemoteMailChannel or None
        None when no delivery method is configured.

    Raises
    ------
    ConfigError
        If both SMTP and a remote sender are configured.
    """
    if cfg is None:
        return None
    if cfg.smtp is not None and cfg.remote_sender_url:
        raise ConfigError("`smtp` and `remote_sender_url` cannot be used at the same time")
    if cfg.smtp is not None:
        return SmtpMailChannel(cfg)
    if cfg.remote_sender_url:
        return RemoteMailChannel(cfg)
    return None
