from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import requests

from hydro.notification.base import NotificationEvent


@dataclass(frozen=True)
class WebhookConfig:
    """
    Where and how alarm events are forwarded over HTTP.

    Parameters
    ----------
    url
        Receiving endpoint (SCADA gateway, chat bridge, ...).
    timeout_s
        Per-request timeout in seconds.
    verify_tls
        Whether to verify TLS certificates.
    auth_header
        Optional Authorization header value (e.g., Bearer token).
    min_level
        Events below this audit level are not forwarded.
    """

    url: str
    timeout_s: float = 2.0
    verify_tls: bool = True
    auth_header: Optional[str] = None
    min_level: str = "info"


class WebhookNotifier:
    """
    Forward alarm events to an HTTP endpoint as JSON.

    One `requests.Session` is kept for the notifier's lifetime so the
    connection to the receiver is reused between events. Besides the JSON
    body, the event topic and the originating alarm are sent as
    ``X-Alarm-Event`` / ``X-Alarm-Source`` headers so receivers can route
    without parsing the body.

    Parameters
    ----------
    cfg
        Endpoint configuration.
    session
        HTTP session to use; a new one is created when omitted.
    """

    def __init__(self, cfg: WebhookConfig, session: Optional[requests.Session] = None):
        self._cfg = cfg
        self._session = session or requests.Session()
        self._session.headers["Content-Type"] = "application/json"
        if cfg.auth_header:
            self._session.headers["Authorization"] = cfg.auth_header

    def notify(self, event: NotificationEvent) -> None:
        """
        POST one event.

        Raises
        ------
        requests.HTTPError
            If the receiver answers with an error status.
        requests.RequestException
            For network-related errors.
        """
        headers: Dict[str, str] = {"X-Alarm-Event": event.type}
        if event.source:
            headers["X-Alarm-Source"] = event.source

        r = self._session.post(
            self._cfg.url,
            json=event.payload,
            headers=headers,
            timeout=self._cfg.timeout_s,
            verify=self._cfg.verify_tls,
        )
        r.raise_for_status()

    def close(self) -> None:
        self._session.close()
