from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from hydro.domain.errors import ChannelError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwilioConfig:
    """
    Twilio voice call settings.

    Parameters
    ----------
    account_sid, auth_token
        Twilio REST credentials.
    from_number
        Caller number registered with Twilio.
    voice, language
        Text-to-speech voice and language of the spoken message.
    """
    account_sid: str
    auth_token: str
    from_number: str
    voice: str = "alice"
    language: str = "pl-PL"


def build_say_twiml(message: str, voice: str, language: str) -> str:
    response = VoiceResponse()
    response.say(message, voice=voice, language=language)
    return str(response)


class TwilioCallChannel:
    """
    `CallChannel` placing voice calls through the Twilio REST API.

    Parameters
    ----------
    cfg
        Twilio settings.
    client
        Pre-built ``twilio.rest.Client`` (replaced in tests). Created from
        ``cfg`` credentials when omitted.
    """

    def __init__(self, cfg: TwilioConfig, client: Optional[Any] = None):
        self._cfg = cfg
        self._client = client or Client(cfg.account_sid, cfg.auth_token)

    def say(self, to: str, message: str) -> None:
        """
        Place a call reading ``message`` to ``to``.

        Raises
        ------
        ChannelError
            If Twilio rejects the call.
        """
        twiml = build_say_twiml(message, self._cfg.voice, self._cfg.language)
        try:
            call = self._client.calls.create(to=to, from_=self._cfg.from_number, twiml=twiml)
        except TwilioRestException as e:
            raise ChannelError(f"Twilio call failed: {e.msg}", code=str(e.code or e.status)) from e
        log.debug("Twilio call to %s queued (sid=%s)", to, getattr(call, "sid", "?"))
