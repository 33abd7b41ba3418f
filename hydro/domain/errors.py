"""
Exception hierarchy for the alarm core.

All errors raised by this package derive from :class:`AlarmError` so callers
at the service boundary can catch one type. Errors that end up inside
published events are serialized with :func:`hydro.domain.events.serialize_error`,
which also picks up the optional ``code`` attribute defined here.
"""

from __future__ import annotations

from typing import Optional


class AlarmError(Exception):
    """Base class for alarm core errors."""

    code: Optional[str] = None


class AlarmNotFoundError(AlarmError):
    """Raised when an alarm id is unknown to the repository."""

    code = "ALARM_NOT_FOUND"

    def __init__(self, alarm_id: str):
        super().__init__(f"Alarm not found: {alarm_id}")
        self.alarm_id = alarm_id


class UserLookupError(AlarmError):
    """Raised when the user directory cannot be queried."""

    code = "USER_LOOKUP_FAILED"


class ConditionCheckError(AlarmError):
    """
    Raised by a condition evaluator when a start/stop condition cannot be evaluated.

    Parameters
    ----------
    message
        Human-readable reason.
    condition_kind
        ``"start"`` or ``"stop"``. Filled in by the supervisor when the
        evaluator leaves it empty.
    """

    code = "CONDITION_CHECK_FAILED"

    def __init__(self, message: str, condition_kind: Optional[str] = None):
        super().__init__(message)
        self.condition_kind = condition_kind


class AckRejectedError(AlarmError):
    """Raised when an alarm is acknowledged while its start condition still holds."""

    code = "START_CONDITION_MET"

    def __init__(self, alarm_name: str):
        super().__init__(f"Cannot acknowledge alarm {alarm_name}: start condition is still met")


class ChannelError(AlarmError):
    """Delivery failure reported by a notification channel."""

    code = "CHANNEL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class InvalidMobileNumberError(ChannelError):
    """Raised when a mobile number cannot be normalized to the international form."""

    def __init__(self, number: str):
        super().__init__(f"Invalid mobile number: {number!r}", code="INVALID_MOBILE_NUMBER")


# Exit codes of the gammu CLI start at 101 (ERR_NONE) and follow this table.
GAMMU_ERRORS = (
    "NONE", "DEVICEOPENERROR", "DEVICELOCKED", "DEVICENOTEXIST", "DEVICEBUSY",
    "DEVICENOPERMISSION", "DEVICENODRIVER", "DEVICENOTWORK", "DEVICEDTRRTSERROR",
    "DEVICECHANGESPEEDERROR", "DEVICEWRITEERROR", "DEVICEREADERROR", "DEVICEPARITYERROR",
    "TIMEOUT", "FRAMENOTREQUESTED", "UNKNOWNRESPONSE", "UNKNOWNFRAME",
    "UNKNOWNCONNECTIONTYPESTRING", "UNKNOWNMODELSTRING", "SOURCENOTAVAILABLE",
    "NOTSUPPORTED", "EMPTY", "SECURITYERROR", "INVALIDLOCATION", "NOTIMPLEMENTED",
    "FULL", "UNKNOWN", "CANTOPENFILE", "MOREMEMORY", "PERMISSION", "EMPTYSMSC",
    "INSIDEPHONEMENU", "NOTCONNECTED", "WORKINPROGRESS", "PHONEOFF", "FILENOTSUPPORTED",
    "BUG", "CANCELED", "NEEDANOTHERANSWER", "OTHERCONNECTIONREQUIRED", "WRONGCRC",
    "INVALIDDATETIME", "MEMORY", "INVALIDDATA", "FILEALREADYEXIST", "FILENOTEXIST",
    "SHOULDBEFOLDER", "SHOULDBEFILE", "NOSIM", "GNAPPLETWRONG", "FOLDERPART",
    "FOLDERNOTEMPTY", "DATACONVERTED", "UNCONFIGURED", "WRONGFOLDER", "PHONE_INTERNAL",
    "WRITING_FILE", "NONE_SECTION", "USING_DEFAULTS", "CORRUPTED", "BADFEATURE",
    "DISABLED", "SPECIFYCHANNEL", "NOTRUNNING", "NOSERVICE", "BUSY", "COULDNT_CONNECT",
    "COULDNT_RESOLVE", "GETTING_SMSC", "ABORTED", "INSTALL_NOT_FOUND", "READ_ONLY",
    "LAST_VALUE",
)


class GammuError(ChannelError):
    """Failure of a gammu invocation (non-zero exit code or timeout)."""

    @classmethod
    def from_exit_code(cls, exit_code: int) -> "GammuError":
        idx = exit_code - 101
        name = GAMMU_ERRORS[idx] if 0 <= idx < len(GAMMU_ERRORS) else f"E{exit_code}"
        return cls(f"gammu failed: {name}", code=name)

    @classmethod
    def timeout(cls) -> "GammuError":
        return cls("gammu timed out", code="TIMEOUT")


class ConfigError(ValueError):
    """Raised when configuration or seed data is invalid."""
