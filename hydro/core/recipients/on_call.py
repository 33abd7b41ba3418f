"""
On-call window filtering for sms/call recipients.

A user may list several mobile numbers, each with an ``HH:MM``-``HH:MM``
window. Clock times are compared as ``hours * 1000 + minutes`` (so 23:59 is
23059). This is the encoding used by stored configuration and must be kept
as is. A ``to_time`` of ``00:00`` means end of day (24000), and a window
whose end is before its start wraps past midnight.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from hydro.domain.models import MobileWindow, User

END_OF_DAY = 24 * 1000


def time_value(hhmm: str) -> int:
    """
    Encode an ``HH:MM`` clock time as ``hours * 1000 + minutes``.

    Raises
    ------
    ValueError
        If the value is not a valid ``HH:MM`` time.
    """
    hours, _, minutes = hhmm.strip().partition(":")
    h, m = int(hours), int(minutes)
    if not (0 <= h <= 24 and 0 <= m <= 59):
        raise ValueError(f"Invalid clock time: {hhmm!r}")
    return h * 1000 + m


def current_time_value(now: Optional[datetime] = None) -> int:
    ts = now or datetime.now()
    return ts.hour * 1000 + ts.minute


def window_matches(now_value: int, window: MobileWindow) -> bool:
    """
    Whether ``now_value`` falls inside ``[from_time, to_time)``.

    Windows with ``to < from`` wrap past midnight; ``from == to`` never matches.
    Malformed times never match.
    """
    try:
        start = time_value(window.from_time)
        end = time_value(window.to_time)
    except ValueError:
        return False

    if end == 0:
        end = END_OF_DAY

    if end < start:
        return now_value < end or now_value >= start
    if start < end:
        return start <= now_value < end
    return False


def select_on_call_number(now_value: Optional[int], user: User) -> Optional[str]:
    """
    Pick the user's mobile number that is on call at ``now_value``.

    Parameters
    ----------
    now_value
        Encoded time of day. If None, uses the current wall-clock time.
    user
        Directory user (not modified).

    Returns
    -------
    str or None
        Number of the first matching window, or None when no window matches.
    """
    value = current_time_value() if now_value is None else now_value
    for window in user.mobile:
        if window_matches(value, window):
            return window.number
    return None


def is_recipient_on_call(now_value: Optional[int], user: User) -> bool:
    return select_on_call_number(now_value, user) is not None
