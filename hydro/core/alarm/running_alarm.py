from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from hydro.core.state.alarm_store import AlarmRepository
from hydro.domain.models import Alarm


@dataclass
class RunningAlarmHandle:
    """
    Read view over a live alarm used by in-flight action executions.

    The handle never caches the alarm: every query goes to the repository, so
    an action that outlives a state change observes the change and cancels
    itself instead of reporting against a stopped alarm.

    Parameters
    ----------
    repository
        Alarm persistence.
    alarm_id
        Id of the alarm being supervised.
    """

    repository: AlarmRepository
    alarm_id: str

    _name: str = field(default="", init=False, repr=False)
    _released: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        alarm = self.repository.load_alarm(self.alarm_id)
        if alarm is not None:
            self._name = alarm.name

    @property
    def model(self) -> Optional[Alarm]:
        """Current alarm record, or None if it no longer exists."""
        return self.repository.load_alarm(self.alarm_id)

    @property
    def name(self) -> str:
        alarm = self.model
        if alarm is not None:
            self._name = alarm.name
        return self._name

    def is_stopped(self) -> bool:
        """
        Whether in-flight work for this alarm should be abandoned.

        True once the handle was released, the alarm was deleted, or its
        persisted state is STOPPED.
        """
        if self._released:
            return True
        alarm = self.model
        return alarm is None or alarm.is_stopped()

    def release(self) -> None:
        """Cancel all in-flight work started through this handle."""
        self._released = True

    def to_json(self) -> Dict[str, Any]:
        return {"_id": self.alarm_id, "name": self.name}
