from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from hydro.domain.models import User


@dataclass
class InMemoryUserDirectory:
    """
    In-memory user directory implementing the `UserDirectory` protocol.

    Users are keyed by their lower-cased hex id.
    """

    users: Dict[str, User] = field(default_factory=dict)

    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def load(self, users: Iterable[User]) -> None:
        with self._lock:
            for user in users:
                self.users[user.id] = user

    def find_users(self, ids: Sequence[str]) -> List[User]:
        """
        Batched lookup by id.

        Parameters
        ----------
        ids
            User ids to look up.

        Returns
        -------
        list of User
            Users found, in the order of ``ids``; unknown ids are skipped.
        """
        with self._lock:
            return [self.users[i] for i in ids if i in self.users]
