"""
Resolution of user references inside action parameters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Protocol, Sequence

from hydro.domain.errors import UserLookupError
from hydro.domain.models import User


_HEX_ID = re.compile(r"^[0-9a-fA-F]{24}$")


class UserDirectory(Protocol):
    """
    Protocol interface for the user directory.

    Methods
    -------
    find_users(ids)
        Return the users whose id is in ``ids``, projected to
        ``{id, login, mobile, email}``. Unknown ids are simply absent from the
        result. Any exception signals that the directory is unavailable.
    """

    def find_users(self, ids: Sequence[str]) -> List[User]:
        ...


def parse_user_id(ref: Any) -> Optional[str]:
    """
    Extract a user id from a reference.

    Accepts ``{"id": <hex>}`` mappings and bare hex strings.

    Returns
    -------
    str or None
        Lower-cased 24-character hex id, or None when the reference is malformed.
    """
    value = ref.get("id") if isinstance(ref, Mapping) else ref
    if isinstance(value, str) and _HEX_ID.match(value):
        return value.lower()
    return None


@dataclass
class UserResolver:
    """
    Resolve an action's user references into directory users.

    Parameters
    ----------
    directory
        User directory used for the batched lookup.
    """

    directory: UserDirectory

    def resolve_users(self, parameters: Any) -> List[User]:
        """
        Resolve ``parameters["users"]`` into users.

        Missing or malformed ``users`` lists and malformed ids are tolerated
        (treated as absent). When no valid id remains, the directory is not
        queried at all.

        Parameters
        ----------
        parameters
            The action's free-form parameters mapping.

        Returns
        -------
        list of User
            Users found; ids unknown to the directory yield fewer results.

        Raises
        ------
        UserLookupError
            If the directory lookup fails.
        """
        refs = parameters.get("users") if isinstance(parameters, Mapping) else None
        if not isinstance(refs, (list, tuple)):
            refs = []

        ids: List[str] = []
        for ref in refs:
            user_id = parse_user_id(ref)
            if user_id is not None and user_id not in ids:
                ids.append(user_id)

        if not ids:
            return []

        try:
            return list(self.directory.find_users(ids))
        except Exception as e:
            raise UserLookupError(f"Failed to find users: {e}") from e
