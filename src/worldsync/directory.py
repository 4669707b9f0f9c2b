"""Username to player identity resolution."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from .models import normalise_username

logger = logging.getLogger(__name__)

RegistrationListener = Callable[[str, str], None]


class IdentityDirectory:
    """Map case-insensitive usernames onto the most recent player identity.

    A player receives a fresh identifier every time they join, so the directory
    keeps only the latest mapping per username. Entries are overwritten on
    rejoin and never removed. Listeners are notified after every registration,
    which is how deferred direct messages get delivered.
    """

    def __init__(self) -> None:
        self._mappings: Dict[str, str] = {}
        self._listeners: List[RegistrationListener] = []

    def subscribe(self, listener: RegistrationListener) -> None:
        """Call ``listener(username, player_id)`` after each registration."""

        self._listeners.append(listener)

    def register(self, username: str | None, player_id: str | None) -> bool:
        """Upsert the mapping for ``username``.

        Returns:
            ``False`` when either value is blank and nothing was recorded.
        """

        if not username or not username.strip() or not player_id:
            return False

        key = normalise_username(username)
        self._mappings[key] = player_id
        logger.debug("Username mapping updated: %s -> %s", key, player_id)

        for listener in list(self._listeners):
            listener(username, player_id)
        return True

    def resolve(self, username: str | None) -> str | None:
        if not username or not username.strip():
            return None
        return self._mappings.get(normalise_username(username))

    def __contains__(self, username: object) -> bool:
        return isinstance(username, str) and self.resolve(username) is not None

    def __len__(self) -> int:
        return len(self._mappings)
