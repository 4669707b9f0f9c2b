"""In-memory store of rooms (game sessions)."""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Callable, Dict, Iterator, List

from .errors import RoomNotFoundError
from .feed import FeedPool
from .models import (
    GLOBAL_ROOM_ID,
    GLOBAL_ROOM_NAME,
    MESSAGE_LOG_LIMIT,
    SHORT_CODE_LENGTH,
    Room,
    new_identifier,
    utcnow,
)
from .world import default_world_facts

logger = logging.getLogger(__name__)


class SessionStore:
    """Keep every live room in process memory.

    New rooms start with a copy of the shared feed pool so players joining
    late still see the full history. The well-known global room is created on
    first reference and, unless ``keep_global_room`` is disabled, survives
    losing its last player.
    """

    def __init__(
        self,
        pool: FeedPool,
        *,
        message_log_limit: int = MESSAGE_LOG_LIMIT,
        keep_global_room: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if message_log_limit < 1:
            raise ValueError("message_log_limit must be greater than zero.")
        self._pool = pool
        self._rooms: Dict[str, Room] = {}
        self._message_log_limit = message_log_limit
        self._keep_global_room = keep_global_room
        self._clock = clock

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def list(self) -> List[Room]:
        return list(self._rooms.values())

    def get(self, room_id: str | None) -> Room:
        """Return the room with exactly ``room_id``."""

        room = self._rooms.get(room_id or "")
        if room is None:
            raise RoomNotFoundError(room_id or "")
        return room

    def get_or_create(self, room_key: str) -> Room:
        room = self._rooms.get(room_key)
        if room is not None:
            return room

        if room_key == GLOBAL_ROOM_ID:
            return self._add_room(GLOBAL_ROOM_ID, GLOBAL_ROOM_NAME)
        return self._add_room(room_key, f"Game-{room_key[:SHORT_CODE_LENGTH]}")

    def create(self, display_name: str | None = None) -> Room:
        """Create a room under a fresh identifier."""

        room_id = new_identifier()
        name = (display_name or "").strip() or f"Game-{room_id[:SHORT_CODE_LENGTH]}"
        return self._add_room(room_id, name)

    def resolve_selector(self, selector: str | None) -> Room:
        """Resolve a client-supplied room selector.

        Matching is attempted in priority order and the first hit wins:

        1. the exact room id, then the id compared case-insensitively;
        2. the six character short code, case-insensitively;
        3. the room display name, case-insensitively, only for selectors
           longer than a short code so codes and names cannot collide.

        Raises:
            RoomNotFoundError: If nothing matches.
        """

        if not selector or not selector.strip():
            raise RoomNotFoundError(selector or "")

        candidate = selector.strip()
        if candidate in self._rooms:
            return self._rooms[candidate]

        lowered = candidate.lower()
        for room_id, room in self._rooms.items():
            if room_id.lower() == lowered:
                return room

        for room_id, room in self._rooms.items():
            if room_id[:SHORT_CODE_LENGTH].lower() == lowered:
                return room

        if len(candidate) > SHORT_CODE_LENGTH:
            for room in self._rooms.values():
                if room.display_name.lower() == lowered:
                    return room

        raise RoomNotFoundError(candidate)

    def remove_if_empty(self, room: Room) -> bool:
        """Drop ``room`` once its roster is empty.

        Returns:
            ``True`` when the room was removed.
        """

        if room.players:
            return False
        if room.is_global and self._keep_global_room:
            return False
        if self._rooms.pop(room.id, None) is None:
            return False
        logger.info("Removing empty session: %s", room.id)
        return True

    def rooms_with_player(self, player_id: str) -> List[Room]:
        return [room for room in self._rooms.values() if player_id in room.players]

    def _add_room(self, room_id: str, display_name: str) -> Room:
        room = Room(
            id=room_id,
            display_name=display_name,
            created_at=self._clock(),
            world_facts=default_world_facts(),
            message_log=deque(maxlen=self._message_log_limit),
        )
        for item in self._pool:
            room.mirror(item)
        self._rooms[room_id] = room
        logger.info(
            "Created session %s (%s) with %d feed items",
            room_id,
            display_name,
            len(room.feed_mirror),
        )
        return room


__all__ = ["SessionStore"]
