"""Room membership, liveness and per-player state changes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, Tuple

from .errors import BadRequestError, InsufficientQuantityError
from .models import Player, PlayerRole, Room, new_identifier, utcnow

if TYPE_CHECKING:
    from .directory import IdentityDirectory
    from .sessions import SessionStore

logger = logging.getLogger(__name__)

LIVENESS_WINDOW = timedelta(minutes=5)


class PlayerRegistry:
    """Add, remove and update players across rooms.

    Liveness is never stored: a player counts as active when their last
    activity lies strictly inside the window at the moment a roster is read.
    """

    def __init__(
        self,
        sessions: "SessionStore",
        directory: "IdentityDirectory",
        *,
        liveness_window: timedelta = LIVENESS_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if liveness_window <= timedelta(0):
            raise ValueError("liveness_window must be positive.")
        self._sessions = sessions
        self._directory = directory
        self._window = liveness_window
        self._clock = clock

    @property
    def liveness_window(self) -> timedelta:
        return self._window

    def join(
        self,
        room: Room,
        display_name: str | None,
        *,
        role: PlayerRole = PlayerRole.MEMBER,
        is_human: bool = True,
    ) -> Player:
        """Create a player in ``room`` and register their username."""

        name = (display_name or "").strip()
        if not name:
            raise BadRequestError("Missing player name.")

        player = Player(
            id=new_identifier(),
            display_name=name,
            role=role,
            is_human=is_human,
            last_activity_at=self._clock(),
        )
        room.players[player.id] = player
        self._directory.register(name, player.id)
        logger.info("Player %s (%s) joined session %s", name, player.id, room.id)
        return player

    def leave(self, room: Room, player_id: str) -> bool:
        """Remove ``player_id`` from ``room``.

        Returns:
            ``True`` when the room was dropped because it became empty.
        """

        player = room.player(player_id)
        del room.players[player.id]
        logger.info("Player %s left session %s", player.id, room.id)
        return self._sessions.remove_if_empty(room)

    def touch(self, player: Player) -> None:
        player.touch(self._clock())

    def active_players(self, room: Room, now: datetime | None = None) -> List[Player]:
        moment = now or self._clock()
        return [
            player
            for player in room.players.values()
            if player.is_active(moment, self._window)
        ]

    def colocated(
        self, room: Room, player: Player, now: datetime | None = None
    ) -> List[Player]:
        """Active players standing on exactly the same location as ``player``."""

        return [
            other
            for other in self.active_players(room, now)
            if other.current_location == player.current_location
        ]

    def update_location(self, player: Player, location: str | None) -> Tuple[str, str]:
        """Move ``player`` and return ``(previous, new)`` locations."""

        if not location or not str(location).strip():
            raise BadRequestError("Missing location.")
        previous = player.current_location
        player.current_location = str(location)
        self.touch(player)
        logger.debug(
            "Player %s moved %s -> %s", player.id, previous, player.current_location
        )
        return previous, player.current_location

    def update_profile(self, player: Player, patch: Mapping[str, Any] | None) -> Player:
        """Shallow-merge ``patch`` into the player's profile.

        ``username`` and ``role`` also update the player record itself, and a
        new username is registered so direct messages can find the player.
        """

        if not isinstance(patch, Mapping) or not patch:
            raise BadRequestError("Missing user profile data.")

        role = patch.get("role")
        if role:
            player.role = PlayerRole.parse(role)

        player.profile.merge({key: value for key, value in patch.items() if key != "role"})

        username = patch.get("username")
        if isinstance(username, str) and username.strip():
            player.display_name = username.strip()
            self._directory.register(player.display_name, player.id)

        return player

    def transfer_item(
        self, sender: Player, recipient: Player, item: str | None, quantity: Any
    ) -> None:
        if not item:
            raise BadRequestError("Missing item.")
        try:
            count = int(quantity)
        except (TypeError, ValueError) as exc:
            raise BadRequestError("Quantity must be a whole number.") from exc
        if count <= 0:
            raise BadRequestError("Quantity must be positive.")

        available = sender.quantity_of(item)
        if available < count:
            raise InsufficientQuantityError(item, count, available)

        sender.remove_items(item, count)
        recipient.add_items(item, count)
        logger.debug(
            "Transferred %d x %s from %s to %s", count, item, sender.id, recipient.id
        )


__all__ = ["LIVENESS_WINDOW", "PlayerRegistry"]
