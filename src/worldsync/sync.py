"""Per-poll reconciliation of a room with the shared world."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

from .media import absolutize_item, absolutize_message
from .models import DirectMessage, FeedItem, Notification, Player, Room

if TYPE_CHECKING:
    from .feed import FeedPool
    from .messaging import DirectMessageService
    from .players import PlayerRegistry
    from .sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class SyncSnapshot:
    """Everything a client needs to redraw after one poll."""

    room_id: str
    room_name: str
    short_code: str
    player: Player
    active_players: List[Player]
    colocated_players: List[Player]
    messages: List[Notification]
    world_facts: Dict[str, str]
    turn_counter: int
    elapsed_time: str
    plot_state: Dict[str, Any]
    feed_items: List[Dict[str, Any]]
    direct_messages: List[Dict[str, Any]]
    has_unread: bool
    server_info: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "sessionId": self.room_id,
            "sessionName": self.room_name,
            "shortCode": self.short_code,
            "player": self.player.to_payload(),
            "allPlayers": [player.to_payload() for player in self.active_players],
            "playersInLocation": [
                player.to_payload() for player in self.colocated_players
            ],
            "messages": [message.to_payload() for message in self.messages],
            "gameFacts": dict(self.world_facts),
            "globalTurn": self.turn_counter,
            "timeElapsed": self.elapsed_time,
            "preserveClientState": True,
            "plotQuestions": self.plot_state,
            "feedItems": self.feed_items,
            "directMessages": self.direct_messages,
            "hasUnreadDirectMessages": self.has_unread,
            "serverInfo": self.server_info,
        }


class SyncService:
    """Build sync snapshots, lazily catching rooms up with the feed pool."""

    def __init__(
        self,
        sessions: "SessionStore",
        pool: "FeedPool",
        players: "PlayerRegistry",
        messages: "DirectMessageService",
        *,
        max_media_bytes: int,
    ) -> None:
        self._sessions = sessions
        self._pool = pool
        self._players = players
        self._messages = messages
        self._max_media_bytes = max_media_bytes

    def sync(
        self,
        room_id: str | None,
        player_id: str | None,
        *,
        include_all_items: bool = False,
        base_url: str = "",
    ) -> SyncSnapshot:
        """Reconcile ``room_id`` and return the caller's view of it.

        Raises:
            RoomNotFoundError: If the room does not exist.
            PlayerNotFoundError: If the player is not in the room.
        """

        room = self._sessions.get(room_id)
        player = room.player(player_id or "")
        self._players.touch(player)

        active = self._players.active_players(room)
        colocated = self._players.colocated(room, player)

        merged = self.catch_up(room)
        if merged:
            logger.debug("Merged %d pooled items into session %s", merged, room.id)

        items: List[FeedItem] = (
            self._pool.items() if include_all_items else list(room.feed_mirror.values())
        )
        inbox: List[DirectMessage] = self._messages.get(player.id)

        return SyncSnapshot(
            room_id=room.id,
            room_name=room.display_name,
            short_code=room.short_code,
            player=player,
            active_players=active,
            colocated_players=colocated,
            messages=list(room.message_log),
            world_facts=dict(room.world_facts),
            turn_counter=room.turn_counter,
            elapsed_time=room.elapsed_time,
            plot_state={
                key: answer.to_payload() for key, answer in room.plot_state.items()
            },
            feed_items=[absolutize_item(item.to_payload(), base_url) for item in items],
            direct_messages=[
                absolutize_message(message.to_payload(), base_url) for message in inbox
            ],
            has_unread=self._messages.has_unread(player.id),
            server_info={
                "mediaSupport": True,
                "maxMediaSize": self._max_media_bytes,
                "serverUrl": base_url,
            },
        )

    def catch_up(self, room: Room) -> int:
        """Mirror every pooled item the room is missing; returns the count."""

        return sum(1 for item in self._pool if room.mirror(item))


__all__ = ["SyncService", "SyncSnapshot"]
