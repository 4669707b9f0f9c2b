"""Process-wide container wiring the shared-world services together."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Set

from .directory import IdentityDirectory
from .feed import FeedPool, FeedPropagationEngine
from .media import MAX_MEDIA_BYTES, MediaStore, cited_ids
from .messaging import DirectMessageService
from .models import GLOBAL_ROOM_ID, MESSAGE_LOG_LIMIT, Room, utcnow
from .players import LIVENESS_WINDOW, PlayerRegistry
from .sessions import SessionStore
from .sync import SyncService

logger = logging.getLogger(__name__)


class SharedWorld:
    """Own every mutable store and the lock that serialises access to them.

    Callers hold :attr:`lock` for the whole of a request so read-modify-write
    sequences, such as bumping a parent's comment count, never interleave.
    """

    def __init__(
        self,
        *,
        media_max_bytes: int = MAX_MEDIA_BYTES,
        strict_media_limits: bool = False,
        liveness_window: timedelta = LIVENESS_WINDOW,
        message_log_limit: int = MESSAGE_LOG_LIMIT,
        keep_global_room: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.lock = threading.RLock()
        self.clock = clock
        self.directory = IdentityDirectory()
        self.pool = FeedPool()
        self.media = MediaStore(media_max_bytes, strict=strict_media_limits)
        self.sessions = SessionStore(
            self.pool,
            message_log_limit=message_log_limit,
            keep_global_room=keep_global_room,
            clock=clock,
        )
        self.players = PlayerRegistry(
            self.sessions,
            self.directory,
            liveness_window=liveness_window,
            clock=clock,
        )
        self.messages = DirectMessageService(self.directory, self.sessions, self.media)
        self.feed = FeedPropagationEngine(
            self.pool, self.sessions, self.media, self.messages
        )
        self.sync = SyncService(
            self.sessions,
            self.pool,
            self.players,
            self.messages,
            max_media_bytes=media_max_bytes,
        )

    def global_room(self) -> Room:
        return self.sessions.get_or_create(GLOBAL_ROOM_ID)

    def cited_media(self) -> Set[str]:
        """Reference ids cited by any pooled item or stored message."""

        return cited_ids(self._referenced_urls())

    def sweep_media(self) -> List[str]:
        """Drop media no feed item or message cites any more."""

        with self.lock:
            return self.media.sweep(self.cited_media())

    def _referenced_urls(self) -> Iterator[str]:
        for item in self.pool:
            yield from item.media.values()
        for message in self.messages.all_messages():
            yield from message.referenced_urls()


__all__ = ["SharedWorld"]
