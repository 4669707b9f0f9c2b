"""Global feed pool and the fan-out of feed writes into every room."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List

from .messaging import recipient_names
from .models import FeedItem, Notification, Player, Room

if TYPE_CHECKING:
    from .media import MediaStore
    from .messaging import DirectMessageService
    from .models import DirectMessage
    from .sessions import SessionStore

logger = logging.getLogger(__name__)

FEED_ITEM_PREFIX = "FEED_ITEM:"
UPDATE_FEED_ITEM_PREFIX = "UPDATE_FEED_ITEM:"
DELETE_FEED_ITEM_PREFIX = "DELETE_FEED_ITEM:"


class FeedPool:
    """Ordered, id-deduplicated store of every published feed item."""

    def __init__(self) -> None:
        self._items: Dict[str, FeedItem] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[FeedItem]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> FeedItem | None:
        return self._items.get(item_id)

    def add(self, item: FeedItem) -> bool:
        """Insert ``item`` unless its id is already pooled."""

        if item.id in self._items:
            return False
        self._items[item.id] = item
        return True

    def upsert(self, item: FeedItem) -> bool:
        """Replace the entry with ``item.id`` in place or append it.

        Returns:
            ``True`` if an existing entry was replaced.
        """

        replaced = item.id in self._items
        self._items[item.id] = item
        return replaced

    def remove(self, item_id: str) -> FeedItem | None:
        return self._items.pop(item_id, None)

    def items(self) -> List[FeedItem]:
        return list(self._items.values())


class FeedPropagationEngine:
    """Apply feed writes to the global pool and mirror them into rooms.

    Every write lands in the pool first and is then copied into each room's
    mirror with a notification appended to the room's message log. The fan-out
    is best effort: a room that fails to take the write is logged and skipped
    while the remaining rooms still receive it.
    """

    def __init__(
        self,
        pool: FeedPool,
        sessions: "SessionStore",
        media: "MediaStore",
        messages: "DirectMessageService",
    ) -> None:
        self._pool = pool
        self._sessions = sessions
        self._media = media
        self._messages = messages

    def list(self) -> List[FeedItem]:
        return self._pool.items()

    def get_comments(self, parent_id: str) -> List[FeedItem]:
        """Return comments on ``parent_id`` in pool insertion order."""

        return [item for item in self._pool if item.parent_id == parent_id]

    def publish(
        self, item: FeedItem, sender: Player, *, now: datetime | None = None
    ) -> FeedItem:
        """Publish ``item`` to the pool and every room.

        Re-publishing an id that is already pooled is a no-op and returns the
        pooled item, so retried requests never double count comments.
        """

        existing = self._pool.get(item.id)
        if existing is not None:
            logger.debug("Feed item %s already published, ignoring", item.id)
            return existing

        processed = self._media.extract(item) if item.carries_media else item

        if processed.parent_id is not None:
            self._increment_comment_count(processed.parent_id)

        self._pool.add(processed)
        logger.info("Publishing feed item: %s [%s]", processed.title, processed.id)

        content = FEED_ITEM_PREFIX + json.dumps(processed.to_payload())

        def _apply(room: Room) -> None:
            if room.mirror(processed):
                logger.debug("Propagated feed item %s to %s", processed.id, room.id)

        self._fan_out(_apply, content, sender, now=now)
        return processed

    def update(
        self, item: FeedItem, sender: Player, *, now: datetime | None = None
    ) -> FeedItem:
        """Replace ``item`` everywhere, inserting it where it is missing.

        Direct-message items are also redistributed to their recipients'
        inboxes and pending queues.
        """

        processed = self._media.extract(item) if item.carries_media else item

        if not self._pool.upsert(processed):
            logger.debug("Feed item %s not pooled, adding as new", processed.id)

        content = UPDATE_FEED_ITEM_PREFIX + json.dumps(processed.to_payload())

        def _apply(room: Room) -> None:
            room.feed_mirror[processed.id] = processed.copy()

        self._fan_out(_apply, content, sender, now=now)

        if processed.is_direct_message and processed.recipients:
            self._messages.redistribute(processed, sender, now=now)

        logger.info("Feed item %s updated in all sessions", processed.id)
        return processed

    def delete(
        self, item_id: str, sender: Player, *, now: datetime | None = None
    ) -> bool:
        """Remove ``item_id`` from the pool and every mirror.

        Returns:
            ``True`` if the pool held the item.
        """

        removed = self._pool.remove(item_id) is not None

        def _apply(room: Room) -> None:
            room.feed_mirror.pop(item_id, None)

        self._fan_out(_apply, DELETE_FEED_ITEM_PREFIX + item_id, sender, now=now)
        logger.info("Feed item %s deleted from all sessions", item_id)
        return removed

    def direct_message(
        self, item: FeedItem, sender: Player, *, now: datetime | None = None
    ) -> "DirectMessage":
        """Deliver a feed-shaped item privately to its recipients."""

        recipient_names(item.recipients)
        processed = self._media.extract(item) if item.carries_media else item
        return self._messages.send_feed_item(processed, sender, now=now)

    def _increment_comment_count(self, parent_id: str) -> None:
        parent = self._pool.get(parent_id)
        if parent is None:
            logger.debug("Parent %s not pooled, comment count unchanged", parent_id)
            return

        parent.comment_count += 1
        for room in self._sessions:
            mirrored = room.feed_mirror.get(parent_id)
            if mirrored is not None:
                mirrored.comment_count += 1

    def _fan_out(
        self,
        apply: Callable[[Room], None],
        content: str,
        sender: Player,
        *,
        now: datetime | None,
    ) -> None:
        for room in self._sessions:
            try:
                apply(room)
                room.post(
                    Notification.create(
                        room.id,
                        content,
                        sender_id=sender.id,
                        sender_name=sender.display_name,
                        is_system_message=False,
                        now=now,
                    )
                )
            except Exception:
                logger.exception("Failed to propagate feed write to %s", room.id)


__all__ = [
    "DELETE_FEED_ITEM_PREFIX",
    "FEED_ITEM_PREFIX",
    "FeedPool",
    "FeedPropagationEngine",
    "UPDATE_FEED_ITEM_PREFIX",
]
