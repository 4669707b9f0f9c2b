"""Per-player inboxes with deferred delivery for unknown usernames."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List

from .errors import BadRequestError
from .models import (
    DEFAULT_MESSAGE_TITLE,
    DEFAULT_ORGANIZATION,
    DirectMessage,
    FeedItem,
    Notification,
    Player,
    new_identifier,
    normalise_username,
    string_collection,
    utcnow,
)

if TYPE_CHECKING:
    from .directory import IdentityDirectory
    from .media import MediaStore
    from .sessions import SessionStore

logger = logging.getLogger(__name__)

NEW_DIRECT_MESSAGE_PREFIX = "NEW_DIRECT_MESSAGE:"


class DirectMessageService:
    """Deliver direct messages into inboxes or park them until resolvable.

    Recipients are addressed by username. A username the directory already
    knows receives the message in its inbox straight away, together with a
    notice in every room the player is in. Unknown usernames collect messages
    in a pending queue that is flushed, in arrival order, the moment the
    directory registers the name.

    Every recipient holds its own copy of a message under the shared id, so
    read flags and deletions only ever affect one inbox.
    """

    def __init__(
        self,
        directory: "IdentityDirectory",
        sessions: "SessionStore",
        media: "MediaStore",
    ) -> None:
        self._directory = directory
        self._sessions = sessions
        self._media = media
        self._inboxes: Dict[str, List[DirectMessage]] = {}
        self._pending: Dict[str, List[DirectMessage]] = {}
        directory.subscribe(self.flush_pending)

    def send(
        self,
        sender: Player,
        recipients: Any,
        *,
        title: str | None = None,
        content: str = "",
        content_type: str | None = None,
        organization: str | None = None,
        now: datetime | None = None,
    ) -> DirectMessage:
        """Build one message and deliver a copy to each recipient."""

        names = recipient_names(recipients)
        kind = content_type or "text"
        message = DirectMessage(
            id=new_identifier(),
            sender_id=sender.id,
            sender_name=sender.display_name,
            title=title or DEFAULT_MESSAGE_TITLE,
            content=self._media.extract_content(content or "", kind),
            content_type=kind,
            organization=organization or DEFAULT_ORGANIZATION,
            timestamp=now or utcnow(),
        )
        self.deliver(message, names, now=now)
        return message

    def send_feed_item(
        self, item: FeedItem, sender: Player, *, now: datetime | None = None
    ) -> DirectMessage:
        """Deliver a feed-shaped item to its recipients under a fresh id."""

        names = recipient_names(item.recipients)
        message = _message_from_item(item, sender, new_identifier(), now=now)
        self.deliver(message, names, now=now)
        return message

    def deliver(
        self,
        message: DirectMessage,
        recipients: Iterable[str],
        *,
        now: datetime | None = None,
    ) -> None:
        for username in recipients:
            copy = message.copy()
            player_id = self._directory.resolve(username)
            if player_id is None:
                self._pending.setdefault(normalise_username(username), []).append(copy)
                logger.info("Message %s parked for unknown user %s", copy.id, username)
                continue

            self._inbox(player_id).append(copy)
            logger.debug("Message %s delivered to %s", copy.id, player_id)
            self._notify(player_id, copy, now=now)

    def get(self, player_id: str) -> List[DirectMessage]:
        return list(self._inbox(player_id))

    def mark_read(self, player_id: str, message_id: str) -> bool:
        """Flag ``message_id`` as read; unknown ids are ignored."""

        for message in self._inboxes.get(player_id, []):
            if message.id == message_id:
                message.read = True
                return True
        return False

    def delete(self, player_id: str, message_id: str) -> bool:
        inbox = self._inboxes.get(player_id)
        if not inbox:
            return False
        remaining = [message for message in inbox if message.id != message_id]
        self._inboxes[player_id] = remaining
        return len(remaining) != len(inbox)

    def has_unread(self, player_id: str) -> bool:
        return any(not message.read for message in self._inboxes.get(player_id, []))

    def flush_pending(self, username: str, player_id: str) -> int:
        """Move every message parked for ``username`` into ``player_id``'s inbox.

        Returns:
            The number of messages moved.
        """

        queued = self._pending.pop(normalise_username(username), None)
        if not queued:
            return 0
        self._inbox(player_id).extend(queued)
        logger.info(
            "Delivered %d pending messages to %s (%s)", len(queued), username, player_id
        )
        return len(queued)

    def pending_for(self, username: str) -> List[DirectMessage]:
        return list(self._pending.get(normalise_username(username), []))

    def drop_pending(self, username: str, message_id: str) -> bool:
        """Discard one parked message without delivering it."""

        key = normalise_username(username)
        queue = self._pending.get(key)
        if not queue:
            return False
        remaining = [message for message in queue if message.id != message_id]
        if remaining:
            self._pending[key] = remaining
        else:
            del self._pending[key]
        return len(remaining) != len(queue)

    def redistribute(
        self, item: FeedItem, sender: Player, *, now: datetime | None = None
    ) -> None:
        """Apply an edited direct-message feed item to every recipient.

        A prior copy matching the item by id or original id is overwritten in
        place, keeping its own id and becoming unread again. Recipients with no
        prior copy receive a new message.
        """

        for username in item.recipients:
            player_id = self._directory.resolve(username)
            if player_id is None:
                target = self._pending.setdefault(normalise_username(username), [])
            else:
                target = self._inbox(player_id)

            index = _find_revision(target, item.id)
            if index is None:
                message = _message_from_item(item, sender, new_identifier(), now=now)
                target.append(message)
            else:
                message = _message_from_item(item, sender, target[index].id, now=now)
                target[index] = message

            if player_id is not None:
                self._notify(player_id, message, now=now)

    def all_messages(self) -> Iterator[DirectMessage]:
        """Yield every delivered and pending message."""

        for inbox in self._inboxes.values():
            yield from inbox
        for queue in self._pending.values():
            yield from queue

    def _inbox(self, player_id: str) -> List[DirectMessage]:
        return self._inboxes.setdefault(player_id, [])

    def _notify(
        self, player_id: str, message: DirectMessage, *, now: datetime | None
    ) -> None:
        summary = json.dumps(
            {
                "id": message.id,
                "sender": message.sender_name,
                "title": message.title,
                "contentType": message.content_type,
            }
        )
        for room in self._sessions.rooms_with_player(player_id):
            room.post(
                Notification.create(
                    room.id,
                    f"{NEW_DIRECT_MESSAGE_PREFIX}{summary}",
                    target_id=player_id,
                    now=now,
                )
            )


def recipient_names(recipients: Any) -> List[str]:
    """Validate a wire recipient list, rejecting bare strings and empty lists."""

    names = string_collection(recipients, field_name="recipients")
    if not names:
        raise BadRequestError("Missing recipients.")
    return names


def _find_revision(messages: List[DirectMessage], item_id: str) -> int | None:
    for index, message in enumerate(messages):
        if message.id == item_id or message.original_id == item_id:
            return index
    return None


def _message_from_item(
    item: FeedItem,
    sender: Player,
    message_id: str,
    *,
    now: datetime | None,
) -> DirectMessage:
    organization = item.extra.get("organization")
    return DirectMessage(
        id=message_id,
        sender_id=sender.id,
        sender_name=sender.display_name,
        title=item.title or DEFAULT_MESSAGE_TITLE,
        content=item.content,
        content_type=item.type.value,
        organization=str(organization) if organization else DEFAULT_ORGANIZATION,
        timestamp=now or utcnow(),
        original_id=item.id,
        media=dict(item.media),
    )


__all__ = ["DirectMessageService", "NEW_DIRECT_MESSAGE_PREFIX", "recipient_names"]
