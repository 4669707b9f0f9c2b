"""Domain records shared by the synchronisation services.

Every record carries a ``to_payload`` helper producing the camelCase JSON shape
clients expect, and inbound records expose ``from_payload`` constructors that
validate client input before it reaches the shared stores.
"""

from __future__ import annotations

import copy
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Mapping, Set, Tuple

from .errors import BadRequestError, PlayerNotFoundError

GLOBAL_ROOM_ID = "dworld-global-session"
GLOBAL_ROOM_NAME = "dWorld Global Session"
GLOBAL_APP_NAME = "dWorld"
DEFAULT_LOCATION = "0,1,2,1,2"
DEFAULT_ELAPSED_TIME = "1h 0m"
DEFAULT_ORGANIZATION = "Resistance"
DEFAULT_MESSAGE_TITLE = "No Subject"
MESSAGE_LOG_LIMIT = 100
SHORT_CODE_LENGTH = 6

# Media kind -> wire field carrying the URL or inline payload.
MEDIA_FIELDS: Dict[str, str] = {
    "image": "imageUrl",
    "video": "videoUrl",
    "audio": "audioUrl",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def new_identifier() -> str:
    return str(uuid.uuid4())


def normalise_username(username: str) -> str:
    """Return the case-insensitive key used for identity lookups."""

    return username.strip().lower()


class PlayerRole(str, Enum):
    """Authoring privilege levels granted to players."""

    MEMBER = "Member"
    EDITOR = "Editor"
    ADMIN = "Admin"

    @classmethod
    def parse(cls, value: Any) -> "PlayerRole":
        if isinstance(value, cls):
            return value
        for role in cls:
            if isinstance(value, str) and value.strip().lower() == role.value.lower():
                return role
        raise BadRequestError(f"Unknown player role '{value}'.")


class FeedItemType(str, Enum):
    """Content kinds that may be published to the shared feed."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    WEB = "web"
    PRESENTATION = "presentation"
    EVENT = "event"

    @classmethod
    def parse(cls, value: Any) -> "FeedItemType":
        if value is None:
            return cls.TEXT
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise BadRequestError(f"Unknown feed item type '{value}'.") from exc


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _flag(value: Any, field_name: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise BadRequestError(f"{field_name} must be a boolean.")
    return value


def string_collection(value: Any, *, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise BadRequestError(f"{field_name} must be a list of strings.")
    return [str(entry) for entry in value if str(entry).strip()]


@dataclass
class FeedItem:
    """A published post, comment, edit target or feed-borne direct message.

    Fields the service does not interpret are kept in ``extra`` and echoed back
    unchanged so richer clients can round-trip their own metadata.
    """

    id: str
    type: FeedItemType = FeedItemType.TEXT
    title: str = ""
    content: str = ""
    author: str | None = None
    parent_id: str | None = None
    comment_count: int = 0
    is_direct_message: bool = False
    recipients: Tuple[str, ...] = ()
    media: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN_FIELDS = frozenset(
        {
            "id",
            "type",
            "title",
            "content",
            "author",
            "parentId",
            "commentCount",
            "isDirectMessage",
            "recipients",
            *MEDIA_FIELDS.values(),
        }
    )

    @property
    def is_comment(self) -> bool:
        return self.parent_id is not None

    @property
    def carries_media(self) -> bool:
        return self.type.value in MEDIA_FIELDS

    def copy(self) -> "FeedItem":
        return replace(self, media=dict(self.media), extra=copy.deepcopy(self.extra))

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = copy.deepcopy(self.extra)
        payload.update(
            {
                "id": self.id,
                "type": self.type.value,
                "title": self.title,
                "content": self.content,
                "author": self.author,
                "commentCount": self.comment_count,
            }
        )
        if self.parent_id is not None:
            payload["parentId"] = self.parent_id
        if self.is_direct_message:
            payload["isDirectMessage"] = True
        if self.recipients:
            payload["recipients"] = list(self.recipients)
        for kind, url in self.media.items():
            payload[MEDIA_FIELDS[kind]] = url
        return payload

    @classmethod
    def from_payload(
        cls, payload: Any, *, require_id: bool = False
    ) -> "FeedItem":
        if not isinstance(payload, Mapping):
            raise BadRequestError("Missing feed item data.")

        identifier = _optional_text(payload.get("id"))
        if identifier is None:
            if require_id:
                raise BadRequestError("Missing feed item ID.")
            identifier = new_identifier()

        try:
            comment_count = max(0, int(payload.get("commentCount") or 0))
        except (TypeError, ValueError):
            comment_count = 0

        media = {
            kind: str(payload[wire_name])
            for kind, wire_name in MEDIA_FIELDS.items()
            if payload.get(wire_name)
        }

        return cls(
            id=identifier,
            type=FeedItemType.parse(payload.get("type")),
            title=str(payload.get("title") or ""),
            content=str(payload.get("content") or ""),
            author=_optional_text(payload.get("author")),
            parent_id=_optional_text(payload.get("parentId")),
            comment_count=comment_count,
            is_direct_message=_flag(payload.get("isDirectMessage"), "isDirectMessage"),
            recipients=tuple(
                string_collection(payload.get("recipients"), field_name="recipients")
            ),
            media=media,
            extra={
                key: copy.deepcopy(value)
                for key, value in payload.items()
                if key not in cls._KNOWN_FIELDS
            },
        )


@dataclass
class DirectMessage:
    """A message held in exactly one recipient inbox or pending queue."""

    id: str
    sender_id: str
    sender_name: str
    title: str = DEFAULT_MESSAGE_TITLE
    content: str = ""
    content_type: str = "text"
    organization: str = DEFAULT_ORGANIZATION
    timestamp: datetime = field(default_factory=utcnow)
    read: bool = False
    original_id: str | None = None
    media: Dict[str, str] = field(default_factory=dict)

    def copy(self) -> "DirectMessage":
        return replace(self, media=dict(self.media))

    def referenced_urls(self) -> List[str]:
        """Return every string field that may cite a media locator."""

        return [self.content, *self.media.values()]

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "sender": {
                "id": self.sender_id,
                "name": self.sender_name,
                "organization": self.organization,
            },
            "title": self.title,
            "content": self.content,
            "contentType": self.content_type,
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
        }
        if self.original_id is not None:
            payload["originalId"] = self.original_id
        for kind, url in self.media.items():
            payload[MEDIA_FIELDS[kind]] = url
        return payload


@dataclass(frozen=True)
class Notification:
    """An entry in a room's bounded message log."""

    id: str
    session_id: str
    sender_id: str
    sender_name: str
    content: str
    timestamp: int
    target_id: str | None = None
    is_system_message: bool = False

    @classmethod
    def create(
        cls,
        session_id: str,
        content: str,
        *,
        sender_id: str = "system",
        sender_name: str = "System",
        target_id: str | None = None,
        is_system_message: bool | None = None,
        now: datetime | None = None,
    ) -> "Notification":
        if is_system_message is None:
            is_system_message = sender_id == "system"
        return cls(
            id=new_identifier(),
            session_id=session_id,
            sender_id=sender_id,
            sender_name=sender_name,
            content=content,
            timestamp=epoch_millis(now or utcnow()),
            target_id=target_id,
            is_system_message=is_system_message,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "targetId": self.target_id,
            "content": self.content,
            "timestamp": self.timestamp,
            "isSystemMessage": self.is_system_message,
        }


@dataclass
class PlotAnswer:
    """Shared answer to one plot question, last writer wins."""

    state: str
    last_updated: int
    updated_by: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload = copy.deepcopy(self.data)
        payload.update(
            {
                "state": self.state,
                "lastUpdated": self.last_updated,
                "updatedBy": self.updated_by,
            }
        )
        return payload


@dataclass
class PlayerProfile:
    """Social profile attached to a player."""

    username: str
    organizations: Set[str] = field(default_factory=lambda: {DEFAULT_ORGANIZATION})
    topic_filters: Set[str] = field(default_factory=set)
    date_joined: datetime = field(default_factory=utcnow)
    extra: Dict[str, Any] = field(default_factory=dict)

    def merge(self, patch: Mapping[str, Any]) -> None:
        """Shallow-merge ``patch`` into the profile."""

        for key, value in patch.items():
            if key == "username":
                if value is not None and str(value).strip():
                    self.username = str(value).strip()
            elif key == "organizations":
                self.organizations = set(
                    string_collection(value, field_name="organizations")
                )
            elif key == "topicFilters":
                self.topic_filters = set(
                    string_collection(value, field_name="topicFilters")
                )
            elif key == "dateJoined":
                continue
            else:
                self.extra[key] = copy.deepcopy(value)

    def to_payload(self) -> Dict[str, Any]:
        payload = copy.deepcopy(self.extra)
        payload.update(
            {
                "username": self.username,
                "organizations": sorted(self.organizations),
                "topicFilters": sorted(self.topic_filters),
                "dateJoined": self.date_joined.isoformat(),
            }
        )
        return payload


@dataclass
class Player:
    """Membership record for a single client inside one room."""

    id: str
    display_name: str
    role: PlayerRole = PlayerRole.MEMBER
    is_human: bool = True
    current_location: str = DEFAULT_LOCATION
    inventory: Dict[str, int] = field(default_factory=dict)
    last_activity_at: datetime = field(default_factory=utcnow)
    profile: PlayerProfile = field(init=False)

    def __post_init__(self) -> None:
        self.profile = PlayerProfile(
            username=self.display_name, date_joined=self.last_activity_at
        )

    def touch(self, now: datetime | None = None) -> None:
        self.last_activity_at = now or utcnow()

    def is_active(self, now: datetime, window: timedelta) -> bool:
        return now - self.last_activity_at < window

    def quantity_of(self, kind: str) -> int:
        return self.inventory.get(kind, 0)

    def add_items(self, kind: str, count: int) -> None:
        remaining = self.inventory.get(kind, 0) + count
        if remaining > 0:
            self.inventory[kind] = remaining
        else:
            self.inventory.pop(kind, None)

    def remove_items(self, kind: str, count: int) -> None:
        self.add_items(kind, -count)

    def to_payload(self, *, is_active: bool = True) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "role": self.role.value,
            "isHuman": self.is_human,
            "isActive": is_active,
            "currentLocation": self.current_location,
            "inventory": dict(self.inventory),
            "lastActivity": self.last_activity_at.isoformat(),
            "profileData": self.profile.to_payload(),
        }


def _message_log(limit: int = MESSAGE_LOG_LIMIT) -> Deque[Notification]:
    return deque(maxlen=limit)


@dataclass
class Room:
    """An isolated roster with local mirrors of the shared feed."""

    id: str
    display_name: str
    created_at: datetime = field(default_factory=utcnow)
    turn_counter: int = 0
    elapsed_time: str = DEFAULT_ELAPSED_TIME
    world_facts: Dict[str, str] = field(default_factory=dict)
    players: Dict[str, Player] = field(default_factory=dict)
    feed_mirror: Dict[str, FeedItem] = field(default_factory=dict)
    message_log: Deque[Notification] = field(default_factory=_message_log)
    plot_state: Dict[str, PlotAnswer] = field(default_factory=dict)

    @property
    def short_code(self) -> str:
        return self.id[:SHORT_CODE_LENGTH].upper()

    @property
    def is_global(self) -> bool:
        return self.id == GLOBAL_ROOM_ID

    def post(self, notification: Notification) -> None:
        """Append to the message log, evicting the oldest entry when full."""

        self.message_log.append(notification)

    def player(self, player_id: str) -> Player:
        try:
            return self.players[player_id]
        except KeyError as exc:
            raise PlayerNotFoundError(self.id, player_id) from exc

    def mirror(self, item: FeedItem) -> bool:
        """Insert a copy of ``item`` unless an entry with its id exists."""

        if item.id in self.feed_mirror:
            return False
        self.feed_mirror[item.id] = item.copy()
        return True

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "shortCode": self.short_code,
            "playerCount": len(self.players),
            "globalTurn": self.turn_counter,
            "timeElapsed": self.elapsed_time,
        }


__all__ = [
    "DEFAULT_ELAPSED_TIME",
    "DEFAULT_LOCATION",
    "DEFAULT_MESSAGE_TITLE",
    "DEFAULT_ORGANIZATION",
    "DirectMessage",
    "FeedItem",
    "FeedItemType",
    "GLOBAL_APP_NAME",
    "GLOBAL_ROOM_ID",
    "GLOBAL_ROOM_NAME",
    "MEDIA_FIELDS",
    "MESSAGE_LOG_LIMIT",
    "Notification",
    "Player",
    "PlayerProfile",
    "PlayerRole",
    "PlotAnswer",
    "Room",
    "SHORT_CODE_LENGTH",
    "epoch_millis",
    "new_identifier",
    "normalise_username",
    "string_collection",
    "utcnow",
]
