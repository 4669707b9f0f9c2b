"""Core package for the shared-world synchronisation service."""

from .directory import IdentityDirectory
from .errors import (
    BadRequestError,
    CapacityExceededError,
    InsufficientQuantityError,
    MediaNotFoundError,
    NotFoundError,
    PlayerNotFoundError,
    RoomNotFoundError,
    UnauthorizedError,
    WorldSyncError,
)
from .feed import FeedPool, FeedPropagationEngine
from .media import MediaKind, MediaRef, MediaStore
from .messaging import DirectMessageService
from .models import (
    DirectMessage,
    FeedItem,
    FeedItemType,
    Notification,
    Player,
    PlayerProfile,
    PlayerRole,
    PlotAnswer,
    Room,
)
from .players import PlayerRegistry
from .sessions import SessionStore
from .state import SharedWorld
from .sync import SyncService, SyncSnapshot

__all__ = [
    "BadRequestError",
    "CapacityExceededError",
    "DirectMessage",
    "DirectMessageService",
    "FeedItem",
    "FeedItemType",
    "FeedPool",
    "FeedPropagationEngine",
    "IdentityDirectory",
    "InsufficientQuantityError",
    "MediaKind",
    "MediaNotFoundError",
    "MediaRef",
    "MediaStore",
    "NotFoundError",
    "Notification",
    "Player",
    "PlayerNotFoundError",
    "PlayerProfile",
    "PlayerRegistry",
    "PlayerRole",
    "PlotAnswer",
    "Room",
    "RoomNotFoundError",
    "SessionStore",
    "SharedWorld",
    "SyncService",
    "SyncSnapshot",
    "UnauthorizedError",
    "WorldSyncError",
]
