"""Exception types shared by the synchronisation services."""

from __future__ import annotations


class WorldSyncError(RuntimeError):
    """Base class for failures raised by the shared-world services."""


class NotFoundError(WorldSyncError, LookupError):
    """Raised when a room, player, message or media reference is absent."""


class RoomNotFoundError(NotFoundError):
    """Raised when a room selector does not match any live room."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"Game session '{selector}' not found.")
        self.selector = selector


class PlayerNotFoundError(NotFoundError):
    """Raised when a player is not a member of the addressed room."""

    def __init__(self, room_id: str, player_id: str) -> None:
        super().__init__(f"Player '{player_id}' not found in session '{room_id}'.")
        self.room_id = room_id
        self.player_id = player_id


class MediaNotFoundError(NotFoundError):
    """Raised when a media reference has never been stored or was swept."""

    def __init__(self, ref_id: str) -> None:
        super().__init__(f"Media '{ref_id}' not found.")
        self.ref_id = ref_id


class BadRequestError(WorldSyncError, ValueError):
    """Raised when a request is missing data or names an unknown action."""


class InsufficientQuantityError(BadRequestError):
    """Raised when a transfer asks for more items than the sender holds."""

    def __init__(self, item: str, requested: int, available: int) -> None:
        super().__init__("Not enough items to transfer.")
        self.item = item
        self.requested = requested
        self.available = available


class CapacityExceededError(WorldSyncError, ValueError):
    """Raised when an inline media payload exceeds the configured size limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Media payload of {size} bytes exceeds the size limit of {limit} bytes."
        )
        self.size = size
        self.limit = limit


class UnauthorizedError(WorldSyncError):
    """Raised when the bearer credential is missing or does not match."""


__all__ = [
    "BadRequestError",
    "CapacityExceededError",
    "InsufficientQuantityError",
    "MediaNotFoundError",
    "NotFoundError",
    "PlayerNotFoundError",
    "RoomNotFoundError",
    "UnauthorizedError",
    "WorldSyncError",
]
