"""FastAPI application exposing the shared-world synchronisation endpoints."""

from __future__ import annotations

import hmac
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Tuple

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from starlette.responses import PlainTextResponse, Response

from ..errors import (
    BadRequestError,
    CapacityExceededError,
    NotFoundError,
    UnauthorizedError,
    WorldSyncError,
)
from ..feed import FEED_ITEM_PREFIX
from ..media import absolutize_item, absolutize_message
from ..models import (
    DEFAULT_ORGANIZATION,
    GLOBAL_APP_NAME,
    FeedItem,
    Notification,
    Player,
    Room,
    epoch_millis,
)
from ..state import SharedWorld
from ..world import (
    apply_plot_answers,
    can_post,
    perform_action,
    update_elapsed_time,
)
from .settings import SyncApiSettings
from .sweeper import MediaSweeper

logger = logging.getLogger(__name__)

SERVER_BANNER = "World Sync Multiplayer Server with Resistance Feed Support"


class _WireModel(BaseModel):
    """Base request model accepting camelCase keys from clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JoinRequest(_WireModel):
    """Request payload for joining or creating a room."""

    player_name: str = Field(..., description="Display name of the joining player.")
    session_id: str | None = Field(
        None,
        description="Room selector: an id, a six character short code or a name.",
    )
    session_name: str | None = Field(
        None, description="Display name for a newly created room."
    )
    app_name: str | None = Field(
        None, description="Client application; dWorld always joins the global room."
    )

    @field_validator("player_name")
    @classmethod
    def _validate_player_name(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise TypeError("Player name must be provided as a string.")
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Player name must be a non-empty string.")
        return trimmed


class LookupRequest(_WireModel):
    session_id: str | None = None
    session_name: str | None = None


class MemberRequest(_WireModel):
    """Request addressing one player inside one room."""

    session_id: str
    player_id: str


class SyncRequest(MemberRequest):
    include_all_items: bool = Field(
        False, description="Return the whole feed pool instead of the room mirror."
    )


class ActionRequest(MemberRequest):
    action: str

    @field_validator("action")
    @classmethod
    def _validate_action(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Action must be a non-empty string.")
        return value


class LocationRequest(MemberRequest):
    location_id: str


class TimeRequest(_WireModel):
    session_id: str
    time_elapsed: str | None = None


class TransferRequest(_WireModel):
    session_id: str
    from_player_id: str
    to_player_id: str
    item: str
    quantity: int


class FeedRequest(MemberRequest):
    """Request payload for every feed action."""

    action: str
    feed_item: Dict[str, Any] | None = None
    feed_item_id: str | None = None


class DirectMessagesRequest(MemberRequest):
    """Request payload for every inbox action."""

    action: str
    message: Dict[str, Any] | None = None
    message_id: str | None = None


class ProfileRequest(MemberRequest):
    user_profile: Dict[str, Any] | None = None


class PermissionsRequest(MemberRequest):
    organization: str | None = None


class ChatRequest(_WireModel):
    session_id: str
    sender_id: str
    target_id: str | None = None
    content: str


class PlotStateRequest(MemberRequest):
    plot_questions: Dict[str, Any] | None = None


def check_credentials(authorization: str | None, expected: str | None) -> None:
    """Validate a ``Bearer`` authorization header against ``expected``.

    Raises:
        UnauthorizedError: If the header is missing, malformed or wrong.
    """

    if expected is None:
        return

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Unauthorized - Missing or invalid API key")
    if not hmac.compare_digest(token.strip().encode(), expected.encode()):
        raise UnauthorizedError("Unauthorized - Invalid API key")


def _http_error(exc: WorldSyncError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, CapacityExceededError):
        return HTTPException(status_code=413, detail=str(exc))
    if isinstance(exc, BadRequestError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, UnauthorizedError):
        return HTTPException(status_code=401, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _feed_item_id(payload: FeedRequest) -> str | None:
    if payload.feed_item_id:
        return payload.feed_item_id
    if payload.feed_item and payload.feed_item.get("id"):
        return str(payload.feed_item["id"])
    return None


def create_app(
    world: SharedWorld | None = None,
    *,
    settings: SyncApiSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the synchronisation endpoints."""

    resolved_settings = settings or SyncApiSettings.from_env()

    shared = world
    if shared is None:
        shared = SharedWorld(
            media_max_bytes=resolved_settings.media_max_bytes,
            strict_media_limits=resolved_settings.strict_media_limits,
            liveness_window=resolved_settings.liveness_window,
            message_log_limit=resolved_settings.message_log_limit,
            keep_global_room=resolved_settings.keep_global_room,
        )

    if not resolved_settings.auth_enabled:
        logger.warning("WORLDSYNC_API_KEY is not set; authentication is disabled.")

    sweeper = MediaSweeper(shared, resolved_settings.media_sweep_interval)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        sweeper.start()
        try:
            yield
        finally:
            await sweeper.stop()

    app = FastAPI(
        title="World Sync API",
        version="0.1.0",
        description=(
            "Shared-world synchronisation service. Clients push position, "
            "actions and authored content and poll a merged view of players, "
            "the social feed, direct messages and plot state."
        ),
        lifespan=lifespan,
    )
    app.state.world = shared
    app.state.settings = resolved_settings
    app.state.media_sweeper = sweeper

    def authenticate(authorization: str | None = Header(None)) -> None:
        try:
            check_credentials(authorization, resolved_settings.api_key)
        except UnauthorizedError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc

    protected = [Depends(authenticate)]

    def base_url(request: Request) -> str:
        if resolved_settings.public_base_url:
            return resolved_settings.public_base_url
        return str(request.base_url).rstrip("/")

    def member(session_id: str, player_id: str) -> Tuple[Room, Player]:
        room = shared.sessions.get(session_id)
        return room, room.player(player_id)

    @app.get("/", response_class=PlainTextResponse)
    def banner() -> str:
        return SERVER_BANNER

    @app.post("/ping", dependencies=protected)
    def ping() -> Dict[str, Any]:
        return {"success": True, "timestamp": epoch_millis(shared.clock())}

    @app.post("/join", dependencies=protected)
    def join(payload: JoinRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                if payload.app_name == GLOBAL_APP_NAME:
                    room = shared.global_room()
                elif payload.session_id:
                    room = shared.sessions.resolve_selector(payload.session_id)
                else:
                    room = shared.sessions.create(payload.session_name)
                player = shared.players.join(room, payload.player_name)
                return {
                    "sessionId": room.id,
                    "sessionName": room.display_name,
                    "shortCode": room.short_code,
                    "player": player.to_payload(),
                    "globalTurn": room.turn_counter,
                    "timeElapsed": room.elapsed_time,
                }
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    @app.post("/leave", dependencies=protected)
    def leave(payload: MemberRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                room = shared.sessions.get(payload.session_id)
                shared.players.leave(room, payload.player_id)
        except WorldSyncError as exc:
            raise _http_error(exc) from exc
        return {"success": True}

    @app.post("/lookup", dependencies=protected)
    def lookup(payload: LookupRequest) -> Dict[str, Any]:
        with shared.lock:
            return {"sessions": [room.summary() for room in shared.sessions]}

    @app.post("/sync", dependencies=protected)
    def sync(payload: SyncRequest, request: Request) -> Dict[str, Any]:
        try:
            with shared.lock:
                snapshot = shared.sync.sync(
                    payload.session_id,
                    payload.player_id,
                    include_all_items=payload.include_all_items,
                    base_url=base_url(request),
                )
                return snapshot.to_payload()
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    @app.post("/action", dependencies=protected)
    def action(payload: ActionRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                room, player = member(payload.session_id, payload.player_id)
                result = perform_action(
                    room, player, payload.action, now=shared.clock()
                )
                return {"result": result, "globalTurn": room.turn_counter}
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    @app.post("/updateLocation", dependencies=protected)
    def update_location(payload: LocationRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                _, player = member(payload.session_id, payload.player_id)
                previous, current = shared.players.update_location(
                    player, payload.location_id
                )
        except WorldSyncError as exc:
            raise _http_error(exc) from exc
        return {"success": True, "previousLocation": previous, "newLocation": current}

    @app.post("/updateTime", dependencies=protected)
    def update_time(payload: TimeRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                room = shared.sessions.get(payload.session_id)
                elapsed = update_elapsed_time(room, payload.time_elapsed or "")
        except WorldSyncError as exc:
            raise _http_error(exc) from exc
        return {"success": True, "timeElapsed": elapsed}

    @app.post("/transferItem", dependencies=protected)
    def transfer_item(payload: TransferRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                room = shared.sessions.get(payload.session_id)
                sender = room.player(payload.from_player_id)
                recipient = room.player(payload.to_player_id)
                shared.players.transfer_item(
                    sender, recipient, payload.item, payload.quantity
                )
        except WorldSyncError as exc:
            raise _http_error(exc) from exc
        return {"success": True}

    @app.post("/feed", dependencies=protected)
    def feed(payload: FeedRequest, request: Request) -> Dict[str, Any]:
        try:
            with shared.lock:
                _, player = member(payload.session_id, payload.player_id)
                return _handle_feed_action(payload, player, base_url(request))
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    def _handle_feed_action(
        payload: FeedRequest, player: Player, origin: str
    ) -> Dict[str, Any]:
        if payload.action == "publish":
            item = shared.feed.publish(
                FeedItem.from_payload(payload.feed_item), player, now=shared.clock()
            )
            return {"success": True, "feedItemId": item.id}

        if payload.action == "get":
            items = [
                absolutize_item(item.to_payload(), origin)
                for item in shared.feed.list()
            ]
            return {"success": True, "feedItems": items}

        if payload.action == "getComments":
            parent_id = _feed_item_id(payload)
            if parent_id is None:
                raise BadRequestError("Missing feed item ID.")
            comments = [
                absolutize_item(item.to_payload(), origin)
                for item in shared.feed.get_comments(parent_id)
            ]
            return {"success": True, "comments": comments}

        if payload.action == "update":
            item = FeedItem.from_payload(payload.feed_item, require_id=True)
            shared.feed.update(item, player, now=shared.clock())
            return {"success": True, "feedItemId": item.id}

        if payload.action == "delete":
            item_id = _feed_item_id(payload)
            if item_id is None:
                raise BadRequestError("Missing feed item ID.")
            shared.feed.delete(item_id, player, now=shared.clock())
            return {"success": True}

        if payload.action == "directMessage":
            item = FeedItem.from_payload(payload.feed_item)
            message = shared.feed.direct_message(item, player, now=shared.clock())
            return {"success": True, "messageId": message.id}

        raise BadRequestError(f"Unknown feed action '{payload.action}'.")

    @app.post("/directMessages", dependencies=protected)
    def direct_messages(
        payload: DirectMessagesRequest, request: Request
    ) -> Dict[str, Any]:
        try:
            with shared.lock:
                _, player = member(payload.session_id, payload.player_id)
                return _handle_inbox_action(payload, player, base_url(request))
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    def _handle_inbox_action(
        payload: DirectMessagesRequest, player: Player, origin: str
    ) -> Dict[str, Any]:
        if payload.action == "send":
            message = payload.message
            if not isinstance(message, dict):
                raise BadRequestError("Missing message data.")
            sent = shared.messages.send(
                player,
                message.get("recipients"),
                title=message.get("title"),
                content=str(message.get("content") or ""),
                content_type=message.get("contentType"),
                organization=message.get("organization"),
                now=shared.clock(),
            )
            return {"success": True, "messageId": sent.id}

        if payload.action == "get":
            inbox = [
                absolutize_message(message.to_payload(), origin)
                for message in shared.messages.get(player.id)
            ]
            return {"success": True, "messages": inbox}

        if payload.action in {"markAsRead", "delete"}:
            if not payload.message_id:
                raise BadRequestError("Missing message ID.")
            if payload.action == "markAsRead":
                shared.messages.mark_read(player.id, payload.message_id)
            else:
                shared.messages.delete(player.id, payload.message_id)
            return {"success": True}

        raise BadRequestError(f"Unknown direct message action '{payload.action}'.")

    @app.post("/updateProfile", dependencies=protected)
    def update_profile(payload: ProfileRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                _, player = member(payload.session_id, payload.player_id)
                shared.players.update_profile(player, payload.user_profile)
                return {
                    "success": True,
                    "player": {
                        "id": player.id,
                        "name": player.display_name,
                        "role": player.role.value,
                        "profileData": player.profile.to_payload(),
                    },
                }
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    @app.post("/checkPermissions", dependencies=protected)
    def check_permissions(payload: PermissionsRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                _, player = member(payload.session_id, payload.player_id)
                organization = payload.organization or DEFAULT_ORGANIZATION
                return {
                    "success": True,
                    "permissions": {
                        "canPost": can_post(player.role, organization),
                        "role": player.role.value,
                        "organization": organization,
                    },
                }
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    @app.post("/message", dependencies=protected)
    def message(payload: ChatRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                room, sender = member(payload.session_id, payload.sender_id)
                if payload.target_id:
                    room.player(payload.target_id)

                published = _publish_from_chat(payload.content, sender)
                if published is not None:
                    return {"success": True, "feedItemId": published.id}

                notification = Notification.create(
                    room.id,
                    payload.content,
                    sender_id=sender.id,
                    sender_name=sender.display_name,
                    target_id=payload.target_id,
                    is_system_message=False,
                    now=shared.clock(),
                )
                room.post(notification)
                return {"success": True, "messageId": notification.id}
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    def _publish_from_chat(content: str, sender: Player) -> FeedItem | None:
        if not content.startswith(FEED_ITEM_PREFIX):
            return None
        try:
            raw = json.loads(content[len(FEED_ITEM_PREFIX):])
        except json.JSONDecodeError:
            logger.warning("Chat message carried an unreadable feed item.")
            return None
        return shared.feed.publish(
            FeedItem.from_payload(raw), sender, now=shared.clock()
        )

    @app.post("/syncPlotState", dependencies=protected)
    def sync_plot_state(payload: PlotStateRequest) -> Dict[str, Any]:
        try:
            with shared.lock:
                room, player = member(payload.session_id, payload.player_id)
                shared.players.touch(player)
                state = apply_plot_answers(
                    room, player.id, payload.plot_questions, now=shared.clock()
                )
                return {
                    "success": True,
                    "plotQuestions": {
                        key: answer.to_payload() for key, answer in state.items()
                    },
                }
        except WorldSyncError as exc:
            raise _http_error(exc) from exc

    @app.get("/players", dependencies=protected)
    def list_players(
        session_id: str | None = Query(None, alias="sessionId"),
    ) -> Dict[str, Any]:
        try:
            with shared.lock:
                room = shared.sessions.get(session_id)
                active = {player.id for player in shared.players.active_players(room)}
                players: List[Dict[str, Any]] = [
                    {
                        "id": player.id,
                        "name": player.display_name,
                        "isActive": player.id in active,
                    }
                    for player in room.players.values()
                ]
        except WorldSyncError as exc:
            raise _http_error(exc) from exc
        return {"success": True, "players": players}

    @app.get("/media/{ref_id}")
    def get_media(ref_id: str) -> Response:
        try:
            with shared.lock:
                ref = shared.media.serve(ref_id)
        except WorldSyncError as exc:
            raise _http_error(exc) from exc
        return Response(content=ref.content, media_type=ref.content_type)

    return app


__all__ = ["create_app", "check_credentials"]
