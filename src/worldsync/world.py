"""Room-level world facts, clock, plot flags and posting permissions."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Mapping

from .errors import BadRequestError
from .models import (
    DEFAULT_ELAPSED_TIME,
    DEFAULT_ORGANIZATION,
    Notification,
    Player,
    PlayerRole,
    PlotAnswer,
    Room,
    epoch_millis,
    utcnow,
)

logger = logging.getLogger(__name__)

ZERO_ELAPSED_TIME = "0h 0m"
PLOT_STATE_PREFIX = "PLOT_STATE_UPDATE:"

# Organizations whose feeds only accept posts from the listed roles. Anything
# not listed accepts every role.
ORGANIZATION_AUTHOR_ROLES: Dict[str, frozenset[PlayerRole]] = {
    "Free Press Alliance": frozenset({PlayerRole.EDITOR, PlayerRole.ADMIN}),
    "Community Voice": frozenset({PlayerRole.EDITOR, PlayerRole.ADMIN}),
}


def default_world_facts() -> Dict[str, str]:
    """Return a fresh copy of the facts every new room starts with."""

    return {
        "planetName": "Zeta Proxima b",
        "atmosphere": "Thin, breathable with assistance",
        "gravity": "0.8 Earth gravity",
        "temperature": "Variable, generally cool",
        "terrain": "Rocky plains with scattered crystalline formations",
        "flora": "Bioluminescent lichen and hardy shrubs",
        "fauna": "Small, insect-like creatures",
        "resources": "Rare minerals and crystals",
        "timeElapsed": DEFAULT_ELAPSED_TIME,
        "year": "2174",
    }


def perform_action(
    room: Room, player: Player, action: str, *, now: datetime | None = None
) -> str:
    """Record ``action`` for ``player`` and advance the room's turn counter."""

    player.touch(now)
    room.turn_counter += 1
    return f'Action "{action}" received'


def update_elapsed_time(room: Room, value: str) -> str:
    """Store the client-reported elapsed time and return the effective value.

    The zero duration is ignored so a freshly started client cannot reset a
    room that is already in progress.
    """

    if not isinstance(value, str) or not value.strip():
        raise BadRequestError("Missing time elapsed value.")

    if value == ZERO_ELAPSED_TIME:
        logger.debug("Ignoring zero elapsed time for session %s", room.id)
        return room.elapsed_time

    room.elapsed_time = value
    room.world_facts["timeElapsed"] = value
    return room.elapsed_time


def apply_plot_answers(
    room: Room,
    player_id: str,
    answers: Mapping[str, Any] | None,
    *,
    now: datetime | None = None,
) -> Dict[str, PlotAnswer]:
    """Merge client plot answers into ``room`` and broadcast the new state.

    Only answers carrying a ``state`` are stored. When ``answers`` is ``None``
    the current state is returned untouched and nothing is broadcast.
    """

    if answers is None:
        return room.plot_state

    moment = now or utcnow()
    for key, answer in answers.items():
        if not isinstance(answer, Mapping) or not answer.get("state"):
            continue
        data = {
            name: value
            for name, value in answer.items()
            if name not in {"state", "lastUpdated", "updatedBy"}
        }
        room.plot_state[str(key)] = PlotAnswer(
            state=str(answer["state"]),
            last_updated=epoch_millis(moment),
            updated_by=player_id,
            data=data,
        )

    snapshot = {key: value.to_payload() for key, value in room.plot_state.items()}
    room.post(
        Notification.create(
            room.id, f"{PLOT_STATE_PREFIX}{json.dumps(snapshot)}", now=moment
        )
    )
    logger.info(
        "Plot state for session %s now holds %d answers", room.id, len(snapshot)
    )
    return room.plot_state


def can_post(role: PlayerRole, organization: str | None) -> bool:
    allowed = ORGANIZATION_AUTHOR_ROLES.get(organization or DEFAULT_ORGANIZATION)
    return allowed is None or role in allowed


__all__ = [
    "ORGANIZATION_AUTHOR_ROLES",
    "ZERO_ELAPSED_TIME",
    "apply_plot_answers",
    "can_post",
    "default_world_facts",
    "perform_action",
    "update_elapsed_time",
]
