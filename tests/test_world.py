import json

import pytest

from worldsync import BadRequestError, PlayerRole, SharedWorld
from worldsync.world import (
    apply_plot_answers,
    can_post,
    perform_action,
    update_elapsed_time,
)


def test_perform_action_advances_turn(world: SharedWorld, clock) -> None:
    room = world.sessions.create()
    player = world.players.join(room, "Nova")
    clock.advance(minutes=1)

    result = perform_action(room, player, "open hatch", now=clock.now)

    assert result == 'Action "open hatch" received'
    assert room.turn_counter == 1
    assert player.last_activity_at == clock.now


def test_update_elapsed_time_ignores_zero(world: SharedWorld) -> None:
    room = world.sessions.create()

    assert update_elapsed_time(room, "0h 0m") == "1h 0m"
    assert update_elapsed_time(room, "3h 15m") == "3h 15m"
    assert room.world_facts["timeElapsed"] == "3h 15m"
    assert update_elapsed_time(room, "0h 0m") == "3h 15m"

    with pytest.raises(BadRequestError):
        update_elapsed_time(room, "  ")


def test_plot_answers_require_state(world: SharedWorld, clock) -> None:
    room = world.sessions.create()

    state = apply_plot_answers(
        room,
        "player-1",
        {
            "reactor": {"state": "repaired", "note": "with tape"},
            "beacon": {"note": "no state"},
            "garbage": "not a mapping",
        },
        now=clock.now,
    )

    assert set(state) == {"reactor"}
    answer = state["reactor"].to_payload()
    assert answer["state"] == "repaired"
    assert answer["note"] == "with tape"
    assert answer["updatedBy"] == "player-1"
    assert answer["lastUpdated"] == int(clock.now.timestamp() * 1000)

    notice = room.message_log[-1].content
    assert notice.startswith("PLOT_STATE_UPDATE:")
    assert json.loads(notice[len("PLOT_STATE_UPDATE:"):])["reactor"]["state"] == (
        "repaired"
    )


def test_plot_answers_last_writer_wins(world: SharedWorld) -> None:
    room = world.sessions.create()
    apply_plot_answers(room, "p1", {"reactor": {"state": "broken"}})
    apply_plot_answers(room, "p2", {"reactor": {"state": "repaired"}})

    assert room.plot_state["reactor"].state == "repaired"
    assert room.plot_state["reactor"].updated_by == "p2"


def test_missing_plot_answers_return_current_state(world: SharedWorld) -> None:
    room = world.sessions.create()

    assert apply_plot_answers(room, "p1", None) == {}
    assert len(room.message_log) == 0


@pytest.mark.parametrize(
    ("role", "organization", "expected"),
    [
        (PlayerRole.MEMBER, None, True),
        (PlayerRole.MEMBER, "Resistance", True),
        (PlayerRole.MEMBER, "Free Press Alliance", False),
        (PlayerRole.EDITOR, "Free Press Alliance", True),
        (PlayerRole.ADMIN, "Community Voice", True),
        (PlayerRole.MEMBER, "Community Voice", False),
        (PlayerRole.MEMBER, "Unlisted Guild", True),
    ],
)
def test_can_post(role: PlayerRole, organization, expected: bool) -> None:
    assert can_post(role, organization) is expected
