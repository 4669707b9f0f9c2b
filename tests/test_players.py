import pytest

from worldsync import (
    BadRequestError,
    InsufficientQuantityError,
    PlayerNotFoundError,
    PlayerRole,
    SharedWorld,
)
from worldsync.models import DEFAULT_LOCATION, Player


def test_join_registers_username(world: SharedWorld) -> None:
    room = world.sessions.create()

    player = world.players.join(room, "  Nova ")

    assert player.display_name == "Nova"
    assert player.role is PlayerRole.MEMBER
    assert player.current_location == DEFAULT_LOCATION
    assert player.profile.organizations == {"Resistance"}
    assert room.players[player.id] is player
    assert world.directory.resolve("nova") == player.id


def test_join_requires_a_name(world: SharedWorld) -> None:
    room = world.sessions.create()

    with pytest.raises(BadRequestError):
        world.players.join(room, "   ")


def test_rejoining_gets_a_fresh_identity(world: SharedWorld) -> None:
    room = world.sessions.create()
    first = world.players.join(room, "Nova")
    second = world.players.join(room, "nova")

    assert first.id != second.id
    assert world.directory.resolve("Nova") == second.id


def test_liveness_window_is_strict(world: SharedWorld, clock) -> None:
    room = world.sessions.create()
    stale = world.players.join(room, "Stale")
    clock.advance(minutes=2)
    recent = world.players.join(room, "Recent")
    clock.advance(minutes=4)

    active = world.players.active_players(room)

    assert recent in active
    assert stale not in active

    clock.advance(minutes=1)
    assert world.players.active_players(room) == []


def test_colocated_players_share_exact_location(world: SharedWorld) -> None:
    room = world.sessions.create()
    nova = world.players.join(room, "Nova")
    rowan = world.players.join(room, "Rowan")
    kai = world.players.join(room, "Kai")
    world.players.update_location(kai, "0,1,2,1,3")

    colocated = world.players.colocated(room, nova)

    assert [player.id for player in colocated] == [nova.id, rowan.id]


def test_update_location_returns_previous_and_new(world: SharedWorld, clock) -> None:
    room = world.sessions.create()
    player = world.players.join(room, "Nova")
    clock.advance(minutes=3)

    previous, current = world.players.update_location(player, "4,4,4,4,4")

    assert previous == DEFAULT_LOCATION
    assert current == "4,4,4,4,4"
    assert player.last_activity_at == clock.now

    with pytest.raises(BadRequestError):
        world.players.update_location(player, "")


def test_leave_drops_empty_rooms(world: SharedWorld) -> None:
    room = world.sessions.create()
    nova = world.players.join(room, "Nova")
    rowan = world.players.join(room, "Rowan")

    assert world.players.leave(room, nova.id) is False
    assert room.id in world.sessions

    assert world.players.leave(room, rowan.id) is True
    assert room.id not in world.sessions

    with pytest.raises(PlayerNotFoundError):
        world.players.leave(room, rowan.id)


def test_leaving_global_room_keeps_it_alive(world: SharedWorld) -> None:
    room = world.global_room()
    player = world.players.join(room, "Nova")

    assert world.players.leave(room, player.id) is False
    assert world.global_room() is room


def test_transfer_item_moves_stock_and_cleans_up(world: SharedWorld) -> None:
    room = world.sessions.create()
    sender = world.players.join(room, "Nova")
    recipient = world.players.join(room, "Rowan")
    sender.add_items("oxygen", 2)

    world.players.transfer_item(sender, recipient, "oxygen", 2)

    assert "oxygen" not in sender.inventory
    assert recipient.inventory == {"oxygen": 2}


def test_transfer_item_rejects_insufficient_quantity(world: SharedWorld) -> None:
    room = world.sessions.create()
    sender = world.players.join(room, "Nova")
    recipient = world.players.join(room, "Rowan")
    sender.add_items("oxygen", 1)

    with pytest.raises(InsufficientQuantityError) as excinfo:
        world.players.transfer_item(sender, recipient, "oxygen", 3)

    assert str(excinfo.value) == "Not enough items to transfer."
    assert excinfo.value.available == 1
    assert sender.inventory == {"oxygen": 1}
    assert recipient.inventory == {}


@pytest.mark.parametrize("quantity", [0, -1, "many"])
def test_transfer_item_requires_positive_quantity(world: SharedWorld, quantity) -> None:
    room = world.sessions.create()
    sender = world.players.join(room, "Nova")
    recipient = world.players.join(room, "Rowan")
    sender.add_items("oxygen", 5)

    with pytest.raises(BadRequestError):
        world.players.transfer_item(sender, recipient, "oxygen", quantity)


def test_update_profile_merges_and_registers_new_username(world: SharedWorld) -> None:
    room = world.sessions.create()
    player = world.players.join(room, "Nova")

    world.players.update_profile(
        player,
        {
            "username": "NovaPrime",
            "role": "editor",
            "organizations": ["Free Press Alliance"],
            "bio": "Pilot",
        },
    )

    assert player.display_name == "NovaPrime"
    assert player.role is PlayerRole.EDITOR
    payload = player.profile.to_payload()
    assert payload["username"] == "NovaPrime"
    assert payload["organizations"] == ["Free Press Alliance"]
    assert payload["bio"] == "Pilot"
    assert "role" not in payload
    assert world.directory.resolve("novaprime") == player.id
    assert world.directory.resolve("nova") == player.id


def test_update_profile_rejects_missing_or_invalid_data(world: SharedWorld) -> None:
    room = world.sessions.create()
    player = world.players.join(room, "Nova")

    with pytest.raises(BadRequestError):
        world.players.update_profile(player, None)
    with pytest.raises(BadRequestError):
        world.players.update_profile(player, {"role": "Overlord"})


def test_profile_is_built_with_the_player() -> None:
    player = Player(id="p1", display_name="Nova")

    assert player.profile.username == "Nova"
    assert player.profile.date_joined == player.last_activity_at
