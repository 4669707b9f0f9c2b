from worldsync import IdentityDirectory


def test_register_and_resolve_is_case_insensitive() -> None:
    directory = IdentityDirectory()

    assert directory.register("Nova", "player-1") is True

    assert directory.resolve("nova") == "player-1"
    assert directory.resolve("  NOVA ") == "player-1"
    assert "NoVa" in directory
    assert len(directory) == 1


def test_rejoin_overwrites_previous_identity() -> None:
    directory = IdentityDirectory()
    directory.register("Nova", "player-1")
    directory.register("nova", "player-2")

    assert directory.resolve("Nova") == "player-2"
    assert len(directory) == 1


def test_blank_registrations_are_ignored() -> None:
    directory = IdentityDirectory()
    calls: list[tuple[str, str]] = []
    directory.subscribe(lambda username, player_id: calls.append((username, player_id)))

    assert directory.register("   ", "player-1") is False
    assert directory.register("Nova", "") is False
    assert directory.register(None, "player-1") is False

    assert calls == []
    assert directory.resolve("") is None
    assert directory.resolve(None) is None
    assert len(directory) == 0


def test_listeners_run_after_each_registration() -> None:
    directory = IdentityDirectory()
    seen: list[tuple[str, str | None]] = []
    directory.subscribe(
        lambda username, player_id: seen.append((username, directory.resolve(username)))
    )

    directory.register("Rowan", "player-7")
    directory.register("Rowan", "player-8")

    assert seen == [("Rowan", "player-7"), ("Rowan", "player-8")]


def test_unknown_username_is_unresolved() -> None:
    directory = IdentityDirectory()
    directory.register("Nova", "player-1")

    assert directory.resolve("Rowan") is None
    assert "Rowan" not in directory
    assert 42 not in directory
