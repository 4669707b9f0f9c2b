"""Tests covering the command-line entry point."""

from __future__ import annotations

from typing import Any, Dict

import pytest

import main


@pytest.fixture
def served(monkeypatch: pytest.MonkeyPatch) -> Dict[str, Any]:
    calls: Dict[str, Any] = {}

    def fake_run(target: str, **kwargs: Any) -> None:
        calls["target"] = target
        calls.update(kwargs)

    monkeypatch.setattr(main.uvicorn, "run", fake_run)
    monkeypatch.delenv("WORLDSYNC_LOG_LEVEL", raising=False)
    return calls


def test_main_serves_the_app_factory(served: Dict[str, Any]) -> None:
    main.main(["--host", "0.0.0.0", "--port", "8123"])

    assert served == {
        "target": "worldsync.api.app:create_app",
        "factory": True,
        "host": "0.0.0.0",
        "port": 8123,
        "reload": False,
        "log_level": "info",
    }


def test_cli_log_level_wins_over_environment(
    served: Dict[str, Any], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("WORLDSYNC_LOG_LEVEL", "warning")

    main.main(["--log-level", "debug", "--reload"])

    assert served["log_level"] == "debug"
    assert served["reload"] is True


def test_environment_log_level_is_used_without_flag(
    served: Dict[str, Any], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("WORLDSYNC_LOG_LEVEL", "warning")

    main.main([])

    assert served["log_level"] == "warning"


def test_unknown_log_level_is_rejected(served: Dict[str, Any]) -> None:
    with pytest.raises(SystemExit):
        main.main(["--log-level", "chatty"])

    assert served == {}


@pytest.mark.parametrize(
    ("host", "expected"),
    [("127.0.0.1", "127.0.0.1"), ("::1", "[::1]"), ("[::1]", "[::1]")],
)
def test_format_host_for_url(host: str, expected: str) -> None:
    assert main._format_host_for_url(host) == expected
