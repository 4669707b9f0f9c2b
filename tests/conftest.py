"""Test configuration for the world sync project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from worldsync import SharedWorld
from worldsync.api import SyncApiSettings, create_app

API_KEY = "test-api-key"


class FakeClock:
    """Manually advanced clock injected wherever services read the time."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2174, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def world(clock: FakeClock) -> SharedWorld:
    return SharedWorld(clock=clock)


@pytest.fixture()
def make_client() -> Callable[..., TestClient]:
    """Factory fixture returning authenticated clients for fresh apps."""

    def _factory(
        world: SharedWorld | None = None,
        *,
        authenticated: bool = True,
        **overrides: Any,
    ) -> TestClient:
        options: dict[str, Any] = {"api_key": API_KEY, "media_sweep_interval": 0}
        options.update(overrides)
        client = TestClient(create_app(world, settings=SyncApiSettings(**options)))
        if authenticated:
            client.headers.update({"Authorization": f"Bearer {API_KEY}"})
        return client

    return _factory


@pytest.fixture()
def client(world: SharedWorld, make_client: Callable[..., TestClient]) -> TestClient:
    return make_client(world)


__all__ = ["API_KEY", "FakeClock"]
