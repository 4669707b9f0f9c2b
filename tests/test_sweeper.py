import asyncio
import base64

import pytest

from worldsync import MediaKind, SharedWorld
from worldsync.api.sweeper import MediaSweeper


def _store_orphan(world: SharedWorld) -> str:
    data_url = "data:image/png;base64," + base64.b64encode(b"orphan").decode()
    ref = world.media.store_data_url(data_url, MediaKind.IMAGE)
    assert ref is not None
    return ref.id


def test_sweep_once_reclaims_uncited_media(world: SharedWorld) -> None:
    ref_id = _store_orphan(world)
    sweeper = MediaSweeper(world, 60)

    removed = asyncio.run(sweeper.sweep_once())

    assert removed == [ref_id]
    assert ref_id not in world.media


def test_zero_interval_never_starts(world: SharedWorld) -> None:
    sweeper = MediaSweeper(world, 0)

    async def scenario() -> bool:
        sweeper.start()
        running = sweeper.running
        await sweeper.stop()
        return running

    assert asyncio.run(scenario()) is False


def test_background_task_sweeps_and_stops(world: SharedWorld) -> None:
    ref_id = _store_orphan(world)
    sweeper = MediaSweeper(world, 0.01)

    async def scenario() -> None:
        sweeper.start()
        assert sweeper.running
        for _ in range(200):
            if ref_id not in world.media:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

    asyncio.run(scenario())

    assert ref_id not in world.media
    assert sweeper.running is False


def test_negative_interval_is_rejected(world: SharedWorld) -> None:
    with pytest.raises(ValueError):
        MediaSweeper(world, -1)
