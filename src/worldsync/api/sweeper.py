"""Periodic reclamation of media no longer cited anywhere."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..state import SharedWorld

logger = logging.getLogger(__name__)


class MediaSweeper:
    """Run :meth:`SharedWorld.sweep_media` on a fixed interval.

    The sweep takes the world lock, so it runs in a worker thread to keep the
    event loop free while requests finish. An interval of zero disables the
    sweeper entirely.
    """

    def __init__(self, world: SharedWorld, interval: float) -> None:
        if interval < 0:
            raise ValueError("interval must not be negative.")
        self._world = world
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._interval == 0:
            logger.info("Media sweeper disabled.")
            return
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.info("Media sweeper started. Interval: %s seconds.", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Media sweeper stopped.")

    async def sweep_once(self) -> list[str]:
        return await asyncio.to_thread(self._world.sweep_media)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Media sweep failed.")


__all__ = ["MediaSweeper"]
