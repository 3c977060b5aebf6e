"""Periodic scheduler used for the coordinator's poll loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicScheduler:
    """Calls an async callback every ``interval`` seconds until stopped.

    A tick whose previous run is still in flight is skipped rather than
    stacked. Stopping cancels future ticks only; a tick already running is
    left to finish and handed back by ``stop()`` so a successor scheduler can
    be seeded with it through ``inflight``.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        name: str = "scheduler",
        inflight: Optional[asyncio.Task] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.callback = callback
        self.interval = interval
        self.name = name
        self.ticks = 0
        self.skipped = 0
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight = inflight

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self, *, immediate: bool = False) -> None:
        if self.running:
            return
        if immediate and not self.busy:
            self._spawn()
        self._loop_task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> Optional[asyncio.Task]:
        """Cancel future ticks and return the tick still running, if any."""

        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None
        return self._inflight if self.busy else None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.busy:
                self.skipped += 1
                logger.debug("%s: previous tick still running, skipping", self.name)
                continue
            self._spawn()

    def _spawn(self) -> None:
        self.ticks += 1
        self._inflight = asyncio.get_running_loop().create_task(self._tick())

    async def _tick(self) -> None:
        try:
            await self.callback()
        except Exception:
            logger.exception("%s: tick failed", self.name)
