"""Background loops started lazily on the serving event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs `callback` every `interval` seconds until stopped.

    A failing run is logged and the loop carries on; one bad cycle must not
    stop liveness checks for every other connection.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], Awaitable[object]]):
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        if self.running and self._task.get_loop() is loop:
            return
        self._task = loop.create_task(self._run(), name=self.name)
        logger.debug("Started %s (every %.1fs)", self.name, self.interval)

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done() and not task.get_loop().is_closed():
            task.cancel()

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self._callback()
                except Exception:
                    logger.exception("%s run failed", self.name)
        except asyncio.CancelledError:
            return
