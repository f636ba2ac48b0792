import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs an async callback every interval until stopped.

    The stop event doubles as the sleep, so stop() returns without waiting out
    the remaining interval.
    """

    def __init__(self, name: str, interval_seconds: float, callback: Callable[[], Awaitable[object]]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.callback = callback
        self._stopped = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"{self.name} started (every {self.interval_seconds}s)")

    async def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                await self.callback()
            except Exception as e:
                logger.error(f"{self.name} tick failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        self._stopped.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info(f"{self.name} stopped")
