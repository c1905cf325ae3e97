"""
Optional background sweep of expired keys.

Lazy eviction alone never frees keys that are written once and never read
again; when enabled, the sweeper removes them on a fixed interval.
"""

import asyncio
from typing import Optional

import structlog

from .store import KeyValueStore

logger = structlog.get_logger()


class ExpirySweeper:

    def __init__(self, store: KeyValueStore, interval_sec: float):
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self.store = store
        self.interval_sec = interval_sec
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("Expiry sweeper started", interval_sec=self.interval_sec)

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry sweeper stopped")

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                loop = asyncio.get_running_loop()
                removed = await loop.run_in_executor(None, self.store.sweep_expired)
                if removed:
                    logger.info("Sweep removed expired keys", count=removed)
            except Exception as e:
                logger.error("Expiry sweep failed", error=str(e))
