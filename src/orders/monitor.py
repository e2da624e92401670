"""In-process reply monitor for single-process deployments.

Runs a reconciliation pass right away and then every ``interval_minutes``.
``stop()`` lets a pass that is already running finish.
"""

import asyncio
import logging

from src.orders.reconciler import ReconciliationEngine

logger = logging.getLogger(__name__)


class ReplyMonitor:
    def __init__(self, engine: ReconciliationEngine, interval_minutes: float = 2):
        self._engine = engine
        self._interval = interval_minutes * 60
        self._task: asyncio.Task | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None:
            logger.warning("Reply monitor is already running")
            return
        logger.info("Starting reply monitor (every %s minutes)", self._interval / 60)
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Reply monitor stopped")

    def status(self) -> dict:
        return {"monitor_running": self.running, **self._engine.status()}

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            await self._engine.run_once()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except TimeoutError:
                pass
