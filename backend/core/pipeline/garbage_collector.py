"""
Periodic sweep that evicts tasks older than the active backend's TTL.
Eviction is purely age-based: an old task is removed whatever its status.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from core.config import GC_INTERVAL
from core.errors import StorageError
from core.storage.task_store import TaskStore

logger = logging.getLogger(__name__)


class TaskGarbageCollector:
    def __init__(self, store: TaskStore, interval: float = GC_INTERVAL):
        self.store = store
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self, now: Optional[datetime] = None) -> int:
        """One pass over the active backend; returns how many tasks were removed."""
        try:
            removed = self.store.cleanup_expired(now)
        except StorageError as e:
            logger.error("TASK_GC sweep failed: %s", e)
            return 0
        logger.info("TASK_GC sweep backend=%s removed=%d", self.store.active_backend, removed)
        return removed

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await asyncio.to_thread(self.sweep)

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self.run_forever())
        logger.info("TASK_GC started interval=%ss", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("TASK_GC stopped")
