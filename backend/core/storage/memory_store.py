"""
In-memory task backend: a lock-guarded id -> Task map.
Always available; used as primary when no durable store is configured and as
the failover target when the durable store errors. Tasks expire after 1 hour.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from core.config import MEMORY_TASK_TTL
from core.errors import DuplicateTaskError
from core.models.task import FileInfo, Task, apply_update, utcnow
from core.storage.base import empty_stats

logger = logging.getLogger(__name__)


class MemoryTaskBackend:
    name = "memory"

    def __init__(self, ttl_seconds: int = MEMORY_TASK_TTL):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()

    def ping(self) -> bool:
        return True

    def create_task(self, task_id: str, file_info: FileInfo) -> Task:
        with self._lock:
            if task_id in self._tasks:
                raise DuplicateTaskError(f"task already exists: {task_id}")
            task = Task.new(task_id, file_info)
            self._tasks[task_id] = task
            logger.info("TASK_STORE memory created task_id=%s", task_id)
            return task.copy()

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return task.copy() if task is not None else None

    def update_task(self, task_id: str, updates: Dict[str, Any]) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.warning("TASK_STORE memory update unknown task_id=%s", task_id)
                return None
            if apply_update(task, updates):
                logger.info(
                    "TASK_STORE memory updated task_id=%s status=%s progress=%s",
                    task_id, task.status.value, task.progress,
                )
            return task.copy()

    def delete_task(self, task_id: str) -> bool:
        with self._lock:
            deleted = self._tasks.pop(task_id, None) is not None
        if deleted:
            logger.info("TASK_STORE memory deleted task_id=%s", task_id)
        return deleted

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or utcnow()) - self.ttl
        with self._lock:
            expired = [tid for tid, t in self._tasks.items() if t.created_at < cutoff]
            for tid in expired:
                del self._tasks[tid]
        if expired:
            logger.info("TASK_STORE memory evicted %d expired tasks", len(expired))
        return len(expired)

    def get_stats(self) -> Dict[str, int]:
        stats = empty_stats()
        with self._lock:
            for task in self._tasks.values():
                stats[task.status.value] += 1
        return stats

    def all_tasks(self) -> List[Task]:
        with self._lock:
            return [t.copy() for t in self._tasks.values()]

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()
