"""
Task store facade over a durable backend (Supabase) and the in-memory backend.

- At construction the durable backend is pinged once; if reachable it is primary.
- If a durable call raises, the same operation is re-issued on the in-memory
  backend, which then stays primary for the rest of the process (no re-promotion).
- StorageError is raised only when both backends fail for the same operation.
- Unknown ids come back as None (get/update) or False (delete).
- TaskRecordError (duplicate id, non-updatable field) is the caller's fault and
  passes through; any other backend exception, including a malformed row, fails over.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

from core.config import durable_store_configured
from core.errors import StorageError, TaskRecordError
from core.models.task import FileInfo, Task
from core.storage.base import TaskBackend
from core.storage.memory_store import MemoryTaskBackend

logger = logging.getLogger(__name__)


class TaskStore:
    def __init__(
        self,
        durable: Optional[TaskBackend] = None,
        memory: Optional[MemoryTaskBackend] = None,
    ):
        self.memory = memory or MemoryTaskBackend()
        self.durable = durable
        self._active: TaskBackend = self.memory
        self._lock = threading.Lock()
        if durable is not None:
            if durable.ping():
                self._active = durable
                logger.info("TASK_STORE using durable backend=%s", durable.name)
            else:
                logger.warning("TASK_STORE durable backend=%s unreachable, using memory", durable.name)
        else:
            logger.info("TASK_STORE no durable backend configured, using memory")

    @property
    def active_backend(self) -> str:
        return self._active.name

    def _fail_over(self, failed: TaskBackend, op: str, error: Exception) -> None:
        with self._lock:
            if self._active is failed:
                self._active = self.memory
                logger.warning(
                    "TASK_STORE failover op=%s from=%s to=memory error=%s",
                    op, failed.name, error,
                )

    def _call(self, op: str, *args, **kwargs):
        backend = self._active
        try:
            return getattr(backend, op)(*args, **kwargs)
        except TaskRecordError:
            raise
        except Exception as e:
            if backend is self.memory:
                logger.error("TASK_STORE memory backend failed op=%s error=%s", op, e, exc_info=True)
                raise StorageError("task storage is unavailable") from e
            self._fail_over(backend, op, e)
        try:
            return getattr(self.memory, op)(*args, **kwargs)
        except TaskRecordError:
            raise
        except Exception as e:
            logger.error("TASK_STORE all backends failed op=%s error=%s", op, e, exc_info=True)
            raise StorageError("task storage is unavailable") from e

    def create_task(self, task_id: str, file_info: FileInfo) -> Task:
        return self._call("create_task", task_id, file_info)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._call("get_task", task_id)

    def update_task(self, task_id: str, updates: Dict[str, Any]) -> Optional[Task]:
        return self._call("update_task", task_id, updates)

    def delete_task(self, task_id: str) -> bool:
        return self._call("delete_task", task_id)

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        return self._call("cleanup_expired", now)

    def get_stats(self) -> Dict[str, int]:
        return self._call("get_stats")


_default_store: Optional[TaskStore] = None


def build_task_store() -> TaskStore:
    """Build a store from environment config (Supabase when configured)."""
    durable = None
    if durable_store_configured():
        from core.storage.supabase_store import SupabaseTaskBackend
        try:
            durable = SupabaseTaskBackend()
        except Exception as e:
            logger.warning("TASK_STORE could not create supabase client: %s", e)
    return TaskStore(durable=durable)


def get_task_store() -> TaskStore:
    global _default_store
    if _default_store is None:
        _default_store = build_task_store()
    return _default_store
