"""
Durable task backend on a Supabase (Postgres) table.

Expected table (see backend/sql/tasks.sql):
  id text primary key, status text, progress int, processing_step text,
  file_info jsonb, ocr_result jsonb, ai_result jsonb, error_message text,
  created_at / updated_at / completed_at timestamptz
Updates are read-modify-write: the row is loaded, merged with apply_update
and written back. Tasks expire after 24 hours.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from supabase import Client, ClientOptions, create_client

from core.config import (
    DURABLE_TASK_TTL,
    STORAGE_TIMEOUT,
    get_supabase_key,
    get_supabase_url,
    get_tasks_schema_path,
    get_tasks_table,
)
from core.errors import DuplicateTaskError
from core.models.task import FileInfo, Task, apply_update, utcnow
from core.storage.base import empty_stats

logger = logging.getLogger(__name__)

# Written on update; id, file_info and created_at are immutable.
_MUTABLE_COLUMNS = (
    "status", "progress", "processing_step", "ocr_result", "ai_result",
    "error_message", "updated_at", "completed_at",
)


def create_supabase_client() -> Client:
    return create_client(
        get_supabase_url(),
        get_supabase_key(),
        options=ClientOptions(postgrest_client_timeout=STORAGE_TIMEOUT),
    )


class SupabaseTaskBackend:
    name = "supabase"

    def __init__(
        self,
        client: Optional[Client] = None,
        table: Optional[str] = None,
        ttl_seconds: int = DURABLE_TASK_TTL,
    ):
        self._client = client if client is not None else create_supabase_client()
        self.table = table or get_tasks_table()
        self.ttl = timedelta(seconds=ttl_seconds)

    def _table(self):
        return self._client.table(self.table)

    def ping(self) -> bool:
        try:
            self._table().select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.warning(
                "TASK_STORE supabase ping failed (table %s must exist, see %s): %s",
                self.table, get_tasks_schema_path(), e,
            )
            return False

    def create_task(self, task_id: str, file_info: FileInfo) -> Task:
        if self.get_task(task_id) is not None:
            raise DuplicateTaskError(f"task already exists: {task_id}")
        task = Task.new(task_id, file_info)
        response = self._table().insert(task.to_dict()).execute()
        logger.info("TASK_STORE supabase created task_id=%s", task_id)
        rows = response.data or []
        return Task.from_dict(rows[0]) if rows else task

    def get_task(self, task_id: str) -> Optional[Task]:
        response = self._table().select("*").eq("id", task_id).limit(1).execute()
        rows = response.data or []
        return Task.from_dict(rows[0]) if rows else None

    def update_task(self, task_id: str, updates: Dict[str, Any]) -> Optional[Task]:
        task = self.get_task(task_id)
        if task is None:
            logger.warning("TASK_STORE supabase update unknown task_id=%s", task_id)
            return None
        if not apply_update(task, updates):
            return task
        row = task.to_dict()
        self._table().update({k: row[k] for k in _MUTABLE_COLUMNS}).eq("id", task_id).execute()
        logger.info(
            "TASK_STORE supabase updated task_id=%s status=%s progress=%s",
            task_id, task.status.value, task.progress,
        )
        return task

    def delete_task(self, task_id: str) -> bool:
        response = self._table().delete().eq("id", task_id).execute()
        return bool(response.data)

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or utcnow()) - self.ttl
        response = self._table().delete().lt("created_at", cutoff.isoformat()).execute()
        removed = len(response.data or [])
        if removed:
            logger.info("TASK_STORE supabase evicted %d expired tasks", removed)
        return removed

    def get_stats(self) -> Dict[str, int]:
        response = self._table().select("status").execute()
        stats = empty_stats()
        counts = Counter(row.get("status") for row in response.data or [])
        for status, count in counts.items():
            if status in stats:
                stats[status] = count
        return stats
