"""
Contract every task storage backend implements.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from core.models.task import FileInfo, Task, TaskStatus


class TaskBackend(Protocol):
    """CRUD over Task records. Unknown ids return None/False, never raise."""

    name: str

    def ping(self) -> bool:
        """True if the backend is reachable."""
        ...

    def create_task(self, task_id: str, file_info: FileInfo) -> Task:
        """Insert a new pending task. Raises DuplicateTaskError if the id already exists."""
        ...

    def get_task(self, task_id: str) -> Optional[Task]:
        ...

    def update_task(self, task_id: str, updates: Dict[str, Any]) -> Optional[Task]:
        """Merge-patch a task (see core.models.task.apply_update)."""
        ...

    def delete_task(self, task_id: str) -> bool:
        ...

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete tasks older than the backend TTL; returns how many were removed."""
        ...

    def get_stats(self) -> Dict[str, int]:
        """Task counts keyed by status value."""
        ...


def empty_stats() -> Dict[str, int]:
    return {status.value: 0 for status in TaskStatus}
