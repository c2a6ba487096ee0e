"""
Unit tests for task storage: in-memory backend, Supabase backend (mocked client)
and the failover facade.
Run from backend: python -m pytest tests/test_task_storage.py -v
"""
import pytest
from datetime import timedelta
from unittest.mock import MagicMock


def _file_info():
    from core.models.task import FileInfo
    return FileInfo(name="label.jpg", size=2048, type="image/jpeg")


def _row(task_id="task_1_abc", status="pending", created_at="2024-05-01T10:00:00+00:00"):
    return {
        "id": task_id,
        "status": status,
        "progress": 0,
        "processing_step": "created",
        "file_info": {"name": "label.jpg", "size": 2048, "type": "image/jpeg"},
        "ocr_result": None,
        "ai_result": None,
        "error_message": None,
        "created_at": created_at,
        "updated_at": created_at,
        "completed_at": None,
    }


# --- in-memory backend ---

def test_memory_create_get_update_delete():
    from core.storage.memory_store import MemoryTaskBackend
    backend = MemoryTaskBackend()
    created = backend.create_task("t1", _file_info())
    assert created.status.value == "pending"
    updated = backend.update_task("t1", {"status": "processing", "progress": 30})
    assert updated.progress == 30
    assert backend.get_task("t1").progress == 30
    assert backend.delete_task("t1") is True
    assert backend.get_task("t1") is None
    assert backend.delete_task("t1") is False


def test_memory_duplicate_id_rejected():
    from core.errors import DuplicateTaskError
    from core.storage.memory_store import MemoryTaskBackend
    backend = MemoryTaskBackend()
    backend.create_task("t1", _file_info())
    with pytest.raises(DuplicateTaskError):
        backend.create_task("t1", _file_info())


def test_memory_unknown_id_update_returns_none():
    from core.storage.memory_store import MemoryTaskBackend
    assert MemoryTaskBackend().update_task("missing", {"progress": 10}) is None


def test_memory_returns_copies():
    """Mutating a returned task does not change the stored record."""
    from core.storage.memory_store import MemoryTaskBackend
    backend = MemoryTaskBackend()
    task = backend.create_task("t1", _file_info())
    task.progress = 99
    assert backend.get_task("t1").progress == 0


def test_memory_eviction_and_stats():
    """A task older than the TTL is removed by cleanup_expired and drops out of stats."""
    from core.models.task import Task, utcnow
    from core.storage.memory_store import MemoryTaskBackend
    backend = MemoryTaskBackend(ttl_seconds=3600)
    backend.create_task("fresh", _file_info())
    backend._tasks["old"] = Task.new("old", _file_info(), now=utcnow() - timedelta(hours=2))
    assert backend.get_stats()["pending"] == 2
    assert backend.cleanup_expired() == 1
    assert backend.get_task("old") is None
    assert backend.get_task("fresh") is not None
    assert backend.get_stats() == {"pending": 1, "processing": 0, "completed": 0, "failed": 0}


# --- Supabase backend (mocked client) ---

def test_supabase_get_task_maps_row():
    from core.storage.supabase_store import SupabaseTaskBackend
    client = MagicMock()
    table = client.table.return_value
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[_row()])
    backend = SupabaseTaskBackend(client=client, table="tasks")
    task = backend.get_task("task_1_abc")
    client.table.assert_called_with("tasks")
    table.select.return_value.eq.assert_called_with("id", "task_1_abc")
    assert task.id == "task_1_abc"
    assert task.file_info.size == 2048


def test_supabase_create_inserts_row():
    from core.storage.supabase_store import SupabaseTaskBackend
    client = MagicMock()
    table = client.table.return_value
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
    table.insert.return_value.execute.return_value = MagicMock(data=[])
    backend = SupabaseTaskBackend(client=client, table="tasks")
    task = backend.create_task("task_1_abc", _file_info())
    inserted = table.insert.call_args[0][0]
    assert inserted["id"] == "task_1_abc"
    assert inserted["status"] == "pending"
    assert inserted["file_info"]["type"] == "image/jpeg"
    assert task.id == "task_1_abc"


def test_supabase_create_duplicate_rejected():
    from core.errors import DuplicateTaskError
    from core.storage.supabase_store import SupabaseTaskBackend
    client = MagicMock()
    table = client.table.return_value
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[_row()])
    backend = SupabaseTaskBackend(client=client, table="tasks")
    with pytest.raises(DuplicateTaskError):
        backend.create_task("task_1_abc", _file_info())
    table.insert.assert_not_called()


def test_supabase_update_writes_mutable_columns_only():
    from core.storage.supabase_store import SupabaseTaskBackend
    client = MagicMock()
    table = client.table.return_value
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[_row()])
    backend = SupabaseTaskBackend(client=client, table="tasks")
    task = backend.update_task("task_1_abc", {"status": "processing", "progress": 10, "processing_step": "preparing"})
    written = table.update.call_args[0][0]
    assert written["status"] == "processing"
    assert written["progress"] == 10
    assert "id" not in written and "created_at" not in written and "file_info" not in written
    table.update.return_value.eq.assert_called_with("id", "task_1_abc")
    assert task.processing_step == "preparing"


def test_supabase_update_terminal_row_is_not_written():
    from core.storage.supabase_store import SupabaseTaskBackend
    client = MagicMock()
    table = client.table.return_value
    row = _row(status="completed")
    row["progress"] = 100
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[row])
    backend = SupabaseTaskBackend(client=client, table="tasks")
    task = backend.update_task("task_1_abc", {"status": "processing", "progress": 80})
    table.update.assert_not_called()
    assert task.status.value == "completed"


def test_supabase_cleanup_and_stats():
    from core.models.task import parse_timestamp
    from core.storage.supabase_store import SupabaseTaskBackend
    client = MagicMock()
    table = client.table.return_value
    table.delete.return_value.lt.return_value.execute.return_value = MagicMock(data=[_row("a"), _row("b")])
    table.select.return_value.execute.return_value = MagicMock(
        data=[{"status": "pending"}, {"status": "completed"}, {"status": "completed"}]
    )
    backend = SupabaseTaskBackend(client=client, table="tasks", ttl_seconds=86400)
    now = parse_timestamp("2024-05-02T10:00:00+00:00")
    assert backend.cleanup_expired(now) == 2
    column, cutoff = table.delete.return_value.lt.call_args[0]
    assert column == "created_at"
    assert parse_timestamp(cutoff) == now - timedelta(days=1)
    assert backend.get_stats() == {"pending": 1, "processing": 0, "completed": 2, "failed": 0}


def test_supabase_ping_failure_points_at_schema(caplog):
    import logging
    from core.config import get_tasks_schema_path
    from core.storage.supabase_store import SupabaseTaskBackend
    client = MagicMock()
    client.table.return_value.select.return_value.limit.return_value.execute.side_effect = RuntimeError("down")
    with caplog.at_level(logging.WARNING):
        assert SupabaseTaskBackend(client=client, table="tasks").ping() is False
    assert str(get_tasks_schema_path()) in caplog.text


# --- failover facade ---

def _durable(**side_effects):
    durable = MagicMock()
    durable.name = "supabase"
    durable.ping.return_value = True
    for op, effect in side_effects.items():
        getattr(durable, op).side_effect = effect
    return durable


def test_store_without_durable_uses_memory():
    from core.storage.task_store import TaskStore
    store = TaskStore()
    assert store.active_backend == "memory"


def test_store_unreachable_durable_at_startup_uses_memory():
    from core.storage.task_store import TaskStore
    durable = _durable()
    durable.ping.return_value = False
    store = TaskStore(durable=durable)
    assert store.active_backend == "memory"
    store.create_task("t1", _file_info())
    durable.create_task.assert_not_called()


def test_store_fails_over_on_create_and_keeps_task():
    """Durable raises at creation: task lands in memory and reads back identically."""
    from core.storage.task_store import TaskStore
    durable = _durable(create_task=RuntimeError("connection refused"))
    store = TaskStore(durable=durable)
    assert store.active_backend == "supabase"
    created = store.create_task("t1", _file_info())
    assert store.active_backend == "memory"
    fetched = store.get_task("t1")
    assert fetched.to_dict() == created.to_dict()
    durable.get_task.assert_not_called()


def test_store_stays_on_memory_after_failover():
    from core.storage.task_store import TaskStore
    durable = _durable(update_task=RuntimeError("timeout"))
    store = TaskStore(durable=durable)
    store.memory.create_task("t1", _file_info())
    store.update_task("t1", {"status": "processing", "progress": 10})
    store.update_task("t1", {"progress": 30})
    assert durable.update_task.call_count == 1
    assert store.get_task("t1").progress == 30


def test_store_duplicate_id_propagates_without_failover():
    from core.errors import DuplicateTaskError
    from core.storage.task_store import TaskStore
    durable = _durable(create_task=DuplicateTaskError("task already exists: t1"))
    store = TaskStore(durable=durable)
    with pytest.raises(DuplicateTaskError):
        store.create_task("t1", _file_info())
    assert store.active_backend == "supabase"


def test_store_raises_storage_error_when_all_backends_fail():
    from core.errors import StorageError
    from core.storage.task_store import TaskStore
    memory = MagicMock()
    memory.name = "memory"
    memory.create_task.side_effect = RuntimeError("out of memory")
    store = TaskStore(durable=_durable(create_task=RuntimeError("down")), memory=memory)
    with pytest.raises(StorageError):
        store.create_task("t1", _file_info())


def test_store_fails_over_on_malformed_durable_row():
    """A row the durable backend cannot decode is a backend failure, not a caller error."""
    from core.storage.supabase_store import SupabaseTaskBackend
    from core.storage.task_store import TaskStore
    client = MagicMock()
    table = client.table.return_value
    table.select.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
        data=[_row(status="archived")]
    )
    store = TaskStore(durable=SupabaseTaskBackend(client=client, table="tasks"))
    assert store.active_backend == "supabase"
    assert store.get_task("task_1_abc") is None
    assert store.active_backend == "memory"
