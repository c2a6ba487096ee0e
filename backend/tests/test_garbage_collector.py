"""
Task garbage collector tests.
Run from backend: python -m pytest tests/test_garbage_collector.py -v
"""
import asyncio
from datetime import timedelta
from unittest.mock import MagicMock


def test_sweep_evicts_expired_and_updates_stats():
    from core.models.task import FileInfo, Task, utcnow
    from core.pipeline.garbage_collector import TaskGarbageCollector
    from core.storage.memory_store import MemoryTaskBackend
    from core.storage.task_store import TaskStore
    memory = MemoryTaskBackend(ttl_seconds=3600)
    store = TaskStore(memory=memory)
    info = FileInfo(name="a.png", size=1, type="image/png")
    store.create_task("fresh", info)
    memory._tasks["old"] = Task.new("old", info, now=utcnow() - timedelta(hours=1, seconds=1))
    assert store.get_stats()["pending"] == 2

    removed = TaskGarbageCollector(store).sweep()
    assert removed == 1
    assert store.get_task("old") is None
    assert store.get_stats()["pending"] == 1


def test_sweep_survives_storage_error():
    from core.errors import StorageError
    from core.pipeline.garbage_collector import TaskGarbageCollector
    store = MagicMock()
    store.cleanup_expired.side_effect = StorageError("task storage is unavailable")
    assert TaskGarbageCollector(store).sweep() == 0


def test_start_and_stop():
    from core.pipeline.garbage_collector import TaskGarbageCollector
    from core.storage.task_store import TaskStore
    gc = TaskGarbageCollector(TaskStore(), interval=3600)

    async def scenario():
        gc.start()
        assert gc.running
        await gc.stop()
        assert not gc.running

    asyncio.run(scenario())


def test_loop_runs_sweeps_on_interval():
    from core.pipeline.garbage_collector import TaskGarbageCollector
    store = MagicMock()
    store.cleanup_expired.return_value = 0
    store.active_backend = "memory"
    gc = TaskGarbageCollector(store, interval=0.01)

    async def scenario():
        gc.start()
        await asyncio.sleep(0.1)
        await gc.stop()

    asyncio.run(scenario())
    assert store.cleanup_expired.call_count >= 1
