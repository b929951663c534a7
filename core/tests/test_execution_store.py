"""Tests for execution record storage and history analytics."""

import json
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from flowengine.schemas.execution_record import ExecutionRecord
from flowengine.schemas.run_state import RunStatus
from flowengine.storage.execution_store import (
    FileExecutionStore,
    InMemoryExecutionStore,
    summarize_executions,
)

# === HELPER FUNCTIONS ===


def make_record(
    record_id: str,
    workflow_id: str = "wf",
    status: RunStatus = RunStatus.COMPLETED,
    start: datetime | None = None,
    duration_ms: int | None = 100,
) -> ExecutionRecord:
    start = start or datetime(2024, 5, 1, 12, 0, 0)
    end = start + timedelta(milliseconds=duration_ms) if duration_ms is not None else None
    return ExecutionRecord(
        id=record_id,
        workflow_id=workflow_id,
        workflow_name="Demo",
        start_time=start,
        end_time=end,
        status=status,
        output=f"output of {record_id}",
    )


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryExecutionStore()
    return FileExecutionStore(tmp_path)


# === STORE CONTRACT (both backends) ===


class TestStoreContract:
    @pytest.mark.asyncio
    async def test_save_and_load_newest_first(self, store):
        base = datetime(2024, 5, 1, 9, 0, 0)
        await store.save(make_record("old", start=base))
        await store.save(make_record("new", start=base + timedelta(hours=1)))
        await store.save(make_record("other", workflow_id="wf-2", start=base))

        records = await store.load("wf")

        assert [r.id for r in records] == ["new", "old"]
        assert records[0].output == "output of new"

    @pytest.mark.asyncio
    async def test_save_replaces_same_id(self, store):
        await store.save(make_record("r1", status=RunStatus.RUNNING, duration_ms=None))
        await store.save(make_record("r1", status=RunStatus.FAILED))

        records = await store.load("wf")

        assert len(records) == 1
        assert records[0].status == RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_get_and_delete(self, store):
        await store.save(make_record("r1"))

        assert (await store.get("r1")).id == "r1"
        assert await store.get("missing") is None
        assert await store.delete("r1") is True
        assert await store.delete("r1") is False
        assert await store.load("wf") == []

    @pytest.mark.asyncio
    async def test_clear(self, store):
        await store.save(make_record("a"))
        await store.save(make_record("b"))
        await store.save(make_record("c", workflow_id="wf-2"))

        assert await store.clear("wf") == 2
        assert await store.load("wf") == []
        assert len(await store.load("wf-2")) == 1
        assert await store.clear() == 1

    @pytest.mark.asyncio
    async def test_load_unknown_workflow(self, store):
        assert await store.load("nothing-here") == []


# === FILE STORE SPECIFICS ===


class TestFileExecutionStore:
    @pytest.mark.asyncio
    async def test_layout(self, tmp_path: Path):
        store = FileExecutionStore(tmp_path)
        await store.save(make_record("r1"))

        path = tmp_path / "executions" / "wf" / "r1.json"
        assert path.exists()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["status"] == "completed"
        assert data["duration_ms"] == 100

    @pytest.mark.asyncio
    async def test_round_trip_preserves_fields(self, tmp_path: Path):
        store = FileExecutionStore(tmp_path)
        record = make_record("r1")
        await store.save(record)

        loaded = await store.get("r1")

        assert loaded.start_time == record.start_time
        assert loaded.end_time == record.end_time
        assert loaded.duration_ms == 100

    @pytest.mark.asyncio
    async def test_unreadable_files_are_skipped(self, tmp_path: Path):
        store = FileExecutionStore(tmp_path)
        await store.save(make_record("good"))
        (tmp_path / "executions" / "wf" / "bad.json").write_text("{broken", encoding="utf-8")

        records = await store.load("wf")

        assert [r.id for r in records] == ["good"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", ["../escape", "a/b", "..", "", "x*y"])
    async def test_rejects_unsafe_ids(self, tmp_path: Path, bad_id):
        store = FileExecutionStore(tmp_path)
        with pytest.raises(ValueError):
            await store.save(make_record("r1", workflow_id=bad_id))


# === ANALYTICS ===


class TestSummarizeExecutions:
    def test_empty(self):
        stats = summarize_executions([])
        assert stats.total == 0
        assert stats.success_rate == 0.0
        assert stats.average_duration_ms == 0.0

    def test_aggregates(self):
        day1 = datetime(2024, 5, 1, 10, 0, 0)
        day2 = datetime(2024, 5, 2, 10, 0, 0)
        records = [
            make_record("a", start=day1, duration_ms=100),
            make_record("b", start=day1, duration_ms=300),
            make_record("c", start=day2, status=RunStatus.FAILED, duration_ms=200),
            make_record("d", start=day2, status=RunStatus.RUNNING, duration_ms=None),
        ]

        stats = summarize_executions(records)

        assert stats.total == 4
        assert stats.success_rate == 50.0
        assert stats.average_duration_ms == 200.0
        assert stats.executions_by_day == {"2024-05-01": 2, "2024-05-02": 2}
        assert stats.status_distribution == {"completed": 2, "failed": 1, "running": 1}
