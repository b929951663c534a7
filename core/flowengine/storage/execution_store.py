"""
Execution Store - Persistence for finished execution records.

The engine only needs ``save`` and ``load``; the remaining operations back
the history view (lookup, delete, clear, analytics).

File layout:
  {base_path}/executions/{workflow_id}/{execution_id}.json
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from flowengine.schemas.execution_record import ExecutionRecord, ExecutionStats
from flowengine.schemas.run_state import RunStatus
from flowengine.utils.io import atomic_write

logger = logging.getLogger(__name__)


class ExecutionStore(ABC):
    """Persistence collaborator for execution records."""

    @abstractmethod
    async def save(self, record: ExecutionRecord) -> None:
        """Persist a record, replacing any earlier copy with the same id."""
        pass

    @abstractmethod
    async def load(self, workflow_id: str) -> list[ExecutionRecord]:
        """Return a workflow's records, newest first."""
        pass

    @abstractmethod
    async def get(self, execution_id: str) -> ExecutionRecord | None:
        pass

    @abstractmethod
    async def delete(self, execution_id: str) -> bool:
        pass

    @abstractmethod
    async def clear(self, workflow_id: str | None = None) -> int:
        """Delete a workflow's records (all records when None). Returns the count."""
        pass


def _newest_first(records: Iterable[ExecutionRecord]) -> list[ExecutionRecord]:
    return sorted(records, key=lambda r: r.start_time, reverse=True)


class InMemoryExecutionStore(ExecutionStore):
    """Process-local store, for tests and embedded hosts."""

    def __init__(self):
        self._records: dict[str, ExecutionRecord] = {}

    async def save(self, record: ExecutionRecord) -> None:
        self._records[record.id] = record.model_copy(deep=True)

    async def load(self, workflow_id: str) -> list[ExecutionRecord]:
        return _newest_first(
            r.model_copy(deep=True) for r in self._records.values() if r.workflow_id == workflow_id
        )

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        record = self._records.get(execution_id)
        return record.model_copy(deep=True) if record else None

    async def delete(self, execution_id: str) -> bool:
        return self._records.pop(execution_id, None) is not None

    async def clear(self, workflow_id: str | None = None) -> int:
        doomed = [
            rid
            for rid, r in self._records.items()
            if workflow_id is None or r.workflow_id == workflow_id
        ]
        for rid in doomed:
            del self._records[rid]
        return len(doomed)


class FileExecutionStore(ExecutionStore):
    """
    JSON-file store with atomic writes.

    Workflow and execution ids become path components, so they are validated
    against path traversal before use.
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.executions_dir = self.base_path / "executions"

    @staticmethod
    def _validate_key(key: str) -> None:
        """
        Validate key to prevent path traversal attacks.

        Raises:
            ValueError: If key contains path traversal or dangerous patterns
        """
        if not key or key.strip() == "":
            raise ValueError("Key cannot be empty")
        if "/" in key or "\\" in key:
            raise ValueError(f"Invalid key format: path separators not allowed in '{key}'")
        if ".." in key or key.startswith("."):
            raise ValueError(f"Invalid key format: path traversal detected in '{key}'")
        if len(key) > 1 and key[1] == ":":
            raise ValueError(f"Invalid key format: absolute paths not allowed in '{key}'")
        if "\x00" in key:
            raise ValueError("Invalid key format: null bytes not allowed")
        dangerous_chars = {"<", ">", "|", "&", "$", "`", "'", '"', "*", "?"}
        if any(char in key for char in dangerous_chars):
            raise ValueError(f"Invalid key format: contains dangerous characters in '{key}'")

    def _record_path(self, workflow_id: str, execution_id: str) -> Path:
        self._validate_key(workflow_id)
        self._validate_key(execution_id)
        return self.executions_dir / workflow_id / f"{execution_id}.json"

    def _find(self, execution_id: str) -> Path | None:
        self._validate_key(execution_id)
        if not self.executions_dir.exists():
            return None
        for path in self.executions_dir.glob(f"*/{execution_id}.json"):
            return path
        return None

    @staticmethod
    def _read(path: Path) -> ExecutionRecord | None:
        try:
            return ExecutionRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Skipping unreadable execution record {path}: {e}")
            return None

    async def save(self, record: ExecutionRecord) -> None:
        path = self._record_path(record.workflow_id, record.id)

        def _write():
            with atomic_write(path) as f:
                f.write(record.model_dump_json(indent=2))

        await asyncio.to_thread(_write)
        logger.debug(f"Saved execution {record.id} for workflow {record.workflow_id}")

    async def load(self, workflow_id: str) -> list[ExecutionRecord]:
        self._validate_key(workflow_id)
        workflow_dir = self.executions_dir / workflow_id

        def _read_all() -> list[ExecutionRecord]:
            if not workflow_dir.exists():
                return []
            records = (self._read(p) for p in workflow_dir.glob("*.json"))
            return [r for r in records if r is not None]

        return _newest_first(await asyncio.to_thread(_read_all))

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        def _get() -> ExecutionRecord | None:
            path = self._find(execution_id)
            return self._read(path) if path else None

        return await asyncio.to_thread(_get)

    async def delete(self, execution_id: str) -> bool:
        def _delete() -> bool:
            path = self._find(execution_id)
            if path is None:
                return False
            path.unlink(missing_ok=True)
            return True

        return await asyncio.to_thread(_delete)

    async def clear(self, workflow_id: str | None = None) -> int:
        if workflow_id is not None:
            self._validate_key(workflow_id)

        def _clear() -> int:
            if not self.executions_dir.exists():
                return 0
            pattern = f"{workflow_id}/*.json" if workflow_id else "*/*.json"
            count = 0
            for path in self.executions_dir.glob(pattern):
                path.unlink(missing_ok=True)
                count += 1
            return count

        return await asyncio.to_thread(_clear)


def summarize_executions(records: Iterable[ExecutionRecord]) -> ExecutionStats:
    """
    Aggregate analytics for a history view.

    ``success_rate`` is a percentage of COMPLETED runs; the average duration
    only counts records that have an end time.
    """
    records = list(records)
    if not records:
        return ExecutionStats()

    completed = sum(1 for r in records if r.status == RunStatus.COMPLETED)
    durations = [r.duration_ms for r in records if r.duration_ms is not None]

    by_day: dict[str, int] = {}
    statuses: dict[str, int] = {}
    for record in records:
        day = record.start_time.strftime("%Y-%m-%d")
        by_day[day] = by_day.get(day, 0) + 1
        statuses[str(record.status)] = statuses.get(str(record.status), 0) + 1

    return ExecutionStats(
        total=len(records),
        success_rate=completed / len(records) * 100,
        average_duration_ms=sum(durations) / len(durations) if durations else 0.0,
        executions_by_day=dict(sorted(by_day.items())),
        status_distribution=statuses,
    )
