"""ExecutionRecorder: builds the durable record of one run.

Created by WorkflowExecutor at the start of ``execute()``. Every lifecycle
event is appended to the record as a LogEntry and mirrored to the Python
logger. ``finish()`` hands the record to the ExecutionStore exactly once.

Usage::

    recorder = ExecutionRecorder(workflow_id="wf", workflow_name="Demo", store=store)
    recorder.start(variables={})
    recorder.node_started("agent", "Summarize")
    ...
    record = await recorder.finish(state)

Safety: no method here raises. Logging or persistence failure must never
change the outcome of a run.
"""

import logging
from datetime import datetime
from typing import Any

from flowengine.schemas.execution_record import ExecutionRecord, LogEntry, LogLevel
from flowengine.schemas.run_state import NodeResult, RunState
from flowengine.storage.execution_store import ExecutionStore

logger = logging.getLogger(__name__)

_PY_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class ExecutionRecorder:
    """Accumulates log entries for one run and persists the finished record."""

    def __init__(
        self,
        workflow_id: str,
        workflow_name: str = "",
        store: ExecutionStore | None = None,
        execution_id: str | None = None,
    ) -> None:
        self._store = store
        self._persisted = False
        self.record = ExecutionRecord(workflow_id=workflow_id, workflow_name=workflow_name)
        if execution_id:
            self.record.id = execution_id

    @property
    def execution_id(self) -> str:
        return self.record.id

    def log(
        self,
        level: LogLevel,
        message: str,
        node_id: str | None = None,
        node_name: str | None = None,
        data: Any = None,
    ) -> None:
        try:
            self.record.logs.append(
                LogEntry(
                    level=level,
                    message=message,
                    node_id=node_id,
                    node_name=node_name,
                    data=data,
                )
            )
            logger.log(
                _PY_LEVELS[level],
                message,
                extra={"event": "execution_log", "node_id": node_id},
            )
        except Exception as e:
            logger.error(f"Failed to record log entry: {e}")

    def start(self, variables: dict[str, Any] | None = None) -> None:
        self.record.start_time = datetime.now()
        self.record.variables = dict(variables or {})
        name = self.record.workflow_name or self.record.workflow_id
        self.log(LogLevel.INFO, f"Workflow '{name}' started")

    def node_started(self, node_id: str, node_name: str) -> None:
        self.log(LogLevel.INFO, f"Node '{node_name}' started", node_id=node_id, node_name=node_name)

    def node_completed(self, result: NodeResult, node_name: str) -> None:
        if result.error:
            # Completed with a recorded non-fatal fault
            self.log(
                LogLevel.WARNING,
                f"Node '{node_name}' completed with warning: {result.error}",
                node_id=result.node_id,
                node_name=node_name,
                data={"output": result.output, "duration_ms": result.duration_ms},
            )
            return
        self.log(
            LogLevel.INFO,
            f"Node '{node_name}' completed",
            node_id=result.node_id,
            node_name=node_name,
            data={"output": result.output, "duration_ms": result.duration_ms},
        )

    def node_failed(self, result: NodeResult, node_name: str) -> None:
        self.log(
            LogLevel.ERROR,
            f"Node '{node_name}' failed: {result.error}",
            node_id=result.node_id,
            node_name=node_name,
            data={"error_type": result.error_type},
        )

    async def finish(self, state: RunState) -> ExecutionRecord:
        """Close the record from the terminal run state and persist it once."""
        try:
            record = self.record
            record.status = state.status
            record.end_time = state.end_time or datetime.now()
            record.variables = dict(state.variables)
            record.node_results = {
                node_id: result.model_copy(deep=True)
                for node_id, result in state.node_results.items()
            }
            record.output = state.outputs.get("final")
            record.error = state.error

            if state.error:
                self.log(LogLevel.ERROR, f"Workflow {state.status}: {state.error}")
            else:
                self.log(LogLevel.INFO, f"Workflow {state.status}")
        except Exception as e:
            logger.error(f"Failed to finalize execution record: {e}")

        if self._store is not None and not self._persisted:
            self._persisted = True
            try:
                await self._store.save(self.record)
            except Exception as e:
                logger.error(f"Failed to persist execution {self.record.id}: {e}")

        return self.record
