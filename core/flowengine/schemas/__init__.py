"""Schemas for run state and execution records."""

from flowengine.schemas.execution_record import (
    ExecutionRecord,
    ExecutionStats,
    LogEntry,
    LogLevel,
)
from flowengine.schemas.run_state import NodeResult, NodeStatus, RunState, RunStatus

__all__ = [
    "ExecutionRecord",
    "ExecutionStats",
    "LogEntry",
    "LogLevel",
    "NodeResult",
    "NodeStatus",
    "RunState",
    "RunStatus",
]
