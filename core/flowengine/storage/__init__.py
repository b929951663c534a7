"""Execution record storage."""

from flowengine.storage.execution_store import (
    ExecutionStore,
    FileExecutionStore,
    InMemoryExecutionStore,
    summarize_executions,
)

__all__ = [
    "ExecutionStore",
    "FileExecutionStore",
    "InMemoryExecutionStore",
    "summarize_executions",
]
