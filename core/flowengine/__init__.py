"""
Flowengine - run user-authored workflow graphs.

A workflow is a directed graph of typed nodes (agent calls, tool calls,
conditions, functions, AI prompts) joined by optionally conditional edges.
WorkflowExecutor walks the graph with pause/resume/stop control, per-node
result tracking, template interpolation and a loop guard, and records every
run as an ExecutionRecord.

Example:
    from flowengine import WorkflowExecutor, load_graph
    from flowengine.runner import HttpAgentService

    executor = WorkflowExecutor(load_graph(path), agent_service=HttpAgentService())
    state = await executor.execute({"initial": "hello"})
"""

from flowengine.config import EngineConfig
from flowengine.graph import (
    EdgeSpec,
    ExecutorCallbacks,
    GraphSpec,
    NodeKind,
    NodeSpec,
    WorkflowExecutor,
    WorkflowFault,
    import_graph,
    load_graph,
)
from flowengine.runtime import ExecutionRecorder
from flowengine.schemas import (
    ExecutionRecord,
    ExecutionStats,
    LogEntry,
    NodeResult,
    NodeStatus,
    RunState,
    RunStatus,
)
from flowengine.storage import (
    ExecutionStore,
    FileExecutionStore,
    InMemoryExecutionStore,
    summarize_executions,
)

__all__ = [
    "EngineConfig",
    "GraphSpec",
    "NodeSpec",
    "NodeKind",
    "EdgeSpec",
    "load_graph",
    "import_graph",
    "WorkflowExecutor",
    "ExecutorCallbacks",
    "WorkflowFault",
    "RunState",
    "RunStatus",
    "NodeResult",
    "NodeStatus",
    "ExecutionRecord",
    "ExecutionStats",
    "LogEntry",
    "ExecutionRecorder",
    "ExecutionStore",
    "FileExecutionStore",
    "InMemoryExecutionStore",
    "summarize_executions",
]
