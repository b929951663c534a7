"""
Workflow faults.

Every fault carries a ``fatal`` flag: run-fatal faults stop the traversal and
put the run into FAILED; node-local faults (condition evaluation) are logged
and the run continues.
"""


class WorkflowFault(Exception):
    """Base class for all faults raised while running a workflow."""

    fatal: bool = True

    def __init__(self, message: str, node_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id

    @property
    def fault_type(self) -> str:
        return type(self).__name__


class ConfigurationFault(WorkflowFault):
    """Node is missing required configuration (agent_id, tool_id, prompt, ...)."""


class NotFoundFault(WorkflowFault):
    """A referenced agent, tool or node does not exist."""


class TimeoutFault(WorkflowFault):
    """An agent or AI invocation exceeded its timeout."""


class AgentExecutionFault(WorkflowFault):
    """The agent service raised while generating."""


class ToolExecutionFault(WorkflowFault):
    """The tool service raised while executing a tool."""


class FunctionExecutionFault(WorkflowFault):
    """A function node body raised."""


class ConditionEvaluationFault(WorkflowFault):
    """A condition expression raised or was malformed. Never run-fatal."""

    fatal = False


class InfiniteLoopFault(WorkflowFault):
    """A single node exceeded the per-run visit ceiling."""


class GraphIntegrityFault(WorkflowFault):
    """The graph has no Start node, or traversal reached an unknown node id."""


class ServiceError(Exception):
    """
    Structured error raised by agent/tool service implementations.

    Node executors translate it into the matching run-fatal fault.
    """

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}
