"""Graph structures: nodes, edges, routing, expressions and the executor."""

from flowengine.graph.edge import EdgeSpec, GraphSpec, VariableDecl, import_graph, load_graph
from flowengine.graph.errors import (
    AgentExecutionFault,
    ConditionEvaluationFault,
    ConfigurationFault,
    FunctionExecutionFault,
    GraphIntegrityFault,
    InfiniteLoopFault,
    NotFoundFault,
    ServiceError,
    TimeoutFault,
    ToolExecutionFault,
    WorkflowFault,
)
from flowengine.graph.executor import ExecutorCallbacks, WorkflowExecutor
from flowengine.graph.expressions import (
    apply_operator,
    evaluate_condition,
    evaluate_expression,
    resolve_template,
)
from flowengine.graph.node import (
    AgentConfig,
    AIConfig,
    ConditionConfig,
    FunctionConfig,
    FunctionParam,
    NodeKind,
    NodeSpec,
    ToolConfig,
)
from flowengine.graph.node_executors import (
    ExecutionServices,
    NodeContext,
    NodeExecutor,
    NodeOutcome,
)
from flowengine.graph.router import coerce_condition, find_next_node, select_edge
from flowengine.graph.safe_eval import safe_eval, translate_js

__all__ = [
    # Node
    "NodeKind",
    "NodeSpec",
    "AgentConfig",
    "ToolConfig",
    "ConditionConfig",
    "FunctionConfig",
    "FunctionParam",
    "AIConfig",
    # Edge / graph
    "EdgeSpec",
    "GraphSpec",
    "VariableDecl",
    "load_graph",
    "import_graph",
    # Routing
    "find_next_node",
    "select_edge",
    "coerce_condition",
    # Expressions
    "resolve_template",
    "evaluate_condition",
    "evaluate_expression",
    "apply_operator",
    "safe_eval",
    "translate_js",
    # Execution
    "WorkflowExecutor",
    "ExecutorCallbacks",
    "ExecutionServices",
    "NodeContext",
    "NodeExecutor",
    "NodeOutcome",
    # Faults
    "WorkflowFault",
    "ConfigurationFault",
    "NotFoundFault",
    "TimeoutFault",
    "AgentExecutionFault",
    "ToolExecutionFault",
    "FunctionExecutionFault",
    "ConditionEvaluationFault",
    "InfiniteLoopFault",
    "GraphIntegrityFault",
    "ServiceError",
]
