"""
Node Executors - One execution strategy per node kind.

Each executor takes a NodeContext (the node, its input and a view of the
run) and returns a NodeOutcome, or raises a WorkflowFault. Executors never
touch run status; the WorkflowExecutor owns that.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel

from flowengine.config import EngineConfig
from flowengine.graph.errors import (
    AgentExecutionFault,
    ConditionEvaluationFault,
    ConfigurationFault,
    FunctionExecutionFault,
    NotFoundFault,
    ServiceError,
    TimeoutFault,
    ToolExecutionFault,
    WorkflowFault,
)
from flowengine.graph.expressions import (
    apply_operator,
    evaluate_condition,
    evaluate_expression,
    lookup_path,
    resolve_template,
)
from flowengine.graph.node import (
    AgentConfig,
    AIConfig,
    ConditionConfig,
    FunctionConfig,
    NodeKind,
    NodeSpec,
    ToolConfig,
)
from flowengine.llm.provider import LLMProvider
from flowengine.runner.agents import AgentService
from flowengine.runner.functions import FunctionRegistry
from flowengine.runner.tools import ToolService
from flowengine.schemas.run_state import RunState

logger = logging.getLogger(__name__)

_INPUT_SENTINELS = ("{input}", "{{input}}")

_PASSTHROUGH = object()

ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass
class ExecutionServices:
    """External collaborators injected into the executor."""

    agents: AgentService | None = None
    tools: ToolService | None = None
    functions: FunctionRegistry | None = None
    llm: LLMProvider | None = None


@dataclass
class NodeContext:
    """Everything a node executor may see of the run."""

    node: NodeSpec
    input: Any
    state: RunState
    inputs: dict[str, Any]
    services: ExecutionServices
    config: EngineConfig

    @property
    def variables(self) -> dict[str, Any]:
        return self.state.variables

    @property
    def node_outputs(self) -> dict[str, Any]:
        return self.state.context

    def bindings(self) -> dict[str, Any]:
        """Names available to ``{{...}}`` templates."""
        variables = dict(self.state.variables)
        outputs = dict(self.state.context)
        return {
            **variables,
            "vars": variables,
            "variables": variables,
            "context": outputs,
            "nodes": outputs,
            "input": self.input,
            "inputs": self.inputs,
        }

    def set_variable(self, name: str, value: Any) -> None:
        self.state.variables[name] = value

    def set_output(self, name: str, value: Any) -> None:
        self.state.outputs[name] = value


@dataclass
class NodeOutcome:
    """
    What a node produced.

    ``output`` is recorded on the NodeResult, stored in the run context and
    used for routing. ``next_input`` is what the following node receives;
    it defaults to ``output``. ``fault`` carries a non-fatal fault to record.
    """

    output: Any = None
    next_input: Any = field(default=_PASSTHROUGH)
    fault: WorkflowFault | None = None

    @property
    def forwarded(self) -> Any:
        return self.output if self.next_input is _PASSTHROUGH else self.next_input


class NodeExecutor(ABC):
    """Execution strategy for one node kind."""

    kind: NodeKind

    @abstractmethod
    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        """Run the node. Raise a WorkflowFault on failure."""
        pass


def _config_of(ctx: NodeContext, expected: type[ConfigT]) -> ConfigT:
    config = ctx.node.config
    if not isinstance(config, expected):
        raise ConfigurationFault(
            f"{ctx.node.kind} node has {type(config).__name__}, expected {expected.__name__}",
            node_id=ctx.node.id,
        )
    return config


def _as_message(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False)


class StartExecutor(NodeExecutor):
    kind = NodeKind.START

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        return NodeOutcome(output=ctx.inputs.get("initial", ""))


class EndExecutor(NodeExecutor):
    kind = NodeKind.END

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        ctx.set_output("final", ctx.input)
        return NodeOutcome(output=ctx.input)


class PassThroughExecutor(NodeExecutor):
    """Input and Output nodes hand their input on unchanged."""

    def __init__(self, kind: NodeKind):
        self.kind = kind

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        return NodeOutcome(output=ctx.input)


class AgentExecutor(NodeExecutor):
    """Send the input (or the rendered prompt template) to an agent."""

    kind = NodeKind.AGENT

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        config = _config_of(ctx, AgentConfig)
        node_id = ctx.node.id

        if not config.agent_id:
            raise ConfigurationFault("Agent node is missing agent_id", node_id=node_id)
        service = ctx.services.agents
        if service is None:
            raise ConfigurationFault("No agent service configured", node_id=node_id)

        try:
            agent = await service.get_agent(config.agent_id)
        except ServiceError as e:
            raise AgentExecutionFault(
                f"Failed to look up agent '{config.agent_id}': {e.message}", node_id=node_id
            ) from e
        if agent is None:
            raise NotFoundFault(f"Agent not found: {config.agent_id}", node_id=node_id)

        if config.prompt_template:
            message = _as_message(resolve_template(config.prompt_template, ctx.bindings()))
        else:
            message = _as_message(ctx.input)

        timeout = ctx.config.agent_timeout
        try:
            response = await asyncio.wait_for(
                service.generate(
                    config.agent_id,
                    messages=[{"role": "user", "content": message}],
                    options={"temperature": agent.temperature, "max_tokens": agent.max_tokens},
                ),
                timeout=timeout,
            )
        except TimeoutError as e:
            raise TimeoutFault(
                f"Agent '{config.agent_id}' timed out after {timeout:g}s", node_id=node_id
            ) from e
        except ServiceError as e:
            raise AgentExecutionFault(
                f"Agent '{config.agent_id}' failed: {e.message}", node_id=node_id
            ) from e
        except WorkflowFault:
            raise
        except Exception as e:
            raise AgentExecutionFault(
                f"Agent '{config.agent_id}' failed: {e}", node_id=node_id
            ) from e

        return NodeOutcome(output=response.text)


class ToolExecutor(NodeExecutor):
    """Call a tool with templated params plus the node input."""

    kind = NodeKind.TOOL

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        config = _config_of(ctx, ToolConfig)
        node_id = ctx.node.id

        if not config.tool_id:
            raise ConfigurationFault("Tool node is missing tool_id", node_id=node_id)
        service = ctx.services.tools
        if service is None:
            raise ConfigurationFault("No tool service configured", node_id=node_id)

        params = self.build_params(config.params, ctx)

        try:
            tool = await service.get_tool(config.tool_id)
        except ServiceError as e:
            raise ToolExecutionFault(
                f"Failed to look up tool '{config.tool_id}': {e.message}", node_id=node_id
            ) from e
        if tool is None:
            raise NotFoundFault(f"Tool not found: {config.tool_id}", node_id=node_id)

        try:
            result = await service.execute_tool(config.tool_id, params)
        except ServiceError as e:
            raise ToolExecutionFault(
                f"Tool '{config.tool_id}' failed: {e.message}", node_id=node_id
            ) from e
        except WorkflowFault:
            raise
        except Exception as e:
            raise ToolExecutionFault(f"Tool '{config.tool_id}' failed: {e}", node_id=node_id) from e

        return NodeOutcome(output=result)

    @staticmethod
    def build_params(raw_params: dict[str, Any], ctx: NodeContext) -> dict[str, Any]:
        """
        Resolve templated params.

        A param whose value is ``{input}`` (or ``{{input}}``) receives the raw
        node input. Without such a param the input is added under ``input``.
        """
        bindings = ctx.bindings()
        params: dict[str, Any] = {}
        bound_input = False
        for key, value in raw_params.items():
            if isinstance(value, str) and value.strip() in _INPUT_SENTINELS:
                params[key] = ctx.input
                bound_input = True
            else:
                params[key] = resolve_template(value, bindings)

        if not bound_input and ctx.input is not None:
            params["input"] = ctx.input
        return params


class ConditionExecutor(NodeExecutor):
    """
    Evaluate a boolean for the router.

    A missing or broken condition never raises: it resolves to False and
    the ConditionEvaluationFault is returned on the outcome. The node's
    input is forwarded unchanged to whichever branch is taken.
    """

    kind = NodeKind.CONDITION

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        config = _config_of(ctx, ConditionConfig)
        faults: list[ConditionEvaluationFault] = []

        if config.is_structured:
            result = self._compare(config, ctx, faults)
        elif config.expression and config.expression.strip():
            result = evaluate_condition(
                config.expression,
                ctx.input,
                ctx.variables,
                node_id=ctx.node.id,
                extra_names={"nodes": dict(ctx.node_outputs)},
                on_fault=faults.append,
            )
        else:
            fault = ConditionEvaluationFault(
                "Condition node has no expression", node_id=ctx.node.id
            )
            logger.warning(str(fault), extra={"event": "condition_fault", "node_id": ctx.node.id})
            faults.append(fault)
            result = False

        return NodeOutcome(
            output=result,
            next_input=ctx.input,
            fault=faults[0] if faults else None,
        )

    @staticmethod
    def _compare(
        config: ConditionConfig,
        ctx: NodeContext,
        faults: list[ConditionEvaluationFault],
    ) -> bool:
        left_key = config.left_operand
        if not left_key:
            left = ctx.input
        elif isinstance(ctx.input, Mapping) and left_key in ctx.input:
            left = ctx.input[left_key]
        else:
            left = lookup_path(ctx.bindings(), left_key)

        right = config.right_operand
        if isinstance(right, str):
            right = resolve_template(right, ctx.bindings())

        try:
            return apply_operator(config.operator or "", left, right, strict=config.strict)
        except (ValueError, TypeError) as e:
            fault = ConditionEvaluationFault(
                f"Condition '{config.operator}' could not be evaluated: {e}",
                node_id=ctx.node.id,
            )
            logger.warning(str(fault), extra={"event": "condition_fault", "node_id": ctx.node.id})
            faults.append(fault)
            return False


class FunctionExecutor(NodeExecutor):
    """
    Run a registered callable or an expression body with resolved params.

    Registered callables receive ``(params, context)``. Expression bodies
    see ``params`` (also bound to a ``function (params, context)``
    declaration's arguments), each param by name, ``input``, ``vars`` and
    ``nodes``.
    """

    kind = NodeKind.FUNCTION

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        config = _config_of(ctx, FunctionConfig)
        node_id = ctx.node.id
        params = self.resolve_params(config, ctx)

        if config.function:
            registry = ctx.services.functions
            if registry is None or not registry.has(config.function):
                raise NotFoundFault(f"Function not registered: {config.function}", node_id=node_id)
            call_context = {
                "input": ctx.input,
                "inputs": dict(ctx.inputs),
                "variables": dict(ctx.variables),
                "nodes": dict(ctx.node_outputs),
            }
            try:
                result = await registry.call(config.function, params, call_context)
            except WorkflowFault:
                raise
            except Exception as e:
                raise FunctionExecutionFault(
                    f"Function '{config.function}' raised: {e}", node_id=node_id
                ) from e
        elif config.code.strip():
            names = {
                **{k: v for k, v in params.items() if k.isidentifier()},
                "params": params,
                "input": ctx.input,
                "nodes": dict(ctx.node_outputs),
            }
            try:
                result = evaluate_expression(config.code, params, ctx.variables, names)
            except Exception as e:
                raise FunctionExecutionFault(
                    f"Function node '{ctx.node.name}' raised: {e}", node_id=node_id
                ) from e
        else:
            raise ConfigurationFault(
                "Function node has neither code nor a registered function", node_id=node_id
            )

        if config.output_params and isinstance(result, Mapping):
            for param in config.output_params:
                if param.name in result:
                    ctx.set_variable(param.name, result[param.name])

        return NodeOutcome(output=result)

    @staticmethod
    def resolve_params(config: FunctionConfig, ctx: NodeContext) -> dict[str, Any]:
        """Explicit value, then run variable, then key of a mapping input."""
        if not config.input_params:
            if isinstance(ctx.input, Mapping):
                return dict(ctx.input)
            return {"input": ctx.input}

        bindings = ctx.bindings()
        params: dict[str, Any] = {}
        for param in config.input_params:
            if param.value is not None:
                params[param.name] = resolve_template(param.value, bindings)
            elif param.name in ctx.variables:
                params[param.name] = ctx.variables[param.name]
            elif isinstance(ctx.input, Mapping) and param.name in ctx.input:
                params[param.name] = ctx.input[param.name]
            else:
                params[param.name] = None
        return params


class AIExecutor(NodeExecutor):
    """Send a rendered prompt straight to the LLM provider."""

    kind = NodeKind.AI

    async def execute(self, ctx: NodeContext) -> NodeOutcome:
        config = _config_of(ctx, AIConfig)
        node_id = ctx.node.id

        llm = ctx.services.llm
        if llm is None:
            raise ConfigurationFault("No LLM provider configured", node_id=node_id)

        bindings = ctx.bindings()
        prompt = _as_message(resolve_template(config.prompt, bindings))
        if not prompt.strip():
            raise ConfigurationFault("AI node has an empty prompt", node_id=node_id)
        system = _as_message(resolve_template(config.system, bindings))

        timeout = ctx.config.agent_timeout
        try:
            response = await asyncio.wait_for(
                llm.acomplete(
                    messages=[{"role": "user", "content": prompt}],
                    system=system,
                    model=config.model,
                    temperature=config.temperature,
                    max_tokens=config.max_tokens,
                ),
                timeout=timeout,
            )
        except TimeoutError as e:
            raise TimeoutFault(
                f"AI generation timed out after {timeout:g}s", node_id=node_id
            ) from e
        except WorkflowFault:
            raise
        except Exception as e:
            raise AgentExecutionFault(f"AI generation failed: {e}", node_id=node_id) from e

        return NodeOutcome(output=response.content)


def default_executors() -> dict[NodeKind, NodeExecutor]:
    """One executor instance per node kind."""
    executors: list[NodeExecutor] = [
        StartExecutor(),
        EndExecutor(),
        AgentExecutor(),
        ToolExecutor(),
        ConditionExecutor(),
        FunctionExecutor(),
        AIExecutor(),
        PassThroughExecutor(NodeKind.INPUT),
        PassThroughExecutor(NodeKind.OUTPUT),
    ]
    return {executor.kind: executor for executor in executors}
