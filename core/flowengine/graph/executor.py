"""
Workflow Executor - Runs workflow graphs.

The executor:
1. Takes a GraphSpec and its collaborators (agent, tool, LLM services)
2. Resets the run state on every ``execute()`` call
3. Walks nodes from the Start node, following edges via the router
4. Records every transition to an ExecutionRecorder
5. Returns the terminal RunState (it never raises for run failures)

Control: ``pause()``, ``resume()`` and ``stop()`` are cooperative. They are
honoured at node boundaries; an in-flight node always finishes first.
"""

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from flowengine.config import EngineConfig
from flowengine.graph.edge import GraphSpec
from flowengine.graph.errors import (
    ConfigurationFault,
    GraphIntegrityFault,
    InfiniteLoopFault,
    WorkflowFault,
)
from flowengine.graph.node import NodeKind, NodeSpec
from flowengine.graph.node_executors import (
    ExecutionServices,
    NodeContext,
    NodeExecutor,
    NodeOutcome,
    default_executors,
)
from flowengine.graph.router import find_next_node
from flowengine.llm.provider import LLMProvider
from flowengine.observability import set_trace_context
from flowengine.runner.agents import AgentService
from flowengine.runner.functions import FunctionRegistry
from flowengine.runner.tools import ToolService
from flowengine.runtime.recorder import ExecutionRecorder
from flowengine.schemas.execution_record import ExecutionRecord
from flowengine.schemas.run_state import NodeResult, NodeStatus, RunState, RunStatus
from flowengine.storage.execution_store import ExecutionStore


@dataclass
class ExecutorCallbacks:
    """
    Lifecycle notifications for the host.

    Callbacks may be plain functions or coroutine functions. They receive
    copies of engine state; exceptions they raise are logged and ignored.
    """

    on_node_start: Callable[[str, dict[str, Any]], Any] | None = None
    on_node_complete: Callable[[NodeResult, dict[str, Any]], Any] | None = None
    on_workflow_complete: Callable[[RunState], Any] | None = None
    on_workflow_error: Callable[[WorkflowFault, RunState], Any] | None = None
    on_status_change: Callable[[RunStatus, RunState], Any] | None = None


class WorkflowExecutor:
    """
    Executes one workflow graph, one run at a time.

    Example:
        executor = WorkflowExecutor(
            graph=load_graph(Path("triage.json")),
            agent_service=HttpAgentService(),
            tool_service=tools,
            store=FileExecutionStore(Path("~/.flowengine").expanduser()),
        )

        state = await executor.execute({"initial": "Customer cannot log in"})
        print(state.status, state.final_output)
    """

    def __init__(
        self,
        graph: GraphSpec,
        callbacks: ExecutorCallbacks | None = None,
        agent_service: AgentService | None = None,
        tool_service: ToolService | None = None,
        function_registry: FunctionRegistry | None = None,
        llm: LLMProvider | None = None,
        store: ExecutionStore | None = None,
        config: EngineConfig | None = None,
        max_node_executions: int | None = None,
        executors: dict[NodeKind, NodeExecutor] | None = None,
    ):
        """
        Initialize the executor.

        Args:
            graph: The workflow to run; never mutated
            callbacks: Optional lifecycle callbacks
            agent_service: Service used by Agent nodes
            tool_service: Service used by Tool nodes
            function_registry: Callables referenced by Function nodes
            llm: Provider used by AI nodes
            store: Where finished execution records are saved
            config: Engine limits (defaults come from the configuration file)
            max_node_executions: Per-node visit ceiling, overrides ``config``
            executors: Custom node executors by kind, merged over the defaults
        """
        self.graph = graph
        self.callbacks = callbacks or ExecutorCallbacks()
        self.services = ExecutionServices(
            agents=agent_service,
            tools=tool_service,
            functions=function_registry,
            llm=llm,
        )
        self.store = store
        self.config = config or EngineConfig()
        if max_node_executions is not None:
            self.config = replace(self.config, max_node_executions=max_node_executions)
        self._executors = {**default_executors(), **(executors or {})}
        self.logger = logging.getLogger(__name__)

        self._inputs: dict[str, Any] = {}
        self._state = self._fresh_state()
        self._recorder: ExecutionRecorder | None = None
        self.last_record: ExecutionRecord | None = None

        # Pause/stop control
        self._pause_requested = asyncio.Event()
        self._stop_requested = asyncio.Event()
        self._callback_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public facade
    # ------------------------------------------------------------------

    async def execute(self, inputs: dict[str, Any] | None = None) -> RunState:
        """
        Run the workflow.

        Args:
            inputs: ``initial`` is handed to the Start node; ``variables``
                overrides the graph's declared variable defaults

        Returns:
            A copy of the terminal RunState. If a run is already in
            progress, a copy of the current state is returned instead and
            no second traversal starts.
        """
        if self._state.status in (RunStatus.RUNNING, RunStatus.PAUSED):
            self.logger.warning("Workflow is already running; ignoring execute()")
            return self._state.snapshot()

        self._inputs = dict(inputs or {})
        self._pause_requested.clear()
        self._stop_requested.clear()
        self._state = self._fresh_state()
        self._state.execution_id = uuid.uuid4().hex
        self._state.start_time = datetime.now()

        recorder = ExecutionRecorder(
            workflow_id=self.graph.id,
            workflow_name=self.graph.name,
            store=self.store,
            execution_id=self._state.execution_id,
        )
        self._recorder = recorder

        set_trace_context(workflow_id=self.graph.id, execution_id=self._state.execution_id)
        self.logger.info(f"🚀 Starting workflow: {self.graph.name or self.graph.id}")
        recorder.start(self._state.variables)
        self._set_status(RunStatus.RUNNING)

        try:
            await self._run_loop()
        except WorkflowFault as e:
            self._fail_run(e)
        except asyncio.CancelledError:
            self.logger.info("⏹ Execution task cancelled")
            self._state.end_time = datetime.now()
            for result in self._state.node_results.values():
                if result.status == NodeStatus.RUNNING:
                    result.status = NodeStatus.SKIPPED
                    result.end_time = self._state.end_time
            self._set_status(RunStatus.CANCELED)
            self.last_record = await recorder.finish(self._state)
            raise
        except Exception as e:
            self.logger.exception("Unexpected error while running workflow")
            self._fail_run(WorkflowFault(f"Unexpected error: {e}"))
        else:
            self._state.end_time = datetime.now()
            if self._stop_requested.is_set():
                self.logger.info("⏹ Workflow stopped")
                self._set_status(RunStatus.CANCELED)
            else:
                self.logger.info(f"✓ Workflow completed in {self._state.duration_ms}ms")
                self._set_status(RunStatus.COMPLETED)
                self._fire(self.callbacks.on_workflow_complete, self._state.snapshot())

        set_trace_context(node_id=None)
        self.last_record = await recorder.finish(self._state)
        await self._drain_callbacks()
        return self._state.snapshot()

    def pause(self) -> None:
        """Pause at the next node boundary. Only valid while running."""
        if self._state.status != RunStatus.RUNNING:
            return
        self._pause_requested.set()
        self.logger.info("⏸ Pause requested - will pause at next node boundary")
        self._set_status(RunStatus.PAUSED)

    def resume(self) -> None:
        """Resume a paused run. Only valid while paused."""
        if self._state.status != RunStatus.PAUSED:
            return
        self._pause_requested.clear()
        self.logger.info("▶ Resuming workflow")
        self._set_status(RunStatus.RUNNING)

    def stop(self) -> None:
        """Cancel the run at the next node boundary (or out of a pause)."""
        if self._state.status not in (RunStatus.RUNNING, RunStatus.PAUSED):
            return
        self._stop_requested.set()
        self.logger.info("⏹ Stop requested")

    def get_state(self) -> RunState:
        """Return a deep copy of the current run state."""
        return self._state.snapshot()

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _fresh_state(self) -> RunState:
        variables = self.graph.default_variables()
        overrides = self._inputs.get("variables")
        if isinstance(overrides, dict):
            variables.update(overrides)
        return RunState(
            workflow_id=self.graph.id,
            node_results={node.id: NodeResult(node_id=node.id) for node in self.graph.nodes},
            variables=variables,
        )

    async def _run_loop(self) -> None:
        start = self.graph.get_start_node()
        if start is None:
            raise GraphIntegrityFault("Workflow has no start node")

        max_visits = self.config.max_node_executions
        visit_counts: dict[str, int] = {}
        current_node_id: str | None = start.id
        current_input: Any = self._inputs.get("initial", "")

        while current_node_id is not None:
            if self._stop_requested.is_set():
                break

            visit_counts[current_node_id] = visit_counts.get(current_node_id, 0) + 1
            if visit_counts[current_node_id] > max_visits:
                fault = InfiniteLoopFault(
                    f"Possible infinite loop: node '{current_node_id}' "
                    f"executed more than {max_visits} times",
                    node_id=current_node_id,
                )
                looping = self.graph.get_node(current_node_id)
                if looping is not None:
                    result = self._state.node_results.setdefault(
                        looping.id, NodeResult(node_id=looping.id)
                    )
                    self._fail_node(looping, result, fault)
                raise fault

            if self._pause_requested.is_set():
                await self._wait_while_paused()
                if self._stop_requested.is_set():
                    break

            node = self.graph.get_node(current_node_id)
            if node is None:
                raise GraphIntegrityFault(
                    f"Node not found: {current_node_id}", node_id=current_node_id
                )

            outcome = await self._execute_node(node, current_input, visit_counts[node.id])

            next_node_id = find_next_node(self.graph, node.id, outcome.output)
            if next_node_id is None:
                end = self.graph.get_end_node()
                if end is not None and node.kind != NodeKind.END:
                    self.logger.info(f"   → Dead end at '{node.id}', jumping to end node")
                    next_node_id = end.id
                else:
                    self.logger.info("   → No more edges, ending")

            current_input = outcome.forwarded
            current_node_id = next_node_id

    async def _wait_while_paused(self) -> None:
        self.logger.info("⏸ Paused - waiting for resume")
        interval = self.config.pause_poll_interval
        while self._pause_requested.is_set() and not self._stop_requested.is_set():
            await asyncio.sleep(interval)

    async def _execute_node(self, node: NodeSpec, node_input: Any, visits: int) -> NodeOutcome:
        state = self._state
        result = NodeResult(
            node_id=node.id,
            status=NodeStatus.RUNNING,
            start_time=datetime.now(),
            visits=visits,
        )
        state.node_results[node.id] = result
        state.current_node_id = node.id
        set_trace_context(node_id=node.id)

        self.logger.info(f"▶ {node.name} ({node.kind})", extra={"node_kind": str(node.kind)})
        self._fire(self.callbacks.on_node_start, node.id, dict(state.context))
        if self._recorder:
            self._recorder.node_started(node.id, node.name)

        executor = self._executors.get(node.kind)
        ctx = NodeContext(
            node=node,
            input=node_input,
            state=state,
            inputs=self._inputs,
            services=self.services,
            config=self.config,
        )

        try:
            if executor is None:
                raise ConfigurationFault(f"No executor for node kind '{node.kind}'")
            outcome = await executor.execute(ctx)
        except WorkflowFault as e:
            e.node_id = e.node_id or node.id
            self._fail_node(node, result, e)
            raise
        except Exception as e:
            fault = WorkflowFault(f"Node '{node.name}' failed: {e}", node_id=node.id)
            self._fail_node(node, result, fault)
            raise fault from e

        result.status = NodeStatus.COMPLETED
        result.output = outcome.output
        result.end_time = datetime.now()
        if outcome.fault is not None:
            result.error = outcome.fault.message
            result.error_type = outcome.fault.fault_type
        state.context[node.id] = outcome.output

        self.logger.info(
            f"   ✓ {node.name} completed",
            extra={"event": "node_complete", "duration_ms": result.duration_ms},
        )
        self._fire(
            self.callbacks.on_node_complete, result.model_copy(deep=True), dict(state.context)
        )
        if self._recorder:
            self._recorder.node_completed(result, node.name)
        return outcome

    def _fail_node(self, node: NodeSpec, result: NodeResult, fault: WorkflowFault) -> None:
        result.status = NodeStatus.FAILED
        result.error = fault.message
        result.error_type = fault.fault_type
        result.end_time = datetime.now()
        self.logger.error(f"   ✗ {node.name} failed: {fault.message}")
        self._fire(
            self.callbacks.on_node_complete, result.model_copy(deep=True), dict(self._state.context)
        )
        if self._recorder:
            self._recorder.node_failed(result, node.name)

    def _fail_run(self, fault: WorkflowFault) -> None:
        state = self._state
        state.end_time = datetime.now()
        if fault.node_id and fault.node_id in state.node_results:
            state.error = f"Node '{fault.node_id}' failed: {fault.message}"
        else:
            state.error = fault.message
        state.error_type = fault.fault_type
        self.logger.error(f"✗ Workflow failed: {state.error}")
        self._set_status(RunStatus.FAILED)
        self._fire(self.callbacks.on_workflow_error, fault, state.snapshot())

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _set_status(self, status: RunStatus) -> None:
        self._state.status = status
        self._fire(self.callbacks.on_status_change, status, self._state.snapshot())

    def _fire(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        """Invoke a host callback. Failures are logged, never propagated."""
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._callback_done)
        except Exception:
            self.logger.exception(f"Callback {getattr(callback, '__name__', callback)!r} failed")

    def _callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Async callback failed: {task.exception()}")

    async def _drain_callbacks(self) -> None:
        if self._callback_tasks:
            await asyncio.gather(*list(self._callback_tasks), return_exceptions=True)
