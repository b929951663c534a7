"""
Command-line interface for flowengine.

Usage:
    flowengine run workflows/triage.json --input "Customer cannot log in"
    flowengine run workflows/triage.json --vars '{"threshold": 5}' --store ~/.flowengine
    flowengine validate workflows/triage.json
    flowengine history triage --store ~/.flowengine
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

DEFAULT_STORE = Path.home() / ".flowengine"


def _load(path: str):
    from flowengine.graph import GraphIntegrityFault, load_graph

    try:
        return load_graph(Path(path))
    except (GraphIntegrityFault, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


def cmd_run(args: argparse.Namespace) -> int:
    """Run a workflow and print its final state."""
    from flowengine.config import EngineConfig
    from flowengine.graph import WorkflowExecutor
    from flowengine.llm import LiteLLMProvider
    from flowengine.observability import configure_logging
    from flowengine.runner import HttpAgentService, HttpToolService
    from flowengine.schemas import RunStatus
    from flowengine.storage import FileExecutionStore

    configure_logging(level=args.log_level)

    graph = _load(args.graph)
    if graph is None:
        return 1

    inputs: dict = {"initial": args.input}
    if args.vars:
        try:
            variables = json.loads(args.vars)
        except json.JSONDecodeError as e:
            print(f"Error: --vars is not valid JSON: {e}", file=sys.stderr)
            return 1
        if not isinstance(variables, dict):
            print("Error: --vars must be a JSON object", file=sys.stderr)
            return 1
        inputs["variables"] = variables

    config = EngineConfig()
    if args.api_url:
        config.api_base_url = args.api_url

    async def _run():
        async with (
            HttpAgentService(base_url=config.api_base_url) as agents,
            HttpToolService(base_url=config.api_base_url) as tools,
        ):
            executor = WorkflowExecutor(
                graph,
                agent_service=agents,
                tool_service=tools,
                llm=LiteLLMProvider(model=config.llm_model, api_key=config.api_key),
                config=config,
                store=FileExecutionStore(Path(args.store).expanduser()),
            )
            return await executor.execute(inputs)

    state = asyncio.run(_run())
    print(state.model_dump_json(indent=2))
    return 0 if state.status == RunStatus.COMPLETED else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Check a workflow file for structural problems."""
    graph = _load(args.graph)
    if graph is None:
        return 1

    errors = graph.validate()
    warnings = graph.find_warnings()

    for error in errors:
        print(f"✗ {error}")
    for warning in warnings:
        print(f"! {warning}")

    if errors:
        print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
        return 1
    print(f"✓ '{graph.name or graph.id}' is valid ({len(warnings)} warning(s))")
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """List stored executions of a workflow with summary statistics."""
    from flowengine.storage import FileExecutionStore, summarize_executions

    store = FileExecutionStore(Path(args.store).expanduser())
    records = asyncio.run(store.load(args.workflow_id))

    if args.json:
        payload = {
            "executions": [r.model_dump(mode="json") for r in records],
            "stats": summarize_executions(records).model_dump(mode="json"),
        }
        print(json.dumps(payload, indent=2))
        return 0

    if not records:
        print(f"No executions recorded for '{args.workflow_id}'")
        return 0

    for record in records[: args.limit]:
        duration = f"{record.duration_ms}ms" if record.duration_ms is not None else "-"
        started = record.start_time.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{record.id}  {started}  {record.status.value:<10} {duration}")
        if record.error:
            print(f"    {record.error}")

    stats = summarize_executions(records)
    print()
    print(f"Total: {stats.total}")
    print(f"Success rate: {stats.success_rate:.1f}%")
    print(f"Average duration: {stats.average_duration_ms:.0f}ms")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowengine",
        description="flowengine - run and inspect workflow graphs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run a workflow")
    run_parser.add_argument("graph", help="Path to the workflow JSON file")
    run_parser.add_argument("--input", "-i", default="", help="Initial input text")
    run_parser.add_argument("--vars", help="Variable overrides as a JSON object")
    run_parser.add_argument(
        "--api-url",
        default=None,
        help="Agent/tool API base URL (defaults to configuration)",
    )
    run_parser.add_argument(
        "--store",
        default=str(DEFAULT_STORE),
        help="Directory where execution records are saved",
    )
    run_parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Validate a workflow file")
    validate_parser.add_argument("graph", help="Path to the workflow JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    history_parser = subparsers.add_parser("history", help="Show past executions")
    history_parser.add_argument("workflow_id", help="Workflow ID")
    history_parser.add_argument(
        "--store",
        default=str(DEFAULT_STORE),
        help="Directory where execution records are saved",
    )
    history_parser.add_argument("--limit", type=int, default=20, help="Max records to list")
    history_parser.add_argument("--json", action="store_true", help="Output as JSON")
    history_parser.set_defaults(func=cmd_history)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
