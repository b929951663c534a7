"""Tests for the flowengine command-line interface."""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path

import pytest

import flowengine.runner
from flowengine.cli import build_parser, main
from flowengine.graph.edge import EdgeSpec, GraphSpec
from flowengine.graph.node import ConditionConfig, NodeKind, NodeSpec
from flowengine.runner.agents import HttpAgentService
from flowengine.schemas.execution_record import ExecutionRecord
from flowengine.schemas.run_state import RunStatus
from flowengine.storage.execution_store import FileExecutionStore


@pytest.fixture(autouse=True)
def restore_root_logger():
    """``flowengine run`` reconfigures the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def write_graph(path: Path, graph: GraphSpec) -> str:
    path.write_text(graph.to_json(), encoding="utf-8")
    return str(path)


def simple_graph() -> GraphSpec:
    return GraphSpec(
        id="cli-wf",
        name="CLI demo",
        nodes=[
            NodeSpec(id="start", kind=NodeKind.START),
            NodeSpec(id="out", kind=NodeKind.OUTPUT),
            NodeSpec(id="end", kind=NodeKind.END),
        ],
        edges=[
            EdgeSpec(source="start", target="out"),
            EdgeSpec(source="out", target="end"),
        ],
    )


def run_cli(argv: list[str]) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


class TestValidateCommand:
    def test_valid_graph(self, tmp_path: Path, capsys):
        path = write_graph(tmp_path / "graph.json", simple_graph())

        assert run_cli(["validate", path]) == 0
        assert "is valid" in capsys.readouterr().out

    def test_invalid_graph(self, tmp_path: Path, capsys):
        graph = GraphSpec(
            id="bad",
            nodes=[
                NodeSpec(
                    id="check",
                    kind=NodeKind.CONDITION,
                    config=ConditionConfig(expression="1"),
                ),
            ],
        )
        path = write_graph(tmp_path / "graph.json", graph)

        assert run_cli(["validate", path]) == 1
        out = capsys.readouterr().out
        assert "no start node" in out
        assert "Condition node 'check' has no outgoing edges" in out

    def test_unreadable_file(self, tmp_path: Path, capsys):
        path = tmp_path / "graph.json"
        path.write_text("{oops", encoding="utf-8")

        assert run_cli(["validate", str(path)]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_missing_file(self, tmp_path: Path):
        assert run_cli(["validate", str(tmp_path / "absent.json")]) == 1


class TestRunCommand:
    def test_run_prints_state_and_saves_record(self, tmp_path: Path, capsys):
        path = write_graph(tmp_path / "graph.json", simple_graph())
        store_dir = tmp_path / "store"

        code = run_cli(
            [
                "run",
                path,
                "--input",
                "hello",
                "--vars",
                '{"mode": "fast"}',
                "--api-url",
                "http://agents.test",
                "--store",
                str(store_dir),
                "--log-level",
                "WARNING",
            ]
        )

        assert code == 0
        state = json.loads(capsys.readouterr().out)
        assert state["status"] == "completed"
        assert state["outputs"] == {"final": "hello"}
        assert state["variables"] == {"mode": "fast"}
        assert list((store_dir / "executions" / "cli-wf").glob("*.json"))

    def test_configured_endpoint_used_without_flag(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("FLOWENGINE_API_URL", "http://configured.test")
        base_urls = []

        class RecordingAgentService(HttpAgentService):
            def __init__(self, base_url=None, **kwargs):
                base_urls.append(base_url)
                super().__init__(base_url=base_url, **kwargs)

        monkeypatch.setattr(flowengine.runner, "HttpAgentService", RecordingAgentService)
        path = write_graph(tmp_path / "graph.json", simple_graph())

        code = run_cli(
            ["run", path, "--store", str(tmp_path / "store"), "--log-level", "ERROR"]
        )

        assert code == 0
        assert base_urls == ["http://configured.test"]

    def test_bad_vars(self, tmp_path: Path, capsys):
        path = write_graph(tmp_path / "graph.json", simple_graph())

        code = run_cli(["run", path, "--vars", "[1, 2]", "--store", str(tmp_path)])

        assert code == 1
        assert "JSON object" in capsys.readouterr().err


class TestHistoryCommand:
    def test_history_lists_records_and_stats(self, tmp_path: Path, capsys):
        store = FileExecutionStore(tmp_path)
        start = datetime(2024, 5, 1, 12, 0, 0)
        for i, status in enumerate([RunStatus.COMPLETED, RunStatus.FAILED]):
            record = ExecutionRecord(
                id=f"exec-{i}",
                workflow_id="cli-wf",
                start_time=start + timedelta(minutes=i),
                end_time=start + timedelta(minutes=i, seconds=1),
                status=status,
                error="Node 'x' failed: boom" if status == RunStatus.FAILED else None,
            )
            asyncio.run(store.save(record))

        assert run_cli(["history", "cli-wf", "--store", str(tmp_path)]) == 0
        out = capsys.readouterr().out
        assert out.index("exec-1") < out.index("exec-0")
        assert "Node 'x' failed: boom" in out
        assert "Success rate: 50.0%" in out
        assert "Average duration: 1000ms" in out

    def test_history_json(self, tmp_path: Path, capsys):
        assert run_cli(["history", "nothing", "--store", str(tmp_path), "--json"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["executions"] == []
        assert payload["stats"]["total"] == 0

    def test_history_empty(self, tmp_path: Path, capsys):
        assert run_cli(["history", "nothing", "--store", str(tmp_path)]) == 0
        assert "No executions recorded" in capsys.readouterr().out


def test_main_exits_with_command_status(tmp_path: Path, monkeypatch):
    path = write_graph(tmp_path / "graph.json", simple_graph())
    monkeypatch.setattr("sys.argv", ["flowengine", "validate", path])

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == 0
