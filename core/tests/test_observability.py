"""Tests for structured logging and trace context propagation."""

import asyncio
import json
import logging

import pytest

from flowengine.observability import (
    clear_trace_context,
    get_trace_context,
    set_trace_context,
)
from flowengine.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    strip_ansi_codes,
)


@pytest.fixture(autouse=True)
def _reset_context():
    clear_trace_context()
    yield
    clear_trace_context()


def make_record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("flowengine.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges(self):
        set_trace_context(workflow_id="wf")
        set_trace_context(node_id="n1")
        assert get_trace_context() == {"workflow_id": "wf", "node_id": "n1"}

    def test_get_returns_copy(self):
        set_trace_context(workflow_id="wf")
        get_trace_context()["workflow_id"] = "changed"
        assert get_trace_context()["workflow_id"] == "wf"

    @pytest.mark.asyncio
    async def test_tasks_do_not_leak_into_each_other(self):
        async def run(name: str) -> dict:
            set_trace_context(execution_id=name)
            await asyncio.sleep(0)
            return get_trace_context()

        first, second = await asyncio.gather(run("a"), run("b"))

        assert first == {"execution_id": "a"}
        assert second == {"execution_id": "b"}
        assert get_trace_context() == {}


class TestFormatters:
    def test_json_line_carries_context_and_extras(self):
        set_trace_context(workflow_id="wf", execution_id="exec-1")
        line = StructuredFormatter().format(
            make_record("\x1b[32mdone\x1b[0m", event="node_complete", duration_ms=12)
        )

        entry = json.loads(line)
        assert entry["message"] == "done"
        assert entry["level"] == "info"
        assert entry["workflow_id"] == "wf"
        assert entry["execution_id"] == "exec-1"
        assert entry["event"] == "node_complete"
        assert entry["duration_ms"] == 12

    def test_human_prefix(self):
        set_trace_context(workflow_id="wf", execution_id="0123456789abcdef", node_id="agent")
        text = strip_ansi_codes(HumanReadableFormatter().format(make_record("working")))

        assert "[wf:wf | exec:89abcdef | node:agent]" in text
        assert text.endswith("working")
