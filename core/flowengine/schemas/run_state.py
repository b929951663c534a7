"""
Run State Schema - The live, in-memory state of one workflow run.

RunState is owned by the executor for the duration of ``execute()``.
Hosts only ever see deep copies of it, through ``get_state()`` and the
lifecycle callbacks.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class RunStatus(StrEnum):
    """Aggregate status of a run."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELED)


class NodeStatus(StrEnum):
    """Status of a single node within a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


def _duration_ms(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return int((end - start).total_seconds() * 1000)


class NodeResult(BaseModel):
    """Outcome of the most recent visit to a node."""

    node_id: str
    status: NodeStatus = NodeStatus.PENDING
    output: Any = None
    error: str | None = None
    error_type: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    visits: int = 0

    model_config = {"extra": "allow"}

    @computed_field
    @property
    def duration_ms(self) -> int | None:
        return _duration_ms(self.start_time, self.end_time)


class RunState(BaseModel):
    """
    Aggregate state of a run.

    ``context`` maps node id to that node's latest output. ``outputs`` holds
    the run's final output under ``"final"`` once an End node has run.
    """

    workflow_id: str
    execution_id: str | None = None
    status: RunStatus = RunStatus.IDLE
    current_node_id: str | None = None
    node_results: dict[str, NodeResult] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    start_time: datetime | None = None
    end_time: datetime | None = None
    error: str | None = None
    error_type: str | None = None

    model_config = {"extra": "allow"}

    @computed_field
    @property
    def duration_ms(self) -> int | None:
        return _duration_ms(self.start_time, self.end_time)

    @property
    def final_output(self) -> Any:
        return self.outputs.get("final")

    def snapshot(self) -> "RunState":
        """Deep copy safe to hand to callers."""
        return self.model_copy(deep=True)
