"""Pydantic models for the durable record of a workflow run.

ExecutionRecord - one per ``execute()`` call, persisted once it is terminal
LogEntry        - one timestamped, leveled line in a record's log
ExecutionStats  - aggregate analytics over a set of records (history view)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from flowengine.schemas.run_state import NodeResult, RunStatus


class LogLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogEntry(BaseModel):
    """A single lifecycle or per-node event."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = Field(default_factory=datetime.now)
    level: LogLevel = LogLevel.INFO
    message: str
    node_id: str | None = None
    node_name: str | None = None
    data: Any = None


class ExecutionRecord(BaseModel):
    """Append-only log plus result snapshot of one run."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    workflow_id: str
    workflow_name: str = ""
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: datetime | None = None
    status: RunStatus = RunStatus.RUNNING
    variables: dict[str, Any] = Field(default_factory=dict)
    logs: list[LogEntry] = Field(default_factory=list)
    node_results: dict[str, NodeResult] = Field(default_factory=dict)
    output: Any = None
    error: str | None = None

    model_config = {"extra": "allow"}

    @computed_field
    @property
    def duration_ms(self) -> int | None:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() * 1000)


class ExecutionStats(BaseModel):
    """Analytics over a workflow's execution history."""

    total: int = 0
    success_rate: float = 0.0
    average_duration_ms: float = 0.0
    executions_by_day: dict[str, int] = Field(default_factory=dict)
    status_distribution: dict[str, int] = Field(default_factory=dict)
