"""Run-time recording of workflow executions."""

from flowengine.runtime.recorder import ExecutionRecorder

__all__ = ["ExecutionRecorder"]
