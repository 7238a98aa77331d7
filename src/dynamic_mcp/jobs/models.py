"""Domain models for asynchronous tool jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Job lifecycle states."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Captured outcome of one external command execution.

    ``exit_code == -1`` means the process was not observed to exit normally:
    it could not be spawned, died from a signal, or was killed on timeout.
    """

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_payload(self) -> dict[str, Any]:
        """Serialize for tool responses."""

        return {
            "exitCode": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


@dataclass(frozen=True, slots=True)
class Job:
    """Immutable view of one asynchronous tool execution.

    Records are never mutated in place; the store swaps in a new copy on
    every transition.
    """

    job_id: str
    tool_name: str
    status: JobStatus
    started_at: datetime
    timeout_ms: int
    completed_at: datetime | None = None
    result: TaskResult | None = None
    timed_out: bool = False

    def to_snapshot(self) -> dict[str, Any]:
        """Serialize for the job status query."""

        return {
            "id": self.job_id,
            "status": self.status.value,
            "toolName": self.tool_name,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result.to_payload() if self.result is not None else None,
            "timedOut": self.timed_out,
        }
