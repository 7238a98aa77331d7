"""Asynchronous job registry and timeout supervision."""

from dynamic_mcp.jobs.models import Job, JobStatus, TaskResult
from dynamic_mcp.jobs.store import JobStore
from dynamic_mcp.jobs.supervisor import TimeoutSupervisor

__all__ = [
    "Job",
    "JobStatus",
    "JobStore",
    "TaskResult",
    "TimeoutSupervisor",
]
