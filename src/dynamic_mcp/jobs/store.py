"""In-memory registry of asynchronous tool jobs."""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from dynamic_mcp.common import utc_now
from dynamic_mcp.jobs.models import Job, JobStatus, TaskResult

logger = logging.getLogger(__name__)


class JobStore:
    """Process-lifetime mapping from job id to the latest job record.

    Every update reads the current record, builds a replacement and stores it
    back without suspending in between, so under a single event loop two
    updates of the same job cannot interleave. Records are never evicted.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utc_now,
        epoch_ms: Callable[[], int] | None = None,
    ) -> None:
        self._jobs: dict[str, Job] = {}
        self._counter = itertools.count(1)
        self._clock = clock
        self._epoch_ms = epoch_ms or (lambda: time.time_ns() // 1_000_000)

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def create(self, *, tool_name: str, timeout_ms: int) -> Job:
        """Register a running job; the id is valid for lookup once this returns."""

        job = Job(
            job_id=self._next_id(),
            tool_name=tool_name,
            status=JobStatus.RUNNING,
            started_at=self._clock(),
            timeout_ms=timeout_ms,
        )
        self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def finalize(
        self,
        job_id: str,
        result: TaskResult,
        *,
        timed_out: bool = False,
    ) -> Job | None:
        """Move a running job to its terminal state.

        Returns the finalized record, or None when the job is unknown or was
        already finalized by a competing path.
        """

        current = self._jobs.get(job_id)
        if current is None or current.status.is_terminal:
            logger.debug("Skip finalize for job %s (already terminal or unknown)", job_id)
            return None

        status = JobStatus.COMPLETED if result.ok and not timed_out else JobStatus.FAILED
        finalized = replace(
            current,
            status=status,
            completed_at=self._clock(),
            result=result,
            timed_out=timed_out,
        )
        self._jobs[job_id] = finalized
        return finalized

    def snapshot(self, job_id: str) -> dict[str, Any]:
        """Status-query view of a job; unknown ids get a not-found failure shape."""

        job = self._jobs.get(job_id)
        if job is None:
            return {
                "id": job_id,
                "status": JobStatus.FAILED.value,
                "toolName": None,
                "startedAt": None,
                "completedAt": None,
                "result": None,
                "error": f"Job not found: {job_id}",
            }
        return job.to_snapshot()

    def _next_id(self) -> str:
        return f"job_{self._epoch_ms()}_{next(self._counter)}"
