"""Per-job timeout timers with graceful-then-forceful process shutdown."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from dynamic_mcp.config import DEFAULT_KILL_GRACE_SECONDS
from dynamic_mcp.jobs.models import TaskResult
from dynamic_mcp.jobs.store import JobStore
from dynamic_mcp.observability import StructuredLogger

logger = logging.getLogger(__name__)


class SignalableProcess(Protocol):
    """Subset of ``asyncio.subprocess.Process`` used for shutdown."""

    @property
    def returncode(self) -> int | None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...


@dataclass(slots=True)
class _Watch:
    timeout_ms: int
    timer: asyncio.TimerHandle | None = None
    process: SignalableProcess | None = None
    tool_logger: StructuredLogger | None = field(default=None, repr=False)


class TimeoutSupervisor:
    """Force overrunning jobs to ``failed`` and stop their subprocesses.

    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    ) -> None:
        self.store = store
        self.kill_grace_seconds = kill_grace_seconds
        self._watches: dict[str, _Watch] = {}

    def attach(
        self,
        job_id: str,
        timeout_ms: int,
        *,
        tool_logger: StructuredLogger | None = None,
    ) -> bool:
        """Arm the timer for a job. Non-positive budgets run unbounded."""

        if timeout_ms <= 0:
            return False
        loop = asyncio.get_running_loop()
        watch = _Watch(timeout_ms=timeout_ms, tool_logger=tool_logger)
        watch.timer = loop.call_later(timeout_ms / 1000, self._expire, job_id)
        self._watches[job_id] = watch
        return True

    def bind_process(self, job_id: str, process: SignalableProcess) -> None:
        """Remember the job's subprocess so a timeout can signal it."""

        watch = self._watches.get(job_id)
        if watch is not None:
            watch.process = process
            return

        job = self.store.get(job_id)
        if job is not None and job.timed_out:
            # Timer fired before the spawn completed.
            _terminate(process)
            self._schedule_kill(process)

    def cancel(self, job_id: str) -> None:
        """Disarm the timer; safe to call for unknown or expired jobs."""

        watch = self._watches.pop(job_id, None)
        if watch is not None and watch.timer is not None:
            watch.timer.cancel()

    def is_watching(self, job_id: str) -> bool:
        return job_id in self._watches

    def _expire(self, job_id: str) -> None:
        watch = self._watches.pop(job_id, None)
        if watch is None:
            return

        job = self.store.finalize(
            job_id,
            TaskResult(
                exit_code=-1,
                stdout="",
                stderr=f"Timed out after {watch.timeout_ms}ms",
            ),
            timed_out=True,
        )
        if job is None:
            return

        logger.warning("Job %s timed out after %sms", job_id, watch.timeout_ms)
        if watch.tool_logger is not None:
            watch.tool_logger.warning(
                "steps",
                "job_timeout",
                {"jobId": job_id, "timeoutMs": watch.timeout_ms},
            )

        if watch.process is not None:
            _terminate(watch.process)
            self._schedule_kill(watch.process)

    def _schedule_kill(self, process: SignalableProcess) -> None:
        loop = asyncio.get_running_loop()
        loop.call_later(self.kill_grace_seconds, _kill_if_alive, process)


def _terminate(process: SignalableProcess) -> None:
    try:
        process.terminate()
    except OSError:
        logger.debug("SIGTERM failed; process already gone", exc_info=True)


def _kill_if_alive(process: SignalableProcess) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except OSError:
        logger.debug("SIGKILL failed; process already gone", exc_info=True)
