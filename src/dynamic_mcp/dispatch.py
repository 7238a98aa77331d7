"""Synchronous vs. asynchronous dispatch of tool invocations."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from dynamic_mcp.backend.base import BackendRunRequest, TaskRunner
from dynamic_mcp.config import DEFAULT_JOB_TIMEOUT_MS
from dynamic_mcp.contracts import STATUS_TOOL_NAME, ToolConfig
from dynamic_mcp.jobs.models import Job, JobStatus, TaskResult
from dynamic_mcp.jobs.store import JobStore
from dynamic_mcp.jobs.supervisor import TimeoutSupervisor
from dynamic_mcp.observability import StructuredLogger
from dynamic_mcp.prompts import build_task_prompt


@dataclass(slots=True)
class ToolResponse:
    """Protocol-neutral tool call result."""

    text: str
    structured: dict[str, Any]
    is_error: bool = False


@dataclass(slots=True)
class ToolBinding:
    """A configured tool with everything resolved at startup."""

    tool: ToolConfig
    prompt_template: str | None
    run_async: bool
    logger: StructuredLogger | None = None


def resolve_tool_async_flag(tool: ToolConfig, server_async: bool) -> bool:
    """Per-tool ``async`` wins; otherwise the server-wide default applies."""

    return server_async if tool.run_async is None else tool.run_async


class ToolDispatcher:
    """Runs tool invocations inline or as background jobs."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: JobStore,
        supervisor: TimeoutSupervisor,
        runner: TaskRunner,
        model: str,
        model_id: str | None = None,
        prompt_prefix: str | None = None,
        job_timeout_ms: int = DEFAULT_JOB_TIMEOUT_MS,
    ) -> None:
        self.store = store
        self.supervisor = supervisor
        self.runner = runner
        self.model = model
        self.model_id = model_id
        self.prompt_prefix = prompt_prefix
        self.job_timeout_ms = job_timeout_ms
        self._background: set[asyncio.Task[None]] = set()

    async def invoke(
        self,
        binding: ToolBinding,
        arguments: Mapping[str, Any] | None,
    ) -> ToolResponse:
        """Handle one call of a configured tool."""

        params = dict(arguments or {})
        cwd = params.pop("cwd", None)
        task = build_task_prompt(binding.tool, binding.prompt_template, params, self.prompt_prefix)
        request = BackendRunRequest(
            model=self.model,
            task=task,
            model_id=self.model_id,
            cwd=str(cwd) if cwd else None,
        )
        tool_logger = binding.logger
        started = time.monotonic()
        if tool_logger is not None:
            tool_logger.info(
                "requests",
                "tool_request",
                {
                    "async": binding.run_async,
                    "cwd": request.cwd,
                    "arguments": sorted(params),
                    "prompt": tool_logger.payload(task),
                },
            )

        if binding.run_async:
            job_id = self.start_job(binding.tool.name, request, tool_logger=tool_logger)
            response = ToolResponse(
                text=(
                    f"Job {job_id} started. "
                    f"Poll {STATUS_TOOL_NAME} with this jobId to get the result."
                ),
                structured={
                    "jobId": job_id,
                    "status": JobStatus.RUNNING.value,
                    "message": (
                        f"Task is running in the background. Call {STATUS_TOOL_NAME} "
                        "with the jobId to check for completion."
                    ),
                },
            )
        else:
            result = await self.runner.run(request)
            response = ToolResponse(
                text=f"stdout: {result.stdout}\nstderr: {result.stderr}",
                structured=result.to_payload(),
                is_error=not result.ok,
            )

        if tool_logger is not None:
            tool_logger.info(
                "responses",
                "tool_response",
                {
                    "isError": response.is_error,
                    "durationMs": _elapsed_ms(started),
                    **_response_fields(response, tool_logger),
                },
            )
        return response

    def start_job(
        self,
        tool_name: str,
        request: BackendRunRequest,
        *,
        tool_logger: StructuredLogger | None = None,
    ) -> str:
        """Register a running job and execute it in the background.

        The job is in the store before its id is returned; the subprocess is
        spawned afterwards by the scheduled task.
        """

        job = self.store.create(tool_name=tool_name, timeout_ms=self.job_timeout_ms)
        self.supervisor.attach(job.job_id, job.timeout_ms, tool_logger=tool_logger)
        if tool_logger is not None:
            tool_logger.info(
                "steps",
                "job_started",
                {"jobId": job.job_id, "timeoutMs": job.timeout_ms},
            )

        background = asyncio.get_running_loop().create_task(
            self._run_job(job.job_id, request, tool_logger),
            name=f"dynamic-mcp-{job.job_id}",
        )
        self._background.add(background)
        background.add_done_callback(self._background.discard)
        return job.job_id

    def complete_job(
        self,
        job_id: str,
        result: TaskResult,
        *,
        tool_logger: StructuredLogger | None = None,
    ) -> Job | None:
        """Finalize a job from its natural completion; a no-op after a timeout."""

        self.supervisor.cancel(job_id)
        job = self.store.finalize(job_id, result)
        if job is None:
            if tool_logger is not None:
                tool_logger.debug("steps", "job_finalize_skipped", {"jobId": job_id})
            return None

        if tool_logger is not None:
            tool_logger.info(
                "steps",
                "job_finished",
                {
                    "jobId": job_id,
                    "status": job.status.value,
                    "exitCode": result.exit_code,
                    "durationMs": _job_duration_ms(job),
                    "stdout": tool_logger.payload(result.stdout),
                    "stderr": tool_logger.payload(result.stderr),
                },
            )
        return job

    def job_status(self, job_id: str) -> ToolResponse:
        """Read-only status lookup."""

        snapshot = self.store.snapshot(job_id)
        return ToolResponse(
            text=json.dumps(snapshot, ensure_ascii=False, indent=2),
            structured=snapshot,
            is_error=snapshot["status"] == JobStatus.FAILED.value,
        )

    async def drain(self) -> None:
        """Wait for all background jobs scheduled so far."""

        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _run_job(
        self,
        job_id: str,
        request: BackendRunRequest,
        tool_logger: StructuredLogger | None,
    ) -> None:
        result = await self.runner.run(
            request,
            on_spawn=lambda process: self.supervisor.bind_process(job_id, process),
        )
        self.complete_job(job_id, result, tool_logger=tool_logger)


def _response_fields(response: ToolResponse, tool_logger: StructuredLogger) -> dict[str, Any]:
    structured = response.structured
    if "jobId" in structured:
        return {"jobId": structured["jobId"]}
    return {
        "exitCode": structured.get("exitCode"),
        "stdout": tool_logger.payload(structured.get("stdout")),
        "stderr": tool_logger.payload(structured.get("stderr")),
    }


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _job_duration_ms(job: Job) -> int | None:
    if job.completed_at is None:
        return None
    return int((job.completed_at - job.started_at).total_seconds() * 1000)
