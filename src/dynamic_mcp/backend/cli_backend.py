"""Subprocess-based backend runner for CLI agents."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping

from dynamic_mcp.backend.base import (
    DEFAULT_AGENTS,
    AgentSpec,
    BackendRunRequest,
    SpawnCallback,
)
from dynamic_mcp.jobs.models import TaskResult

logger = logging.getLogger(__name__)


class BackendRunError(RuntimeError):
    """Agent command could not be assembled."""


class CliAgentBackend:
    """Spawn one agent process per task and capture its output."""

    def __init__(self, agents: Mapping[str, AgentSpec] | None = None) -> None:
        self.agents = dict(DEFAULT_AGENTS if agents is None else agents)

    async def run(
        self,
        request: BackendRunRequest,
        *,
        on_spawn: SpawnCallback | None = None,
    ) -> TaskResult:
        """Execute the task and wait for exit.

        Every failure is folded into the result as ``exit_code=-1`` with the
        error message on stderr; nothing is raised to the caller.
        """

        try:
            run_args = build_run_args(
                agents=self.agents,
                model=request.model,
                model_id=request.model_id,
                task=request.task,
            )
            process = await asyncio.create_subprocess_exec(
                *run_args,
                cwd=request.cwd or os.getcwd(),
                env=os.environ.copy(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except Exception as error:  # noqa: BLE001
            logger.debug("Failed to start agent %r", request.model, exc_info=True)
            return TaskResult(exit_code=-1, stdout="", stderr=_error_message(error))

        if on_spawn is not None:
            on_spawn(process)

        try:
            stdout, stderr = await process.communicate()
        except Exception as error:  # noqa: BLE001
            logger.debug("Failed while waiting for agent %r", request.model, exc_info=True)
            return TaskResult(exit_code=-1, stdout="", stderr=_error_message(error))

        return TaskResult(
            exit_code=_normalize_exit_code(process.returncode),
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )


def build_run_args(
    *,
    agents: Mapping[str, AgentSpec],
    model: str,
    model_id: str | None,
    task: str,
) -> list[str]:
    """``[command, (--model <id>), *base_args, task]``"""

    spec = agents.get(model)
    if spec is None:
        raise BackendRunError(
            f"Unsupported model: {model!r}. Expected one of {', '.join(sorted(agents))}.",
        )
    args = [*spec.base_args, task]
    if model_id:
        args[:0] = ["--model", model_id]
    return [spec.command, *args]


def _normalize_exit_code(returncode: int | None) -> int:
    # Negative return codes mean death by signal.
    if returncode is None or returncode < 0:
        return -1
    return returncode


def _decode(raw: bytes | None) -> str:
    if not raw:
        return ""
    text = raw.decode("utf-8", errors="replace")
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def _error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__
