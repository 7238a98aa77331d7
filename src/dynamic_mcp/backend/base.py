"""Backend interface for running one CLI agent invocation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from dynamic_mcp.jobs.models import TaskResult

SUPPORTED_AGENTS = ("claude", "codex", "gemini")


@dataclass(frozen=True, slots=True)
class AgentSpec:
    """Executable and fixed leading arguments for one CLI agent."""

    command: str
    base_args: tuple[str, ...] = ()


DEFAULT_AGENTS: dict[str, AgentSpec] = {
    "claude": AgentSpec(
        command="claude",
        base_args=("--dangerously-skip-permissions", "-p"),
    ),
    "codex": AgentSpec(
        command="codex",
        base_args=(
            "--dangerously-bypass-approvals-and-sandbox",
            "--search",
            "exec",
            "--dangerously-bypass-approvals-and-sandbox",
            "--skip-git-repo-check",
        ),
    ),
    "gemini": AgentSpec(
        command="gemini",
        base_args=("-y", "-p"),
    ),
}


@dataclass(slots=True)
class BackendRunRequest:
    """Inputs required to execute one task."""

    model: str
    task: str
    model_id: str | None = None
    cwd: str | None = None


SpawnCallback = Callable[[Any], None]


class TaskRunner(Protocol):
    """Protocol implemented by backend runners."""

    async def run(
        self,
        request: BackendRunRequest,
        *,
        on_spawn: SpawnCallback | None = None,
    ) -> TaskResult:
        """Run a task to completion; never raises."""
