"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from dynamic_mcp.backend.base import AgentSpec, BackendRunRequest, SpawnCallback
from dynamic_mcp.jobs.models import TaskResult

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
ECHO_AGENT_MODULE = "dynamic_mcp.backend.echo_agent"


@pytest.fixture()
def echo_agent_spec(monkeypatch) -> Callable[..., AgentSpec]:
    """Factory for agent specs that run the bundled echo agent in a subprocess."""

    existing = os.environ.get("PYTHONPATH")
    monkeypatch.setenv(
        "PYTHONPATH",
        os.pathsep.join(part for part in (str(SRC_DIR), existing) if part),
    )

    def _spec(*options: str) -> AgentSpec:
        return AgentSpec(
            command=sys.executable,
            base_args=("-m", ECHO_AGENT_MODULE, *options),
        )

    return _spec


class FakeProcess:
    """Records shutdown signals instead of sending them."""

    def __init__(self, *, exits_on_terminate: bool = True) -> None:
        self.returncode: int | None = None
        self.signals: list[str] = []
        self._exits_on_terminate = exits_on_terminate

    def terminate(self) -> None:
        self.signals.append("terminate")
        if self._exits_on_terminate:
            self.returncode = -15

    def kill(self) -> None:
        self.signals.append("kill")
        self.returncode = -9


class ScriptedRunner:
    """Task runner returning a fixed result after an optional delay."""

    def __init__(
        self,
        result: TaskResult,
        *,
        delay_seconds: float = 0.0,
        process: FakeProcess | None = None,
    ) -> None:
        self.result = result
        self.delay_seconds = delay_seconds
        self.process = process
        self.requests: list[BackendRunRequest] = []

    async def run(
        self,
        request: BackendRunRequest,
        *,
        on_spawn: SpawnCallback | None = None,
    ) -> TaskResult:
        self.requests.append(request)
        if on_spawn is not None and self.process is not None:
            on_spawn(self.process)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return self.result
