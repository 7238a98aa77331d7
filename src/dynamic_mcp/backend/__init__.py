"""CLI agent backend implementations."""

from dynamic_mcp.backend.base import (
    DEFAULT_AGENTS,
    SUPPORTED_AGENTS,
    AgentSpec,
    BackendRunRequest,
    TaskRunner,
)
from dynamic_mcp.backend.cli_backend import BackendRunError, CliAgentBackend, build_run_args

__all__ = [
    "DEFAULT_AGENTS",
    "SUPPORTED_AGENTS",
    "AgentSpec",
    "BackendRunError",
    "BackendRunRequest",
    "CliAgentBackend",
    "TaskRunner",
    "build_run_args",
]
