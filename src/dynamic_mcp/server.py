"""MCP server exposing configured CLI agent tools over stdio."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from dynamic_mcp import __version__
from dynamic_mcp.backend.base import TaskRunner
from dynamic_mcp.backend.cli_backend import CliAgentBackend
from dynamic_mcp.config import (
    LoggingOverrides,
    Settings,
    resolve_logging_settings,
    resolve_tool_logging_settings,
)
from dynamic_mcp.contracts import STATUS_TOOL_NAME, ServerConfig, ToolInput
from dynamic_mcp.dispatch import (
    ToolBinding,
    ToolDispatcher,
    ToolResponse,
    resolve_tool_async_flag,
)
from dynamic_mcp.jobs.store import JobStore
from dynamic_mcp.jobs.supervisor import TimeoutSupervisor
from dynamic_mcp.observability import LoggerFactory, StructuredLogger
from dynamic_mcp.prompts import load_tool_prompt

logger = logging.getLogger(__name__)

HANDSHAKE_MCP_VERSION = "1.0"

SYNC_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "exitCode": {"type": "number"},
        "stdout": {"type": "string"},
        "stderr": {"type": "string"},
    },
    "required": ["exitCode", "stdout", "stderr"],
}

ASYNC_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "jobId": {"type": "string"},
        "status": {"type": "string"},
        "message": {"type": "string"},
    },
    "required": ["jobId", "status", "message"],
}

STATUS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "jobId": {"type": "string", "description": "Job id returned by an async tool."},
    },
    "required": ["jobId"],
}

STATUS_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "status": {"type": "string", "enum": ["running", "completed", "failed"]},
        "toolName": {"type": ["string", "null"]},
        "startedAt": {"type": ["string", "null"]},
        "completedAt": {"type": ["string", "null"]},
        "result": {
            "anyOf": [
                {"type": "null"},
                SYNC_OUTPUT_SCHEMA,
            ],
        },
        "timedOut": {"type": "boolean"},
        "error": {"type": "string"},
    },
    "required": ["id", "status"],
}

_CWD_PROPERTY: dict[str, Any] = {
    "type": "string",
    "description": "Working directory for the agent process. Defaults to the server directory.",
}

_JSON_TYPES: dict[str, dict[str, Any]] = {
    "string": {"type": "string"},
    "number": {"type": "number"},
    "boolean": {"type": "boolean"},
    "array": {"type": "array", "items": {}},
    "object": {"type": "object", "additionalProperties": True},
}


class McpToolServer:
    """Binds configured tools and the job status tool to an MCP server."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        name: str,
        dispatcher: ToolDispatcher,
        bindings: list[ToolBinding],
        version: str = __version__,
        event_logger: StructuredLogger | None = None,
        logger_factory: LoggerFactory | None = None,
    ) -> None:
        self.name = name
        self.version = version
        self.dispatcher = dispatcher
        self.bindings = {binding.tool.name: binding for binding in bindings}
        self.event_logger = event_logger
        self.logger_factory = logger_factory
        self.tools = self._build_tools()
        self.server: Server = Server(name, version=version)
        self._register_handlers()

    @property
    def has_async_tools(self) -> bool:
        return any(binding.run_async for binding in self.bindings.values())

    async def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any] | None,
    ) -> types.CallToolResult:
        """Route one ``tools/call`` request."""

        if name == STATUS_TOOL_NAME and self.has_async_tools:
            job_id = (arguments or {}).get("jobId")
            if not isinstance(job_id, str) or not job_id:
                return _error_result("jobId is required")
            return _to_call_result(self.dispatcher.job_status(job_id))

        binding = self.bindings.get(name)
        if binding is None:
            if self.event_logger is not None:
                self.event_logger.warning("requests", "unknown_tool", {"toolName": name})
            return _error_result(f"Unknown tool: {name}")
        return _to_call_result(await self.dispatcher.invoke(binding, arguments))

    async def run_stdio(self) -> None:
        """Serve until the client closes stdin."""

        if self.event_logger is not None:
            self.event_logger.info(
                "steps",
                "server_started",
                {
                    "version": self.version,
                    "tools": sorted(self.bindings),
                    "asyncTools": sorted(
                        name for name, binding in self.bindings.items() if binding.run_async
                    ),
                    "jobTimeoutMs": self.dispatcher.job_timeout_ms,
                },
            )
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            if self.logger_factory is not None:
                self.logger_factory.close()

    def _build_tools(self) -> list[types.Tool]:
        tools = [build_tool_descriptor(binding) for binding in self.bindings.values()]
        if self.has_async_tools:
            tools.append(build_status_tool())
        return tools

    def _register_handlers(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return self.tools

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
            return await self.call_tool(name, arguments)


def build_input_schema(inputs: list[ToolInput]) -> dict[str, Any]:
    """JSON schema for a tool's declared inputs plus the optional ``cwd``."""

    properties: dict[str, Any] = {}
    required: list[str] = []
    for tool_input in inputs:
        schema = dict(_JSON_TYPES[tool_input.type])
        if tool_input.description:
            schema["description"] = tool_input.description
        properties[tool_input.name] = schema
        if tool_input.required:
            required.append(tool_input.name)
    properties.setdefault("cwd", dict(_CWD_PROPERTY))

    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def build_tool_descriptor(binding: ToolBinding) -> types.Tool:
    tool = binding.tool
    if binding.run_async:
        description = (
            f"{tool.description} (runs asynchronously: returns a jobId, "
            f"poll {STATUS_TOOL_NAME} for the result)"
        )
        output_schema = ASYNC_OUTPUT_SCHEMA
    else:
        description = tool.description
        output_schema = SYNC_OUTPUT_SCHEMA
    return types.Tool(
        name=tool.name,
        description=description,
        inputSchema=build_input_schema(tool.inputs),
        outputSchema=output_schema,
    )


def build_status_tool() -> types.Tool:
    return types.Tool(
        name=STATUS_TOOL_NAME,
        description="Get the status and result of an asynchronous job by its jobId.",
        inputSchema=STATUS_INPUT_SCHEMA,
        outputSchema=STATUS_OUTPUT_SCHEMA,
    )


def build_server(  # noqa: PLR0913
    *,
    config: ServerConfig,
    server_name: str,
    settings: Settings,
    server_async: bool = False,
    prompt_prefix: str | None = None,
    logging_cli: LoggingOverrides | None = None,
    logging_disabled: bool = False,
    runner: TaskRunner | None = None,
) -> McpToolServer:
    """Assemble job store, supervisor, dispatcher and tool bindings."""

    base_logging = resolve_logging_settings(
        config.logging,
        logging_cli,
        cli_disabled=logging_disabled,
        env=settings.logging_env,
    )
    factory = LoggerFactory(server_name=server_name)
    store = JobStore()
    dispatcher = ToolDispatcher(
        store=store,
        supervisor=TimeoutSupervisor(
            store=store,
            kill_grace_seconds=settings.jobs.kill_grace_seconds,
        ),
        runner=runner or CliAgentBackend(),
        model=config.model,
        model_id=config.model_id,
        prompt_prefix=prompt_prefix,
        job_timeout_ms=settings.jobs.timeout_ms,
    )
    bindings = [
        ToolBinding(
            tool=tool,
            prompt_template=load_tool_prompt(tool),
            run_async=resolve_tool_async_flag(tool, server_async),
            logger=factory.create(
                resolve_tool_logging_settings(base_logging, tool.logging),
                toolName=tool.name,
            ),
        )
        for tool in config.tools
    ]
    logger.debug("Built %d tool bindings for %s", len(bindings), server_name)
    return McpToolServer(
        name=server_name,
        dispatcher=dispatcher,
        bindings=bindings,
        event_logger=factory.create(base_logging),
        logger_factory=factory,
    )


def create_handshake_summary(config: ServerConfig, server_name: str) -> dict[str, Any]:
    """Startup summary printed by ``--handshake-and-exit``."""

    return {
        "mcp_version": HANDSHAKE_MCP_VERSION,
        "server_name": server_name,
        "server_version": __version__,
        "tools": [
            {
                "toolName": tool.name,
                "command": tool.command,
                "args": tool.args,
            }
            for tool in config.tools
        ],
    }


def _to_call_result(response: ToolResponse) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=response.text)],
        structuredContent=response.structured,
        isError=response.is_error,
    )


def _error_result(message: str) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=message)],
        isError=True,
    )
