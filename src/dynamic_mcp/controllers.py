"""Controllers for server CLI commands."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from dynamic_mcp.config import LoggingOverrides, Settings
from dynamic_mcp.contracts import ServerConfig, load_config
from dynamic_mcp.prompts import load_prompt_prefix
from dynamic_mcp.server import McpToolServer, build_server, create_handshake_summary

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServeCommand:
    """CLI input for serving configured tools."""

    config_path: Path
    prompt: str | None = None
    run_async: bool = False
    handshake_and_exit: bool = False
    log_level: str | None = None
    log_format: str | None = None
    log_destination: str | None = None
    log_categories: str | None = None
    log_payloads: bool | None = None
    log_payload_max_chars: int | None = None
    no_logging: bool = False

    def logging_overrides(self) -> LoggingOverrides:
        return LoggingOverrides(
            level=self.log_level,
            format=self.log_format,
            destination=self.log_destination,
            categories=(
                tuple(part.strip() for part in self.log_categories.split(","))
                if self.log_categories
                else None
            ),
            log_payloads=self.log_payloads,
            payload_max_chars=self.log_payload_max_chars,
        )


@dataclass(slots=True)
class ServeResult:
    """Output lines for the CLI plus the server to run, if any."""

    lines: list[str]
    server: McpToolServer | None = None


class ServerCliController:
    """Loads configuration and wires the MCP server for the CLI."""

    def __init__(self, *, settings: Settings | None = None) -> None:
        self._settings = settings

    def prepare(self, command: ServeCommand) -> ServeResult:
        """Validate configuration; build the server unless only a handshake was requested."""

        config = load_config(command.config_path)
        server_name = resolve_server_name(config, command.config_path)
        if command.handshake_and_exit:
            summary = create_handshake_summary(config, server_name)
            return ServeResult(lines=[json.dumps(summary, ensure_ascii=False)])

        settings = self._settings or Settings.from_env()
        server = build_server(
            config=config,
            server_name=server_name,
            settings=settings,
            server_async=command.run_async or bool(config.run_async),
            prompt_prefix=load_prompt_prefix(command.prompt),
            logging_cli=command.logging_overrides(),
            logging_disabled=command.no_logging,
        )
        logger.info(
            "Serving %d tools as %s (model=%s)",
            len(server.bindings),
            server_name,
            config.model,
        )
        return ServeResult(lines=[], server=server)

    def serve(self, command: ServeCommand) -> list[str]:
        """Run the stdio server until the client disconnects."""

        result = self.prepare(command)
        if result.server is not None:
            asyncio.run(result.server.run_stdio())
        return result.lines


def resolve_server_name(config: ServerConfig, config_path: Path) -> str:
    """Configured ``name``, else derived from the config file stem."""

    if config.name:
        return config.name
    return f"{Path(config_path).stem}-mcp-server"
