from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from dynamic_mcp import __version__
from dynamic_mcp.config import Settings
from dynamic_mcp.controllers import ServeCommand, ServerCliController, resolve_server_name
from dynamic_mcp.contracts import ServerConfig, ToolConfig
from dynamic_mcp.main import dynamic_mcp_server

pytestmark = [
    allure.epic("Server CLI"),
    allure.feature("Startup & Handshake"),
]


def _write_config(tmp_path: Path, payload: dict, name: str = "review-tools.json") -> Path:
    path = tmp_path / name
    path.write_text(json.dumps(payload), "utf-8")
    return path


_CONFIG = {
    "model": "claude",
    "tools": [
        {
            "name": "review",
            "description": "Review a file",
            "command": "claude",
            "args": ["-p", "review"],
        },
        {"name": "ask", "description": "Ask", "async": True},
    ],
}


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(dynamic_mcp_server, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
    assert "dynamic-mcp-server" in result.output


def test_handshake_and_exit_prints_summary(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, _CONFIG)

    result = CliRunner().invoke(
        dynamic_mcp_server,
        ["--config", str(config_path), "--handshake-and-exit"],
    )

    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary == {
        "mcp_version": "1.0",
        "server_name": "review-tools-mcp-server",
        "server_version": __version__,
        "tools": [
            {"toolName": "review", "command": "claude", "args": ["-p", "review"]},
            {"toolName": "ask", "command": None, "args": None},
        ],
    }


def test_handshake_uses_configured_name(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {**_CONFIG, "name": "team-reviewer"})

    result = CliRunner().invoke(
        dynamic_mcp_server,
        ["--config", str(config_path), "--handshake-and-exit"],
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["server_name"] == "team-reviewer"


def test_missing_config_exits_with_error(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        dynamic_mcp_server,
        ["--config", str(tmp_path / "absent.json"), "--handshake-and-exit"],
    )

    assert result.exit_code == 1
    assert "Configuration file not found" in result.output


def test_invalid_logging_environment_exits_with_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, _CONFIG)

    result = CliRunner().invoke(
        dynamic_mcp_server,
        ["--config", str(config_path)],
        env={"DYNAMIC_MCP_LOG_ENABLED": "maybe"},
    )

    assert result.exit_code == 1
    assert "DYNAMIC_MCP_LOG_ENABLED" in result.output


def test_config_is_required() -> None:
    result = CliRunner().invoke(dynamic_mcp_server, [])

    assert result.exit_code == 2


def test_resolve_server_name() -> None:
    config = ServerConfig(model="claude", tools=[ToolConfig(name="t", description="d")])

    assert resolve_server_name(config, Path("/etc/mcp/my-tools.json")) == "my-tools-mcp-server"
    config.name = "explicit"
    assert resolve_server_name(config, Path("/etc/mcp/my-tools.json")) == "explicit"


def test_controller_prepares_server_from_flags(tmp_path: Path) -> None:
    prefix_file = tmp_path / "prefix.txt"
    prefix_file.write_text("House rules", "utf-8")
    controller = ServerCliController(settings=Settings.from_env(env={}))

    result = controller.prepare(
        ServeCommand(
            config_path=_write_config(tmp_path, _CONFIG),
            prompt=str(prefix_file),
            run_async=True,
            log_level="debug",
            log_destination=str(tmp_path / "events.jsonl"),
            log_categories="steps,requests",
        ),
    )

    server = result.server
    assert result.lines == []
    assert server is not None
    assert server.name == "review-tools-mcp-server"
    assert server.dispatcher.prompt_prefix == "House rules"
    assert server.bindings["review"].run_async is True
    assert server.event_logger is not None
    assert server.event_logger.settings.level == "debug"
    assert server.event_logger.settings.categories == ("steps", "requests")
    server.logger_factory.close()


def test_controller_handshake_does_not_build_server(tmp_path: Path) -> None:
    controller = ServerCliController(settings=Settings.from_env(env={}))

    result = controller.prepare(
        ServeCommand(config_path=_write_config(tmp_path, _CONFIG), handshake_and_exit=True),
    )

    assert result.server is None
    assert json.loads(result.lines[0])["tools"][1]["toolName"] == "ask"
