"""Server configuration file contract and loader."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dynamic_mcp.backend.base import SUPPORTED_AGENTS
from dynamic_mcp.config import LoggingOverrides, normalize_log_categories

INPUT_TYPES = ("string", "number", "boolean", "array", "object")
STATUS_TOOL_NAME = "get_job_status"


class ConfigError(ValueError):
    """Configuration file is missing or malformed."""


@dataclass(slots=True)
class ToolInput:
    """One declared tool parameter."""

    name: str
    type: str
    description: str
    required: bool = True


@dataclass(slots=True)
class ToolConfig:
    """One tool exposed by the server."""

    name: str
    description: str
    inputs: list[ToolInput] = field(default_factory=list)
    prompt: str | None = None
    prompt_file: str | None = None
    run_async: bool | None = None
    logging: LoggingOverrides | None = None
    command: str | None = None
    args: list[Any] | None = None


@dataclass(slots=True)
class ServerConfig:
    """Top-level configuration file."""

    model: str
    tools: list[ToolConfig]
    name: str | None = None
    model_id: str | None = None
    run_async: bool | None = None
    logging: LoggingOverrides | None = None


def load_config(path: Path) -> ServerConfig:
    """Read and validate a JSON configuration file."""

    resolved = path.expanduser().resolve()
    if not resolved.exists():
        raise ConfigError(f"Configuration file not found: {resolved}")
    try:
        raw = json.loads(resolved.read_text("utf-8"))
        return parse_config(raw)
    except (OSError, ValueError, TypeError) as error:
        raise ConfigError(f"Error processing configuration file: {error}") from error


def parse_config(raw: Any) -> ServerConfig:
    """Validate an already decoded configuration document."""

    if not isinstance(raw, dict):
        raise TypeError("config must be a JSON object")

    model = raw.get("model")
    if model not in SUPPORTED_AGENTS:
        raise ValueError(
            f"config.model must be one of {', '.join(SUPPORTED_AGENTS)}, got {model!r}",
        )
    raw_tools = raw.get("tools")
    if not isinstance(raw_tools, list) or not raw_tools:
        raise ValueError("config.tools must be a non-empty array")

    tools = [_parse_tool(item, index) for index, item in enumerate(raw_tools)]
    names = [tool.name for tool in tools]
    if STATUS_TOOL_NAME in names:
        raise ValueError(f"Tool name {STATUS_TOOL_NAME!r} is reserved for the job status query")
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate tool names: {', '.join(duplicates)}")

    return ServerConfig(
        model=model,
        tools=tools,
        name=_optional_str(raw, "name", "config"),
        model_id=_optional_str(raw, "modelId", "config"),
        run_async=_optional_bool(raw, "async", "config"),
        logging=_parse_logging(raw.get("logging"), "config.logging"),
    )


def _parse_tool(raw: Any, index: int) -> ToolConfig:
    where = f"config.tools[{index}]"
    if not isinstance(raw, dict):
        raise TypeError(f"{where} must be an object")

    name = raw.get("name")
    description = raw.get("description")
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"{where}.name must be a non-empty string")
    if not isinstance(description, str):
        raise TypeError(f"{where}.description must be a string")

    raw_inputs = raw.get("inputs", [])
    if not isinstance(raw_inputs, list):
        raise TypeError(f"{where}.inputs must be an array")

    raw_args = raw.get("args")
    if raw_args is not None and not isinstance(raw_args, list):
        raise TypeError(f"{where}.args must be an array when provided")

    return ToolConfig(
        name=name,
        description=description,
        inputs=[
            _parse_input(item, f"{where}.inputs[{position}]")
            for position, item in enumerate(raw_inputs)
        ],
        prompt=_optional_str(raw, "prompt", where),
        prompt_file=_optional_str(raw, "promptFile", where),
        run_async=_optional_bool(raw, "async", where),
        logging=_parse_logging(raw.get("logging"), f"{where}.logging"),
        command=_optional_str(raw, "command", where),
        args=raw_args,
    )


def _parse_input(raw: Any, where: str) -> ToolInput:
    if not isinstance(raw, dict):
        raise TypeError(f"{where} must be an object")
    name = raw.get("name")
    input_type = raw.get("type")
    description = raw.get("description")
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"{where}.name must be a non-empty string")
    if input_type not in INPUT_TYPES:
        raise ValueError(f"{where}.type must be one of {', '.join(INPUT_TYPES)}")
    if not isinstance(description, str):
        raise TypeError(f"{where}.description must be a string")
    required = _optional_bool(raw, "required", where)
    return ToolInput(
        name=name,
        type=input_type,
        description=description,
        required=True if required is None else required,
    )


def _parse_logging(raw: Any, where: str) -> LoggingOverrides | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise TypeError(f"{where} must be an object")

    categories = raw.get("categories")
    if categories is not None and not isinstance(categories, (str, list)):
        raise TypeError(f"{where}.categories must be a string or an array")
    max_chars = raw.get("payloadMaxChars")
    if max_chars is not None and (
        isinstance(max_chars, bool) or not isinstance(max_chars, int) or max_chars <= 0
    ):
        raise ValueError(f"{where}.payloadMaxChars must be a positive integer")

    return LoggingOverrides(
        enabled=_optional_bool(raw, "enabled", where),
        level=_optional_str(raw, "level", where),
        format=_optional_str(raw, "format", where),
        destination=_optional_str(raw, "destination", where),
        categories=normalize_log_categories(categories) if categories is not None else None,
        log_payloads=_optional_bool(raw, "logPayloads", where),
        payload_max_chars=max_chars,
    )


def _optional_str(raw: dict[str, Any], key: str, where: str) -> str | None:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        raise TypeError(f"{where}.{key} must be a string when provided")
    return value


def _optional_bool(raw: dict[str, Any], key: str, where: str) -> bool | None:
    value = raw.get(key)
    if value is not None and not isinstance(value, bool):
        raise TypeError(f"{where}.{key} must be a boolean when provided")
    return value
