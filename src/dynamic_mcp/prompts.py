"""Task prompt composition for tool invocations."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dynamic_mcp.contracts import ConfigError, ToolConfig

_PLACEHOLDER = re.compile(r"\{\{([^}]+)\}\}")


def load_tool_prompt(tool: ToolConfig) -> str | None:
    """Prompt template for a tool; an existing ``promptFile`` wins over ``prompt``."""

    if tool.prompt_file:
        path = Path(tool.prompt_file).expanduser().resolve()
        if path.exists():
            try:
                return path.read_text("utf-8")
            except OSError as error:
                raise ConfigError(
                    f"Error reading promptFile for tool '{tool.name}': {error}",
                ) from error
    return tool.prompt or None


def load_prompt_prefix(prompt_arg: str | None) -> str | None:
    """``--prompt`` value: file content when it names an existing file, else the text."""

    if not prompt_arg:
        return None
    path = Path(prompt_arg).expanduser()
    if path.is_file():
        try:
            return path.read_text("utf-8")
        except OSError as error:
            raise ConfigError(f"Error reading prompt file: {error}") from error
    return prompt_arg


def substitute_prompt_variables(template: str | None, params: Mapping[str, Any]) -> str:
    """Replace ``{{key}}`` placeholders; unknown keys and None become empty."""

    def _replace(match: re.Match[str]) -> str:
        value = params.get(match.group(1))
        return "" if value is None else _stringify(value)

    return _PLACEHOLDER.sub(_replace, template or "")


def build_task_prompt(
    tool: ToolConfig,
    template: str | None,
    params: Mapping[str, Any],
    prefix: str | None,
) -> str:
    """Compose the task string handed to the agent.

    Without a template the first string-typed input carrying a string value is
    used as the prompt, and failing that the arguments are sent as JSON.
    """

    if template:
        task = substitute_prompt_variables(template, params)
    else:
        task = _first_string_input(tool, params)
        if task is None:
            task = json.dumps(dict(params), ensure_ascii=False, separators=(",", ":"))
    return f"{prefix}\n{task}" if prefix else task


def _first_string_input(tool: ToolConfig, params: Mapping[str, Any]) -> str | None:
    for tool_input in tool.inputs:
        if tool_input.type != "string":
            continue
        value = params.get(tool_input.name)
        if isinstance(value, str):
            return value
    return None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
