"""Runtime configuration for job execution and structured logging."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

DEFAULT_JOB_TIMEOUT_MS = 20 * 60 * 1000
DEFAULT_KILL_GRACE_SECONDS = 5.0
DEFAULT_PAYLOAD_MAX_CHARS = 2_000

LOG_CATEGORIES = ("requests", "responses", "steps")
LOG_LEVELS = ("debug", "info", "warn", "error")
LOG_FORMATS = ("json", "pretty")

_LEVEL_ALIASES = {"warning": "warn"}


@dataclass(slots=True)
class JobSettings:
    """Asynchronous job execution settings."""

    timeout_ms: int = DEFAULT_JOB_TIMEOUT_MS
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS


@dataclass(slots=True)
class LoggingOverrides:
    """Partial logging settings from one source (CLI, env, config, tool)."""

    enabled: bool | None = None
    level: str | None = None
    format: str | None = None
    destination: str | None = None
    categories: tuple[str, ...] | None = None
    log_payloads: bool | None = None
    payload_max_chars: int | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> LoggingOverrides:
        """Collect ``DYNAMIC_MCP_LOG_*`` variables."""

        source = os.environ if env is None else env
        categories_raw = _clean(source.get("DYNAMIC_MCP_LOG_CATEGORIES"))
        max_chars_raw = _clean(source.get("DYNAMIC_MCP_LOG_PAYLOAD_MAX_CHARS"))
        return cls(
            enabled=_parse_bool(
                "DYNAMIC_MCP_LOG_ENABLED",
                _clean(source.get("DYNAMIC_MCP_LOG_ENABLED")),
            ),
            level=_clean(source.get("DYNAMIC_MCP_LOG_LEVEL")),
            format=_clean(source.get("DYNAMIC_MCP_LOG_FORMAT")),
            destination=_clean(source.get("DYNAMIC_MCP_LOG_DESTINATION")),
            categories=normalize_log_categories(categories_raw) if categories_raw else None,
            log_payloads=_parse_bool(
                "DYNAMIC_MCP_LOG_PAYLOADS",
                _clean(source.get("DYNAMIC_MCP_LOG_PAYLOADS")),
            ),
            payload_max_chars=(
                _parse_positive_int("DYNAMIC_MCP_LOG_PAYLOAD_MAX_CHARS", max_chars_raw)
                if max_chars_raw
                else None
            ),
        )


@dataclass(slots=True)
class LoggingSettings:
    """Fully resolved logging settings for one server or tool."""

    enabled: bool = True
    level: str = "info"
    format: str = "json"
    destination: str = "stderr"
    categories: tuple[str, ...] = LOG_CATEGORIES
    log_payloads: bool = False
    payload_max_chars: int = DEFAULT_PAYLOAD_MAX_CHARS
    disabled_by_cli: bool = False

    def validate(self) -> None:
        """Raise configuration error on unsupported values."""

        if self.level not in LOG_LEVELS:
            raise ValueError(
                f"Unsupported log level: {self.level!r}. Expected one of {', '.join(LOG_LEVELS)}.",
            )
        if self.format not in LOG_FORMATS:
            raise ValueError(
                f"Unsupported log format: {self.format!r}. "
                f"Expected one of {', '.join(LOG_FORMATS)}.",
            )
        if not self.destination.strip():
            raise ValueError("Log destination must not be empty.")
        unknown = [category for category in self.categories if category not in LOG_CATEGORIES]
        if unknown:
            raise ValueError(f"Unsupported log categories: {', '.join(unknown)}")
        if self.payload_max_chars <= 0:
            raise ValueError("Log payload max chars must be a positive integer.")


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    jobs: JobSettings = field(default_factory=JobSettings)
    logging_env: LoggingOverrides = field(default_factory=LoggingOverrides)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Load settings from environment with sane defaults."""

        source = os.environ if env is None else env
        return cls(
            jobs=JobSettings(
                timeout_ms=resolve_job_timeout_ms(source),
                kill_grace_seconds=DEFAULT_KILL_GRACE_SECONDS,
            ),
            logging_env=LoggingOverrides.from_env(source),
        )


def resolve_job_timeout_ms(env: Mapping[str, str] | None = None) -> int:
    """Async job budget from ``DYNAMIC_MCP_JOB_TIMEOUT_MS``.

    Anything but a positive integer falls back to the default.
    """

    source = os.environ if env is None else env
    raw = (source.get("DYNAMIC_MCP_JOB_TIMEOUT_MS") or "").strip()
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_JOB_TIMEOUT_MS
    return value if value > 0 else DEFAULT_JOB_TIMEOUT_MS


def normalize_log_categories(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """Parse a comma-separated list or iterable of categories; ``all`` expands."""

    if value is None:
        return LOG_CATEGORIES
    parts = value.split(",") if isinstance(value, str) else list(value)
    normalized: list[str] = []
    for part in parts:
        token = str(part).strip().lower()
        if not token:
            continue
        if token == "all":
            return LOG_CATEGORIES
        if token not in normalized:
            normalized.append(token)
    return tuple(normalized)


def resolve_logging_settings(
    config: LoggingOverrides | None,
    cli: LoggingOverrides | None,
    *,
    cli_disabled: bool = False,
    env: LoggingOverrides | None = None,
) -> LoggingSettings:
    """Merge logging sources with precedence CLI > env > config > defaults."""

    resolved = LoggingSettings()
    for layer in (config, env, cli):
        if layer is not None:
            resolved = _apply_overrides(resolved, layer)
    if cli_disabled:
        resolved = replace(resolved, enabled=False, disabled_by_cli=True)
    resolved.validate()
    return resolved


def resolve_tool_logging_settings(
    base: LoggingSettings,
    tool: LoggingOverrides | None,
) -> LoggingSettings:
    """Apply per-tool overrides; ``--no-logging`` cannot be re-enabled."""

    if tool is None:
        return base
    resolved = _apply_overrides(base, tool)
    if base.disabled_by_cli:
        resolved = replace(resolved, enabled=False)
    resolved.validate()
    return resolved


def _apply_overrides(settings: LoggingSettings, overrides: LoggingOverrides) -> LoggingSettings:
    changes: dict[str, object] = {}
    if overrides.enabled is not None:
        changes["enabled"] = overrides.enabled
    if overrides.level is not None:
        level = overrides.level.strip().lower()
        changes["level"] = _LEVEL_ALIASES.get(level, level)
    if overrides.format is not None:
        changes["format"] = overrides.format.strip().lower()
    if overrides.destination is not None:
        changes["destination"] = overrides.destination.strip()
    if overrides.categories is not None:
        changes["categories"] = normalize_log_categories(overrides.categories)
    if overrides.log_payloads is not None:
        changes["log_payloads"] = overrides.log_payloads
    if overrides.payload_max_chars is not None:
        changes["payload_max_chars"] = overrides.payload_max_chars
    return replace(settings, **changes)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _parse_bool(name: str, value: str | None) -> bool | None:
    if value is None:
        return None
    normalized = value.lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")


def _parse_positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error
    if parsed <= 0:
        raise ValueError(f"{name} must be a positive integer.")
    return parsed
