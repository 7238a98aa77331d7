from __future__ import annotations

import json
import logging
from pathlib import Path

import allure

from dynamic_mcp.config import LoggingSettings
from dynamic_mcp.observability import LoggerFactory, sink_logger_name
from dynamic_mcp.sanitization import sanitize_payload

pytestmark = [
    allure.epic("Observability"),
    allure.feature("Structured Event Logging"),
]


def _read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text("utf-8").splitlines()]


def test_json_events_carry_context_and_fields(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "events.jsonl"
    factory = LoggerFactory(server_name="reviewer")
    tool_logger = factory.create(LoggingSettings(destination=str(log_path)), toolName="review")

    assert tool_logger is not None
    tool_logger.info("steps", "job_started", {"jobId": "job_1_1", "timeoutMs": 100})
    factory.close()

    (event,) = _read_events(log_path)
    assert event["level"] == "info"
    assert event["category"] == "steps"
    assert event["message"] == "job_started"
    assert event["serverName"] == "reviewer"
    assert event["toolName"] == "review"
    assert event["jobId"] == "job_1_1"
    assert event["timeoutMs"] == 100
    assert event["timestamp"]


def test_category_and_level_filtering(tmp_path: Path) -> None:
    log_path = tmp_path / "events.jsonl"
    factory = LoggerFactory(server_name="reviewer")
    tool_logger = factory.create(
        LoggingSettings(destination=str(log_path), level="warn", categories=("requests",)),
    )

    assert tool_logger is not None
    tool_logger.info("requests", "dropped_by_level")
    tool_logger.error("steps", "dropped_by_category")
    tool_logger.warning("requests", "kept")
    factory.close()

    events = _read_events(log_path)
    assert [event["message"] for event in events] == ["kept"]
    assert events[0]["level"] == "warn"


def test_disabled_logging_yields_no_logger() -> None:
    factory = LoggerFactory(server_name="reviewer")

    assert factory.create(LoggingSettings(enabled=False)) is None


def test_pretty_format_line(tmp_path: Path) -> None:
    log_path = tmp_path / "pretty.log"
    factory = LoggerFactory(server_name="reviewer")
    tool_logger = factory.create(LoggingSettings(destination=str(log_path), format="pretty"))

    assert tool_logger is not None
    tool_logger.info("steps", "job_finished", {"jobId": "job_9_1", "status": "completed"})
    factory.close()

    line = log_path.read_text("utf-8").strip()
    assert "INFO  [steps] job_finished" in line
    assert "jobId=job_9_1" in line
    assert "status=completed" in line
    assert "serverName=reviewer" in line


def test_loggers_share_one_sink_per_destination(tmp_path: Path) -> None:
    log_path = tmp_path / "shared.jsonl"
    factory = LoggerFactory(server_name="reviewer")
    settings = LoggingSettings(destination=str(log_path))
    first = factory.create(settings, toolName="a")
    second = factory.create(settings, toolName="b")

    assert first is not None
    assert second is not None
    first.info("steps", "one")
    second.info("steps", "two")
    factory.close()

    events = _read_events(log_path)
    assert [(event["toolName"], event["message"]) for event in events] == [
        ("a", "one"),
        ("b", "two"),
    ]


def test_factories_reuse_one_registered_logger_per_destination(tmp_path: Path) -> None:
    log_path = tmp_path / "reused.jsonl"
    settings = LoggingSettings(destination=str(log_path))
    prefix = "dynamic_mcp.observability.sink."

    def _registered() -> set[str]:
        return {name for name in logging.Logger.manager.loggerDict if name.startswith(prefix)}

    before = _registered()
    for round_number in range(3):
        factory = LoggerFactory(server_name="reviewer")
        tool_logger = factory.create(settings)
        assert tool_logger is not None
        tool_logger.info("steps", f"round_{round_number}")
        factory.close()

    sink = logging.getLogger(sink_logger_name(str(log_path), "json"))
    assert _registered() - before <= {sink.name}
    assert sink.handlers == []
    assert [event["message"] for event in _read_events(log_path)] == [
        "round_0",
        "round_1",
        "round_2",
    ]


def test_payloads_only_when_enabled(tmp_path: Path) -> None:
    factory = LoggerFactory(server_name="reviewer")
    quiet = factory.create(LoggingSettings(destination=str(tmp_path / "q.log")))
    verbose = factory.create(
        LoggingSettings(
            destination=str(tmp_path / "v.log"),
            log_payloads=True,
            payload_max_chars=10,
        ),
    )

    assert quiet is not None
    assert verbose is not None
    assert quiet.payload("secret prompt") is None
    assert verbose.payload("short") == "short"
    assert verbose.payload("0123456789abcdef") == "0123456789... [truncated 6 chars]"
    factory.close()


def test_sanitize_payload_redacts_common_secrets() -> None:
    text = (
        "Authorization: Bearer abcdefghijklmnop\n"
        "key sk-abcdef1234567890\n"
        "OPENAI_API_KEY=supersecret\n"
        "https://example.com/cb?token=xyz&page=2"
    )

    sanitized = sanitize_payload(text, max_chars=1000)

    assert "abcdefghijklmnop" not in sanitized
    assert "Bearer [redacted-token]" in sanitized
    assert "sk-abcdef1234567890" not in sanitized
    assert "supersecret" not in sanitized
    assert "[redacted-secret]" in sanitized
    assert "token=[redacted]" in sanitized
    assert "page=2" in sanitized
