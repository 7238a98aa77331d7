from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

import allure

from dynamic_mcp.jobs.models import JobStatus, TaskResult
from dynamic_mcp.jobs.store import JobStore

pytestmark = [
    allure.epic("Jobs"),
    allure.feature("Job Store"),
]


class _TickingClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


def test_create_registers_running_job_with_sequential_ids() -> None:
    store = JobStore(epoch_ms=lambda: 1_700_000_000_000)

    first = store.create(tool_name="review", timeout_ms=1000)
    second = store.create(tool_name="review", timeout_ms=1000)

    assert first.job_id == "job_1700000000000_1"
    assert second.job_id == "job_1700000000000_2"
    assert first.status is JobStatus.RUNNING
    assert first.completed_at is None
    assert first.result is None
    assert first.job_id in store
    assert len(store) == 2


def test_default_ids_embed_wall_clock_millis() -> None:
    store = JobStore()

    job = store.create(tool_name="review", timeout_ms=1000)

    assert re.fullmatch(r"job_\d{13,}_1", job.job_id)


def test_snapshot_is_visible_right_after_create() -> None:
    store = JobStore(clock=_TickingClock())
    job = store.create(tool_name="summarize", timeout_ms=500)

    snapshot = store.snapshot(job.job_id)

    assert snapshot == {
        "id": job.job_id,
        "status": "running",
        "toolName": "summarize",
        "startedAt": "2026-03-01T12:00:00+00:00",
        "completedAt": None,
        "result": None,
        "timedOut": False,
    }


def test_finalize_success_marks_completed_and_stamps_completion() -> None:
    store = JobStore(clock=_TickingClock())
    job = store.create(tool_name="review", timeout_ms=1000)

    finalized = store.finalize(job.job_id, TaskResult(exit_code=0, stdout="done", stderr=""))

    assert finalized is not None
    assert finalized.status is JobStatus.COMPLETED
    assert finalized.completed_at is not None
    assert finalized.completed_at > finalized.started_at
    assert store.snapshot(job.job_id)["result"] == {
        "exitCode": 0,
        "stdout": "done",
        "stderr": "",
    }


def test_finalize_nonzero_exit_marks_failed() -> None:
    store = JobStore()
    job = store.create(tool_name="review", timeout_ms=1000)

    finalized = store.finalize(job.job_id, TaskResult(exit_code=2, stdout="", stderr="bad"))

    assert finalized is not None
    assert finalized.status is JobStatus.FAILED
    assert finalized.timed_out is False


def test_timed_out_job_is_failed_even_with_zero_exit() -> None:
    store = JobStore()
    job = store.create(tool_name="review", timeout_ms=1000)

    finalized = store.finalize(
        job.job_id,
        TaskResult(exit_code=0, stdout="", stderr=""),
        timed_out=True,
    )

    assert finalized is not None
    assert finalized.status is JobStatus.FAILED
    assert store.snapshot(job.job_id)["timedOut"] is True


def test_finalize_is_at_most_once() -> None:
    store = JobStore()
    job = store.create(tool_name="review", timeout_ms=1000)
    timeout_result = TaskResult(exit_code=-1, stdout="", stderr="Timed out after 1000ms")

    first = store.finalize(job.job_id, timeout_result, timed_out=True)
    late = store.finalize(job.job_id, TaskResult(exit_code=0, stdout="late", stderr=""))

    assert first is not None
    assert late is None
    current = store.get(job.job_id)
    assert current is first
    assert current.result == timeout_result


def test_records_are_replaced_not_mutated() -> None:
    store = JobStore()
    created = store.create(tool_name="review", timeout_ms=1000)

    store.finalize(created.job_id, TaskResult(exit_code=0, stdout="", stderr=""))

    assert created.status is JobStatus.RUNNING
    assert store.get(created.job_id) is not created


def test_unknown_job_snapshot_is_explicit_not_found() -> None:
    store = JobStore()

    snapshot = store.snapshot("job_missing")

    assert snapshot["id"] == "job_missing"
    assert snapshot["status"] == "failed"
    assert snapshot["error"] == "Job not found: job_missing"
    assert snapshot["result"] is None
    assert store.finalize("job_missing", TaskResult(exit_code=0, stdout="", stderr="")) is None
