from __future__ import annotations

import asyncio

import pytest

from storyline_engine.schemas.progress import ProgressEvent
from storyline_engine.schemas.results import RunOutcome
from storyline_engine.services.executions import ExecutionRegistry
from storyline_engine.services.fallbacks import FallbackProvider


def _outcome(*, success: bool = True, error: str | None = None) -> RunOutcome:
    return RunOutcome(
        success=success,
        storyline=FallbackProvider().complete_storyline(),
        error=error,
        fallback=not success,
    )


@pytest.mark.asyncio
async def test_submitted_run_reports_progress_and_outcome():
    registry = ExecutionRegistry()
    release = asyncio.Event()

    async def job(execution_id, on_progress):
        on_progress(ProgressEvent(phase="Alpha", status="completed", progress=40.0))
        await release.wait()
        return _outcome()

    execution = registry.submit(job)
    assert execution.status == "queued"

    await asyncio.sleep(0)
    running = registry.get(execution.execution_id).to_response()
    assert running.status == "running"
    assert running.progress == 40.0

    release.set()
    finished = await registry.wait(execution.execution_id)

    response = finished.to_response()
    assert response.status == "completed"
    assert response.progress == 100.0
    assert response.outcome is not None and response.outcome.success


@pytest.mark.asyncio
async def test_fallback_outcome_marks_execution_failed():
    registry = ExecutionRegistry()

    async def job(execution_id, on_progress):
        return _outcome(success=False, error="renderer offline")

    execution = registry.submit(job)
    finished = await registry.wait(execution.execution_id)

    assert finished.status == "failed"
    assert finished.error == "renderer offline"
    assert finished.outcome is not None


@pytest.mark.asyncio
async def test_job_exception_is_recorded():
    registry = ExecutionRegistry()

    async def job(execution_id, on_progress):
        raise RuntimeError("exploded")

    execution = registry.submit(job)
    finished = await registry.wait(execution.execution_id)

    assert finished.status == "failed"
    assert finished.error == "exploded"
    assert finished.outcome is None


@pytest.mark.asyncio
async def test_finished_executions_are_evicted_oldest_first():
    registry = ExecutionRegistry(max_entries=2)

    async def job(execution_id, on_progress):
        return _outcome()

    first = registry.submit(job)
    await registry.wait(first.execution_id)
    second = registry.submit(job)
    await registry.wait(second.execution_id)
    third = registry.submit(job)

    assert registry.get(first.execution_id) is None
    assert registry.get(second.execution_id) is not None
    assert registry.get(third.execution_id) is not None
    await registry.aclose()


@pytest.mark.asyncio
async def test_lifecycle_cancels_pending_runs():
    started = asyncio.Event()

    async def job(execution_id, on_progress):
        started.set()
        await asyncio.sleep(10)
        return _outcome()

    async with ExecutionRegistry().lifecycle() as registry:
        execution = registry.submit(job)
        await started.wait()

    assert registry.get(execution.execution_id).outcome is None
