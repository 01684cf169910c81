from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable

from ..core.logging import get_logger
from ..schemas.api import ExecutionStatus, ExecutionStatusResponse
from ..schemas.progress import ProgressEvent
from ..schemas.results import RunOutcome

logger = get_logger(name=__name__)

RunJob = Callable[[str, Callable[[ProgressEvent], None]], Awaitable[RunOutcome]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Execution:
    execution_id: str
    status: ExecutionStatus = "queued"
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    last_event: ProgressEvent | None = None
    outcome: RunOutcome | None = None
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.status in ("completed", "failed")

    def record_progress(self, event: ProgressEvent) -> None:
        self.last_event = event
        self.updated_at = _utcnow()

    def to_response(self) -> ExecutionStatusResponse:
        progress = self.last_event.progress if self.last_event is not None else 0.0
        if self.status == "completed":
            progress = 100.0
        return ExecutionStatusResponse(
            execution_id=self.execution_id,
            status=self.status,
            progress=progress,
            created_at=self.created_at,
            updated_at=self.updated_at,
            last_event=self.last_event,
            outcome=self.outcome,
            error=self.error,
        )


class ExecutionRegistry:
    """In-memory book of background runs, polled by execution id.

    Runs live only as long as the process. Finished executions beyond
    ``max_entries`` are evicted oldest first.
    """

    def __init__(self, *, max_entries: int = 200) -> None:
        self._max_entries = max(1, max_entries)
        self._executions: OrderedDict[str, Execution] = OrderedDict()
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __len__(self) -> int:
        return len(self._executions)

    def get(self, execution_id: str) -> Execution | None:
        return self._executions.get(execution_id)

    def submit(self, job: RunJob) -> Execution:
        execution = Execution(execution_id=uuid.uuid4().hex)
        self._executions[execution.execution_id] = execution
        self._evict()
        task = asyncio.create_task(self._run(execution, job))
        self._tasks[execution.execution_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(execution.execution_id, None))
        logger.info("execution_submitted", execution_id=execution.execution_id, tracked=len(self._executions))
        return execution

    async def _run(self, execution: Execution, job: RunJob) -> None:
        execution.status = "running"
        execution.updated_at = _utcnow()
        try:
            outcome = await job(execution.execution_id, execution.record_progress)
        except Exception as exc:
            logger.exception("execution_failed", execution_id=execution.execution_id, error=str(exc))
            execution.status = "failed"
            execution.error = str(exc) or exc.__class__.__name__
        else:
            execution.outcome = outcome
            execution.status = "completed" if outcome.success else "failed"
            execution.error = outcome.error
            logger.info(
                "execution_finished",
                execution_id=execution.execution_id,
                status=execution.status,
                fallback=outcome.fallback,
            )
        finally:
            execution.updated_at = _utcnow()

    def _evict(self) -> None:
        overflow = len(self._executions) - self._max_entries
        if overflow <= 0:
            return
        for execution_id in [key for key, value in self._executions.items() if value.finished][:overflow]:
            del self._executions[execution_id]

    async def wait(self, execution_id: str) -> Execution | None:
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.shield(task)
        return self._executions.get(execution_id)

    async def aclose(self) -> None:
        pending = list(self._tasks.values())
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator["ExecutionRegistry"]:
        try:
            yield self
        finally:
            await self.aclose()
