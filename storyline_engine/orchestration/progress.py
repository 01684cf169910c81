from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from ..core import metrics
from ..core.logging import get_logger
from ..schemas.progress import ProgressEvent, TaskEventStatus
from ..schemas.results import ResultSource
from .tasks import TaskDefinition, TaskGraph

logger = get_logger(name=__name__)

ProgressCallback = Callable[[ProgressEvent], Any]

# Highest value reported while tasks are still outstanding (matters only for zero-weight tasks).
_OPEN_RUN_CEILING = 99.99


@dataclass(slots=True)
class _TaskRecord:
    task_id: str
    name: str
    phase: int
    started_at: float | None = None
    finished_at: float | None = None
    status: TaskEventStatus | None = None
    produced_by: ResultSource | None = None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return max(0.0, self.finished_at - self.started_at)


class ProgressTracker:
    """Weighted completion tracking for one run.

    Each task carries a static weight; the weights of a graph sum to 100.
    Completion (live or fallback) adds the task's weight, failure does not.
    Subscribers are plain callables and receive a ``ProgressEvent`` for every
    task event; a subscriber that raises is logged and skipped.
    """

    def __init__(
        self,
        graph: TaskGraph,
        *,
        clock: Callable[[], float] = time.monotonic,
        run_id: str | None = None,
    ) -> None:
        self._graph = graph
        self._clock = clock
        self._run_id = run_id
        self._subscribers: list[ProgressCallback] = []
        self._records = {
            task.task_id: _TaskRecord(task_id=task.task_id, name=task.display_name, phase=graph.phase(task.task_id))
            for task in graph
        }
        self._accumulated = 0.0
        self._progress = 0.0
        self._started_at: float | None = None
        self._current_task: str | None = None

    def subscribe(self, callback: ProgressCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def start(self) -> None:
        self._started_at = self._clock()
        self._accumulated = 0.0
        self._progress = 0.0
        self._current_task = None
        self._notify(
            ProgressEvent(
                phase="Initializing",
                status="starting",
                total_tasks=len(self._graph),
                total_phases=self._graph.phase_count,
            )
        )

    def current_progress(self) -> float:
        return self._progress

    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return max(0.0, self._clock() - self._started_at)

    def estimated_remaining(self) -> float | None:
        if self._started_at is None or self._progress <= 0:
            return None
        elapsed = self.elapsed()
        return max(0.0, elapsed / (self._progress / 100.0) - elapsed)

    @property
    def completed_task_ids(self) -> set[str]:
        return {
            record.task_id for record in self._records.values() if record.status is TaskEventStatus.COMPLETED
        }

    def on_task_event(
        self,
        task: TaskDefinition,
        status: TaskEventStatus | str,
        *,
        produced_by: ResultSource | None = None,
    ) -> ProgressEvent | None:
        status = TaskEventStatus(status)
        record = self._records.get(task.task_id)
        if record is None:
            logger.warning("progress_unknown_task", task=task.task_id)
            return None
        if self._started_at is None:
            self._started_at = self._clock()

        now = self._clock()
        if status is TaskEventStatus.STARTING:
            record.started_at = now
            record.status = status
            self._current_task = task.task_id
            logger.info("task_started", task=task.task_id, phase=record.phase)
        elif status is TaskEventStatus.COMPLETED:
            if record.status is TaskEventStatus.COMPLETED:
                logger.warning("progress_duplicate_completion", task=task.task_id)
                return None
            record.finished_at = now
            record.status = status
            record.produced_by = produced_by
            self._accumulated += task.weight
            self._refresh_progress()
            logger.info("task_completed", task=task.task_id, duration=record.duration, progress=self._progress)
        else:
            record.finished_at = now
            record.status = status
            logger.warning("task_failed", task=task.task_id, duration=record.duration)

        event = ProgressEvent(
            phase=task.display_name,
            phase_description=task.description,
            phase_number=record.phase,
            task_id=task.task_id,
            progress=self._progress,
            status=status.value,
            completed_tasks=len(self.completed_task_ids),
            total_tasks=len(self._graph),
            total_phases=self._graph.phase_count,
            elapsed=self.elapsed(),
            estimated_remaining=self.estimated_remaining(),
        )
        self._notify(event)
        return event

    def _refresh_progress(self) -> None:
        if len(self.completed_task_ids) == len(self._graph):
            candidate = 100.0
        else:
            candidate = min(self._accumulated, _OPEN_RUN_CEILING)
        self._progress = max(self._progress, candidate)
        if self._run_id is not None:
            metrics.observe_progress(run_id=self._run_id, progress=self._progress)

    def _notify(self, event: ProgressEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as exc:
                logger.warning(
                    "progress_subscriber_failed",
                    subscriber=getattr(callback, "__qualname__", repr(callback)),
                    error=str(exc),
                )

    def execution_summary(self) -> dict[str, Any]:
        completed = [record for record in self._records.values() if record.status is TaskEventStatus.COMPLETED]
        failed = [record for record in self._records.values() if record.status is TaskEventStatus.FAILED]
        total = len(self._records)
        return {
            "total_duration": self.elapsed(),
            "completed_tasks": len(completed),
            "failed_tasks": len(failed),
            "fallback_tasks": sum(1 for record in completed if record.produced_by is ResultSource.FALLBACK),
            "total_tasks": total,
            "success_rate": (len(completed) / total) if total else 0.0,
            "tasks": [
                {
                    "task_id": record.task_id,
                    "name": record.name,
                    "phase": record.phase,
                    "status": record.status.value if record.status else "pending",
                    "duration": record.duration,
                    "produced_by": record.produced_by.value if record.produced_by else None,
                }
                for record in self._records.values()
            ],
        }

    def current_status(self) -> dict[str, Any]:
        if self._progress <= 0:
            return {"status": "not_started", "message": "Ready to begin analysis", "progress": 0.0}
        if self._progress >= 100:
            summary = self.execution_summary()
            return {
                "status": "completed",
                "message": f"Analysis completed in {self.format_duration(summary['total_duration'])}",
                "progress": 100.0,
                "summary": summary,
            }
        record = self._records.get(self._current_task) if self._current_task else None
        task = self._graph.get(record.task_id) if record else None
        return {
            "status": "in_progress",
            "message": f"Executing: {task.description or task.display_name}" if task else "Processing...",
            "progress": self._progress,
            "current_task": self._current_task,
            "total_tasks": len(self._records),
        }

    @staticmethod
    def format_duration(seconds: float) -> str:
        if seconds < 1:
            return f"{round(seconds * 1000)}ms"
        if seconds < 60:
            return f"{round(seconds)}s"
        minutes, remainder = divmod(int(round(seconds)), 60)
        return f"{minutes}m {remainder}s"
