from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Sequence

from ..core import metrics
from ..core.config import Settings
from ..core.errors import DuplicateResultError, RunDeadlineExceededError
from ..core.logging import bind_run_context, clear_run_context, get_logger
from ..schemas.context import ProjectContext
from ..schemas.progress import TaskEventStatus
from ..schemas.results import ExecutionRecord, RunOutcome, TaskResult
from ..services.consolidation import ResultConsolidator
from ..services.fallbacks import FallbackProvider
from .executor import AgentCaller, RetryingAgentRunner, SleepFunc
from .inputs import InputBuilder, build_input
from .progress import ProgressCallback, ProgressTracker
from .tasks import TaskDefinition, TaskGraph, default_task_graph

logger = get_logger(name=__name__)


class RunStage(str, Enum):
    IDLE = "idle"
    PHASE_RUNNING = "phase_running"
    CONSOLIDATING = "consolidating"
    DONE = "done"
    FATAL_FALLBACK = "fatal_fallback"


@dataclass(slots=True)
class RunState:
    """Mutable bookkeeping for a single run; results are write-once per task id."""

    run_id: str
    started_at: float
    stage: RunStage = RunStage.IDLE
    phase: int = 0
    completed_task_ids: list[str] = field(default_factory=list)
    _results: dict[str, TaskResult] = field(default_factory=dict)

    @property
    def results(self) -> Mapping[str, TaskResult]:
        return MappingProxyType(self._results)

    def record(self, result: TaskResult) -> None:
        if result.task_id in self._results:
            raise DuplicateResultError(f"Result for task '{result.task_id}' already recorded in run {self.run_id}")
        self._results[result.task_id] = result
        self.completed_task_ids.append(result.task_id)

    def is_ready(self, task: TaskDefinition) -> bool:
        return task.dependencies <= self._results.keys()

    def advance(self, stage: RunStage, *, phase: int | None = None) -> None:
        self.stage = stage
        if phase is not None:
            self.phase = phase
        logger.debug("run_stage_changed", stage=stage.value, phase=self.phase)


class StorylineOrchestrator:
    """Runs the task graph phase by phase and consolidates the results.

    Tasks of one phase run concurrently (bounded by ``max_concurrency``) and
    every task of a phase settles before the next phase starts. Per-task
    failures are absorbed by the runner; anything else ends the run with the
    canned storyline and ``success=False``.
    """

    def __init__(
        self,
        graph: TaskGraph,
        runner: RetryingAgentRunner,
        consolidator: ResultConsolidator,
        fallbacks: FallbackProvider,
        *,
        max_concurrency: int = 5,
        run_timeout_seconds: float | None = None,
        input_builder: InputBuilder = build_input,
        clock: Callable[[], float] = time.monotonic,
        entry_point: str = "orchestrator",
    ) -> None:
        self._graph = graph
        self._runner = runner
        self._consolidator = consolidator
        self._fallbacks = fallbacks
        self._max_concurrency = max(1, max_concurrency)
        self._run_timeout = run_timeout_seconds
        self._input_builder = input_builder
        self._clock = clock
        self._entry_point = entry_point
        self._subscribers: list[ProgressCallback] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        caller: AgentCaller,
        *,
        graph: TaskGraph | None = None,
        fallbacks: FallbackProvider | None = None,
        sleep: SleepFunc = asyncio.sleep,
        entry_point: str = "orchestrator",
    ) -> "StorylineOrchestrator":
        graph = graph or default_task_graph(settings.agent_bindings)
        fallbacks = fallbacks or FallbackProvider(minutes_per_section=settings.report.minutes_per_section)
        return cls(
            graph,
            RetryingAgentRunner.from_settings(settings, caller, fallbacks, sleep=sleep),
            ResultConsolidator.from_settings(settings, graph),
            fallbacks,
            max_concurrency=settings.engine.max_concurrency,
            run_timeout_seconds=settings.engine.run_timeout_seconds,
            entry_point=entry_point,
        )

    @property
    def graph(self) -> TaskGraph:
        return self._graph

    @property
    def fallbacks(self) -> FallbackProvider:
        return self._fallbacks

    def subscribe(self, callback: ProgressCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def execute(
        self,
        context: ProjectContext,
        *,
        on_progress: ProgressCallback | None = None,
        run_id: str | None = None,
    ) -> RunOutcome:
        state = RunState(run_id=run_id or uuid.uuid4().hex, started_at=self._clock())
        tracker = ProgressTracker(self._graph, clock=self._clock, run_id=state.run_id)
        for callback in self._subscribers:
            tracker.subscribe(callback)
        if on_progress is not None:
            tracker.subscribe(on_progress)

        bind_run_context(run_id=state.run_id, project_id=context.project_id)
        metrics.mark_run_started(entry_point=self._entry_point)
        logger.info("run_started", tasks=len(self._graph), phases=self._graph.phase_count)
        status = "cancelled"
        try:
            outcome = await self._run_with_deadline(context, state, tracker)
            status = "success"
        except Exception as exc:
            logger.exception("run_failed", stage=state.stage.value, phase=state.phase, error=str(exc))
            outcome = self._fatal_outcome(state, str(exc) or exc.__class__.__name__)
            status = "fallback"
        finally:
            duration = max(0.0, self._clock() - state.started_at)
            metrics.mark_run_completed(entry_point=self._entry_point, status=status, latency=duration)
            metrics.clear_progress(run_id=state.run_id)
            logger.info("run_finished", status=status, duration=round(duration, 3))
            clear_run_context()
        return outcome

    async def _run_with_deadline(
        self,
        context: ProjectContext,
        state: RunState,
        tracker: ProgressTracker,
    ) -> RunOutcome:
        if self._run_timeout is None:
            return await self._run(context, state, tracker)
        try:
            return await asyncio.wait_for(self._run(context, state, tracker), timeout=self._run_timeout)
        except asyncio.TimeoutError as exc:
            raise RunDeadlineExceededError("run deadline exceeded") from exc

    async def _run(self, context: ProjectContext, state: RunState, tracker: ProgressTracker) -> RunOutcome:
        tracker.start()
        semaphore = asyncio.Semaphore(self._max_concurrency)
        for number, tasks in enumerate(self._graph.phases(), start=1):
            state.advance(RunStage.PHASE_RUNNING, phase=number)
            ready = [task for task in tasks if state.is_ready(task)]
            blocked = [task.task_id for task in tasks if not state.is_ready(task)]
            if blocked:
                logger.warning("tasks_blocked", phase=number, tasks=blocked)
            if not ready:
                logger.warning("phase_skipped", phase=number)
                metrics.increment_phase_skipped()
                continue
            await self._run_phase(ready, context, state, tracker, semaphore)

        state.advance(RunStage.CONSOLIDATING)
        storyline = self._consolidator.consolidate(state.results)
        state.advance(RunStage.DONE)
        return RunOutcome(
            success=True,
            storyline=storyline,
            execution_order=self._execution_order(state),
            total_duration=max(0.0, self._clock() - state.started_at),
            agent_results=dict(state.results),
        )

    async def _run_phase(
        self,
        ready: Sequence[TaskDefinition],
        context: ProjectContext,
        state: RunState,
        tracker: ProgressTracker,
        semaphore: asyncio.Semaphore,
    ) -> None:
        logger.info("phase_started", phase=state.phase, tasks=[task.task_id for task in ready])
        if len(ready) == 1:
            await self._run_task(ready[0], context, state, tracker, semaphore)
            return

        pending = [
            asyncio.ensure_future(self._run_task(task, context, state, tracker, semaphore)) for task in ready
        ]
        try:
            await asyncio.gather(*pending)
        except Exception:
            for future in pending:
                future.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise

    async def _run_task(
        self,
        task: TaskDefinition,
        context: ProjectContext,
        state: RunState,
        tracker: ProgressTracker,
        semaphore: asyncio.Semaphore,
    ) -> None:
        try:
            request = self._input_builder(task, context, state.results, graph=self._graph)
            async with semaphore:
                tracker.on_task_event(task, TaskEventStatus.STARTING)
                result = await self._runner.execute_with_fallback(task, request)
            state.record(result)
        except Exception:
            tracker.on_task_event(task, TaskEventStatus.FAILED)
            raise
        tracker.on_task_event(task, TaskEventStatus.COMPLETED, produced_by=result.produced_by)

    def _execution_order(self, state: RunState) -> list[ExecutionRecord]:
        return [
            ExecutionRecord(
                task_id=task_id,
                name=self._graph.get(task_id).display_name,
                completed=True,
                produced_by=state.results[task_id].produced_by,
            )
            for task_id in state.completed_task_ids
        ]

    def _fatal_outcome(self, state: RunState, error: str) -> RunOutcome:
        state.advance(RunStage.FATAL_FALLBACK)
        return RunOutcome(
            success=False,
            storyline=self._fallbacks.complete_storyline(),
            execution_order=self._execution_order(state),
            total_duration=max(0.0, self._clock() - state.started_at),
            agent_results=dict(state.results),
            error=error,
            fallback=True,
        )
