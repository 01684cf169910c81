from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Protocol

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_incrementing

from ..core import metrics
from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.agents import AgentRequest
from ..schemas.results import AgentResponse, ResultSource, TaskResult
from ..services.fallbacks import FallbackProvider
from .tasks import TaskDefinition

logger = get_logger(name=__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class AgentCaller(Protocol):
    async def call(
        self,
        binding: str,
        request: AgentRequest,
        *,
        task_name: str,
        timeout: float | None = None,
    ) -> AgentResponse: ...


class RetryingAgentRunner:
    """Runs one task against its endpoint, retrying and then falling back.

    Attempt ``n`` (1-based) that fails waits ``n * base_delay_seconds`` before
    the next one. After ``max_retries + 1`` failed attempts the static
    fallback for the task is returned instead, so ``execute_with_fallback``
    never raises for an agent failure. Cancellation is not a failure and
    propagates unchanged.
    """

    def __init__(
        self,
        caller: AgentCaller,
        fallbacks: FallbackProvider,
        *,
        max_retries: int = 2,
        base_delay_seconds: float = 1.0,
        timeout: float | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._caller = caller
        self._fallbacks = fallbacks
        self._max_retries = max_retries
        self._base_delay = max(0.0, base_delay_seconds)
        self._timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        caller: AgentCaller,
        fallbacks: FallbackProvider,
        *,
        sleep: SleepFunc = asyncio.sleep,
    ) -> "RetryingAgentRunner":
        return cls(
            caller,
            fallbacks,
            max_retries=settings.retry.max_retries,
            base_delay_seconds=settings.retry.base_delay_seconds,
            timeout=settings.agent_api.timeout_seconds,
            sleep=sleep,
        )

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def _log_retry(self, task: TaskDefinition) -> Callable[[RetryCallState], None]:
        def _before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            metrics.increment_agent_retry(task=task.task_id)
            logger.warning(
                "agent_call_retry",
                task=task.task_id,
                attempt=retry_state.attempt_number,
                delay=delay,
                error=str(error) if error else None,
            )

        return _before_sleep

    async def execute_with_fallback(
        self,
        task: TaskDefinition,
        request: AgentRequest,
        max_retries: int | None = None,
    ) -> TaskResult:
        retries = self._max_retries if max_retries is None else max(0, max_retries)
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_incrementing(start=self._base_delay, increment=self._base_delay),
            sleep=self._sleep,
            before_sleep=self._log_retry(task),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await self._caller.call(
                        task.endpoint_binding,
                        request,
                        task_name=task.task_id,
                        timeout=self._timeout,
                    )
        except Exception as exc:
            metrics.increment_task_fallback(task=task.task_id)
            logger.warning(
                "agent_fallback_used",
                task=task.task_id,
                attempts=attempts,
                error=str(exc) or exc.__class__.__name__,
            )
            return self._fallbacks.for_task(task, attempts=attempts)

        return TaskResult(
            task_id=task.task_id,
            content=response.content,
            insights=response.insights,
            citations=response.citations,
            produced_by=ResultSource.REAL,
            validation_warning=response.validation_warning,
            attempts=attempts,
        )
