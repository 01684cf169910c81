from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import ValidationError

from ..core.logging import get_logger
from ..dependencies import get_agent_client, get_execution_registry, get_orchestrator
from ..orchestration.orchestrator import StorylineOrchestrator
from ..schemas.api import (
    ConnectivityReport,
    ExecutionAccepted,
    ExecutionStatusResponse,
    StorylineRequest,
    StorylineResponse,
)
from ..schemas.context import ProjectContext
from ..schemas.progress import ProgressEvent
from ..schemas.results import RunOutcome
from ..services.agent_client import AgentClient
from ..services.executions import ExecutionRegistry

logger = get_logger(name=__name__)

router = APIRouter()

PROJECT_ID_REQUIRED = "Project ID is required (unless in test mode)"


async def _extract_payload(request: Request) -> tuple[StorylineRequest, ProjectContext]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Request body must be a JSON object",
        )
    try:
        payload = StorylineRequest.model_validate(body)
        context = payload.to_context()
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors()) from exc
    if not payload.project_id and not payload.test_mode:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=PROJECT_ID_REQUIRED)
    return payload, context


def _test_mode_outcome(orchestrator: StorylineOrchestrator) -> RunOutcome:
    return RunOutcome(success=True, storyline=orchestrator.fallbacks.complete_storyline(), fallback=True)


@router.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/storylines/generate", response_model=StorylineResponse, tags=["storylines"])
async def generate_storyline(
    request: Request,
    response: Response,
    orchestrator: StorylineOrchestrator = Depends(get_orchestrator),
) -> StorylineResponse:
    payload, context = await _extract_payload(request)

    if payload.test_mode:
        logger.info("storyline_test_mode", project_id=context.project_id)
        return StorylineResponse(
            success=True,
            source="cfa-demo-test",
            project_id=context.project_id,
            test_mode=True,
            data=orchestrator.fallbacks.complete_storyline(),
        )

    events: list[ProgressEvent] = []
    outcome = await orchestrator.execute(context, on_progress=events.append)
    last_progress = events[-1] if events else None

    if not outcome.success:
        logger.warning("storyline_fallback_returned", project_id=context.project_id, error=outcome.error)
        response.status_code = status.HTTP_206_PARTIAL_CONTENT
        return StorylineResponse(
            success=False,
            source="cfa-demo-fallback",
            project_id=context.project_id,
            fallback_used=True,
            error=outcome.error,
            total_duration=outcome.total_duration,
            agents_executed=outcome.execution_order,
            fallback_tasks=outcome.fallback_task_ids,
            last_progress=last_progress,
            data=outcome.storyline,
        )

    return StorylineResponse(
        success=True,
        source="cfa-demo-orchestrator",
        project_id=context.project_id,
        fallback_used=bool(outcome.fallback_task_ids),
        total_duration=outcome.total_duration,
        agents_executed=outcome.execution_order,
        fallback_tasks=outcome.fallback_task_ids,
        last_progress=last_progress,
        data=outcome.storyline,
    )


@router.post(
    "/storylines/executions",
    response_model=ExecutionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["storylines"],
)
async def start_execution(
    request: Request,
    orchestrator: StorylineOrchestrator = Depends(get_orchestrator),
    registry: ExecutionRegistry = Depends(get_execution_registry),
) -> ExecutionAccepted:
    payload, context = await _extract_payload(request)

    async def _job(execution_id: str, on_progress: Any) -> RunOutcome:
        if payload.test_mode:
            return _test_mode_outcome(orchestrator)
        return await orchestrator.execute(context, on_progress=on_progress, run_id=execution_id)

    execution = registry.submit(_job)
    return ExecutionAccepted(execution_id=execution.execution_id, status=execution.status)


@router.get(
    "/storylines/executions/{execution_id}",
    response_model=ExecutionStatusResponse,
    tags=["storylines"],
)
async def get_execution_status(
    execution_id: str,
    registry: ExecutionRegistry = Depends(get_execution_registry),
) -> ExecutionStatusResponse:
    execution = registry.get(execution_id)
    if execution is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Execution not found")
    return execution.to_response()


@router.get("/agents/connectivity", response_model=ConnectivityReport, tags=["diagnostics"])
async def agent_connectivity(
    client: AgentClient = Depends(get_agent_client),
    orchestrator: StorylineOrchestrator = Depends(get_orchestrator),
) -> ConnectivityReport:
    report = await client.check_all(orchestrator.graph)
    return ConnectivityReport.model_validate(report)
