from __future__ import annotations

import copy
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from ..core.logging import get_logger
from ..schemas.results import AgentResponse, ConsolidatedReport, ResultSource, Section, TaskResult
from .agent_client import normalize_agent_payload
from .fallback_data import COMPLETE_STORYLINE_FALLBACK, FALLBACKS_BY_FRAMEWORK

if TYPE_CHECKING:
    from ..orchestration.tasks import TaskDefinition

logger = get_logger(name=__name__)


class FallbackProvider:
    """Maps a task onto a static, pre-validated result.

    Payloads are looked up by task id first, then by framework; tasks with
    neither get a generic payload. All payloads are normalised once at
    construction and rejected if they would not pass the live validation.
    """

    def __init__(
        self,
        payloads: Mapping[str, Mapping[str, Any]] | None = None,
        *,
        storyline: Mapping[str, Any] | None = None,
        minutes_per_section: int = 3,
    ) -> None:
        source = FALLBACKS_BY_FRAMEWORK if payloads is None else payloads
        validated: dict[str, AgentResponse] = {}
        for key, payload in source.items():
            normalized = normalize_agent_payload(payload, task_name=key)
            if normalized.validation_warning:
                raise ValueError(f"Fallback payload for '{key}' is invalid: {normalized.validation_warning}")
            validated[key] = normalized
        self._payloads: Mapping[str, AgentResponse] = MappingProxyType(validated)
        self._storyline = copy.deepcopy(dict(storyline if storyline is not None else COMPLETE_STORYLINE_FALLBACK))
        self._minutes_per_section = minutes_per_section

    def __contains__(self, key: object) -> bool:
        return key in self._payloads

    def _resolve(self, task: "TaskDefinition") -> AgentResponse:
        payload = self._payloads.get(task.task_id) or self._payloads.get(task.framework)
        if payload is not None:
            return payload
        logger.warning("fallback_generic_used", task=task.task_id)
        return AgentResponse(
            content={
                "title": f"Analysis Results ({task.display_name})",
                "content": "Fallback content provided due to agent unavailability",
            },
            insights=["Fallback analysis provided", "Agent execution failed"],
            citations=["Fallback data source"],
        )

    def for_task(self, task: "TaskDefinition", *, attempts: int = 0) -> TaskResult:
        payload = self._resolve(task)
        return TaskResult(
            task_id=task.task_id,
            content=copy.deepcopy(payload.content),
            insights=list(payload.insights),
            citations=copy.deepcopy(payload.citations),
            produced_by=ResultSource.FALLBACK,
            attempts=attempts,
        )

    def complete_storyline(self) -> ConsolidatedReport:
        """The canned whole-run report returned when orchestration itself fails."""
        storyline = self._storyline
        sections = []
        for index, entry in enumerate(storyline.get("sections", []), start=1):
            framework = str(entry.get("framework") or "generic")
            insights = [str(item) for item in entry.get("insights", [])]
            sections.append(
                Section(
                    id=f"{framework}-fallback",
                    title=str(entry.get("title") or framework),
                    description=str(entry.get("description") or ""),
                    order=index,
                    framework=framework,
                    source_task_id=str(entry.get("task_id") or framework),
                    insights=insights,
                    citations=list(entry.get("citations", [])),
                    key_points=insights[:4],
                    source=str(storyline.get("generation_source") or "fallback"),
                    fallback=True,
                )
            )
        return ConsolidatedReport(
            title=str(storyline.get("title") or "Storyline (Fallback)"),
            summary=str(storyline.get("summary") or ""),
            presentation_flow=str(storyline.get("presentation_flow") or ""),
            sections=sections,
            total_sections=len(sections),
            estimated_duration=len(sections) * self._minutes_per_section,
            generation_source=str(storyline.get("generation_source") or "fallback"),
            status="draft",
        )
