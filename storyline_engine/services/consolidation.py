from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ..core.config import ReportSettings, Settings
from ..core.logging import get_logger
from ..orchestration.tasks import TaskDefinition, TaskGraph
from ..schemas.results import ConsolidatedReport, Section, TaskResult
from .extractors import Extractor, first_match

logger = get_logger(name=__name__)

MAX_KEY_POINTS = 4


def _chart(kind: str, key: str, **extras: str) -> Callable[[Mapping[str, Any]], dict[str, Any] | None]:
    def _extract(content: Mapping[str, Any]) -> dict[str, Any] | None:
        value = content.get(key)
        if not value:
            return None
        chart: dict[str, Any] = {"type": kind, key: value}
        for alias, source_key in extras.items():
            if source_key in content:
                chart[alias] = content[source_key]
        return chart

    return _extract


CHART_EXTRACTORS: tuple[Extractor[dict[str, Any]], ...] = (
    Extractor("market_sizing", _chart("market_sizing", "market_segments", total="total_market")),
    Extractor("competitive_matrix", _chart("competitive_matrix", "player_categories")),
    Extractor("capability_gaps", _chart("capability_gaps", "capability_dimensions")),
)


@dataclass(slots=True)
class ConsolidatorConfig:
    title: str
    executive_summary: str
    presentation_flow: str
    minutes_per_section: int = 3
    generation_source: str = "cfa-demo"
    section_source: str = "cfa-demo-agent"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConsolidatorConfig":
        return cls.from_report(settings.report)

    @classmethod
    def from_report(cls, options: ReportSettings) -> "ConsolidatorConfig":
        return cls(
            title=options.title,
            executive_summary=options.executive_summary,
            presentation_flow=options.presentation_flow,
            minutes_per_section=options.minutes_per_section,
            generation_source=options.generation_source,
        )


class ResultConsolidator:
    """Turns the per-task results of one run into the ordered report."""

    def __init__(self, graph: TaskGraph, config: ConsolidatorConfig | None = None) -> None:
        self._graph = graph
        self._config = config or ConsolidatorConfig.from_report(ReportSettings())

    @classmethod
    def from_settings(cls, settings: Settings, graph: TaskGraph) -> "ResultConsolidator":
        return cls(graph, ConsolidatorConfig.from_settings(settings))

    def consolidate(self, results: Mapping[str, TaskResult]) -> ConsolidatedReport:
        unknown = sorted(set(results) - set(self._graph.canonical_order))
        if unknown:
            logger.warning("consolidation_unknown_results", task_ids=unknown)

        sections: list[Section] = []
        for task in self._graph:
            result = results.get(task.task_id)
            if result is None:
                continue
            sections.append(self._section(task, result, order=len(sections) + 1))

        logger.info(
            "storyline_consolidated",
            sections=len(sections),
            fallback_sections=sum(1 for section in sections if section.fallback),
        )
        return ConsolidatedReport(
            title=self._config.title,
            summary=self._config.executive_summary,
            presentation_flow=self._config.presentation_flow,
            sections=sections,
            total_sections=len(sections),
            estimated_duration=len(sections) * self._config.minutes_per_section,
            generation_source=self._config.generation_source,
            status="draft",
        )

    def _section(self, task: TaskDefinition, result: TaskResult, *, order: int) -> Section:
        return Section(
            id=f"{self._config.generation_source}-{order}",
            title=result.title or f"{task.display_name} Analysis",
            description=f"Strategic analysis: {task.display_name}",
            order=order,
            status="final",
            framework=task.framework,
            source_task_id=task.task_id,
            insights=list(result.insights),
            citations=list(result.citations),
            key_points=key_points(result, task),
            chart_data=chart_data(result.content),
            source=self._config.section_source,
            fallback=result.is_fallback,
            generated_at=result.completed_at,
        )


def key_points(result: TaskResult, task: TaskDefinition) -> list[str]:
    if result.insights:
        return list(result.insights[:MAX_KEY_POINTS])
    return [f"Analysis completed by {task.display_name}"]


def chart_data(content: Mapping[str, Any]) -> dict[str, Any] | None:
    match = first_match(content, CHART_EXTRACTORS)
    return match.value if match is not None else None
