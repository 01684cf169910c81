from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultSource(str, Enum):
    REAL = "real"
    FALLBACK = "fallback"


Citation = str | dict[str, Any]


class AgentResponse(BaseModel):
    """Normalised payload returned by one successful agent call."""

    content: dict[str, Any] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    validation_warning: str | None = None


class TaskResult(BaseModel):
    """The single, write-once outcome of one task within a run."""

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(..., min_length=1)
    content: dict[str, Any] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    produced_by: ResultSource = ResultSource.REAL
    completed_at: datetime = Field(default_factory=_utcnow)
    validation_warning: str | None = None
    attempts: int = Field(1, ge=0)

    @property
    def is_fallback(self) -> bool:
        return self.produced_by is ResultSource.FALLBACK

    @property
    def title(self) -> str | None:
        title = self.content.get("title")
        return title if isinstance(title, str) and title.strip() else None


class Section(BaseModel):
    id: str
    title: str
    description: str = ""
    order: int = Field(..., ge=1)
    status: str = "final"
    framework: str = "generic"
    source_task_id: str
    insights: list[str] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list, max_length=4)
    chart_data: dict[str, Any] | None = None
    source: str = "cfa-demo-agent"
    fallback: bool = False
    generated_at: datetime = Field(default_factory=_utcnow)


class ConsolidatedReport(BaseModel):
    title: str
    summary: str
    presentation_flow: str = ""
    sections: list[Section] = Field(default_factory=list)
    total_sections: int = Field(0, ge=0)
    estimated_duration: int = Field(0, ge=0, description="Presentation estimate in minutes.")
    generated_at: datetime = Field(default_factory=_utcnow)
    generation_source: str = "cfa-demo"
    status: str = "draft"


class ExecutionRecord(BaseModel):
    task_id: str
    name: str
    completed: bool = True
    produced_by: ResultSource = ResultSource.REAL


class RunOutcome(BaseModel):
    """What a caller of ``execute`` receives; always carries a storyline."""

    success: bool
    storyline: ConsolidatedReport
    execution_order: list[ExecutionRecord] = Field(default_factory=list)
    total_duration: float = Field(0.0, ge=0.0, description="Run duration in seconds.")
    agent_results: dict[str, TaskResult] = Field(default_factory=dict)
    error: str | None = None
    fallback: bool = False

    @property
    def fallback_task_ids(self) -> list[str]:
        return [task_id for task_id, result in self.agent_results.items() if result.is_fallback]
