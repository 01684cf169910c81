from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .context import ProjectContext
from .progress import ProgressEvent
from .results import ConsolidatedReport, ExecutionRecord, RunOutcome

ExecutionStatus = Literal["queued", "running", "completed", "failed"]


class StorylineRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    project_id: str | None = Field(default=None, alias="projectId")
    project_data: dict[str, Any] = Field(default_factory=dict, alias="projectData")
    deliverable_data: dict[str, Any] = Field(default_factory=dict, alias="deliverableData")
    client_data: dict[str, Any] = Field(default_factory=dict, alias="clientData")
    test_mode: bool = Field(default=False, alias="testMode")

    @field_validator("project_id", mode="before")
    @classmethod
    def _project_id_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    def to_context(self) -> ProjectContext:
        return ProjectContext.from_request(
            project_id=self.project_id,
            project_data=self.project_data,
            deliverable_data=self.deliverable_data,
            client_data=self.client_data,
        )


class StorylineResponse(BaseModel):
    success: bool
    source: str
    project_id: str
    test_mode: bool = False
    fallback_used: bool = False
    error: str | None = None
    total_duration: float = Field(0.0, ge=0.0)
    agents_executed: list[ExecutionRecord] = Field(default_factory=list)
    fallback_tasks: list[str] = Field(default_factory=list)
    last_progress: ProgressEvent | None = None
    data: ConsolidatedReport


class ExecutionAccepted(BaseModel):
    execution_id: str
    status: ExecutionStatus


class ExecutionStatusResponse(BaseModel):
    execution_id: str
    status: ExecutionStatus
    progress: float = Field(0.0, ge=0.0, le=100.0)
    created_at: datetime
    updated_at: datetime
    last_event: ProgressEvent | None = None
    outcome: RunOutcome | None = None
    error: str | None = None


class AgentConnectivity(BaseModel):
    task_id: str
    name: str
    connected: bool
    status: int | None = None
    error: str | None = None
    latency: float | None = None


class ConnectivityReport(BaseModel):
    total_agents: int
    connected_agents: int
    all_connected: bool
    agents: list[AgentConnectivity] = Field(default_factory=list)
