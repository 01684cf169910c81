from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class TaskEventStatus(str, Enum):
    STARTING = "starting"
    COMPLETED = "completed"
    FAILED = "failed"


class ProgressEvent(BaseModel):
    """Payload delivered to progress subscribers on every task event."""

    phase: str = Field(..., description="Display name of the task that emitted the event.")
    phase_description: str = ""
    phase_number: int = Field(0, ge=0, description="Topological phase of the task (0 for run-level events).")
    task_id: str | None = None
    progress: float = Field(0.0, ge=0.0, le=100.0)
    status: str
    completed_tasks: int = Field(0, ge=0)
    total_tasks: int = Field(0, ge=0)
    total_phases: int = Field(0, ge=0)
    elapsed: float = Field(0.0, ge=0.0, description="Seconds since the run started.")
    estimated_remaining: float | None = Field(default=None, ge=0.0)
