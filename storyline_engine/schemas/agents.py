from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SlideSlot(BaseModel):
    slot_id: str
    slot_name: str
    slot_type: str | None = None
    required: bool = True
    description: str = ""


class SlideSpec(BaseModel):
    slide_number: int = Field(..., ge=1)
    framework_id: str
    framework_name: str | None = None
    title: str
    slots: list[SlideSlot] = Field(default_factory=list)


class ProjectBlock(BaseModel):
    project_name: str | None = None
    client_name: str
    client_industry: list[str] = Field(default_factory=list)
    geography: str
    sector: str
    project_type: str | None = None


class BriefContext(BaseModel):
    brief_summary: str
    key_topics: list[str] = Field(default_factory=list)
    time_horizon: str | None = None
    expected_outputs: list[str] = Field(default_factory=list)
    strategic_direction: str | None = None


class KnowledgeBaseRef(BaseModel):
    kb_id: str
    kb_type: str | None = None
    description: str | None = None


class DataSources(BaseModel):
    knowledge_bases: list[KnowledgeBaseRef] = Field(default_factory=list)
    search_priority: list[str] = Field(default_factory=list)
    min_search_attempts: int | None = None
    max_search_attempts: int = 5


class ValidationRule(BaseModel):
    rule_id: str
    rule_type: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class AgentRequest(BaseModel):
    """Structured request sent to one agent endpoint.

    Only ``storyline_engine.services.agent_client`` turns this into a string.
    """

    task_id: str
    agent_id: str
    slide: SlideSpec
    project: ProjectBlock
    brief_context: BriefContext
    dependencies: dict[str, Any] = Field(default_factory=dict)
    pre_filled_data: dict[str, Any] = Field(default_factory=dict)
    instructions: dict[str, Any] = Field(default_factory=dict)
    data_sources: DataSources = Field(default_factory=DataSources)
    validation_rules: list[ValidationRule] = Field(default_factory=list)
    token_budget: int = Field(8000, ge=1)
