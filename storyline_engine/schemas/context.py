from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class ProjectContext(BaseModel):
    """Flat project description supplied by the caller of a run.

    Every field has a default so that a run can always start, even from an
    empty request.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    project_id: str = Field("cfa-demo-test")
    project_name: str = Field("New Pension Strategy")
    client_name: str = Field("UBS")
    industry: list[str] = Field(default_factory=lambda: ["Wealth Management", "Retail Banking"])
    description: str = Field("")
    deliverable_id: str | None = None
    deliverable_name: str = Field("Strategy Presentation")
    brief: str | None = None
    geography: str = Field("Switzerland")
    sector: str = Field("Pension / Vorsorge")
    audience: list[str] = Field(default_factory=lambda: ["C-Level Executives", "Board of Directors"])

    @field_validator("industry", "audience", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if not isinstance(value, (list, tuple, set)):
            value = [value]
        items = [item if isinstance(item, str) else str(item) for item in value if item is not None]
        return [item for item in items if item.strip()]

    @field_validator(
        "project_id", "project_name", "client_name", "deliverable_name", "geography", "sector", mode="before"
    )
    @classmethod
    def _default_when_blank(cls, value: Any, info: ValidationInfo) -> Any:
        if value is not None and not isinstance(value, str):
            value = str(value)
        if value is None or not value.strip():
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("description", "deliverable_id", "brief", mode="before")
    @classmethod
    def _scalar_text(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return "" if info.field_name == "description" else None
        return value if isinstance(value, str) else str(value)

    @classmethod
    def from_request(
        cls,
        *,
        project_id: str | None = None,
        project_data: Mapping[str, Any] | None = None,
        deliverable_data: Mapping[str, Any] | None = None,
        client_data: Mapping[str, Any] | None = None,
    ) -> "ProjectContext":
        """Fold the loosely shaped trigger request into a context."""
        project = dict(project_data or {})
        deliverable = dict(deliverable_data or {})
        client = dict(client_data or {})
        nested_client = project.get("client")
        nested_client_name = nested_client.get("name") if isinstance(nested_client, Mapping) else None

        values: dict[str, Any] = {
            "project_id": project_id,
            "project_name": project.get("name"),
            "client_name": client.get("name") or nested_client_name,
            "industry": client.get("industry") or project.get("industry"),
            "description": project.get("description") or "",
            "deliverable_id": deliverable.get("id") or deliverable.get("_id"),
            "deliverable_name": deliverable.get("name") or deliverable.get("type"),
            "brief": deliverable.get("brief") or project.get("brief"),
            "geography": client.get("geography") or project.get("geography"),
            "sector": client.get("sector") or project.get("sector"),
            "audience": deliverable.get("audience"),
        }
        return cls(**{key: value for key, value in values.items() if value is not None})
