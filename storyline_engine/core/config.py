from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentAPISettings(BaseModel):
    base_url: str = Field("https://ai.vave.ch", description="Base URL of the custom agent service.")
    api_key: str | None = Field(default=None, description="API key sent with every agent call.")
    api_key_header: str = Field("X-API-Key", description="Header name used to transmit the API key.")
    execute_path_template: str = Field(
        "/api/custom-agents/{binding}/execute",
        description="Path template for executing an agent; '{binding}' is replaced with the endpoint binding.",
    )
    timeout_seconds: float = Field(120.0, gt=0.0, description="Hard timeout applied to every agent call.")
    connectivity_timeout_seconds: float = Field(10.0, gt=0.0, description="Timeout for connectivity checks.")
    verify_ssl: bool = Field(True)
    extra_headers: dict[str, str] = Field(default_factory=dict, description="Additional headers for agent calls.")


class RetrySettings(BaseModel):
    max_retries: int = Field(2, ge=0, description="Retries after the first failed attempt.")
    base_delay_seconds: float = Field(1.0, ge=0.0, description="Backoff unit; attempt n waits n * base delay.")


class AgentBindingSettings(BaseModel):
    market_sizing: str = Field("68f229005e8b5435150c2991", min_length=1)
    competitive_landscape: str = Field("68f22dc0330210e8b8f60a43", min_length=1)
    capability_benchmark: str = Field("68f22f36330210e8b8f60a51", min_length=1)
    strategic_options: str = Field("68f23ae07e8d5848f940482d", min_length=1)
    partnerships: str = Field("68f23be77e8d5848f9404847", min_length=1)


class EngineSettings(BaseModel):
    run_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Optional deadline for a whole run; in-flight agent calls are cancelled when it expires.",
    )
    max_concurrency: int = Field(5, ge=1, description="Maximum agent calls in flight during one phase.")
    max_tracked_executions: int = Field(200, ge=1, description="Background executions kept in memory for polling.")


class ReportSettings(BaseModel):
    minutes_per_section: int = Field(3, ge=1)
    title: str = Field("UBS Switzerland Pension Strategy Analysis", min_length=1)
    executive_summary: str = Field(
        "Comprehensive strategic analysis of the client's position in the pension market, including market"
        " sizing, competitive dynamics, capability assessment, strategic options, and partnership opportunities.",
    )
    presentation_flow: str = Field(
        "Five-slide strategic narrative covering market opportunity, competitive threats, internal capabilities,"
        " recommended strategy, and implementation partnerships.",
    )
    generation_source: str = Field("cfa-demo", min_length=1)


class ObservabilitySettings(BaseModel):
    prometheus_enabled: bool = Field(True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"


class Settings(BaseSettings):
    environment: Literal["local", "test", "production"] = Field("local")
    api_v1_prefix: str = Field("/api/v1")

    agent_api: AgentAPISettings = Field(default_factory=AgentAPISettings)  # type: ignore[arg-type]
    retry: RetrySettings = Field(default_factory=RetrySettings)  # type: ignore[arg-type]
    agent_bindings: AgentBindingSettings = Field(default_factory=AgentBindingSettings)  # type: ignore[arg-type]
    engine: EngineSettings = Field(default_factory=EngineSettings)  # type: ignore[arg-type]
    report: ReportSettings = Field(default_factory=ReportSettings)  # type: ignore[arg-type]
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)  # type: ignore[arg-type]

    frontend_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins permitted to access the API via CORS.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def _get_cached_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def get_settings(overrides: Mapping[str, Any] | None = None) -> Settings:
    """Return settings, using cached defaults unless overrides are provided."""
    if overrides:
        return Settings(**dict(overrides))
    return _get_cached_settings()
