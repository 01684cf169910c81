from __future__ import annotations

import pytest
from pydantic import ValidationError

from storyline_engine.core.config import Settings, get_settings
from storyline_engine.orchestration.tasks import MARKET_SIZING, default_task_graph


def test_defaults():
    settings = Settings()

    assert settings.retry.max_retries == 2
    assert settings.retry.base_delay_seconds == 1.0
    assert settings.agent_api.timeout_seconds == 120.0
    assert settings.agent_api.api_key_header == "X-API-Key"
    assert settings.engine.run_timeout_seconds is None
    assert settings.report.minutes_per_section == 3


def test_nested_environment_overrides(monkeypatch):
    monkeypatch.setenv("RETRY__MAX_RETRIES", "4")
    monkeypatch.setenv("AGENT_BINDINGS__MARKET_SIZING", "custom-market-agent")
    monkeypatch.setenv("ENGINE__RUN_TIMEOUT_SECONDS", "30")

    settings = Settings()

    assert settings.retry.max_retries == 4
    assert settings.agent_bindings.market_sizing == "custom-market-agent"
    assert settings.engine.run_timeout_seconds == 30.0
    assert default_task_graph(settings.agent_bindings).get(MARKET_SIZING).endpoint_binding == "custom-market-agent"


def test_overrides_bypass_the_cache():
    settings = get_settings({"retry": {"max_retries": 0}})

    assert settings.retry.max_retries == 0
    assert get_settings() is get_settings()


def test_negative_retry_budget_is_rejected():
    with pytest.raises(ValidationError):
        Settings(retry={"max_retries": -1})
