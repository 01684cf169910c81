from __future__ import annotations

import pytest

from storyline_engine.orchestration.tasks import TaskDefinition, default_task_graph
from storyline_engine.schemas.results import ResultSource
from storyline_engine.services.fallback_data import FALLBACKS_BY_FRAMEWORK
from storyline_engine.services.fallbacks import FallbackProvider


def test_every_default_task_has_a_dedicated_fallback():
    provider = FallbackProvider()

    for task in default_task_graph():
        assert task.framework in provider
        result = provider.for_task(task, attempts=3)
        assert result.produced_by is ResultSource.FALLBACK
        assert result.attempts == 3
        assert result.insights == FALLBACKS_BY_FRAMEWORK[task.framework]["insights"]
        assert result.content["title"]


def test_unknown_task_gets_generic_fallback():
    task = TaskDefinition(task_id="risk_review", display_name="Risk Review", endpoint_binding="agent-r")

    result = FallbackProvider().for_task(task)

    assert result.task_id == "risk_review"
    assert result.content["title"] == "Analysis Results (Risk Review)"
    assert result.insights == ["Fallback analysis provided", "Agent execution failed"]


def test_payload_lookup_prefers_task_id_over_framework():
    task = TaskDefinition(
        task_id="market_sizing_eu",
        display_name="EU Market",
        endpoint_binding="agent-eu",
        framework="market_sizing",
    )
    provider = FallbackProvider(
        {
            "market_sizing": FALLBACKS_BY_FRAMEWORK["market_sizing"],
            "market_sizing_eu": {"slide_content": {"title": "EU"}, "insights": ["eu insight"]},
        }
    )

    assert provider.for_task(task).insights == ["eu insight"]


def test_invalid_payloads_are_rejected_at_construction():
    with pytest.raises(ValueError, match="Missing insights"):
        FallbackProvider({"broken": {"slide_content": {"title": "no insights"}}})


def test_complete_storyline_is_fully_flagged():
    report = FallbackProvider(minutes_per_section=4).complete_storyline()

    assert report.total_sections == 5
    assert report.estimated_duration == 20
    assert report.generation_source == "cfa-demo-fallback"
    assert [section.order for section in report.sections] == [1, 2, 3, 4, 5]
    assert all(section.fallback for section in report.sections)
    assert report.sections[0].id == "market_sizing-fallback"
    assert all(len(section.key_points) <= 4 for section in report.sections)
